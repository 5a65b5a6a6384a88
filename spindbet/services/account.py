"""Account service: first-contact upsert, balance reads and the daily bonus."""

import logging
from datetime import timedelta

from redis.asyncio import Redis
from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from spindbet.config import Settings
from spindbet.models.account import Account
from spindbet.models.base import as_utc, utcnow
from spindbet.models.ledger import EntryType, LedgerEntry
from spindbet.schemas.common import BalanceSchema
from spindbet.schemas.payments import DailyBonusResult
from spindbet.services.ledger import LedgerService
from spindbet.services.referral import ReferralService
from spindbet.utils.errors import NotFoundError, ValidationError
from spindbet.utils.money import ZERO

logger = logging.getLogger(__name__)

MAX_ACCOUNT_ID_LENGTH = 64


class AccountService:
    """Account lifecycle. Each public method is one transaction."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings,
        redis: Redis | None = None,
    ):
        self._sessions = session_factory
        self.settings = settings
        self._redis = redis

    def _ledger(self, session: AsyncSession) -> LedgerService:
        return LedgerService(session, self._redis, self.settings.balance_cache_ttl)

    async def ensure_account(self, account_id: str, referrer_id: str | None = None) -> Account:
        """Create the account on first contact (idempotent upsert).

        Args:
            account_id: External user identifier
            referrer_id: Referrer from the invite link, bound only once

        Returns:
            The account, as stored after this call
        """
        account_id = str(account_id).strip()
        if not account_id or len(account_id) > MAX_ACCOUNT_ID_LENGTH:
            raise ValidationError("Invalid account id", details={"accountId": account_id})

        async with self._sessions.begin() as session:
            account = await session.get(Account, account_id)
            if account is None:
                try:
                    async with session.begin_nested():
                        session.add(Account(id=account_id))
                    logger.info(f"Account created: account={account_id[:8]}...")
                except IntegrityError:
                    # Created concurrently
                    pass

            if referrer_id:
                referral = ReferralService(session, self._ledger(session))
                await referral.bind_referrer(account_id, str(referrer_id))

            account = await session.get(Account, account_id, populate_existing=True)

        return account

    async def get_account(self, account_id: str) -> Account:
        async with self._sessions() as session:
            account = await session.get(Account, account_id)
        if account is None:
            raise NotFoundError("Account", account_id)
        return account

    async def get_balance(self, account_id: str) -> BalanceSchema:
        """Balance read through the Redis cache."""
        async with self._sessions() as session:
            balance = await self._ledger(session).get_balance(account_id)
        return BalanceSchema(account_id=account_id, balance=balance)

    async def get_history(
        self,
        account_id: str,
        *,
        limit: int = 50,
        offset: int = 0,
    ) -> list[LedgerEntry]:
        async with self._sessions() as session:
            return await self._ledger(session).get_entries(account_id, limit=limit, offset=offset)

    async def claim_daily_bonus(self, account_id: str) -> DailyBonusResult:
        """Credit the daily bonus once per cooldown window.

        The claim timestamp is a compare-and-set, so concurrent claims
        pay at most once.
        """
        cooldown = timedelta(hours=self.settings.daily_bonus_cooldown_hours)
        now = utcnow()
        cutoff = now - cooldown

        async with self._sessions.begin() as session:
            ledger = self._ledger(session)
            claimed = await session.execute(
                update(Account)
                .where(
                    Account.id == account_id,
                    or_(
                        Account.last_bonus_claim_at.is_(None),
                        Account.last_bonus_claim_at <= cutoff,
                    ),
                )
                .values(last_bonus_claim_at=now)
                .execution_options(synchronize_session=False)
            )

            if claimed.rowcount == 0:
                row = (
                    await session.execute(
                        select(Account.balance, Account.last_bonus_claim_at).where(
                            Account.id == account_id
                        )
                    )
                ).one_or_none()
                if row is None:
                    raise NotFoundError("Account", account_id)

                logger.info(f"Daily bonus not due: account={account_id[:8]}...")
                return DailyBonusResult(
                    claimed=False,
                    amount=ZERO,
                    balance=row.balance,
                    next_claim_at=as_utc(row.last_bonus_claim_at) + cooldown,
                )

            entry = await ledger.credit(
                account_id,
                self.settings.daily_bonus_amount,
                EntryType.DAILY_BONUS,
                description="Daily bonus",
            )

        await ledger.invalidate_cached_balances()
        return DailyBonusResult(
            claimed=True,
            amount=entry.amount,
            balance=entry.balance_after,
            next_claim_at=now + cooldown,
        )
