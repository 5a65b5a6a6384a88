"""Referral service: referrer binding and the two-level bonus cascade."""

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from spindbet.config import ReferralRates
from spindbet.models.account import Account
from spindbet.models.ledger import EntryType
from spindbet.services.ledger import LedgerService
from spindbet.utils.errors import NotFoundError
from spindbet.utils.money import ZERO, quantize

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReferralPayout:
    level: int
    referrer_id: str
    amount: Decimal


class ReferralService:
    """Referral chain bookkeeping inside the caller's transaction."""

    def __init__(self, session: AsyncSession, ledger: LedgerService):
        self.session = session
        self.ledger = ledger

    async def bind_referrer(self, account_id: str, referrer_id: str | None) -> bool:
        """Set referred_by once, deriving the level-2 referrer.

        Unknown referrers and self-referral are ignored, not errors.

        Returns:
            True if this call bound the referrer
        """
        if not referrer_id:
            return False

        # 자기 자신 추천 방지
        if referrer_id == account_id:
            logger.info(f"Self-referral ignored: account={account_id[:8]}...")
            return False

        referrer = (
            await self.session.execute(
                select(Account.id, Account.referred_by).where(Account.id == referrer_id)
            )
        ).one_or_none()
        if referrer is None:
            logger.info(f"Unknown referrer ignored: referrer={referrer_id[:8]}...")
            return False

        level2 = referrer.referred_by
        if level2 == account_id:
            # A -> B -> A: keep level 1 only
            level2 = None

        result = await self.session.execute(
            update(Account)
            .where(Account.id == account_id, Account.referred_by.is_(None))
            .values(referred_by=referrer_id, referred_by_level2=level2)
            .execution_options(synchronize_session=False)
        )
        bound = result.rowcount == 1
        if bound:
            logger.info(
                f"Referrer bound: account={account_id[:8]}... "
                f"level1={referrer_id[:8]}... level2={level2[:8] + '...' if level2 else None}"
            )
        return bound

    async def apply_referral_bonus(
        self,
        source_account_id: str,
        amount: Decimal,
        rates: ReferralRates,
        *,
        reference_id: str | None = None,
    ) -> list[ReferralPayout]:
        """Pay the level-1 and level-2 referrers of ``source_account_id``.

        Two explicit lookups, no recursion. Never touches the source
        account itself.

        Args:
            source_account_id: Account whose deposit or win triggered the bonus
            amount: Triggering amount (deposit amount or win payout)
            rates: Deposit-tier or win-tier rates
            reference_id: Payment or round id for the journal

        Returns:
            Payouts actually credited
        """
        chain = (
            await self.session.execute(
                select(Account.referred_by, Account.referred_by_level2).where(
                    Account.id == source_account_id
                )
            )
        ).one_or_none()
        if chain is None:
            return []

        payouts: list[ReferralPayout] = []
        for level, referrer_id, rate in (
            (1, chain.referred_by, rates.level1),
            (2, chain.referred_by_level2, rates.level2),
        ):
            if not referrer_id or referrer_id == source_account_id:
                continue

            bonus = quantize(amount * rate)
            if bonus <= ZERO:
                continue

            try:
                await self.ledger.credit(
                    referrer_id,
                    bonus,
                    EntryType.REFERRAL_BONUS,
                    counters={"referral_earnings": bonus},
                    reference_id=reference_id,
                    description=f"Level {level} referral bonus from {source_account_id}",
                )
            except NotFoundError:
                # UPDATE matched nothing, so nothing to roll back
                logger.warning(
                    f"Referral bonus skipped, referrer missing: referrer={referrer_id[:8]}..."
                )
                continue

            payouts.append(ReferralPayout(level=level, referrer_id=referrer_id, amount=bonus))

        return payouts
