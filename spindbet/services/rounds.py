"""Shared plumbing for the wager round state machines.

open -> awaiting_settlement -> settled. Every transition is a
conditional UPDATE guarded by the current state; a zero rowcount means
another request won the race and the stored row is re-read.
"""

import logging
from decimal import Decimal

from redis.asyncio import Redis
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from spindbet.config import Settings
from spindbet.models.account import Account
from spindbet.models.base import utcnow
from spindbet.models.ledger import EntryType
from spindbet.models.round import RoundState, WagerRoundMixin
from spindbet.services.ledger import LedgerService
from spindbet.services.referral import ReferralService
from spindbet.utils.errors import (
    AlreadySettledError,
    InvalidRoundStateError,
    NotFoundError,
    ValidationError,
)
from spindbet.utils.money import ZERO, parse_amount

logger = logging.getLogger(__name__)

MAX_CLIENT_SEED_LENGTH = 128


class RoundService:
    """Base for SlotService and CoinflipService."""

    model: type[WagerRoundMixin]
    entity_name = "Round"

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

    def _validate_stake(self, stake: Decimal | str | int | float) -> Decimal:
        """Stake must lie within [min_stake, max_stake]."""
        amount = parse_amount(stake, "stake")
        if amount < self.settings.min_stake:
            raise ValidationError(
                f"Minimum stake is {self.settings.min_stake}",
                details={"stake": str(amount)},
            )
        if amount > self.settings.max_stake:
            raise ValidationError(
                f"Maximum stake is {self.settings.max_stake}",
                details={"stake": str(amount)},
            )
        return amount

    @staticmethod
    def _validate_client_seed(client_seed: str) -> str:
        if not isinstance(client_seed, str):
            raise ValidationError("Client seed must be a string")
        client_seed = client_seed.strip()
        if not client_seed or len(client_seed) > MAX_CLIENT_SEED_LENGTH:
            raise ValidationError(
                f"Client seed must be 1-{MAX_CLIENT_SEED_LENGTH} characters"
            )
        return client_seed

    async def _load(self, session: AsyncSession, round_id: str) -> WagerRoundMixin:
        round_ = await session.get(self.model, round_id, populate_existing=True)
        if round_ is None:
            raise NotFoundError(self.entity_name, round_id)
        return round_

    async def _fix_client_seed(
        self,
        session: AsyncSession,
        round_: WagerRoundMixin,
        client_seed: str,
    ) -> WagerRoundMixin:
        """Set the client seed once; repeating the same seed is a no-op.

        Raises:
            AlreadySettledError: round is settled
            InvalidRoundStateError: a different seed is already fixed
        """
        client_seed = self._validate_client_seed(client_seed)
        if round_.is_settled:
            raise AlreadySettledError(round_.id)
        if round_.client_seed == client_seed:
            return round_
        if round_.client_seed is not None:
            raise InvalidRoundStateError(
                "Client seed is already fixed for this round",
                state=round_.state.value,
            )

        model = self.model
        result = await session.execute(
            update(model)
            .where(
                model.id == round_.id,
                model.client_seed.is_(None),
                model.state == RoundState.OPEN,
            )
            .values(client_seed=client_seed, state=RoundState.AWAITING_SETTLEMENT)
            .execution_options(synchronize_session=False)
        )
        round_ = await self._load(session, round_.id)

        if result.rowcount == 0:
            # Lost the race: accept only if the winner used the same seed
            if round_.is_settled:
                raise AlreadySettledError(round_.id)
            if round_.client_seed != client_seed:
                raise InvalidRoundStateError(
                    "Client seed is already fixed for this round",
                    state=round_.state.value,
                )
        return round_

    async def _mark_settled(
        self,
        session: AsyncSession,
        round_: WagerRoundMixin,
        payout: Decimal,
        **values,
    ) -> bool:
        """Compare-and-set the round to SETTLED.

        Returns:
            False if another request settled it first
        """
        model = self.model
        result = await session.execute(
            update(model)
            .where(model.id == round_.id, model.state != RoundState.SETTLED)
            .values(
                state=RoundState.SETTLED,
                payout=payout,
                settled_at=utcnow(),
                **values,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def _apply_settlement(
        self,
        session: AsyncSession,
        ledger: LedgerService,
        round_: WagerRoundMixin,
        payout: Decimal,
    ) -> None:
        """Counters, win credit and win-tier referral cascade."""
        await ledger.record_counters(
            round_.account_id,
            {"total_wagered": round_.stake, "total_games": 1},
        )
        if payout <= ZERO:
            return

        await ledger.credit(
            round_.account_id,
            payout,
            EntryType.WIN,
            counters={"total_wins": 1},
            reference_id=round_.id,
            description=f"{self.entity_name} win",
        )
        referral = ReferralService(session, ledger)
        await referral.apply_referral_bonus(
            round_.account_id,
            payout,
            self.settings.win_referral_rates,
            reference_id=round_.id,
        )

    @staticmethod
    async def _current_balance(session: AsyncSession, account_id: str) -> Decimal:
        return await session.scalar(select(Account.balance).where(Account.id == account_id))
