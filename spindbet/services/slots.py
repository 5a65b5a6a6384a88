"""Slot round service: open, stop reels, settle."""

import logging
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import update

from spindbet.engine import slots as machine
from spindbet.engine.provably_fair import ProvablyFair
from spindbet.models.ledger import EntryType
from spindbet.models.round import REEL_COUNT, RoundState, SlotRound
from spindbet.schemas.rounds import LineWinSchema, ReelStopped, RoundOpened, SlotSettlement
from spindbet.services.house import HouseConfigService
from spindbet.services.rounds import RoundService
from spindbet.utils.errors import AlreadySettledError, NotReadyError, ValidationError
from spindbet.utils.money import quantize

logger = logging.getLogger(__name__)


class SlotService(RoundService):
    """3x3 slot rounds.

    Each reel is stopped independently and exactly once; the stops are
    derived from (server_seed, client_seed, reel) so a stored reel is
    always what a recomputation would give.
    """

    model = SlotRound
    entity_name = "Slot round"

    async def open_round(
        self,
        account_id: str,
        stake: Decimal | str | int | float,
        client_seed: str | None = None,
    ) -> RoundOpened:
        """Debit the stake and issue the seed commitment.

        Args:
            account_id: Player account
            stake: Wager amount
            client_seed: Optional seed fixed right away

        Raises:
            ValidationError: stake out of range
            InsufficientFundsError: balance < stake (no round is created)
            MaintenanceModeError: maintenance mode is on
        """
        stake = self._validate_stake(stake)
        if client_seed is not None:
            client_seed = self._validate_client_seed(client_seed)

        async with self._sessions.begin() as session:
            await HouseConfigService(session, self.settings).require_open()
            ledger = self._ledger(session)

            commitment = ProvablyFair.commit()
            round_id = str(uuid4())
            entry = await ledger.debit(
                account_id,
                stake,
                EntryType.STAKE,
                reference_id=round_id,
                description="Slot stake",
            )

            round_ = SlotRound(
                id=round_id,
                account_id=account_id,
                stake=stake,
                server_seed=commitment.server_seed,
                server_seed_hash=commitment.server_seed_hash,
                client_seed=client_seed,
                state=RoundState.AWAITING_SETTLEMENT if client_seed else RoundState.OPEN,
            )
            session.add(round_)
            await session.flush()

        await ledger.invalidate_cached_balances()
        logger.info(
            f"Slot round opened: round={round_id[:8]}... "
            f"account={account_id[:8]}... stake={stake}"
        )
        return RoundOpened(
            round_id=round_id,
            stake=stake,
            server_seed_hash=commitment.server_seed_hash,
            state=round_.state,
            balance=entry.balance_after,
        )

    async def set_client_seed(self, round_id: str, client_seed: str) -> RoundState:
        """Fix the client seed before the first reel stop."""
        async with self._sessions.begin() as session:
            round_ = await self._load(session, round_id)
            round_ = await self._fix_client_seed(session, round_, client_seed)
            return round_.state

    async def stop_reel(
        self,
        round_id: str,
        reel: int,
        client_seed: str | None = None,
    ) -> ReelStopped:
        """Stop one reel; stopping it again returns the stored stops.

        Raises:
            ValidationError: reel index out of range
            NotReadyError: no client seed fixed and none supplied
            AlreadySettledError: round is settled
        """
        if isinstance(reel, bool) or not isinstance(reel, int) or not 0 <= reel < REEL_COUNT:
            raise ValidationError(f"Reel must be 0-{REEL_COUNT - 1}", details={"reel": reel})

        async with self._sessions.begin() as session:
            round_ = await self._load(session, round_id)
            if round_.is_settled:
                raise AlreadySettledError(round_id)

            if client_seed is not None:
                round_ = await self._fix_client_seed(session, round_, client_seed)
            if round_.client_seed is None:
                raise NotReadyError("Client seed required before stopping a reel", missing=["client_seed"])

            stops = round_.get_reel(reel)
            if stops is None:
                stops = machine.reel_stops(round_.server_seed, round_.client_seed, reel)
                column = getattr(SlotRound, SlotRound.reel_column(reel))
                await session.execute(
                    update(SlotRound)
                    .where(
                        SlotRound.id == round_id,
                        column.is_(None),
                        SlotRound.state != RoundState.SETTLED,
                    )
                    .values({column: ",".join(str(stop) for stop in stops)})
                    .execution_options(synchronize_session=False)
                )
                round_ = await self._load(session, round_id)
                if round_.is_settled:
                    raise AlreadySettledError(round_id)
                stops = round_.get_reel(reel)

            reels_stopped = REEL_COUNT - len(round_.missing_reels)

        return ReelStopped(
            round_id=round_id,
            reel=reel,
            stop_row=stops,
            symbols=[machine.SYMBOLS[stop].glyph for stop in stops],
            state=round_.state,
            reels_stopped=reels_stopped,
        )

    async def settle(self, round_id: str) -> SlotSettlement:
        """Evaluate the grid and pay out.

        Settling twice returns the stored result; payout is applied once.

        Raises:
            NotReadyError: client seed or a reel stop is missing
        """
        async with self._sessions.begin() as session:
            round_ = await self._load(session, round_id)
            if round_.is_settled:
                logger.info(f"Slot round already settled: round={round_id[:8]}...")
                balance = await self._current_balance(session, round_.account_id)
                return self._settlement(round_, balance, already_settled=True)

            missing = [SlotRound.reel_column(reel) for reel in round_.missing_reels]
            if round_.client_seed is None:
                missing.insert(0, "client_seed")
            if missing:
                raise NotReadyError("Round is not ready to settle", missing=missing)

            evaluation = machine.evaluate_grid(machine.build_grid(round_.reels), round_.stake)
            payout = quantize(evaluation.payout)

            ledger = self._ledger(session)
            if not await self._mark_settled(session, round_, payout):
                round_ = await self._load(session, round_id)
                balance = await self._current_balance(session, round_.account_id)
                return self._settlement(round_, balance, already_settled=True)

            await self._apply_settlement(session, ledger, round_, payout)
            round_ = await self._load(session, round_id)
            balance = await self._current_balance(session, round_.account_id)

        await ledger.invalidate_cached_balances()
        logger.info(
            f"Slot round settled: round={round_id[:8]}... "
            f"account={round_.account_id[:8]}... stake={round_.stake} payout={payout}"
        )
        return self._settlement(round_, balance)

    @staticmethod
    def _settlement(
        round_: SlotRound,
        balance: Decimal,
        already_settled: bool = False,
    ) -> SlotSettlement:
        grid = machine.build_grid(round_.reels)
        evaluation = machine.evaluate_grid(grid, round_.stake)
        return SlotSettlement(
            round_id=round_.id,
            stake=round_.stake,
            grid=[machine.SYMBOLS[index].glyph for index in grid],
            winning_lines=[
                LineWinSchema(
                    line=win.line,
                    symbol=machine.SYMBOLS[win.symbol].glyph,
                    multiplier=win.multiplier,
                )
                for win in evaluation.winning_lines
            ],
            multiplier=evaluation.multiplier,
            payout=round_.payout,
            win=round_.payout > 0,
            server_seed=round_.revealed_server_seed,
            server_seed_hash=round_.server_seed_hash,
            client_seed=round_.client_seed,
            settled_at=round_.settled_at,
            balance=balance,
            already_settled=already_settled,
        )
