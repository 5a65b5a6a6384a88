"""Coinflip game service: start, set client seed, settle."""

import logging
from decimal import Decimal
from uuid import uuid4

from spindbet.engine import coinflip as coin
from spindbet.engine.coinflip import CoinFace
from spindbet.engine.provably_fair import ProvablyFair
from spindbet.models.ledger import EntryType
from spindbet.models.round import CoinflipGame, RoundState
from spindbet.schemas.rounds import CoinflipSettlement, CoinflipStarted
from spindbet.services.house import HouseConfigService
from spindbet.services.rounds import RoundService
from spindbet.utils.errors import AlreadySettledError, NotReadyError, ValidationError
from spindbet.utils.money import quantize

logger = logging.getLogger(__name__)


class CoinflipService(RoundService):
    """Single toss against the house, 2x payout on a win."""

    model = CoinflipGame
    entity_name = "Coinflip game"

    @staticmethod
    def _parse_choice(choice: CoinFace | str) -> CoinFace:
        if isinstance(choice, CoinFace):
            return choice
        try:
            return CoinFace(str(choice).strip().lower())
        except ValueError:
            raise ValidationError("Choose heads or tails", details={"choice": str(choice)}) from None

    async def start(
        self,
        account_id: str,
        stake: Decimal | str | int | float,
        choice: CoinFace | str,
    ) -> CoinflipStarted:
        """Debit the stake, record the choice and issue the commitment.

        Raises:
            ValidationError: stake out of range or bad choice
            InsufficientFundsError: balance < stake (no game is created)
            MaintenanceModeError: maintenance mode is on
        """
        stake = self._validate_stake(stake)
        face = self._parse_choice(choice)

        async with self._sessions.begin() as session:
            house = await HouseConfigService(session, self.settings).require_open()
            ledger = self._ledger(session)

            commitment = ProvablyFair.commit()
            game_id = str(uuid4())
            entry = await ledger.debit(
                account_id,
                stake,
                EntryType.STAKE,
                reference_id=game_id,
                description="Coinflip stake",
            )

            game = CoinflipGame(
                id=game_id,
                account_id=account_id,
                stake=stake,
                choice=face,
                server_seed=commitment.server_seed,
                server_seed_hash=commitment.server_seed_hash,
                house_edge=house.house_edge,
                state=RoundState.OPEN,
            )
            session.add(game)
            await session.flush()

        await ledger.invalidate_cached_balances()
        logger.info(
            f"Coinflip started: game={game_id[:8]}... "
            f"account={account_id[:8]}... stake={stake} choice={face.value}"
        )
        return CoinflipStarted(
            game_id=game_id,
            stake=stake,
            choice=face,
            server_seed_hash=commitment.server_seed_hash,
            house_edge=house.house_edge,
            state=RoundState.OPEN,
            balance=entry.balance_after,
        )

    async def set_client_seed(self, game_id: str, client_seed: str) -> RoundState:
        """Fix the client seed (once)."""
        async with self._sessions.begin() as session:
            game = await self._load(session, game_id)
            game = await self._fix_client_seed(session, game, client_seed)
            return game.state

    async def flip(self, game_id: str, client_seed: str) -> CoinflipSettlement:
        """Set the client seed and settle.

        Retrying with the same seed returns the stored result.
        """
        try:
            await self.set_client_seed(game_id, client_seed)
        except AlreadySettledError:
            settlement = await self.settle(game_id)
            if settlement.client_seed != self._validate_client_seed(client_seed):
                raise
            return settlement
        return await self.settle(game_id)

    async def settle(self, game_id: str) -> CoinflipSettlement:
        """Resolve the toss with the house edge fixed at start.

        Raises:
            NotReadyError: no client seed yet
        """
        async with self._sessions.begin() as session:
            game = await self._load(session, game_id)
            if game.is_settled:
                logger.info(f"Coinflip already settled: game={game_id[:8]}...")
                balance = await self._current_balance(session, game.account_id)
                return self._settlement(game, balance, already_settled=True)

            if game.client_seed is None:
                raise NotReadyError("Client seed required before the flip", missing=["client_seed"])

            result = coin.flip(game.server_seed, game.client_seed, game.choice, game.house_edge)
            payout = quantize(coin.payout_for(game.stake, result))

            ledger = self._ledger(session)
            settled = await self._mark_settled(
                session,
                game,
                payout,
                outcome=result.face,
            )
            if not settled:
                game = await self._load(session, game_id)
                balance = await self._current_balance(session, game.account_id)
                return self._settlement(game, balance, already_settled=True)

            await self._apply_settlement(session, ledger, game, payout)
            game = await self._load(session, game_id)
            balance = await self._current_balance(session, game.account_id)

        await ledger.invalidate_cached_balances()
        logger.info(
            f"Coinflip settled: game={game_id[:8]}... account={game.account_id[:8]}... "
            f"choice={game.choice.value} outcome={result.face.value} payout={payout}"
        )
        return self._settlement(game, balance)

    @staticmethod
    def _settlement(
        game: CoinflipGame,
        balance: Decimal,
        already_settled: bool = False,
    ) -> CoinflipSettlement:
        return CoinflipSettlement(
            game_id=game.id,
            stake=game.stake,
            choice=game.choice,
            outcome=game.outcome,
            win=game.outcome == game.choice,
            payout=game.payout,
            house_edge=game.house_edge,
            server_seed=game.revealed_server_seed,
            server_seed_hash=game.server_seed_hash,
            client_seed=game.client_seed,
            settled_at=game.settled_at,
            balance=balance,
            already_settled=already_settled,
        )
