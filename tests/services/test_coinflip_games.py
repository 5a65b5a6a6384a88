"""Tests for CoinflipService."""

import asyncio
from decimal import Decimal

import pytest

from spindbet.engine import coinflip
from spindbet.engine.coinflip import CoinFace, CoinflipResult
from spindbet.models.round import RoundState
from spindbet.services.coinflip import CoinflipService
from spindbet.services.house import HouseConfigService
from spindbet.utils.errors import (
    AlreadySettledError,
    InsufficientFundsError,
    InvalidRoundStateError,
    NotReadyError,
    ValidationError,
)


@pytest.fixture
def coinflip_service(session_factory, settings, redis_mock):
    return CoinflipService(session_factory, settings, redis_mock)


def force(monkeypatch, win: bool):
    """Make every toss land on (win) or off (loss) the player's choice."""

    def fake_flip(server_seed, client_seed, choice, house_edge):
        face = choice if win else choice.opposite()
        return CoinflipResult(face=face, win=win, point=0 if win else 9999, threshold=4500)

    monkeypatch.setattr(coinflip, "flip", fake_flip)


class TestStart:
    """Tests for start()."""

    @pytest.mark.asyncio
    async def test_debits_stake(self, coinflip_service, make_account, load_account):
        await make_account("player", balance="3")

        started = await coinflip_service.start("player", "1", "heads")

        assert started.choice is CoinFace.HEADS
        assert started.state is RoundState.OPEN
        assert started.balance == Decimal("2")
        assert (await load_account("player")).balance == Decimal("2")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("choice", ["edge", "", "h"])
    async def test_bad_choice(self, coinflip_service, make_account, choice):
        await make_account("player", balance="3")
        with pytest.raises(ValidationError):
            await coinflip_service.start("player", "1", choice)

    @pytest.mark.asyncio
    async def test_insufficient_balance(self, coinflip_service, make_account, load_account):
        await make_account("player", balance="0.5")

        with pytest.raises(InsufficientFundsError):
            await coinflip_service.start("player", "1", "tails")

        assert (await load_account("player")).balance == Decimal("0.5")


class TestSettle:
    """Tests for flip() / settle()."""

    @pytest.mark.asyncio
    async def test_winning_flip(self, coinflip_service, make_account, load_account, monkeypatch):
        """Stake 1 on heads, heads comes up: payout 2, one win, one game."""
        force(monkeypatch, win=True)
        await make_account("player", balance="1")

        started = await coinflip_service.start("player", "1", "heads")
        settlement = await coinflip_service.flip(started.game_id, "my-seed")

        assert settlement.outcome is CoinFace.HEADS
        assert settlement.win is True
        assert settlement.payout == Decimal("2")
        assert settlement.balance == Decimal("2")

        account = await load_account("player")
        assert account.balance == Decimal("2")
        assert account.total_wins == 1
        assert account.total_games == 1
        assert account.total_wagered == Decimal("1")

    @pytest.mark.asyncio
    async def test_losing_flip(self, coinflip_service, make_account, load_account, monkeypatch):
        force(monkeypatch, win=False)
        await make_account("player", balance="1")

        started = await coinflip_service.start("player", "1", "tails")
        settlement = await coinflip_service.flip(started.game_id, "my-seed")

        assert settlement.outcome is CoinFace.HEADS
        assert settlement.win is False
        assert settlement.payout == Decimal("0")
        account = await load_account("player")
        assert account.balance == Decimal("0")
        assert account.total_wins == 0
        assert account.total_games == 1

    @pytest.mark.asyncio
    async def test_records_house_edge_in_effect(self, coinflip_service, make_account, session_factory, settings):
        await make_account("player", balance="1")
        async with session_factory.begin() as session:
            await HouseConfigService(session, settings).set_house_edge("0.1")

        started = await coinflip_service.start("player", "1", "heads")
        settlement = await coinflip_service.flip(started.game_id, "my-seed")

        assert settlement.house_edge == Decimal("0.1")
        ok, error = coinflip.verify_coinflip(
            settlement.server_seed,
            started.server_seed_hash,
            "my-seed",
            CoinFace.HEADS,
            settlement.house_edge,
            settlement.outcome,
        )
        assert ok, error

    @pytest.mark.asyncio
    async def test_house_edge_fixed_at_start(self, coinflip_service, make_account, session_factory, settings):
        """Changing the edge after the seed is fixed leaves the outcome alone."""
        await make_account("player", balance="1")
        async with session_factory.begin() as session:
            await HouseConfigService(session, settings).set_house_edge("0.1")

        started = await coinflip_service.start("player", "1", "heads")
        assert started.house_edge == Decimal("0.1")

        await coinflip_service.set_client_seed(started.game_id, "my-seed")
        async with session_factory.begin() as session:
            await HouseConfigService(session, settings).set_house_edge("0.5")
        settlement = await coinflip_service.settle(started.game_id)

        expected = coinflip.flip(settlement.server_seed, "my-seed", CoinFace.HEADS, Decimal("0.1"))
        assert settlement.house_edge == Decimal("0.1")
        assert settlement.outcome is expected.face
        assert settlement.win is expected.win

    @pytest.mark.asyncio
    async def test_settle_without_seed(self, coinflip_service, make_account):
        await make_account("player", balance="1")
        started = await coinflip_service.start("player", "1", "heads")

        with pytest.raises(NotReadyError):
            await coinflip_service.settle(started.game_id)

    @pytest.mark.asyncio
    async def test_retry_with_same_seed_returns_result(self, coinflip_service, make_account, load_account, monkeypatch):
        force(monkeypatch, win=True)
        await make_account("player", balance="1")

        started = await coinflip_service.start("player", "1", "heads")
        first = await coinflip_service.flip(started.game_id, "my-seed")
        second = await coinflip_service.flip(started.game_id, "my-seed")

        assert second.already_settled is True
        assert second.payout == first.payout
        assert (await load_account("player")).balance == Decimal("2")

    @pytest.mark.asyncio
    async def test_retry_with_other_seed_rejected(self, coinflip_service, make_account):
        await make_account("player", balance="1")

        started = await coinflip_service.start("player", "1", "heads")
        await coinflip_service.flip(started.game_id, "my-seed")

        with pytest.raises(AlreadySettledError):
            await coinflip_service.flip(started.game_id, "another-seed")

    @pytest.mark.asyncio
    async def test_seed_fixed_once(self, coinflip_service, make_account):
        await make_account("player", balance="1")
        started = await coinflip_service.start("player", "1", "heads")

        await coinflip_service.set_client_seed(started.game_id, "first")
        with pytest.raises(InvalidRoundStateError):
            await coinflip_service.set_client_seed(started.game_id, "second")

    @pytest.mark.asyncio
    async def test_concurrent_flips_pay_once(self, coinflip_service, make_account, load_account, monkeypatch):
        force(monkeypatch, win=True)
        await make_account("player", balance="1")

        started = await coinflip_service.start("player", "1", "heads")
        results = await asyncio.gather(
            *(coinflip_service.flip(started.game_id, "my-seed") for _ in range(3))
        )

        assert sum(1 for result in results if not result.already_settled) == 1
        assert (await load_account("player")).balance == Decimal("2")

    @pytest.mark.asyncio
    async def test_win_pays_referrer(self, coinflip_service, make_account, load_account, monkeypatch):
        force(monkeypatch, win=True)
        await make_account("r1")
        await make_account("player", balance="1", referred_by="r1")

        started = await coinflip_service.start("player", "1", "heads")
        await coinflip_service.flip(started.game_id, "my-seed")

        r1 = await load_account("r1")
        assert r1.balance == Decimal("0.02")
        assert r1.referral_earnings == Decimal("0.02")
