"""Slot round and coinflip game results."""

from datetime import datetime
from decimal import Decimal

from pydantic import Field

from spindbet.engine.coinflip import CoinFace
from spindbet.models.round import RoundState
from spindbet.schemas.common import BaseSchema


class RoundOpened(BaseSchema):
    """Stake debited, commitment issued."""

    round_id: str = Field(..., alias="roundId")
    stake: Decimal
    server_seed_hash: str = Field(..., alias="serverSeedHash")
    state: RoundState
    balance: Decimal


class ReelStopped(BaseSchema):
    round_id: str = Field(..., alias="roundId")
    reel: int
    stop_row: list[int] = Field(..., alias="stopRow")
    symbols: list[str]
    state: RoundState
    reels_stopped: int = Field(..., alias="reelsStopped")


class LineWinSchema(BaseSchema):
    line: int
    symbol: str
    multiplier: Decimal


class SlotSettlement(BaseSchema):
    """Settled slot round with revealed seed for verification."""

    round_id: str = Field(..., alias="roundId")
    stake: Decimal
    grid: list[str]
    winning_lines: list[LineWinSchema] = Field(default_factory=list, alias="winningLines")
    multiplier: Decimal
    payout: Decimal
    win: bool
    server_seed: str = Field(..., alias="serverSeed")
    server_seed_hash: str = Field(..., alias="serverSeedHash")
    client_seed: str = Field(..., alias="clientSeed")
    settled_at: datetime | None = Field(None, alias="settledAt")
    balance: Decimal
    already_settled: bool = Field(False, alias="alreadySettled")


class CoinflipStarted(BaseSchema):
    game_id: str = Field(..., alias="gameId")
    stake: Decimal
    choice: CoinFace
    server_seed_hash: str = Field(..., alias="serverSeedHash")
    house_edge: Decimal = Field(..., alias="houseEdge")
    state: RoundState
    balance: Decimal


class CoinflipSettlement(BaseSchema):
    """Flip result with revealed seed for verification."""

    game_id: str = Field(..., alias="gameId")
    stake: Decimal
    choice: CoinFace
    outcome: CoinFace
    win: bool
    payout: Decimal
    house_edge: Decimal = Field(..., alias="houseEdge")
    server_seed: str = Field(..., alias="serverSeed")
    server_seed_hash: str = Field(..., alias="serverSeedHash")
    client_seed: str = Field(..., alias="clientSeed")
    settled_at: datetime | None = Field(None, alias="settledAt")
    balance: Decimal
    already_settled: bool = Field(False, alias="alreadySettled")
