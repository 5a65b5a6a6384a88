"""Pydantic schemas for service results."""

from spindbet.schemas.common import BalanceSchema, BaseSchema
from spindbet.schemas.payments import (
    DailyBonusResult,
    DepositCreated,
    DepositStatus,
    WithdrawalResult,
)
from spindbet.schemas.rounds import (
    CoinflipSettlement,
    CoinflipStarted,
    LineWinSchema,
    ReelStopped,
    RoundOpened,
    SlotSettlement,
)

__all__ = [
    # Common
    "BaseSchema",
    "BalanceSchema",
    # Rounds
    "RoundOpened",
    "ReelStopped",
    "LineWinSchema",
    "SlotSettlement",
    "CoinflipStarted",
    "CoinflipSettlement",
    # Payments
    "DepositCreated",
    "DepositStatus",
    "WithdrawalResult",
    "DailyBonusResult",
]
