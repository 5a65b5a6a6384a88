"""Database models."""

from spindbet.models.account import Account
from spindbet.models.base import Base, TimestampMixin, UUIDMixin
from spindbet.models.house import HOUSE_CONFIG_ID, HouseConfig, HouseSettings
from spindbet.models.ledger import EntryType, LedgerEntry
from spindbet.models.payment import PaymentKind, PaymentRecord, PaymentStatus
from spindbet.models.round import CoinflipGame, RoundState, SlotRound

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "UUIDMixin",
    # Account & ledger
    "Account",
    "LedgerEntry",
    "EntryType",
    # Payments
    "PaymentRecord",
    "PaymentKind",
    "PaymentStatus",
    # Rounds
    "SlotRound",
    "CoinflipGame",
    "RoundState",
    # House
    "HouseConfig",
    "HouseSettings",
    "HOUSE_CONFIG_ID",
]
