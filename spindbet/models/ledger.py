"""Ledger journal: one row per balance movement."""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import DateTime, Enum as SQLEnum, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from spindbet.models.base import Base, Money, UUIDMixin, utcnow


class EntryType(str, Enum):
    """Why the balance moved."""

    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    STAKE = "stake"
    WIN = "win"
    REFERRAL_BONUS = "referral_bonus"
    DAILY_BONUS = "daily_bonus"


class LedgerEntry(Base, UUIDMixin):
    """Immutable balance movement with tamper-evident hash.

    ``amount`` is signed (+credit / -debit); ``balance_after`` is the
    value returned by the conditional UPDATE that applied it.
    """

    __tablename__ = "ledger_entries"

    account_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("accounts.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    entry_type: Mapped[EntryType] = mapped_column(
        SQLEnum(EntryType),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(
        Money,
        nullable=False,
        comment="Signed amount (+credit/-debit)",
    )
    balance_before: Mapped[Decimal] = mapped_column(Money, nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(Money, nullable=False)
    reference_id: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
        index=True,
        comment="Round id or payment id that caused the movement",
    )
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    integrity_hash: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="SHA-256 hash for tamper detection",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry {self.id[:8]}... "
            f"type={self.entry_type.value} amount={self.amount}>"
        )
