"""PaymentRecord model: deposits (invoices) and withdrawals (checks)."""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import DateTime, Enum as SQLEnum, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from spindbet.models.base import Base, Money, TimestampMixin, UUIDMixin


class PaymentKind(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"


class PaymentStatus(str, Enum):
    """Internal payment status. Everything but PENDING is terminal."""

    PENDING = "pending"
    PAID = "paid"
    EXPIRED = "expired"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not PaymentStatus.PENDING


class PaymentRecord(Base, UUIDMixin, TimestampMixin):
    """External payment mirrored into the ledger.

    A record reaches PAID at most once; the paid transition and its
    ledger effect commit together (see PaymentService).
    """

    __tablename__ = "payment_records"

    external_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="Gateway invoice id (deposit) or check id (withdrawal)",
    )
    account_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("accounts.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    kind: Mapped[PaymentKind] = mapped_column(
        SQLEnum(PaymentKind),
        nullable=False,
        index=True,
    )
    status: Mapped[PaymentStatus] = mapped_column(
        SQLEnum(PaymentStatus),
        default=PaymentStatus.PENDING,
        nullable=False,
        index=True,
    )
    referral_code_used: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
        comment="Referrer id supplied with the deposit",
    )
    url: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
        comment="Invoice pay URL or check claim URL",
    )
    paid_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        index=True,
    )

    __table_args__ = (
        UniqueConstraint("kind", "external_id", name="uq_payment_records_kind_external_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<PaymentRecord {self.kind.value}:{self.external_id} "
            f"status={self.status.value} amount={self.amount}>"
        )
