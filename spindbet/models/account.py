"""Account model: the authoritative per-user balance and counters."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from spindbet.models.base import Base, Money, TimestampMixin


class Account(Base, TimestampMixin):
    """Player account keyed by the external (messenger) user id.

    ``balance`` never goes below zero: every debit is a conditional
    UPDATE in LedgerService and the CHECK constraint backs it up.
    """

    __tablename__ = "accounts"

    id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        comment="External user identifier",
    )

    balance: Mapped[Decimal] = mapped_column(
        Money,
        default=Decimal("0"),
        nullable=False,
    )

    # Referral chain (set once)
    referred_by: Mapped[str | None] = mapped_column(
        String(64),
        ForeignKey("accounts.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="Level-1 referrer",
    )
    referred_by_level2: Mapped[str | None] = mapped_column(
        String(64),
        ForeignKey("accounts.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="Level-2 referrer (the referrer's own referrer)",
    )

    # Aggregate counters
    total_deposited: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    total_withdrawn: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    total_wagered: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    total_wins: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_games: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    referral_earnings: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)

    # Daily bonus / withdrawal bookkeeping
    last_bonus_claim_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    last_withdrawal_check_url: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )
    last_withdrawal_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_accounts_balance_non_negative"),
        CheckConstraint("referred_by IS NULL OR referred_by <> id", name="ck_accounts_no_self_referral"),
    )

    def __repr__(self) -> str:
        return f"<Account {self.id} balance={self.balance}>"
