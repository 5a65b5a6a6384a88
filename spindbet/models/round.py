"""Wager rounds: 3x3 slot rounds and coinflip games."""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import DateTime, Enum as SQLEnum, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from spindbet.engine.coinflip import CoinFace
from spindbet.models.base import Base, Money, TimestampMixin, UUIDMixin

REEL_COUNT = 3


class RoundState(str, Enum):
    """open -> awaiting_settlement -> settled (terminal)."""

    OPEN = "open"
    AWAITING_SETTLEMENT = "awaiting_settlement"
    SETTLED = "settled"


class WagerRoundMixin(UUIDMixin, TimestampMixin):
    """Columns shared by every provably fair round.

    ``server_seed`` stays private until the round is settled,
    ``server_seed_hash`` is public from creation.
    """

    account_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("accounts.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    stake: Mapped[Decimal] = mapped_column(Money, nullable=False)
    server_seed: Mapped[str] = mapped_column(String(64), nullable=False)
    server_seed_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    client_seed: Mapped[str | None] = mapped_column(String(128), nullable=True)
    payout: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    state: Mapped[RoundState] = mapped_column(
        SQLEnum(RoundState),
        default=RoundState.OPEN,
        nullable=False,
        index=True,
    )
    settled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    @property
    def is_settled(self) -> bool:
        return self.state == RoundState.SETTLED

    @property
    def revealed_server_seed(self) -> str | None:
        """Server seed, only once the round is settled."""
        return self.server_seed if self.is_settled else None


class SlotRound(Base, WagerRoundMixin):
    """3-reel, 3-row slot round.

    Each reel's three stops are stored as "i,j,k" symbol indexes the
    first time the reel is stopped and never rewritten.
    """

    __tablename__ = "slot_rounds"

    reel_0: Mapped[str | None] = mapped_column(String(16), nullable=True)
    reel_1: Mapped[str | None] = mapped_column(String(16), nullable=True)
    reel_2: Mapped[str | None] = mapped_column(String(16), nullable=True)

    @staticmethod
    def reel_column(reel: int) -> str:
        return f"reel_{reel}"

    def get_reel(self, reel: int) -> list[int] | None:
        raw = getattr(self, self.reel_column(reel))
        if raw is None:
            return None
        return [int(part) for part in raw.split(",")]

    @property
    def reels(self) -> list[list[int] | None]:
        return [self.get_reel(reel) for reel in range(REEL_COUNT)]

    @property
    def missing_reels(self) -> list[int]:
        return [reel for reel, stops in enumerate(self.reels) if stops is None]

    def __repr__(self) -> str:
        return f"<SlotRound {self.id[:8]}... stake={self.stake} state={self.state.value}>"


class CoinflipGame(Base, WagerRoundMixin):
    """Single coin toss against the house."""

    __tablename__ = "coinflip_games"

    choice: Mapped[CoinFace] = mapped_column(SQLEnum(CoinFace), nullable=False)
    outcome: Mapped[CoinFace | None] = mapped_column(SQLEnum(CoinFace), nullable=True)
    house_edge: Mapped[Decimal] = mapped_column(
        Numeric(6, 4),
        nullable=False,
        comment="House edge fixed when the game starts",
    )

    def __repr__(self) -> str:
        return f"<CoinflipGame {self.id[:8]}... stake={self.stake} state={self.state.value}>"
