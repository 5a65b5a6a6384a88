"""HouseConfig singleton row."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, DateTime, Integer, Numeric
from sqlalchemy.orm import Mapped, mapped_column

from spindbet.models.base import Base, Money, utcnow

HOUSE_CONFIG_ID = 1


class HouseConfig(Base):
    """Administratively mutable house settings (single row, id=1)."""

    __tablename__ = "house_config"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=HOUSE_CONFIG_ID)
    house_edge: Mapped[Decimal] = mapped_column(Numeric(6, 4), nullable=False)
    maintenance_mode: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    min_deposit: Mapped[Decimal] = mapped_column(Money, nullable=False)
    min_withdrawal: Mapped[Decimal] = mapped_column(Money, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("house_edge >= 0 AND house_edge <= 0.5", name="ck_house_config_edge_bounds"),
    )

    def snapshot(self) -> "HouseSettings":
        return HouseSettings(
            house_edge=self.house_edge,
            maintenance_mode=self.maintenance_mode,
            min_deposit=self.min_deposit,
            min_withdrawal=self.min_withdrawal,
        )


@dataclass(frozen=True)
class HouseSettings:
    """Immutable view of HouseConfig, read once per operation."""

    house_edge: Decimal
    maintenance_mode: bool
    min_deposit: Decimal
    min_withdrawal: Decimal
