"""House configuration service (admin-mutable singleton)."""

import logging
from decimal import Decimal, InvalidOperation

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from spindbet.config import MAX_HOUSE_EDGE, Settings
from spindbet.models.house import HOUSE_CONFIG_ID, HouseConfig, HouseSettings
from spindbet.utils.errors import MaintenanceModeError, ValidationError
from spindbet.utils.money import parse_amount

logger = logging.getLogger(__name__)


class HouseConfigService:
    """Reads and mutates the HouseConfig row inside the caller's transaction."""

    def __init__(self, session: AsyncSession, settings: Settings):
        self.session = session
        self.settings = settings

    async def get_config(self) -> HouseConfig:
        """Get the config row, seeding it from settings on first use."""
        config = await self.session.get(HouseConfig, HOUSE_CONFIG_ID)
        if config is not None:
            return config

        try:
            async with self.session.begin_nested():
                config = HouseConfig(
                    id=HOUSE_CONFIG_ID,
                    house_edge=self.settings.default_house_edge,
                    maintenance_mode=False,
                    min_deposit=self.settings.default_min_deposit,
                    min_withdrawal=self.settings.default_min_withdrawal,
                )
                self.session.add(config)
        except IntegrityError:
            # Seeded concurrently by another worker
            config = await self.session.get(HouseConfig, HOUSE_CONFIG_ID, populate_existing=True)
        return config

    async def snapshot(self) -> HouseSettings:
        """Read once at the start of an operation and pass explicitly."""
        return (await self.get_config()).snapshot()

    async def require_open(self) -> HouseSettings:
        """Snapshot, rejecting new business while in maintenance."""
        house = await self.snapshot()
        if house.maintenance_mode:
            raise MaintenanceModeError()
        return house

    async def set_house_edge(self, edge: Decimal | str | float) -> HouseSettings:
        """Set house edge (0 <= edge <= 0.5).

        Raises:
            ValidationError: edge out of range or not a number
        """
        try:
            value = Decimal(str(edge))
        except (InvalidOperation, ValueError):
            raise ValidationError(f"Invalid house edge: {edge!r}") from None

        if not value.is_finite() or value < 0 or value > MAX_HOUSE_EDGE:
            raise ValidationError(
                f"House edge must be between 0 and {MAX_HOUSE_EDGE}",
                details={"houseEdge": str(edge)},
            )

        config = await self.get_config()
        config.house_edge = value
        await self.session.flush()
        logger.info(f"House edge set to {value}")
        return config.snapshot()

    async def set_maintenance_mode(self, enabled: bool) -> HouseSettings:
        config = await self.get_config()
        config.maintenance_mode = enabled
        await self.session.flush()
        logger.warning(f"Maintenance mode {'enabled' if enabled else 'disabled'}")
        return config.snapshot()

    async def set_limits(
        self,
        *,
        min_deposit: Decimal | str | None = None,
        min_withdrawal: Decimal | str | None = None,
    ) -> HouseSettings:
        config = await self.get_config()
        if min_deposit is not None:
            config.min_deposit = parse_amount(min_deposit, "min_deposit")
        if min_withdrawal is not None:
            config.min_withdrawal = parse_amount(min_withdrawal, "min_withdrawal")
        await self.session.flush()
        logger.info(
            f"Limits set: min_deposit={config.min_deposit} min_withdrawal={config.min_withdrawal}"
        )
        return config.snapshot()
