"""Common schemas used across the application."""

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class BaseSchema(BaseModel):
    """Base schema with common configuration.

    Fields use snake_case in Python and camelCase aliases on the wire.
    """

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    def to_public(self) -> dict[str, Any]:
        """JSON-ready dict with camelCase keys."""
        return {"success": True, **self.model_dump(mode="json", by_alias=True)}


class BalanceSchema(BaseSchema):
    """Balance of one account."""

    account_id: str = Field(..., alias="accountId")
    balance: Decimal
