"""Decimal helpers for the single stable-value asset."""

from decimal import ROUND_DOWN, Decimal, InvalidOperation

from spindbet.utils.errors import ValidationError

MONEY_PLACES = 8
MONEY_QUANT = Decimal(1).scaleb(-MONEY_PLACES)  # 0.00000001
ZERO = Decimal("0")


def quantize(amount: Decimal) -> Decimal:
    """Round an amount down to ledger precision."""
    return amount.quantize(MONEY_QUANT, rounding=ROUND_DOWN)


def parse_amount(value: Decimal | str | int | float, field: str = "amount") -> Decimal:
    """Parse user input into a positive ledger amount.

    Floats go through ``str`` so 0.1 stays 0.1.

    Raises:
        ValidationError: not a number, not finite, or not positive
    """
    if isinstance(value, bool):
        raise ValidationError(f"Invalid {field}: {value!r}")
    try:
        amount = Decimal(str(value)) if isinstance(value, float) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"Invalid {field}: {value!r}") from None

    if not amount.is_finite():
        raise ValidationError(f"Invalid {field}: {value!r}")

    amount = quantize(amount)
    if amount <= ZERO:
        raise ValidationError(f"{field.capitalize()} must be positive")
    return amount
