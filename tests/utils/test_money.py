"""Tests for amount parsing and quantization."""

from decimal import Decimal

import pytest

from spindbet.utils.errors import ValidationError
from spindbet.utils.money import parse_amount, quantize


class TestQuantize:
    def test_rounds_down_to_eight_places(self):
        assert quantize(Decimal("0.123456789")) == Decimal("0.12345678")

    def test_never_rounds_up(self):
        assert quantize(Decimal("0.999999999")) == Decimal("0.99999999")


class TestParseAmount:
    """Tests for parse_amount()."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("10", Decimal("10")),
            (5, Decimal("5")),
            (0.1, Decimal("0.1")),
            (Decimal("2.5"), Decimal("2.5")),
            (" 3 ", Decimal("3")),
        ],
    )
    def test_valid(self, value, expected):
        assert parse_amount(value) == expected

    @pytest.mark.parametrize("value", ["0", "-1", "abc", "NaN", "Infinity", None, True, "0.000000001"])
    def test_invalid(self, value):
        with pytest.raises(ValidationError):
            parse_amount(value)

    def test_field_name_in_message(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_amount("-5", "stake")
        assert exc_info.value.message == "Stake must be positive"
