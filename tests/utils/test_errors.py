"""Tests for domain errors and their public failure bodies."""

from decimal import Decimal

import pytest

from spindbet.utils.errors import (
    AlreadySettledError,
    ConcurrentOperationError,
    GatewayError,
    InsufficientFundsError,
    MaintenanceModeError,
    NotFoundError,
    NotReadyError,
    ValidationError,
    error_response,
)


class TestErrorBodies:
    """Every failure maps to {success: false, error, code}."""

    def test_insufficient_funds(self):
        status, body = error_response(InsufficientFundsError(Decimal("2"), Decimal("1")))

        assert status == 402
        assert body["success"] is False
        assert body["code"] == "INSUFFICIENT_FUNDS"
        assert body["details"] == {"required": "2", "available": "1"}
        assert "Insufficient balance" in body["error"]

    def test_validation_without_details(self):
        status, body = error_response(ValidationError("Minimum stake is 0.01"))

        assert status == 400
        assert body == {"success": False, "error": "Minimum stake is 0.01", "code": "VALIDATION_ERROR"}

    @pytest.mark.parametrize(
        "exc,status,code",
        [
            (NotFoundError("Account", "42"), 404, "NOT_FOUND"),
            (AlreadySettledError("round-1"), 409, "ALREADY_SETTLED"),
            (NotReadyError("not ready", missing=["reel_2"]), 409, "NOT_READY"),
            (ConcurrentOperationError("42"), 409, "CONCURRENT_OPERATION"),
            (GatewayError("down", gateway_code="EXPIRED"), 503, "GATEWAY_ERROR"),
            (MaintenanceModeError(), 503, "MAINTENANCE"),
        ],
    )
    def test_status_and_code(self, exc, status, code):
        assert error_response(exc)[0] == status
        assert error_response(exc)[1]["code"] == code

    def test_unexpected_error_hides_message(self):
        status, body = error_response(RuntimeError("db password leaked"))

        assert status == 500
        assert body == {"success": False, "error": "Unexpected error", "code": "INTERNAL_ERROR"}

    def test_already_settled_is_round_state_error(self):
        exc = AlreadySettledError("round-1")
        assert exc.details == {"state": "settled"}
        assert exc.message == "Round already settled: round-1"
