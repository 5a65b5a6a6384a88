"""Custom exception classes for wager and payment errors.

Provides structured error handling with error codes, an HTTP-equivalent
status class and user-friendly messages.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Standard error codes."""

    # General errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    MAINTENANCE = "MAINTENANCE"

    # Ledger errors
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    CONCURRENT_OPERATION = "CONCURRENT_OPERATION"

    # Round state errors
    INVALID_ROUND_STATE = "INVALID_ROUND_STATE"
    ALREADY_SETTLED = "ALREADY_SETTLED"
    NOT_READY = "NOT_READY"

    # Payment gateway errors
    GATEWAY_ERROR = "GATEWAY_ERROR"


class SpinBetError(Exception):
    """Base exception for domain errors.

    Attributes:
        code: Error code for programmatic handling
        message: User-friendly error message
        details: Additional error details
        status_code: HTTP-equivalent status class
    """

    status_code = 500

    def __init__(
        self,
        code: ErrorCode | str,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        self.code = code if isinstance(code, str) else code.value
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        body: dict[str, Any] = {
            "success": False,
            "error": self.message,
            "code": self.code,
        }
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(SpinBetError):
    """Raised for a bad stake, amount or request shape."""

    status_code = 400

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(ErrorCode.VALIDATION_ERROR, message, details)


class InsufficientFundsError(SpinBetError):
    """Raised when a debit would take a balance below zero."""

    status_code = 402

    def __init__(self, required: Decimal, available: Decimal | None = None):
        message = f"Insufficient balance: required {required}"
        if available is not None:
            message += f", available {available}"
        super().__init__(
            ErrorCode.INSUFFICIENT_FUNDS,
            message,
            details={
                "required": str(required),
                "available": str(available) if available is not None else None,
            },
        )


class NotFoundError(SpinBetError):
    """Raised for an unknown account, round or invoice id."""

    status_code = 404

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(
            ErrorCode.NOT_FOUND,
            f"{entity} not found: {entity_id}",
            details={"entity": entity, "id": str(entity_id)},
        )


class InvalidRoundStateError(SpinBetError):
    """Raised when an operation does not fit the round's current state."""

    status_code = 409

    def __init__(
        self,
        message: str,
        state: str | None = None,
        code: ErrorCode = ErrorCode.INVALID_ROUND_STATE,
    ):
        super().__init__(code, message, details={"state": state} if state else None)


class AlreadySettledError(InvalidRoundStateError):
    """Raised when client input arrives for a round that is already settled."""

    def __init__(self, round_id: str):
        super().__init__(
            f"Round already settled: {round_id}",
            state="settled",
            code=ErrorCode.ALREADY_SETTLED,
        )


class NotReadyError(SpinBetError):
    """Raised when settlement is requested before all client inputs are present."""

    status_code = 409

    def __init__(self, message: str, missing: list[str] | None = None):
        super().__init__(
            ErrorCode.NOT_READY,
            message,
            details={"missing": missing} if missing else None,
        )


class ConcurrentOperationError(SpinBetError):
    """Raised when another worker holds the account lock."""

    status_code = 409

    def __init__(self, account_id: str):
        super().__init__(
            ErrorCode.CONCURRENT_OPERATION,
            "Another operation is in progress for this account, try again",
            details={"accountId": account_id},
        )


class GatewayError(SpinBetError):
    """Raised when the payment gateway call failed or returned an error."""

    status_code = 503

    def __init__(self, message: str, gateway_code: str | None = None):
        super().__init__(
            ErrorCode.GATEWAY_ERROR,
            message,
            details={"gatewayCode": gateway_code} if gateway_code else None,
        )


class MaintenanceModeError(SpinBetError):
    """Raised when new wagers or deposits are blocked by maintenance mode."""

    status_code = 503

    def __init__(self):
        super().__init__(
            ErrorCode.MAINTENANCE,
            "Service is under maintenance, please try again later",
        )


def error_response(exc: Exception) -> tuple[int, dict[str, Any]]:
    """Map any exception to an HTTP status and the public failure body."""
    if isinstance(exc, SpinBetError):
        return exc.status_code, exc.to_dict()

    return 500, {
        "success": False,
        "error": "Unexpected error",
        "code": ErrorCode.INTERNAL_ERROR.value,
    }
