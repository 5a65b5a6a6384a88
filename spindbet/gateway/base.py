"""Payment gateway contract and status normalization."""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Protocol

from spindbet.models.payment import PaymentStatus
from spindbet.utils.errors import GatewayError

# Gateway vocabulary -> internal status
GATEWAY_STATUS_MAP: dict[str, PaymentStatus] = {
    "active": PaymentStatus.PENDING,
    "pending": PaymentStatus.PENDING,
    "paid": PaymentStatus.PAID,
    "expired": PaymentStatus.EXPIRED,
    "cancelled": PaymentStatus.CANCELLED,
    "canceled": PaymentStatus.CANCELLED,
}


def normalize_status(raw: str | None) -> PaymentStatus:
    """Map a gateway status onto PaymentStatus.

    Raises:
        GatewayError: status the gateway should never send
    """
    status = GATEWAY_STATUS_MAP.get((raw or "").strip().lower())
    if status is None:
        raise GatewayError(f"Unknown gateway status: {raw!r}")
    return status


@dataclass(frozen=True)
class Invoice:
    """Deposit invoice as created by the gateway."""

    invoice_id: str
    pay_url: str
    amount: Decimal
    status: PaymentStatus


@dataclass(frozen=True)
class PayoutCheck:
    """Withdrawal artifact the player claims at the gateway."""

    check_id: str
    claim_url: str
    amount: Decimal


class PaymentGateway(Protocol):
    """Operations PaymentService needs from the gateway.

    Every method performs one external call and raises GatewayError on
    failure; retrying is up to the caller.
    """

    async def create_invoice(
        self,
        amount: Decimal,
        *,
        description: str,
        payload: str,
        expires_in: int,
    ) -> Invoice: ...

    async def get_invoice_status(self, invoice_id: str) -> PaymentStatus: ...

    async def create_payout_check(self, account_id: str, amount: Decimal) -> PayoutCheck: ...

    async def delete_check(self, check_id: str) -> None: ...

    def verify_webhook_signature(self, raw_body: bytes, signature: str | None) -> bool: ...

    def parse_webhook(self, raw_body: bytes) -> tuple[str, dict[str, Any]]: ...
