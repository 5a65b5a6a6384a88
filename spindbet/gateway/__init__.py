"""Payment gateway integration."""

from spindbet.gateway.base import (
    Invoice,
    PaymentGateway,
    PayoutCheck,
    normalize_status,
)
from spindbet.gateway.cryptopay import CryptoPayClient

__all__ = [
    "Invoice",
    "PaymentGateway",
    "PayoutCheck",
    "normalize_status",
    "CryptoPayClient",
]
