"""Crypto Pay API client.

Endpoints used: createInvoice, getInvoices, createCheck, deleteCheck.
Every call is a single request; failures surface as GatewayError.
"""

import hashlib
import hmac
import json
import logging
from decimal import Decimal
from typing import Any

import httpx

from spindbet.config import Settings
from spindbet.gateway.base import Invoice, PayoutCheck, normalize_status
from spindbet.models.payment import PaymentStatus
from spindbet.utils.errors import GatewayError, ValidationError

logger = logging.getLogger(__name__)

TOKEN_HEADER = "Crypto-Pay-API-Token"


def compute_webhook_signature(api_token: str, raw_body: bytes) -> str:
    """HMAC-SHA256 of the raw body keyed with sha256(api_token)."""
    secret = hashlib.sha256(api_token.encode()).digest()
    return hmac.new(secret, raw_body, hashlib.sha256).hexdigest()


class CryptoPayClient:
    """Crypto Pay gateway over httpx.

    Usage:
        async with CryptoPayClient(settings) as gateway:
            invoice = await gateway.create_invoice(Decimal("5"), ...)
    """

    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._token = settings.cryptopay_api_token
        self._asset = settings.cryptopay_asset
        self._client = httpx.AsyncClient(
            base_url=settings.cryptopay_api_url.rstrip("/") + "/",
            headers={TOKEN_HEADER: settings.cryptopay_api_token},
            timeout=httpx.Timeout(settings.gateway_timeout, connect=5.0),
            limits=httpx.Limits(max_connections=20),
            transport=transport,
        )

    async def __aenter__(self) -> "CryptoPayClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close HTTP client."""
        await self._client.aclose()

    async def create_invoice(
        self,
        amount: Decimal,
        *,
        description: str,
        payload: str,
        expires_in: int,
    ) -> Invoice:
        """Create a deposit invoice.

        Args:
            amount: Amount in the configured asset
            description: Shown to the payer
            payload: Echoed back in webhooks (the account id)
            expires_in: Invoice lifetime in seconds

        Returns:
            Invoice with pay URL
        """
        result = await self._call(
            "POST",
            "createInvoice",
            json={
                "asset": self._asset,
                "amount": str(amount),
                "description": description,
                "payload": payload,
                "expires_in": expires_in,
            },
        )
        return self._parse_invoice(result)

    async def get_invoice_status(self, invoice_id: str) -> PaymentStatus:
        """Current status of one invoice, normalized."""
        result = await self._call("GET", "getInvoices", params={"invoice_ids": invoice_id})
        items = result.get("items") if isinstance(result, dict) else result
        if not items:
            raise GatewayError(f"Invoice not found at gateway: {invoice_id}")
        return normalize_status(items[0].get("status"))

    async def create_payout_check(self, account_id: str, amount: Decimal) -> PayoutCheck:
        """Create a check pinned to the player's gateway user id."""
        body: dict[str, Any] = {"asset": self._asset, "amount": str(amount)}
        if account_id.isdigit():
            body["pin_to_user_id"] = int(account_id)

        result = await self._call("POST", "createCheck", json=body)
        try:
            return PayoutCheck(
                check_id=str(result["check_id"]),
                claim_url=result["bot_check_url"],
                amount=Decimal(str(result.get("amount", amount))),
            )
        except (KeyError, TypeError) as e:
            raise GatewayError(f"Malformed check response: {e}") from e

    async def delete_check(self, check_id: str) -> None:
        await self._call("POST", "deleteCheck", json={"check_id": int(check_id)})

    def verify_webhook_signature(self, raw_body: bytes, signature: str | None) -> bool:
        if not signature:
            return False
        expected = compute_webhook_signature(self._token, raw_body)
        return hmac.compare_digest(expected, signature)

    @staticmethod
    def parse_webhook(raw_body: bytes) -> tuple[str, dict[str, Any]]:
        """Split a webhook body into (update_type, payload).

        Raises:
            ValidationError: body is not a Crypto Pay update
        """
        try:
            update = json.loads(raw_body)
            update_type, payload = update["update_type"], update.get("payload") or {}
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise ValidationError("Malformed webhook body") from e
        if not isinstance(payload, dict):
            raise ValidationError("Malformed webhook body")
        return update_type, payload

    async def _call(self, http_method: str, api_method: str, **kwargs) -> Any:
        """One API request; unwraps {"ok": true, "result": ...}."""
        try:
            response = await self._client.request(http_method, api_method, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"Crypto Pay {api_method} failed: {e!r}")
            raise GatewayError(f"Payment gateway unavailable ({api_method})") from e

        try:
            data = response.json()
        except ValueError:
            data = None

        if not isinstance(data, dict) or not data.get("ok"):
            error = (data or {}).get("error") if isinstance(data, dict) else None
            name = error.get("name") if isinstance(error, dict) else None
            logger.error(
                f"Crypto Pay {api_method} error: status={response.status_code} error={name}"
            )
            raise GatewayError(
                f"Payment gateway rejected {api_method}: {name or response.status_code}",
                gateway_code=name,
            )

        return data.get("result")

    @staticmethod
    def _parse_invoice(result: dict[str, Any]) -> Invoice:
        try:
            return Invoice(
                invoice_id=str(result["invoice_id"]),
                pay_url=result.get("bot_invoice_url") or result["pay_url"],
                amount=Decimal(str(result["amount"])),
                status=normalize_status(result.get("status")),
            )
        except (KeyError, TypeError) as e:
            raise GatewayError(f"Malformed invoice response: {e}") from e
