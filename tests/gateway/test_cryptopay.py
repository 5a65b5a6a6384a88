"""Tests for the Crypto Pay client and gateway status normalization."""

import json
from decimal import Decimal

import httpx
import pytest

from spindbet.gateway.base import normalize_status
from spindbet.gateway.cryptopay import (
    TOKEN_HEADER,
    CryptoPayClient,
    compute_webhook_signature,
)
from spindbet.models.payment import PaymentStatus
from spindbet.utils.errors import GatewayError, ValidationError


def make_client(settings, handler) -> CryptoPayClient:
    return CryptoPayClient(settings, transport=httpx.MockTransport(handler))


def ok(result) -> httpx.Response:
    return httpx.Response(200, json={"ok": True, "result": result})


class TestNormalizeStatus:
    """Tests for normalize_status()."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("active", PaymentStatus.PENDING),
            ("pending", PaymentStatus.PENDING),
            ("paid", PaymentStatus.PAID),
            ("PAID", PaymentStatus.PAID),
            ("expired", PaymentStatus.EXPIRED),
            ("cancelled", PaymentStatus.CANCELLED),
            ("canceled", PaymentStatus.CANCELLED),
        ],
    )
    def test_known_statuses(self, raw, expected):
        assert normalize_status(raw) is expected

    @pytest.mark.parametrize("raw", ["refunded", "", None])
    def test_unknown_status(self, raw):
        with pytest.raises(GatewayError):
            normalize_status(raw)


class TestInvoices:
    """Tests for invoice calls."""

    @pytest.mark.asyncio
    async def test_create_invoice(self, settings):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["token"] = request.headers[TOKEN_HEADER]
            captured["body"] = json.loads(request.content)
            return ok(
                {
                    "invoice_id": 1001,
                    "status": "active",
                    "amount": "10",
                    "bot_invoice_url": "https://t.me/CryptoBot?start=IV1001",
                }
            )

        async with make_client(settings, handler) as client:
            invoice = await client.create_invoice(
                Decimal("10"), description="Deposit", payload="player", expires_in=3600
            )

        assert captured["url"] == "https://pay.test/api/createInvoice"
        assert captured["token"] == "1234:test-token"
        assert captured["body"] == {
            "asset": "USDT",
            "amount": "10",
            "description": "Deposit",
            "payload": "player",
            "expires_in": 3600,
        }
        assert invoice.invoice_id == "1001"
        assert invoice.status is PaymentStatus.PENDING
        assert invoice.pay_url == "https://t.me/CryptoBot?start=IV1001"
        assert invoice.amount == Decimal("10")

    @pytest.mark.asyncio
    async def test_get_invoice_status(self, settings):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/getInvoices"
            assert request.url.params["invoice_ids"] == "1001"
            return ok({"items": [{"invoice_id": 1001, "status": "paid"}]})

        async with make_client(settings, handler) as client:
            assert await client.get_invoice_status("1001") is PaymentStatus.PAID

    @pytest.mark.asyncio
    async def test_invoice_missing_at_gateway(self, settings):
        async with make_client(settings, lambda request: ok({"items": []})) as client:
            with pytest.raises(GatewayError):
                await client.get_invoice_status("1001")


class TestChecks:
    """Tests for payout check calls."""

    @pytest.mark.asyncio
    async def test_create_check_pins_numeric_user(self, settings):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["body"] = json.loads(request.content)
            return ok({"check_id": 5001, "amount": "1", "bot_check_url": "https://t.me/CryptoBot?start=CQ5001"})

        async with make_client(settings, handler) as client:
            check = await client.create_payout_check("100200300", Decimal("1"))

        assert captured["body"] == {"asset": "USDT", "amount": "1", "pin_to_user_id": 100200300}
        assert check.check_id == "5001"
        assert check.claim_url == "https://t.me/CryptoBot?start=CQ5001"

    @pytest.mark.asyncio
    async def test_malformed_check_response(self, settings):
        async with make_client(settings, lambda request: ok({"amount": "1"})) as client:
            with pytest.raises(GatewayError):
                await client.create_payout_check("player", Decimal("1"))

    @pytest.mark.asyncio
    async def test_delete_check(self, settings):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["path"] = request.url.path
            captured["body"] = json.loads(request.content)
            return ok(True)

        async with make_client(settings, handler) as client:
            await client.delete_check("5001")

        assert captured == {"path": "/api/deleteCheck", "body": {"check_id": 5001}}


class TestErrors:
    """Tests for error mapping."""

    @pytest.mark.asyncio
    async def test_api_error_carries_gateway_code(self, settings):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"ok": False, "error": {"code": 400, "name": "NOT_ENOUGH_COINS"}})

        async with make_client(settings, handler) as client:
            with pytest.raises(GatewayError) as exc_info:
                await client.create_payout_check("player", Decimal("1"))

        assert exc_info.value.details == {"gatewayCode": "NOT_ENOUGH_COINS"}

    @pytest.mark.asyncio
    async def test_transport_error(self, settings):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with make_client(settings, handler) as client:
            with pytest.raises(GatewayError):
                await client.get_invoice_status("1001")

    @pytest.mark.asyncio
    async def test_non_json_response(self, settings):
        async with make_client(settings, lambda request: httpx.Response(502, text="Bad Gateway")) as client:
            with pytest.raises(GatewayError):
                await client.get_invoice_status("1001")


class TestWebhook:
    """Tests for webhook signature and parsing."""

    @pytest.mark.asyncio
    async def test_signature_roundtrip(self, settings):
        body = b'{"update_type": "invoice_paid", "payload": {"invoice_id": 1001}}'
        signature = compute_webhook_signature(settings.cryptopay_api_token, body)

        async with make_client(settings, lambda request: ok(None)) as client:
            assert client.verify_webhook_signature(body, signature)
            assert not client.verify_webhook_signature(body + b" ", signature)
            assert not client.verify_webhook_signature(body, None)

    def test_parse_webhook(self):
        update_type, payload = CryptoPayClient.parse_webhook(
            b'{"update_id": 7, "update_type": "invoice_paid", "payload": {"invoice_id": 1001}}'
        )
        assert update_type == "invoice_paid"
        assert payload == {"invoice_id": 1001}

    @pytest.mark.parametrize(
        "body",
        [b"not json", b"{}", b"[]", b"\"text\"", b'{"update_type": "invoice_paid", "payload": [1]}'],
    )
    def test_parse_malformed_webhook(self, body):
        with pytest.raises(ValidationError):
            CryptoPayClient.parse_webhook(body)
