"""Shared fixtures.

Services run against a real SQLite file database (aiosqlite) with
BEGIN IMMEDIATE transactions, so concurrent sessions serialize the way
row locks do on PostgreSQL. Redis and the payment gateway are mocks;
`fake_redis` keeps real key state for lock and cache tests.
"""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from spindbet.config import Settings
from spindbet.gateway.base import Invoice, PayoutCheck
from spindbet.gateway.cryptopay import CryptoPayClient
from spindbet.models import Account, Base
from spindbet.models.payment import PaymentStatus
from spindbet.services.ledger import STORE_BALANCE_SCRIPT
from spindbet.utils.db import create_session_factory
from spindbet.utils.redis_client import RELEASE_LOCK_SCRIPT


# =============================================================================
# Configuration
# =============================================================================


def make_settings(**overrides) -> Settings:
    """Settings for tests, never read from the environment file."""
    values = {
        "database_url": "sqlite+aiosqlite://",
        "redis_url": "redis://localhost:6379/15",
        "cryptopay_api_token": "1234:test-token",
        "cryptopay_api_url": "https://pay.test/api",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


# =============================================================================
# Database
# =============================================================================


@pytest_asyncio.fixture
async def engine(tmp_path):
    """File-backed SQLite engine, one connection per session."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'spindbet.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


# =============================================================================
# Mocks
# =============================================================================


@pytest.fixture
def redis_mock():
    """Redis stand-in: empty cache, every lock acquirable."""
    redis = AsyncMock()
    redis.get.return_value = None
    redis.set.return_value = True
    redis.register_script = MagicMock(return_value=AsyncMock(return_value=1))
    return redis


class FakeRedis:
    """In-memory Redis for the commands and Lua scripts the services use."""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.after_get = None  # callable(key), runs after every GET

    async def get(self, key):
        value = self.store.get(key)
        if self.after_get is not None:
            self.after_get(key)
        return value

    async def set(self, key, value, nx=False, ex=None):
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    async def setex(self, key, ttl, value):
        self.store[key] = value
        return True

    async def incr(self, key):
        value = int(self.store.get(key, "0")) + 1
        self.store[key] = str(value)
        return value

    async def delete(self, *keys):
        return sum(self.store.pop(key, None) is not None for key in keys)

    def register_script(self, script):
        async def run(keys, args):
            if script == RELEASE_LOCK_SCRIPT:
                if self.store.get(keys[0]) != args[0]:
                    return 0
                del self.store[keys[0]]
                return 1
            if script == STORE_BALANCE_SCRIPT:
                if self.store.get(keys[0], "0") != args[0]:
                    return 0
                self.store[keys[1]] = args[2]
                return True
            raise NotImplementedError(script)

        return run


@pytest.fixture
def fake_redis():
    """Stateful Redis stand-in, for tests that depend on key contents."""
    return FakeRedis()


@pytest.fixture
def gateway_mock():
    """Payment gateway with canned invoice/check responses."""
    gateway = MagicMock()
    gateway.create_invoice = AsyncMock(
        return_value=Invoice(
            invoice_id="1001",
            pay_url="https://t.me/CryptoBot?start=IV1001",
            amount=Decimal("10"),
            status=PaymentStatus.PENDING,
        )
    )
    gateway.get_invoice_status = AsyncMock(return_value=PaymentStatus.PENDING)
    gateway.create_payout_check = AsyncMock(
        return_value=PayoutCheck(
            check_id="5001",
            claim_url="https://t.me/CryptoBot?start=CQ5001",
            amount=Decimal("1"),
        )
    )
    gateway.delete_check = AsyncMock(return_value=None)
    gateway.verify_webhook_signature = MagicMock(return_value=True)
    gateway.parse_webhook = MagicMock(side_effect=CryptoPayClient.parse_webhook)
    return gateway


# =============================================================================
# Accounts
# =============================================================================


@pytest.fixture
def make_account(session_factory):
    """Insert an account directly, bypassing services."""

    async def _make(
        account_id: str,
        balance: str | Decimal = "0",
        referred_by: str | None = None,
        referred_by_level2: str | None = None,
    ) -> str:
        async with session_factory.begin() as session:
            session.add(
                Account(
                    id=account_id,
                    balance=Decimal(balance),
                    referred_by=referred_by,
                    referred_by_level2=referred_by_level2,
                )
            )
        return account_id

    return _make


@pytest.fixture
def load_account(session_factory):
    """Read an account in a fresh session."""

    async def _load(account_id: str) -> Account | None:
        async with session_factory() as session:
            return await session.get(Account, account_id)

    return _load
