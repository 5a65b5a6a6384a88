"""Redis client for balance caching and per-account locks."""

import logging
import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from redis.asyncio import ConnectionPool, Redis

from spindbet.config import Settings, get_settings
from spindbet.utils.errors import ConcurrentOperationError

logger = logging.getLogger(__name__)

# Global Redis connection pool and client instance
redis_pool: ConnectionPool | None = None
redis_client: Redis | None = None

ACCOUNT_LOCK_PREFIX = "account:lock:"

# 락 소유자 확인 후 삭제
RELEASE_LOCK_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


async def init_redis(settings: Settings | None = None) -> Redis:
    """Initialize Redis connection with connection pool."""
    global redis_pool, redis_client

    settings = settings or get_settings()
    redis_pool = ConnectionPool.from_url(
        settings.redis_url,
        retry_on_timeout=True,
        encoding="utf-8",
        decode_responses=True,
    )
    redis_client = Redis(connection_pool=redis_pool)

    # Test connection
    await redis_client.ping()
    return redis_client


async def close_redis() -> None:
    """Close Redis connection and pool."""
    global redis_pool, redis_client
    if redis_client:
        await redis_client.aclose()
        redis_client = None
    if redis_pool:
        await redis_pool.disconnect()
        redis_pool = None


def get_redis_client() -> Redis:
    if redis_client is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return redis_client


@asynccontextmanager
async def account_lock(
    redis: Redis,
    account_id: str,
    ttl: int,
) -> AsyncGenerator[str, None]:
    """Hold the per-account lock for the duration of the block.

    SET NX with a random token; release only if the token still matches
    so an expired lock taken over by another worker is left alone.

    Raises:
        ConcurrentOperationError: another worker holds the lock
    """
    key = f"{ACCOUNT_LOCK_PREFIX}{account_id}"
    token = str(uuid.uuid4())

    acquired = await redis.set(key, token, nx=True, ex=ttl)
    if not acquired:
        logger.warning(f"Account lock busy: account={account_id[:8]}...")
        raise ConcurrentOperationError(account_id)

    try:
        yield token
    finally:
        release = redis.register_script(RELEASE_LOCK_SCRIPT)
        released = await release(keys=[key], args=[token])
        if not released:
            logger.warning(f"Account lock expired before release: account={account_id[:8]}...")
