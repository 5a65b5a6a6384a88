"""Utility modules."""

from spindbet.utils.db import get_db_session, init_db, close_db
from spindbet.utils.redis_client import account_lock, init_redis, close_redis

__all__ = [
    "get_db_session",
    "init_db",
    "close_db",
    "account_lock",
    "init_redis",
    "close_redis",
]
