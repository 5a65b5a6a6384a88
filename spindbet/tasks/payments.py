"""Payment maintenance tasks.

Scheduled every five minutes by Celery Beat.
"""

import asyncio
from datetime import datetime

from redis.asyncio import Redis

from spindbet.config import get_settings
from spindbet.gateway.cryptopay import CryptoPayClient
from spindbet.logging_config import bind_context, clear_context, get_logger
from spindbet.services.payments import PaymentService
from spindbet.tasks.celery_app import celery_app
from spindbet.utils.db import create_engine, create_session_factory

logger = get_logger(__name__)


@celery_app.task(
    bind=True,
    name="spindbet.tasks.payments.expire_stale_deposits_task",
    max_retries=3,
    default_retry_delay=60,
    autoretry_for=(Exception,),
    retry_backoff=True,
)
def expire_stale_deposits_task(self, now_iso: str | None = None):
    """Expire pending deposit invoices past their expires_at.

    Args:
        now_iso: Optional ISO timestamp used as "now" (defaults to current UTC time)

    Returns:
        Summary dict
    """
    bind_context(task_id=self.request.id)
    try:
        logger.info("stale_deposit_sweep_started", attempt=self.request.retries + 1)

        now = datetime.fromisoformat(now_iso) if now_iso else None
        expired = asyncio.run(_expire_stale_deposits(now))

        logger.info("stale_deposit_sweep_completed", expired=expired)
        return {"expired": expired}
    finally:
        clear_context()


async def _expire_stale_deposits(now: datetime | None = None) -> int:
    settings = get_settings()

    engine = create_engine(settings)
    redis = Redis.from_url(settings.redis_url, decode_responses=True)
    try:
        async with CryptoPayClient(settings) as gateway:
            service = PaymentService(
                create_session_factory(engine),
                settings,
                gateway=gateway,
                redis=redis,
            )
            return await service.expire_stale_deposits(now)
    finally:
        await redis.aclose()
        await engine.dispose()
