"""Celery application configuration.

Features:
- Redis as broker and result backend
- Task routing by queue
- Scheduled tasks via Celery Beat
"""

import os

from celery import Celery
from celery.signals import setup_logging

from spindbet.config import get_settings
from spindbet.logging_config import configure_logging
from spindbet.tasks.schedules import CELERY_BEAT_SCHEDULE, CELERY_TASK_ROUTES

# Get Redis URL from environment
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

# Create Celery app
celery_app = Celery(
    "spindbet_tasks",
    broker=f"{REDIS_URL.rsplit('/', 1)[0]}/1",  # Use DB 1 for broker
    backend=f"{REDIS_URL.rsplit('/', 1)[0]}/2",  # Use DB 2 for results
    include=[
        "spindbet.tasks.payments",
    ],
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # Timezone
    timezone="UTC",
    enable_utc=True,

    # Task routing (from schedules.py)
    task_routes=CELERY_TASK_ROUTES,

    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,

    # Result settings
    result_expires=3600,

    # Beat schedule (from schedules.py)
    beat_schedule=CELERY_BEAT_SCHEDULE,
)


@setup_logging.connect
def _configure_worker_logging(**kwargs):
    """Route worker logs through structlog instead of Celery's default handlers."""
    settings = get_settings()
    configure_logging(
        log_level=settings.log_level,
        json_logs=settings.json_logs,
        app_env=settings.app_env,
    )
