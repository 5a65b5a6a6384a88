"""Celery Beat schedule configuration.

Tasks:
- Every 5 minutes: expire pending deposits past their invoice lifetime
"""

from celery.schedules import crontab


# Celery Beat schedule
CELERY_BEAT_SCHEDULE = {
    # Expire stale deposit invoices
    "expire-stale-deposits": {
        "task": "spindbet.tasks.payments.expire_stale_deposits_task",
        "schedule": crontab(minute="*/5"),
        "options": {"queue": "payments"},
    },
}


# Task routing
CELERY_TASK_ROUTES = {
    "spindbet.tasks.payments.*": {"queue": "payments"},
}
