"""Structured logging configuration using structlog.

Services log through ``logging.getLogger(__name__)``; Celery tasks use
``get_logger`` with event names. Both end up in one structlog pipeline:
console output in development, one JSON object per line in production.
Decimal amounts are rendered as plain strings ("2.50000000") in both.
"""

import logging
import sys
from decimal import Decimal
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

# Libraries that are too chatty at INFO
QUIET_LOGGERS = ("sqlalchemy.engine", "httpx", "httpcore", "celery.worker.strategy")


def render_decimals(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Money fields keep their exact 8-place text instead of Decimal('...')."""
    for key, value in event_dict.items():
        if isinstance(value, Decimal):
            event_dict[key] = format(value, "f")
    return event_dict


def _shared_processors(use_json: bool) -> list[Processor]:
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        render_decimals,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if use_json:
        processors.append(structlog.processors.format_exc_info)
    else:
        processors.append(structlog.dev.set_exc_info)
    return processors


def configure_logging(
    log_level: str = "INFO",
    json_logs: bool = False,
    app_env: str = "development",
) -> None:
    """Install the structlog pipeline on the root logger.

    Args:
        log_level: Root level (DEBUG, INFO, WARNING, ERROR)
        json_logs: Force JSON output outside production
        app_env: "production" always logs JSON
    """
    use_json = json_logs or app_env == "production"
    shared_processors = _shared_processors(use_json)

    if use_json:
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper()))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Event-style logger, e.g. ``logger.info("stale_deposit_sweep_completed", expired=3)``."""
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Attach key/values (task_id, account_id, ...) to every later log line."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
