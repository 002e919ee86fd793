"""
Structured logging configuration.

Uses structlog on top of the standard library so that our own events and
third-party loggers (uvicorn, SQLAlchemy) end up on the same stdout stream.

Event names are snake_case verbs ("card_issued", "charge_rejected") with
context passed as keyword arguments. The request middleware in main.py binds
request_id, method and path into structlog's context vars, so every event
logged while handling a request carries them.

Never log card numbers, CVVs, passwords or tokens — log card ids and the
last four digits instead.
"""

import logging
import sys

import structlog

from ghostcard.config import Settings


def setup_logging(settings: Settings) -> None:
    """Configure structlog and the root logger from settings."""
    renderer = (
        structlog.processors.JSONRenderer()
        if settings.LOG_JSON
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # structlog has already rendered the line; the handler just writes it
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)

    # SQL echo is controlled by DEBUG on the engine
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.DEBUG else logging.WARNING
    )

    structlog.get_logger(__name__).info(
        "logging_configured",
        log_level=settings.LOG_LEVEL,
        app_name=settings.APP_NAME,
    )
