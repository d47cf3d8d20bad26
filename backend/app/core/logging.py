"""Structured logging configuration using structlog.

Logs are rendered as colored console output in development and as JSON
everywhere else. Standard library loggers (used by most modules via
``logging.getLogger(__name__)``) share the same level.
"""

import logging
import sys

import structlog
from structlog.types import Processor

from app.core.config import Settings

_NOISY_LOGGERS = (
    "uvicorn.access",
    "httpx",
    "httpcore",
    "sqlalchemy.engine",
    "asyncio",
)


def setup_logging(settings: Settings) -> None:
    """Configure structlog and stdlib logging for the application.

    Args:
        settings: Application settings (log_level, environment).
    """
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.environment == "development":
        processors: list[Processor] = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(colors=True),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stdout,
        level=log_level,
    )

    for logger_name in _NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    logging.getLogger("app").setLevel(log_level)
