"""
Structured logging setup.

structlog renders key/value events: a colored console renderer while
developing, JSON lines everywhere else. The standard library logging module
is pointed at stdout at the same level so uvicorn and SQLAlchemy output ends
up in the same stream.

Usage:
    from ums.logging import get_logger

    logger = get_logger(__name__)
    logger.info("session_created", user_id=str(user.id))

Raw session tokens, one-time tokens and passwords must never be passed to
a logger.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import Processor


def configure_logging(settings: Any) -> None:
    """Configure structlog and stdlib logging. Called once from the app lifespan."""
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if not settings.is_production and (
        settings.DEBUG or settings.LOG_FORMAT == "console"
    ):
        renderer: Processor = structlog.dev.ConsoleRenderer(colors=True)
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Third-party libraries still log through the stdlib
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )
    for name in ("uvicorn", "uvicorn.access", "uvicorn.error"):
        logging.getLogger(name).setLevel(level)


def get_logger(name: str | None = None) -> Any:
    """Return a structlog logger bound to the given module name."""
    return structlog.get_logger(name or "ums")
