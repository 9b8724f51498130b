"""kube-on-kube structured logging.

Provides structured logging using structlog with:
- JSON format for machine parsing (production)
- Colorful console output for development
- ISO timestamps
- Exception formatting
"""

import logging
import sys
from typing import Any, cast

import structlog
from structlog.types import FilteringBoundLogger, Processor

from kubeonkube.config.settings import get_settings


NOISY_LOGGERS = ("kubernetes", "urllib3", "kopf", "asyncio")


def configure_logging(level: str | None = None, format_type: str | None = None) -> FilteringBoundLogger:
    """Configure structlog for the application.

    Args:
        level: Logging level override; defaults to the observability settings.
        format_type: "json" or "console"; defaults to the observability settings.

    Returns:
        FilteringBoundLogger: Configured logger instance
    """
    settings = get_settings()
    level = (level or ("DEBUG" if settings.debug else settings.observability.log_level)).upper()
    format_type = format_type or settings.observability.log_format

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    processors: list[Processor]
    if format_type == "json" or settings.is_production:
        processors = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(sort_keys=True),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.dev.set_exc_info,
            structlog.dev.ConsoleRenderer(
                colors=True,
                pad_event=25,
                exception_formatter=structlog.dev.plain_traceback,
            ),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=logging.getLevelName(level),
    )
    for noisy_logger in NOISY_LOGGERS:
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    return cast(FilteringBoundLogger, structlog.get_logger())


def get_logger(name: str | None = None, **initial_context: Any) -> FilteringBoundLogger:
    """Get a logger instance with optional initial context.

    Args:
        name: Optional logger name (typically module name)
        **initial_context: Initial context to bind to logger

    Example:
        >>> log = get_logger(__name__, component="retention")
        >>> log.info("operation_deleted", operation="scale-001")
    """
    logger = structlog.get_logger(name) if name else structlog.get_logger()

    if initial_context:
        logger = logger.bind(**initial_context)

    return cast(FilteringBoundLogger, logger)


__all__ = ["configure_logging", "get_logger"]
