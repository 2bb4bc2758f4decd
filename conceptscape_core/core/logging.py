"""
Standardized Logging Configuration

Structured logging for the pipeline and the proxy service. structlog is
wired on top of stdlib logging so third-party libraries (httpx, uvicorn,
deepgram) share the same handler. JSON output for production, colored
console output for development.
"""

import logging
import sys
from contextlib import contextmanager
from enum import Enum
from typing import Any, Iterator, Optional

import structlog


# =============================================================================
# Configuration
# =============================================================================


class LogLevel(str, Enum):
    """Log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    PRETTY = "pretty"


NOISY_LOGGERS = ("httpx", "httpcore", "asyncio", "websockets", "deepgram")

_SHARED_PROCESSORS = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
]


# =============================================================================
# Logger Setup
# =============================================================================


def configure_logging(
    level: str = LogLevel.INFO.value,
    format: str = LogFormat.PRETTY.value,
    service_name: Optional[str] = None,
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: Log format (json, pretty)
        service_name: Bound onto every event when given
    """
    log_level = getattr(logging, str(level).upper(), logging.INFO)

    if format == LogFormat.JSON or format == "json":
        renderer: Any = structlog.processors.JSONRenderer()
        exc_processors = [structlog.processors.format_exc_info]
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
        exc_processors = []

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_SHARED_PROCESSORS,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_SHARED_PROCESSORS,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *exc_processors,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    # Suppress noisy third-party loggers
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    if service_name:
        structlog.contextvars.bind_contextvars(service=service_name)

    structlog.get_logger(__name__).debug(
        "Logging configured", level=level, format=format
    )


def get_logger(name: Optional[str] = None, **context: Any) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger, optionally pre-bound with context."""
    logger = structlog.get_logger(name)
    if context:
        logger = logger.bind(**context)
    return logger


# =============================================================================
# Context Logging
# =============================================================================


@contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    """
    Bind request-scoped fields (run id, job id) onto every log event
    emitted inside the block, including from awaited coroutines.

    Usage:
        with log_context(run_id="run_abc"):
            await orchestrator.orchestrate("photosynthesis")
    """
    with structlog.contextvars.bound_contextvars(**fields):
        yield


__all__ = [
    "LogLevel",
    "LogFormat",
    "configure_logging",
    "get_logger",
    "log_context",
]
