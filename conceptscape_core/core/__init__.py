"""Shared infrastructure: logging setup and context helpers."""

from .logging import LogFormat, LogLevel, configure_logging, get_logger, log_context

__all__ = [
    "LogFormat",
    "LogLevel",
    "configure_logging",
    "get_logger",
    "log_context",
]
