"""Logging bootstrap utilities."""

from __future__ import annotations

import logging
from logging.config import dictConfig

from .config import LogLevel, get_settings


def configure_logging(level: LogLevel | str | None = None) -> None:
    """Configure root logging with a structured, leveled formatter."""

    if level is None:
        level = get_settings().log_level
    resolved_level = level.value if isinstance(level, LogLevel) else str(level).upper()

    handler_ref = {
        "handlers": ["stderr"],
        "level": resolved_level,
        "propagate": False,
    }
    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
                    "datefmt": "%Y-%m-%dT%H:%M:%S",
                }
            },
            "handlers": {
                "stderr": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "level": resolved_level,
                }
            },
            "loggers": {
                "": dict(handler_ref),
                "uvicorn": dict(handler_ref),
                "uvicorn.error": dict(handler_ref),
                "uvicorn.access": dict(handler_ref),
            },
        }
    )

    logging.getLogger(__name__).debug("Logging configured", extra={"level": resolved_level})
