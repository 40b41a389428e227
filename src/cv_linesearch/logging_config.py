"""Diagnostic stream configuration.

Progress messages go to stderr (and optionally a log file); stdout and the
final parameter file never receive diagnostics.
"""

from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Any, Dict

from .config import LoggingConfig

_LOG_CONFIGURED = False


def _build_logging_config(settings: LoggingConfig) -> Dict[str, Any]:
    handlers: Dict[str, Any] = {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
            "level": settings.normalized_level,
            "stream": "ext://sys.stderr",
        },
    }
    if settings.log_file is not None:
        settings.log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers["file"] = {
            "class": "logging.FileHandler",
            "formatter": "standard",
            "level": settings.normalized_level,
            "filename": str(settings.log_file),
            "encoding": "utf-8",
        }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"standard": {"format": settings.fmt, "datefmt": settings.datefmt}},
        "handlers": handlers,
        "loggers": {
            "cv_linesearch": {
                "level": settings.normalized_level,
                "handlers": list(handlers),
                "propagate": True,
            },
        },
    }


def configure_logging(settings: LoggingConfig | None = None, *, force: bool = False) -> None:
    """Install handlers for the package logger once per process."""
    global _LOG_CONFIGURED
    if _LOG_CONFIGURED and not force:
        return
    dictConfig(_build_logging_config(settings or LoggingConfig()))
    _LOG_CONFIGURED = True
