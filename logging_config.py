from __future__ import annotations

import logging
import time
from datetime import datetime
from logging.config import dictConfig
from typing import Any, Dict, Iterable

from settings import get_settings

CONTEXT_KEYS = (
    "room_id",
    "room_count",
    "persisted",
    "failed",
    "batch_mode",
    "interval",
    "deleted_count",
    "cutoff",
    "reason",
)

LOG_FORMAT = "%(asctime)sZ %(levelname)-7s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

# Client libraries used by the CLI and the test client log every request at INFO.
_QUIET_LOGGERS = ("httpx", "httpcore")

_configured = False


def _render(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, float):
        return f"{value:g}"
    return str(value)


class ContextualFormatter(logging.Formatter):
    """Append known ``extra`` fields to each record as ``key=value`` pairs.

    Timestamps are rendered in UTC to match the readings the service emits.
    """

    converter = time.gmtime

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        style: str = "%",
        extra_keys: Iterable[str] | None = None,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt, style=style)
        self.extra_keys = tuple(extra_keys) if extra_keys is not None else CONTEXT_KEYS

    def context(self, record: logging.LogRecord) -> str:
        pairs = (
            (key, getattr(record, key, None)) for key in self.extra_keys
        )
        return " ".join(f"{key}={_render(value)}" for key, value in pairs if value is not None)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context = self.context(record)
        return f"{message} | {context}" if context else message


def build_logging_config(level: str | int) -> Dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "contextual": {
                "()": "logging_config.ContextualFormatter",
                "fmt": LOG_FORMAT,
                "datefmt": DATE_FORMAT,
                "extra_keys": list(CONTEXT_KEYS),
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "contextual",
            }
        },
        "loggers": {name: {"level": "WARNING"} for name in _QUIET_LOGGERS},
        "root": {"handlers": ["console"], "level": level},
    }


def configure_logging(level: str | int | None = None) -> None:
    """Install the console handler once per process; later calls are no-ops."""
    global _configured
    if _configured:
        return
    dictConfig(build_logging_config(level if level is not None else get_settings().log_level))
    _configured = True
