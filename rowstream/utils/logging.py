"""
Logging setup shared by the CLI, bulk writers, background passes and readers.

Console output by default; `json_logs=True` emits one JSON object per record,
with every `extra=` field promoted to a top-level key so table ids, batch
numbers and row counts can be filtered on directly.

Usage:
    from rowstream.utils.logging import configure_logging, get_logger

    configure_logging(level="INFO", json_logs=False)
    log = get_logger(__name__)
    log.info("batch committed", extra={"table_id": "t1", "rows": 1000})
"""

from __future__ import annotations

import json
import logging
import logging.config
from typing import Any, Dict, Optional

# Attributes every LogRecord carries; anything else came in through `extra=`.
_STANDARD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)).keys()
) | {"message", "asctime", "taskName"}


def _json_formatter(record: logging.LogRecord) -> str:
    payload: Dict[str, Any] = {
        "level": record.levelname,
        "logger": record.name,
        "thread": record.threadName,
        "message": record.getMessage(),
    }
    for key, value in vars(record).items():
        if key in _STANDARD_ATTRS or key == "extra":
            continue
        payload[key] = value
    if record.exc_info:
        payload["exc_info"] = logging.Formatter().formatException(record.exc_info)
    if record.stack_info:
        payload["stack_info"] = record.stack_info
    # extra={"extra": {...}} nests one level; flatten it too
    if isinstance(getattr(record, "extra", None), dict):
        payload.update(record.extra)
    return json.dumps(payload, default=str)


class JsonFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        return _json_formatter(record)


def configure_logging(
    level: str = "INFO",
    json_logs: bool = False,
    force: bool = True,
) -> None:
    """
    Install the root handler.

    Parameters
    ----------
    level : str
        Level name applied to the root logger and its handler.
    json_logs : bool
        Emit JSON records instead of the console format.
    force : bool
        Replace handlers already installed. With `force=False` an existing
        configuration (e.g. pytest's caplog) is left alone.
    """
    if not force and logging.getLogger().handlers:
        return

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "console": {
                    "format": "%(asctime)s | %(levelname)s | %(threadName)s | %(name)s | %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                },
                "json": {
                    "()": JsonFormatter,
                },
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": "json" if json_logs else "console",
                    "level": level,
                }
            },
            "root": {
                "handlers": ["default"],
                "level": level,
            },
            # psycopg_pool is chatty at INFO during pool warm-up
            "loggers": {
                "psycopg.pool": {"level": "WARNING"},
            },
        }
    )


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger", "JsonFormatter"]
