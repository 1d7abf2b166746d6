from __future__ import annotations

import json
import logging
import logging.config
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

from cart_engine.core.config import settings

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

_RESERVED_ATTRS = set(logging.makeLogRecord({}).__dict__.keys()) | {"request_id", "message", "asctime"}


class RequestContextFilter(logging.Filter):
    """Stamp every record with the id of the request being served, if any."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line; ``extra=`` context lands under ``context``."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        request_id = getattr(record, "request_id", None)
        if request_id:
            payload["request_id"] = request_id
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        context = {key: value for key, value in record.__dict__.items() if key not in _RESERVED_ATTRS}
        if context:
            payload["context"] = context

        return json.dumps(payload, default=str)


def setup_logging(level: str | None = None) -> None:
    """Install the JSON handler on the root logger."""
    resolved = getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO)
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {"request_context": {"()": RequestContextFilter}},
            "formatters": {"json": {"()": JsonFormatter}},
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": "json",
                    "filters": ["request_context"],
                }
            },
            "root": {"handlers": ["default"], "level": resolved},
            "loggers": {
                "uvicorn.access": {"handlers": ["default"], "level": resolved, "propagate": False},
                "sqlalchemy.engine": {"level": logging.WARNING},
                "celery": {"level": resolved},
            },
        }
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
