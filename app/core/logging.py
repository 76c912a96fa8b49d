from __future__ import annotations

import json
import logging
import logging.config
from datetime import datetime, timezone
from typing import Any

from app.core.config import settings

_STANDARD_ATTRS = set(logging.makeLogRecord({}).__dict__.keys())

CART_LOGGER = "app.cart"


class JsonFormatter(logging.Formatter):
    """Basic JSON formatter for structured logs."""

    def format(self, record: logging.LogRecord) -> str:
        message = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            message["exc_info"] = self.formatException(record.exc_info)

        extra = {key: value for key, value in record.__dict__.items() if key not in _STANDARD_ATTRS}
        if extra:
            message["extra"] = extra

        return json.dumps(message, default=str)


def setup_logging(level_name: str | None = None) -> None:
    """Apply centralized logging configuration."""
    level = getattr(logging, (level_name or settings.LOG_LEVEL).upper(), logging.INFO)
    logging_config: dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": JsonFormatter,
            }
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "json",
            }
        },
        "root": {
            "handlers": ["default"],
            "level": level,
        },
        "loggers": {
            CART_LOGGER: {"level": level},
            "uvicorn.access": {"handlers": ["default"], "level": level, "propagate": False},
        },
    }

    logging.config.dictConfig(logging_config)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def cart_event(cart_id: str | None, command: str, **context: Any) -> None:
    """Audit log for cart state transitions."""
    get_logger(CART_LOGGER).info(
        "cart command applied",
        extra={"cart_id": cart_id, "command": command, **context},
    )
