"""Process-wide logging setup."""

from __future__ import annotations

import logging
import logging.config
from typing import Optional

from app.config import get_settings

DEFAULT_LOGGER_NAME = "grupo_chat"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class LoggingConfig:
    """Configure root logging once. Level comes from LOG_LEVEL unless given."""

    _configured = False

    def __init__(self, level: Optional[str] = None) -> None:
        if LoggingConfig._configured:
            return
        level = (level or get_settings().log_level or "INFO").upper()
        logging.config.dictConfig(
            {
                "version": 1,
                "disable_existing_loggers": False,
                "formatters": {"default": {"format": LOG_FORMAT}},
                "handlers": {
                    "console": {
                        "class": "logging.StreamHandler",
                        "formatter": "default",
                    }
                },
                "root": {"handlers": ["console"], "level": level},
                "loggers": {
                    "uvicorn.access": {"level": "WARNING"},
                    "sqlalchemy.engine": {"level": "WARNING"},
                },
            }
        )
        LoggingConfig._configured = True


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a logger namespaced under the application logger."""
    if not name:
        return logging.getLogger(DEFAULT_LOGGER_NAME)
    return logging.getLogger(f"{DEFAULT_LOGGER_NAME}.{name}")
