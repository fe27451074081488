"""Logging configuration: console output, plain text or JSON lines."""

from __future__ import annotations

import logging
import logging.config
from typing import Any, Dict

from pythonjsonlogger import jsonlogger


class ServiceJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter with level/logger fields named consistently."""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["thread"] = record.threadName


def build_logging_config(level: str = "INFO", fmt: str = "standard") -> Dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            },
            "json": {
                "()": ServiceJsonFormatter,
                "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "json" if fmt == "json" else "standard",
            },
        },
        "loggers": {
            "geoattend": {"handlers": ["console"], "level": level.upper(), "propagate": False},
            "werkzeug": {"handlers": ["console"], "level": "WARNING", "propagate": False},
        },
    }


def configure_logging(level: str = "INFO", fmt: str = "standard") -> None:
    logging.config.dictConfig(build_logging_config(level, fmt))
