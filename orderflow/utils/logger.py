"""Logging configuration."""

import logging
import sys
from typing import Optional

from pythonjsonlogger import jsonlogger

from orderflow.config import Settings, get_settings

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
JSON_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Libraries that log every request or heartbeat at INFO
NOISY_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "pymongo", "motor")


def _formatter(settings: Settings) -> logging.Formatter:
    if settings.log_format == "json":
        return jsonlogger.JsonFormatter(
            JSON_FORMAT,
            datefmt=DATE_FORMAT,
            rename_fields={"levelname": "level", "name": "logger"},
            static_fields={"service": settings.app_name},
        )
    return logging.Formatter(TEXT_FORMAT, datefmt=DATE_FORMAT)


def setup_logging(settings: Optional[Settings] = None) -> None:
    """Send all records to stdout, as JSON lines unless ``log_format`` says text."""
    settings = settings or get_settings()
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(log_level)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(_formatter(settings))
    root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root.info("Logging configured: level=%s, format=%s", settings.log_level, settings.log_format)
