"""Centralized logging configuration for the application.

Records may carry structured key-value properties through
``extra={"properties": {...}}``; both formatters render them.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from .config import settings


class ConsoleFormatter(logging.Formatter):
    """Human readable lines with properties appended as key=value pairs."""

    def format(self, record):
        line = super().format(record)
        properties = getattr(record, "properties", None)
        if properties:
            pairs = " ".join(f"{key}={value}" for key, value in properties.items())
            line = f"{line} {pairs}"
        return line


class JSONFormatter(logging.Formatter):
    """One JSON object per record for log shippers."""

    def format(self, record):
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        properties = getattr(record, "properties", None)
        if properties:
            log_data["properties"] = {key: str(value) for key, value in properties.items()}
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data)


def setup_logger() -> logging.Logger:
    """Configure and return application logger with console and optional file handlers."""
    logger = logging.getLogger("movie_catalog")
    logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper()))

    # Prevent duplicate handlers if logger already configured
    if logger.handlers:
        return logger

    console_format = ConsoleFormatter(
        fmt='%(asctime)s %(levelname)-8s [%(name)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    console_handler = logging.StreamHandler(sys.stdout)
    if settings.LOG_FORMAT == "json":
        console_handler.setFormatter(JSONFormatter())
    else:
        console_handler.setFormatter(console_format)
    logger.addHandler(console_handler)

    # File handler (optional)
    if settings.LOG_FILE:
        try:
            file_handler = logging.FileHandler(settings.LOG_FILE)
        except OSError as e:
            logger.error(f"Failed to create file handler for {settings.LOG_FILE}: {e}")
        else:
            if settings.LOG_FORMAT == "json":
                file_handler.setFormatter(JSONFormatter())
            else:
                file_handler.setFormatter(console_format)
            logger.addHandler(file_handler)

    return logger


logger = setup_logger()
