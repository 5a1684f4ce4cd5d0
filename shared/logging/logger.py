"""
Structured JSON logging for the orchestrator and its HTTP service.

Each log entry includes the service name so records from several processes
can be told apart once aggregated. Outputs to stdout.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

_NOISY_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "openai")


class JSONFormatter(logging.Formatter):
    """Formats log records as single-line JSON objects."""

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self._service = service_name

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "service": self._service,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)

        extra = getattr(record, "_extra", None)
        if extra:
            entry["extra"] = extra

        return json.dumps(entry, default=str)


def setup_logging(service_name: str, level_name: str | None = None) -> logging.Logger:
    """
    Configure the root logger with JSON output to stdout.

    Call once at start-up (FastAPI lifespan). Returns the service logger.
    """
    level_name = (level_name or os.environ.get("LOG_LEVEL", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter(service_name))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in _NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logger = logging.getLogger(service_name)
    logger.info("Logging initialized", extra={"_extra": {"level": level_name}})
    return logger
