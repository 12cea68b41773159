"""Structured logging configuration."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


class JsonFormatter(logging.Formatter):
    """Simple JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc)
            .replace(tzinfo=None)
            .isoformat(timespec="seconds")
            + "Z",
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }
        if record.__dict__.get("event"):
            payload["event"] = record.__dict__["event"]
        if record.__dict__.get("context"):
            payload["context"] = record.__dict__["context"]
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def setup_logging(logs_dir: Path | None, level: int = logging.INFO) -> None:
    """Configure logging to stdout and, when given, a file in the logs directory."""

    formatter = JsonFormatter()
    logger = logging.getLogger()
    logger.setLevel(level)
    logger.handlers.clear()

    if logs_dir is not None:
        logs_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(logs_dir / "app.log")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)
