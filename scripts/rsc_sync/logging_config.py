"""JSON-lines logging for the rsc_sync logger tree."""

from __future__ import annotations

import json
import logging
import sys
import time

# Keys callers pass through ``extra=`` that end up as top-level JSON fields
EXTRA_FIELDS = (
    "entity_type",
    "records",
    "pages",
    "inserted",
    "updated",
    "skipped",
    "failed",
    "duration_s",
    "run_id",
    "status_code",
)


class JsonFormatter(logging.Formatter):
    """One JSON object per record: UTC time, level, logger, thread, message, extras."""

    converter = time.gmtime

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S") + f".{int(record.msecs):03d}Z",
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }
        entry.update(
            (key, getattr(record, key))
            for key in EXTRA_FIELDS
            if getattr(record, key, None) is not None
        )
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_logging(level: str = "INFO") -> None:
    """Send rsc_sync logs to stderr as JSON at ``level``."""
    logger = logging.getLogger("rsc_sync")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter())
    logger.handlers[:] = [handler]
    logger.propagate = False
