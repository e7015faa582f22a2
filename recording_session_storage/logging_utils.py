"""
Structured logging for recording storage.

Recording storage runs inside long-lived host processes whose logs are
shipped elsewhere. With structured logging enabled, every line is one JSON
object with a fixed set of recording context keys so logs can be filtered
by session or chunk without parsing messages.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

PACKAGE_LOGGER = "recording_session_storage"

CONTEXT_FIELDS = ("session_id", "subject_id", "chunk_id", "chunk_index")


class StructuredJsonFormatter(logging.Formatter):
    """
    Formats records as single-line JSON with a fixed schema.

    Keys: ts, level, logger, message, then every name in CONTEXT_FIELDS
    (null when the record carries none), then ``error`` when exception
    info is attached.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(
                timespec="milliseconds"
            ),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in CONTEXT_FIELDS:
            entry[key] = getattr(record, key, None)
        if record.exc_info:
            entry["error"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_structured_logging(
    level: int = logging.INFO,
    logger_name: str = PACKAGE_LOGGER,
) -> logging.Logger:
    """
    Send the package's log records to stdout as JSON lines.

    Calling it again replaces the handler instead of adding another.
    """
    logger = logging.getLogger(logger_name)
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredJsonFormatter())
    logger.addHandler(handler)
    logger.setLevel(level)
    return logger


def get_storage_logger(name: str) -> logging.Logger:
    """Logger named ``recording_session_storage.{name}``."""
    return logging.getLogger(f"{PACKAGE_LOGGER}.{name}")


class StorageLoggerAdapter(logging.LoggerAdapter):
    """Attaches recording context (session_id, chunk_id, ...) to every record."""

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs
