"""Balizas V16 — Structured JSON Logging.

One JSON object per line on stdout. Ingestion and API code pass context
through ``extra=``; only the keys in ``EXTRA_FIELDS`` are emitted.
"""

import json
import logging
import sys

from balizas.config import settings
from balizas.core.time_utils import isoformat, utcnow

ROOT_LOGGER = "balizas"

EXTRA_FIELDS = ("endpoint", "baliza_id", "source", "duration_ms", "status_code")


class JSONFormatter(logging.Formatter):
    """Feed, storage and request context rendered as flat JSON."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": isoformat(utcnow()),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in EXTRA_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_entry[key] = value
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["error_type"] = record.exc_info[0].__name__
            log_entry["exception"] = self.formatException(record.exc_info)
        # Timestamps and enums in extras are not JSON-native
        return json.dumps(log_entry, default=str, ensure_ascii=False)


def get_logger(name: str) -> logging.Logger:
    """Named logger under ``balizas.`` writing JSON lines to stdout."""
    logger = logging.getLogger(f"{ROOT_LOGGER}.{name}")
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())
        logger.addHandler(handler)
        logger.propagate = False
    logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    return logger
