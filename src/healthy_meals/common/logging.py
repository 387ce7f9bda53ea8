"""Structured JSON logging for Healthy Meals."""

import logging
import json
import sys
from datetime import datetime, timezone

_EXTRA_FIELDS = ("user_id", "usage_kind", "payment_intent_id", "attempt")


class JSONFormatter(logging.Formatter):
    """Format log records as JSON lines."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in _EXTRA_FIELDS:
            if hasattr(record, field):
                log_entry[field] = getattr(record, field)
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


def setup_logging(level: str = "INFO") -> None:
    """Configure structured logging for the application."""
    root = logging.getLogger("healthy_meals")
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.propagate = False
    if any(isinstance(h.formatter, JSONFormatter) for h in root.handlers):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    root.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """Get a logger scoped under healthy_meals."""
    return logging.getLogger(f"healthy_meals.{name}")
