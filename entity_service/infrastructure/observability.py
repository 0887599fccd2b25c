"""Structured Logging — JSON formatter and setup for service observability.

Invariants:
    - All logs include timestamp, level, logger name, and message
    - Extra fields (service, event, error_code, operation, capabilities) surfaced when present
    - JSON format by default, human-readable when log_format is "text"

Design Decisions:
    - JSONFormatter over third-party libs: zero dependencies, full control
    - setup_logging called once by the host application (never at import time)
"""

import json
import logging
from datetime import datetime, timezone

from entity_service.config import Settings, get_settings

EXTRA_FIELDS = ("service", "event", "error_code", "operation", "capabilities")


class JSONFormatter(logging.Formatter):
    """Format logs as JSON for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in EXTRA_FIELDS:
            val = record.__dict__.get(key)
            if val is not None:
                log[key] = val
        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False, default=str)


def setup_logging(settings: Settings | None = None) -> logging.Handler:
    """Attach one handler to the root logger per settings.log_format / log_level."""
    settings = settings or get_settings()
    handler = logging.StreamHandler()
    if settings.log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
        ))
    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    return handler
