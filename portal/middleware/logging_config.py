"""
Structured logging configuration.

Production writes one JSON object per line; development and testing write a
plain line prefixed with the lifecycle scope.  LOG_LEVEL overrides the level.

Lifecycle services attach ``project_id``, ``phase``, ``actor`` and
``event_type`` through ``extra={...}``; request timing adds the HTTP fields.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

_REQUEST_FIELDS = ("method", "path", "status", "duration_ms", "remote_addr", "request_id")
_LIFECYCLE_FIELDS = ("project_id", "phase", "actor", "event_type")


def _extras(record: logging.LogRecord, names) -> dict:
    return {name: getattr(record, name) for name in names if getattr(record, name, None) is not None}


class JSONFormatter(logging.Formatter):
    """One JSON object per record; extras become top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_extras(record, _REQUEST_FIELDS),
            **_extras(record, _LIFECYCLE_FIELDS),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ScopedFormatter(logging.Formatter):
    """``HH:MM:SS LEVEL logger [project=.. event=..] message``"""

    def format(self, record: logging.LogRecord) -> str:
        scope = " ".join(f"{k}={v}" for k, v in _extras(record, ("project_id", "event_type")).items())
        line = (
            f"{datetime.fromtimestamp(record.created):%H:%M:%S} {record.levelname:<8} "
            f"{record.name}{f' [{scope}]' if scope else ''} {record.getMessage()}"
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install a single stderr handler on the root logger.

    JSON when the app runs without DEBUG or TESTING, scoped text otherwise.
    """
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG")
    level = getattr(logging, level_name.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if is_prod else ScopedFormatter())
    root = logging.getLogger()
    # Repeated app creation replaces the handler
    root.handlers[:] = [handler]
    root.setLevel(level)

    for noisy in ("werkzeug", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
    app.logger.setLevel(level)
