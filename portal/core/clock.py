"""Injectable time source.

Every timestamp the engine writes (phase start/completion, approvals,
deployments, lock stamps) goes through ``now()``.  Tests pin time by
setting ``app.config["CLOCK"]`` to a zero-argument callable.
"""

from datetime import datetime, timezone

from flask import current_app, has_app_context


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def now() -> datetime:
    """Return the configured clock's current time (UTC wall clock by default)."""
    if has_app_context():
        clock = current_app.config.get("CLOCK")
        if clock is not None:
            return clock()
    return utcnow()
