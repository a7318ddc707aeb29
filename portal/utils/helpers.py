"""Shared service-layer helpers.

parse_date:       date / ISO / DD.MM.YYYY → date (None on bad input)
validate_enum:    raise ValidationError when a value is outside its set
validate_length:  raise ValidationError when a string is too long
require_text:     stripped non-empty string or ValidationError
parse_int:        integer from request input or ValidationError
commit_session:   commit, translating store failures into the exception taxonomy
"""
import logging
from datetime import date, datetime

from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError

from portal.core.exceptions import TransientStoreError, ValidationError
from portal.models import db

logger = logging.getLogger(__name__)


def parse_date(value):
    """Parse a date string (ISO or DD.MM.YYYY) to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS (datetime ISO → .date())
    - DD.MM.YYYY
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value)).date()
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d.%m.%Y").date()
    except (ValueError, TypeError):
        return None


def validate_enum(value, allowed, field_name: str) -> None:
    """Raise ValidationError if *value* is set and not in *allowed*."""
    if value and value not in allowed:
        raise ValidationError(
            f"Invalid {field_name}: '{value}'. Allowed: {sorted(allowed)}",
            details={field_name: value},
        )


def validate_length(value, max_len: int, field_name: str) -> None:
    if value and len(value) > max_len:
        raise ValidationError(
            f"{field_name} exceeds maximum length of {max_len} characters",
            details={field_name: "too long"},
        )


def parse_int(value, field_name: str) -> int:
    """Integer from request input; ValidationError when blank or non-numeric."""
    if value is None or value == "":
        raise ValidationError(f"{field_name} is required", details={field_name: "required"})
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(
            f"{field_name} must be an integer", details={field_name: value},
        ) from None


def require_text(data: dict, field_name: str, max_len: int | None = None) -> str:
    """Return ``data[field_name]`` stripped; raise ValidationError when blank."""
    value = data.get(field_name)
    value = value.strip() if isinstance(value, str) else ""
    if not value:
        raise ValidationError(f"{field_name} is required", details={field_name: "required"})
    if max_len is not None:
        validate_length(value, max_len, field_name)
    return value


# ── Database commit helper ───────────────────────────────────────────────────

def commit_session(operation: str) -> None:
    """Commit the current SQLAlchemy session.

    IntegrityError   → rollback, ValidationError (constraint violation)
    OperationalError → rollback, TransientStoreError (connection / lock issues)
    """
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error on commit (%s): %s", operation, exc.orig)
        raise ValidationError(
            f"{operation}: constraint violation",
            details={"constraint": str(exc.orig)},
        ) from exc
    except (OperationalError, InterfaceError) as exc:
        db.session.rollback()
        logger.warning("Store failure on commit (%s): %s", operation, exc)
        raise TransientStoreError(operation, exc) from exc
