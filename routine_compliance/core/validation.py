import uuid
from datetime import date, datetime
from typing import Union

from .errors import ValidationError


def require_uuid(value: str, label: str) -> str:
    try:
        return str(uuid.UUID(str(value)))
    except (ValueError, TypeError, AttributeError):
        raise ValidationError(f"Invalid {label}") from None


def require_date(value: Union[date, str], label: str = "date") -> date:
    """Calendar date from a date or a strict YYYY-MM-DD string."""
    if isinstance(value, datetime):
        raise ValidationError(f"Invalid {label}: expected a calendar date, got an instant")
    if isinstance(value, date):
        return value
    try:
        if len(value) != 10:
            raise ValueError(value)
        return date.fromisoformat(value)
    except (ValueError, TypeError):
        raise ValidationError(f"Invalid {label}: must be in YYYY-MM-DD format") from None


def require_instant(value: datetime, label: str) -> datetime:
    if not isinstance(value, datetime) or value.tzinfo is None:
        raise ValidationError(f"Invalid {label}: must be a timezone-aware instant")
    return value
