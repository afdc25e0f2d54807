"""Completion state machine for scheduled steps.

    pending --mark_complete--> on-time | late --mark_incomplete--> pending
    pending --sweep--> missed (terminal)

Transitions work on one record at a time and take the reference instant as
an argument. They mutate the record in place and raise
InvalidTransitionError when the move is not allowed, leaving it untouched.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

from ..core.errors import InvalidTransitionError, ValidationError
from ..models import (
    SETTLED_STATUSES,
    STATUS_LATE,
    STATUS_MISSED,
    STATUS_ON_TIME,
    STATUS_PENDING,
    ScheduledStepCompletion,
)


def _require_aware(at: datetime, name: str) -> None:
    if at is None or at.tzinfo is None:
        raise ValidationError(f"{name} must be a timezone-aware instant")


def is_settled(record: ScheduledStepCompletion) -> bool:
    return record.status in SETTLED_STATUSES


def is_overdue(record: ScheduledStepCompletion, now: datetime) -> bool:
    return record.status == STATUS_PENDING and now > record.grace_period_end


def classify(at: datetime, on_time_deadline: datetime, grace_period_end: datetime) -> Optional[str]:
    """Status a completion at `at` earns, or None when past the grace period.

    Both bounds are inclusive.
    """
    if at <= on_time_deadline:
        return STATUS_ON_TIME
    if at <= grace_period_end:
        return STATUS_LATE
    return None


def mark_complete(record: ScheduledStepCompletion, at: datetime) -> ScheduledStepCompletion:
    _require_aware(at, "Completion time")

    # First completion wins; later attempts never move completed_at.
    if is_settled(record):
        return record

    if record.status == STATUS_MISSED:
        raise InvalidTransitionError("Cannot complete a missed step")

    if record.status != STATUS_PENDING:
        raise InvalidTransitionError(f"Unknown step status: {record.status!r}")

    status = classify(at, record.on_time_deadline, record.grace_period_end)
    if status is None:
        # Stays pending; only the sweep moves it to missed.
        raise InvalidTransitionError("This step can no longer be completed (grace period expired)")

    record.status = status
    record.completed_at = at
    return record


def mark_incomplete(record: ScheduledStepCompletion) -> ScheduledStepCompletion:
    if record.status == STATUS_PENDING:
        raise InvalidTransitionError("Step is not completed")
    if record.status == STATUS_MISSED:
        raise InvalidTransitionError("Cannot undo a missed step")
    if not is_settled(record):
        raise InvalidTransitionError(f"Unknown step status: {record.status!r}")

    record.status = STATUS_PENDING
    record.completed_at = None
    return record


def apply_completion(
    record: ScheduledStepCompletion,
    completed: bool,
    at: Optional[datetime],
) -> ScheduledStepCompletion:
    if completed:
        return mark_complete(record, at)
    return mark_incomplete(record)


def sweep(records: Iterable[ScheduledStepCompletion], now: datetime) -> list[ScheduledStepCompletion]:
    """Move every overdue pending record to missed. Returns the records changed."""
    _require_aware(now, "Sweep time")
    changed = []
    for record in records:
        if is_overdue(record, now):
            record.status = STATUS_MISSED
            changed.append(record)
    return changed
