"""Expand a routine product's recurrence into dated occurrences.

Rules:
- daily: every date in the range
- 2x per week / 3x per week / specific_days: every date whose weekday name is
  in the product's explicit `days` list. The numeric N is never used to space
  occurrences; the weekday list is the only source of truth.

Dates that already hold a completion row for the product are skipped, which
makes generation safe to re-run over overlapping ranges.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Iterable, Iterator, Optional

from ..core.errors import ValidationError
from ..models import (
    FREQUENCIES,
    FREQUENCY_DAILY,
    STATUS_PENDING,
    RoutineProduct,
    ScheduledStepCompletion,
)
from .deadlines import DeadlineCache

WEEKDAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


def iter_dates(range_start: date, range_end: date) -> Iterator[date]:
    current = range_start
    while current <= range_end:
        yield current
        current += timedelta(days=1)


def validate_recurrence(frequency: str, days: Optional[Iterable[str]]) -> frozenset[int]:
    """Return the weekday numbers (Monday=0) a recurrence fires on.

    Raises ValidationError for an unknown frequency, an unknown weekday name,
    or a non-daily frequency without weekdays.
    """
    if frequency not in FREQUENCIES:
        raise ValidationError(f"Unknown frequency: {frequency!r}")

    if frequency == FREQUENCY_DAILY:
        return frozenset(range(7))

    names = list(days or [])
    if not names:
        raise ValidationError(f"Frequency {frequency!r} requires at least one weekday")

    weekdays = set()
    for name in names:
        try:
            weekdays.add(WEEKDAY_NAMES.index(name))
        except ValueError:
            raise ValidationError(f"Unknown weekday: {name!r}") from None
    return frozenset(weekdays)


def generate(
    product: RoutineProduct,
    range_start: date,
    range_end: date,
    existing_dates: Iterable[date] = (),
) -> set[date]:
    """Occurrence dates for `product` within [range_start, range_end]."""
    if range_end < range_start:
        raise ValidationError(f"Range end {range_end} is before range start {range_start}")

    weekdays = validate_recurrence(product.frequency, product.days)
    skip = set(existing_dates)

    return {
        d for d in iter_dates(range_start, range_end)
        if d.weekday() in weekdays and d not in skip
    }


def build_pending_records(
    product: RoutineProduct,
    dates: Iterable[date],
    deadlines: DeadlineCache,
    user_profile_id: str,
) -> list[ScheduledStepCompletion]:
    """Pending completion rows for the given dates, with their windows attached."""
    records = []
    for scheduled_date in sorted(dates):
        window = deadlines.get(scheduled_date, product.time_of_day)
        records.append(
            ScheduledStepCompletion(
                routine_product_id=product.id,
                user_profile_id=user_profile_id,
                scheduled_date=scheduled_date,
                scheduled_time_of_day=product.time_of_day,
                on_time_deadline=window.on_time_deadline,
                grace_period_end=window.grace_period_end,
                status=STATUS_PENDING,
                completed_at=None,
            )
        )
    return records
