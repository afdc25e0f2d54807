"""Compliance window calculation for scheduled steps.

Each occurrence gets two absolute instants:
- on_time_deadline: local period start + on-time window, in the user's timezone
- grace_period_end: on_time_deadline + grace window

Everything here is a pure function of its arguments. Regenerating a schedule
with unchanged inputs reproduces identical windows.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..core.errors import ValidationError
from ..models import TIMES_OF_DAY
from ..settings import Settings


@dataclass(frozen=True)
class PeriodWindow:
    start: time  # local wall time
    on_time: timedelta


@dataclass(frozen=True)
class DeadlineConfig:
    morning: PeriodWindow
    evening: PeriodWindow
    grace: timedelta

    def __post_init__(self):
        if self.grace <= timedelta(0):
            raise ValidationError("Grace window must be positive")
        for window in (self.morning, self.evening):
            if window.on_time < timedelta(0):
                raise ValidationError("On-time window cannot be negative")

    def window_for(self, time_of_day: str) -> PeriodWindow:
        if time_of_day == "morning":
            return self.morning
        if time_of_day == "evening":
            return self.evening
        raise ValidationError(f"Unknown time of day: {time_of_day!r} (expected one of {TIMES_OF_DAY})")


DEFAULT_DEADLINE_CONFIG = DeadlineConfig(
    morning=PeriodWindow(start=time(0, 0), on_time=timedelta(hours=12)),
    evening=PeriodWindow(
        start=time(12, 0),
        on_time=timedelta(hours=11, minutes=59, seconds=59, milliseconds=999),
    ),
    grace=timedelta(hours=24),
)


def deadline_config_from_settings(s: Settings) -> DeadlineConfig:
    return DeadlineConfig(
        morning=PeriodWindow(start=s.morning_period_start, on_time=s.morning_on_time),
        evening=PeriodWindow(start=s.evening_period_start, on_time=s.evening_on_time),
        grace=s.grace_period,
    )


def resolve_timezone(name: str) -> ZoneInfo:
    if not name:
        raise ValidationError("Timezone is required")
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValidationError(f"Unknown timezone: {name!r}") from e


@dataclass(frozen=True)
class Deadlines:
    on_time_deadline: datetime
    grace_period_end: datetime


def calculate_deadlines(
    scheduled_date: date,
    time_of_day: str,
    tz_name: str,
    config: DeadlineConfig = DEFAULT_DEADLINE_CONFIG,
) -> Deadlines:
    """Compute the compliance window for one occurrence.

    The on-time window is added in local wall time, so a noon deadline stays
    noon across DST changes. Local times inside a DST gap resolve with fold=0.
    The grace window is absolute.
    """
    window = config.window_for(time_of_day)
    tz = resolve_timezone(tz_name)

    local_start = datetime.combine(scheduled_date, window.start, tzinfo=tz)
    local_deadline = local_start + window.on_time

    on_time_deadline = local_deadline.astimezone(timezone.utc)
    grace_period_end = on_time_deadline + config.grace

    return Deadlines(on_time_deadline=on_time_deadline, grace_period_end=grace_period_end)


@dataclass
class DeadlineCache:
    """Memoized windows for one timezone during bulk generation.

    A 60-day window over ten products hits at most 120 distinct keys.
    """
    tz_name: str
    config: DeadlineConfig = DEFAULT_DEADLINE_CONFIG
    _cache: dict[tuple[date, str], Deadlines] = field(default_factory=dict, repr=False)

    def __post_init__(self):
        resolve_timezone(self.tz_name)

    def get(self, scheduled_date: date, time_of_day: str) -> Deadlines:
        key = (scheduled_date, time_of_day)
        hit: Optional[Deadlines] = self._cache.get(key)
        if hit is None:
            hit = calculate_deadlines(scheduled_date, time_of_day, self.tz_name, self.config)
            self._cache[key] = hit
        return hit
