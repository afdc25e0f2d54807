from datetime import date, datetime, time, timedelta, timezone

import pytest

from routine_compliance.core.errors import ValidationError
from routine_compliance.services.deadlines import (
    DEFAULT_DEADLINE_CONFIG,
    DeadlineCache,
    DeadlineConfig,
    PeriodWindow,
    calculate_deadlines,
    deadline_config_from_settings,
)
from routine_compliance.settings import Settings

UTC = timezone.utc


def test_morning_london_winter():
    d = calculate_deadlines(date(2025, 11, 7), "morning", "Europe/London")
    assert d.on_time_deadline == datetime(2025, 11, 7, 12, 0, tzinfo=UTC)
    assert d.grace_period_end == datetime(2025, 11, 8, 12, 0, tzinfo=UTC)


def test_evening_london_winter():
    d = calculate_deadlines(date(2025, 11, 7), "evening", "Europe/London")
    assert d.on_time_deadline == datetime(2025, 11, 7, 23, 59, 59, 999000, tzinfo=UTC)
    assert d.grace_period_end == datetime(2025, 11, 8, 23, 59, 59, 999000, tzinfo=UTC)


def test_results_are_utc():
    d = calculate_deadlines(date(2025, 6, 1), "morning", "Asia/Tokyo")
    assert d.on_time_deadline.utcoffset() == timedelta(0)
    assert d.on_time_deadline == datetime(2025, 6, 1, 3, 0, tzinfo=UTC)


def test_new_york_offset():
    d = calculate_deadlines(date(2025, 11, 7), "morning", "America/New_York")
    assert d.on_time_deadline == datetime(2025, 11, 7, 17, 0, tzinfo=UTC)


def test_morning_deadline_stays_local_noon_across_spring_forward():
    # Clocks go forward at 01:00 GMT on 2025-03-30; noon that day is BST.
    d = calculate_deadlines(date(2025, 3, 30), "morning", "Europe/London")
    assert d.on_time_deadline == datetime(2025, 3, 30, 11, 0, tzinfo=UTC)
    assert d.grace_period_end == d.on_time_deadline + timedelta(hours=24)


def test_period_start_inside_dst_gap_resolves_with_fold_zero():
    config = DeadlineConfig(
        morning=PeriodWindow(start=time(1, 30), on_time=timedelta(0)),
        evening=DEFAULT_DEADLINE_CONFIG.evening,
        grace=timedelta(hours=1),
    )
    d = calculate_deadlines(date(2025, 3, 30), "morning", "Europe/London", config)
    assert d.on_time_deadline == datetime(2025, 3, 30, 1, 30, tzinfo=UTC)


@pytest.mark.parametrize("tz", ["Europe/London", "America/Los_Angeles", "Australia/Sydney", "UTC"])
@pytest.mark.parametrize("tod", ["morning", "evening"])
def test_grace_always_after_deadline(tz, tod):
    day = date(2025, 1, 1)
    for offset in range(0, 365, 7):
        d = calculate_deadlines(day + timedelta(days=offset), tod, tz)
        assert d.grace_period_end > d.on_time_deadline


def test_same_inputs_same_windows():
    a = calculate_deadlines(date(2025, 11, 7), "evening", "Europe/Paris")
    b = calculate_deadlines(date(2025, 11, 7), "evening", "Europe/Paris")
    assert a == b


def test_unknown_timezone_rejected():
    with pytest.raises(ValidationError):
        calculate_deadlines(date(2025, 11, 7), "morning", "Mars/Olympus_Mons")


def test_unknown_time_of_day_rejected():
    with pytest.raises(ValidationError):
        calculate_deadlines(date(2025, 11, 7), "afternoon", "Europe/London")


@pytest.mark.parametrize("grace", [timedelta(0), timedelta(hours=-1)])
def test_non_positive_grace_rejected(grace):
    with pytest.raises(ValidationError):
        DeadlineConfig(
            morning=DEFAULT_DEADLINE_CONFIG.morning,
            evening=DEFAULT_DEADLINE_CONFIG.evening,
            grace=grace,
        )


def test_config_from_settings_matches_defaults():
    assert deadline_config_from_settings(Settings()) == DEFAULT_DEADLINE_CONFIG


def test_cache_matches_direct_calculation():
    cache = DeadlineCache("Europe/London")
    day = date(2025, 11, 7)
    first = cache.get(day, "morning")
    assert first == calculate_deadlines(day, "morning", "Europe/London")
    assert cache.get(day, "morning") is first


def test_cache_rejects_unknown_timezone_up_front():
    with pytest.raises(ValidationError):
        DeadlineCache("Not/AZone")
