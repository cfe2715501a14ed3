"""Tests for cron expression helpers."""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from backend.src.core.cron_utils import (
    as_utc_naive,
    build_cron_trigger,
    describe_cron,
    get_next_execution_times,
    interval_to_cron,
    validate_cron_expression,
)

SHANGHAI = ZoneInfo("Asia/Shanghai")


@pytest.mark.parametrize(
    "minutes, expected",
    [
        (15, "*/15 * * * *"),
        (30, "*/30 * * * *"),
        (60, "0 * * * *"),
        (180, "0 */3 * * *"),
        (2880, "0 0 */2 * *"),
        (45, "*/30 * * * *"),
        (100, "0 * * * *"),
        (300, "0 */2 * * *"),
    ],
)
def test_interval_to_cron(minutes, expected):
    assert interval_to_cron(minutes) == expected


def test_interval_to_cron_rejects_non_positive():
    with pytest.raises(ValueError):
        interval_to_cron(0)


def test_validate_cron_expression():
    assert validate_cron_expression("*/30 * * * *")
    assert validate_cron_expression("0 9 * * 1-5")
    assert not validate_cron_expression("*/30 * * *")
    assert not validate_cron_expression("61 * * * *")
    assert not validate_cron_expression("not a cron")


def test_crontab_weekday_numbers_mean_sunday_first():
    trigger = build_cron_trigger("0 9 * * 0", timezone=SHANGHAI)
    # 2026-10-19 is a Monday
    start = datetime(2026, 10, 19, 12, 0, tzinfo=SHANGHAI)

    fire_time = trigger.get_next_fire_time(None, start)

    assert fire_time.weekday() == 6
    assert (fire_time.hour, fire_time.minute) == (9, 0)


def test_get_next_execution_times_are_distinct_and_ordered():
    start = datetime(2026, 10, 19, 10, 5, tzinfo=SHANGHAI)

    times = get_next_execution_times("*/15 * * * *", count=3, now=start)

    assert [(t.hour, t.minute) for t in times] == [(10, 15), (10, 30), (10, 45)]


def test_get_next_execution_times_invalid_expression():
    assert get_next_execution_times("bogus") == []


@pytest.mark.parametrize(
    "expression, description",
    [
        ("0 * * * *", "Every hour"),
        ("*/15 * * * *", "Every 15 minutes"),
        ("0 */6 * * *", "Every 6 hours"),
        ("30 8 * * *", "Every day at 08:30"),
        ("0 9 * * 1-5", "Monday-Friday at 09:00"),
        ("5 4 1 2 *", "Custom cron expression"),
        ("* *", "Invalid cron expression"),
    ],
)
def test_describe_cron(expression, description):
    assert describe_cron(expression) == description


def test_as_utc_naive():
    aware = datetime(2026, 10, 19, 8, 0, tzinfo=SHANGHAI)
    assert as_utc_naive(aware) == datetime(2026, 10, 19, 0, 0)
    assert as_utc_naive(datetime(2026, 1, 1, tzinfo=timezone.utc)) == datetime(2026, 1, 1)
    naive = datetime(2026, 1, 1, 12, 0)
    assert as_utc_naive(naive) is naive
    assert as_utc_naive(None) is None
