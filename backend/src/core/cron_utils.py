"""
Cron expression helpers for crawler schedules.

Expressions are standard 5-field crontab strings, parsed with APScheduler's
``CronTrigger`` so validation matches exactly what the scheduler will run.
"""

import re
from datetime import datetime, timedelta, timezone as dt_timezone, tzinfo
from typing import List, Optional
from zoneinfo import ZoneInfo

from apscheduler.triggers.cron import CronTrigger

from backend.src.core.config import settings

WEEKDAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]
_CRON_WEEKDAYS = ["sun", "mon", "tue", "wed", "thu", "fri", "sat"]


def scheduler_timezone() -> tzinfo:
    """Timezone used for cron triggers and monitor windows."""
    return ZoneInfo(settings.SCHEDULER_TIMEZONE)


def interval_to_cron(minutes: int) -> str:
    """
    Convert a minute interval into a cron expression.

    Exact divisors of an hour and whole-hour divisors of a day map exactly.
    Anything else falls back to the nearest coarser standard bucket
    (15 / 30 / 60 / 120 minutes); UI messaging relies on these buckets.

    Args:
        minutes: Minutes between executions

    Returns:
        Cron expression

    Raises:
        ValueError: If minutes is not positive

    Example:
        >>> interval_to_cron(15)
        '*/15 * * * *'
        >>> interval_to_cron(45)
        '*/30 * * * *'
    """
    if minutes <= 0:
        raise ValueError("Interval must be greater than 0")

    if minutes < 60 and 60 % minutes == 0:
        return f"*/{minutes} * * * *"

    if minutes == 60:
        return "0 * * * *"

    if minutes % 60 == 0:
        hours = minutes // 60
        if hours < 24 and 24 % hours == 0:
            return f"0 */{hours} * * *"

    if minutes >= 1440:
        days = minutes // 1440
        return f"0 0 */{days} * *"

    if minutes < 30:
        return "*/15 * * * *"
    if minutes < 60:
        return "*/30 * * * *"
    if minutes < 120:
        return "0 * * * *"
    return "0 */2 * * *"


def build_cron_trigger(expression: str, timezone: Optional[tzinfo] = None) -> CronTrigger:
    """
    Parse a crontab expression into an APScheduler trigger.

    Raises:
        ValueError: If the expression is malformed
    """
    if not isinstance(expression, str) or len(expression.split()) != 5:
        raise ValueError(f"Expected 5 cron fields, got: {expression!r}")

    minute, hour, day_of_month, month, day_of_week = expression.split()
    return CronTrigger(
        minute=minute,
        hour=hour,
        day=day_of_month,
        month=month,
        day_of_week=_crontab_day_of_week(day_of_week),
        timezone=timezone or scheduler_timezone(),
    )


def _crontab_day_of_week(field: str) -> str:
    """
    Translate crontab weekday numbers (0/7 = Sunday) into names.

    APScheduler numbers weekdays from Monday, so numeric crontab values
    must not be passed through as-is.
    """
    base, slash, step = field.partition("/")
    base = re.sub(r"\d+", lambda m: _CRON_WEEKDAYS[int(m.group()) % 7], base)
    return f"{base}{slash}{step}"


def validate_cron_expression(expression: str) -> bool:
    """Return True if the expression is a valid 5-field cron string."""
    try:
        build_cron_trigger(expression)
        return True
    except (ValueError, TypeError):
        return False


def describe_cron(expression: str) -> str:
    """
    Human-readable description of a cron expression.

    Only the shapes produced by the admin UI are recognised; anything else
    is reported as a custom expression.
    """
    parts = expression.strip().split() if isinstance(expression, str) else []
    if len(parts) != 5:
        return "Invalid cron expression"

    minute, hour, day_of_month, month, day_of_week = parts
    normalized = " ".join(parts)

    fixed = {
        "* * * * *": "Every minute",
        "0 * * * *": "Every hour",
        "0 0 * * *": "Every day at midnight",
        "0 0 * * 0": "Every Sunday at midnight",
        "0 0 1 * *": "On the 1st of every month at midnight",
    }
    if normalized in fixed:
        return fixed[normalized]

    rest_wildcard = day_of_month == "*" and month == "*" and day_of_week == "*"

    if minute.startswith("*/") and hour == "*" and rest_wildcard:
        return f"Every {minute[2:]} minutes"

    if minute == "0" and hour.startswith("*/") and rest_wildcard:
        return f"Every {hour[2:]} hours"

    if minute == "0" and hour == "0" and day_of_month.startswith("*/") and month == "*" and day_of_week == "*":
        return f"Every {day_of_month[2:]} days at midnight"

    if minute.isdigit() and hour.isdigit():
        at = f"{int(hour):02d}:{int(minute):02d}"
        if rest_wildcard:
            return f"Every day at {at}"
        if day_of_week != "*" and day_of_month == "*":
            if "-" in day_of_week:
                start, _, end = day_of_week.partition("-")
                if start.isdigit() and end.isdigit() and int(end) < 7:
                    return f"{WEEKDAY_NAMES[int(start)]}-{WEEKDAY_NAMES[int(end)]} at {at}"
            elif day_of_week.isdigit() and int(day_of_week) < 7:
                return f"Every {WEEKDAY_NAMES[int(day_of_week)]} at {at}"

    return "Custom cron expression"


def get_next_execution_times(
    expression: str,
    count: int = 3,
    now: Optional[datetime] = None,
) -> List[datetime]:
    """
    Upcoming fire times of a cron expression.

    Args:
        expression: Cron expression
        count: Number of fire times to return
        now: Reference time (timezone-aware); defaults to the current time

    Returns:
        Fire times in the scheduler timezone, or an empty list if the
        expression is invalid
    """
    try:
        trigger = build_cron_trigger(expression)
    except (ValueError, TypeError):
        return []

    current = now or datetime.now(scheduler_timezone())
    times: List[datetime] = []
    previous: Optional[datetime] = None

    for _ in range(count):
        fire_time = trigger.get_next_fire_time(previous, current)
        if fire_time is None:
            break
        times.append(fire_time)
        previous = fire_time
        current = fire_time + timedelta(seconds=1)

    return times


def as_utc_naive(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a stored timestamp to naive UTC.

    PostgreSQL returns aware datetimes, SQLite naive ones; all comparisons
    are made against ``datetime.utcnow()``.
    """
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(dt_timezone.utc).replace(tzinfo=None)
