"""
Calendar arithmetic for billing schedules.

All functions work on calendar dates (no time-of-day). Month and year steps
use dateutil's relativedelta, which clamps to the last day of shorter months:
an anchor on the 31st lands on Feb 28 (or 29), a Feb 29 yearly anchor lands
on Feb 28 in non-leap years.

Month/year stepping is always computed from the original anchor
(anchor + k*count months), never cumulatively, so a 31st anchor that was
clamped to Feb 28 comes back to Mar 31 rather than drifting to Mar 28.
"""
from calendar import monthrange
from datetime import date, datetime, timedelta, timezone

from dateutil.relativedelta import relativedelta

from models.billing import IntervalUnit


def normalize_date(value: date | datetime) -> date:
    """Strip time-of-day. Aware datetimes are converted to UTC first."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    return value


def days_in_month(year: int, month: int) -> int:
    return monthrange(year, month)[1]


def clamp_day(year: int, month: int, day: int) -> int:
    if day < 1:
        return 1
    return min(day, days_in_month(year, month))


def build_date(year: int, month: int, day: int) -> date:
    return date(year, month, clamp_day(year, month, day))


def next_interval_occurrence(anchor: date, from_date: date, count: int, unit: str) -> date:
    """First date >= from_date reachable from anchor in steps of `count` units.

    Returns anchor itself when from_date is not after it.
    """
    anchor = normalize_date(anchor)
    from_date = normalize_date(from_date)
    if from_date <= anchor:
        return anchor
    if count < 1:
        raise ValueError(f"interval count must be at least 1, got {count}")

    unit = IntervalUnit(unit)
    if unit in (IntervalUnit.DAY, IntervalUnit.WEEK):
        step_days = count * 7 if unit is IntervalUnit.WEEK else count
        # fixed-length steps: jump straight to the first step on or after from_date
        steps = -(-(from_date - anchor).days // step_days)
        return anchor + timedelta(days=steps * step_days)

    step = relativedelta(months=count) if unit is IntervalUnit.MONTH else relativedelta(years=count)
    n = 1
    current = anchor + step
    while current < from_date:
        n += 1
        current = anchor + step * n
    return current


def next_monthly_day_occurrence(from_date: date, day: int) -> date:
    """Next date on or after from_date whose day-of-month is `day` (clamped)."""
    from_date = normalize_date(from_date)
    candidate = build_date(from_date.year, from_date.month, day)
    if candidate < from_date:
        candidate = from_date.replace(day=1) + relativedelta(months=1, day=day)
    return candidate


def next_yearly_date_occurrence(from_date: date, month: int, day: int) -> date:
    """Next date on or after from_date falling on month/day (clamped)."""
    from_date = normalize_date(from_date)
    candidate = build_date(from_date.year, month, day)
    if candidate < from_date:
        candidate = build_date(from_date.year + 1, month, day)
    return candidate
