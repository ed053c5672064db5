"""
Occurrence enumeration for stored subscriptions.

Purpose:
- Decide whether a stored recurring schedule is usable
- Find the next occurrence on/after a date, or strictly after one
- Count occurrences inside a half-open [start, end) range
- Derive an amortized monthly cost multiplier

Counting walks occurrence by occurrence so month-end clamping stays exact;
cost is O(occurrences in range). Nothing here raises on malformed stored
data: a broken schedule counts as zero occurrences.
"""
from datetime import date, timedelta
from typing import Optional

from models.billing import BillingType, IntervalUnit, RecurrenceType
from models.subscription import Subscription
from services.billing_service import is_valid_interval_unit
from services.schedule_math import (
    next_interval_occurrence,
    next_monthly_day_occurrence,
    next_yearly_date_occurrence,
    normalize_date,
)

# average days per month / weeks per month over the Gregorian cycle
DAYS_PER_MONTH = 30.436875
WEEKS_PER_MONTH = 4.348125


def is_recurring_schedule_valid(sub: Subscription) -> bool:
    if sub.recurrence_type == RecurrenceType.INTERVAL.value:
        return (
            sub.interval_count is not None
            and sub.interval_count >= 1
            and is_valid_interval_unit(sub.interval_unit)
        )
    if sub.recurrence_type == RecurrenceType.MONTHLY_DATE.value:
        return sub.monthly_day is not None and 1 <= sub.monthly_day <= 31
    if sub.recurrence_type == RecurrenceType.YEARLY_DATE.value:
        return (
            sub.yearly_month is not None and 1 <= sub.yearly_month <= 12
            and sub.yearly_day is not None and 1 <= sub.yearly_day <= 31
        )
    return False


def next_recurring_occurrence_on_or_after(sub: Subscription, anchor: date, from_date: date) -> Optional[date]:
    """
    First occurrence >= from_date. Interval schedules are phased on `anchor`;
    monthly/yearly-date schedules only depend on their fixed day.
    Returns None when the schedule is not valid.
    """
    if not is_recurring_schedule_valid(sub):
        return None
    anchor = normalize_date(anchor)
    from_date = normalize_date(from_date)

    if sub.recurrence_type == RecurrenceType.INTERVAL.value:
        return next_interval_occurrence(anchor, from_date, sub.interval_count, sub.interval_unit)
    if sub.recurrence_type == RecurrenceType.MONTHLY_DATE.value:
        return next_monthly_day_occurrence(from_date, sub.monthly_day)
    return next_yearly_date_occurrence(from_date, sub.yearly_month, sub.yearly_day)


def next_recurring_occurrence_after(sub: Subscription, current: date, anchor: Optional[date] = None) -> Optional[date]:
    """
    First occurrence strictly after `current`. Pass the schedule's original
    anchor when walking an interval schedule, otherwise a clamped month-end
    step (Jan 31 -> Feb 28) becomes the new phase.
    """
    current = normalize_date(current)
    return next_recurring_occurrence_on_or_after(sub, anchor or current, current + timedelta(days=1))


def count_occurrences_in_range(sub: Subscription, start_inclusive: date, end_exclusive: date) -> int:
    start_inclusive = normalize_date(start_inclusive)
    end_exclusive = normalize_date(end_exclusive)
    if start_inclusive >= end_exclusive or sub.next_occurrence is None:
        return 0

    anchor = normalize_date(sub.next_occurrence)
    if sub.billing_type != BillingType.RECURRING.value:
        return 1 if start_inclusive <= anchor < end_exclusive else 0

    if not is_recurring_schedule_valid(sub):
        return 0

    current = anchor
    if current < start_inclusive:
        current = next_recurring_occurrence_on_or_after(sub, anchor, start_inclusive)
        if current is None:
            return 0

    occurrences = 0
    while current < end_exclusive:
        if current >= start_inclusive:
            occurrences += 1
        nxt = next_recurring_occurrence_after(sub, current, anchor)
        if nxt is None or nxt <= current:
            break
        current = nxt
    return occurrences


def monthly_factor(sub: Subscription) -> float:
    """
    Amortized monthly multiplier for `amount`. 0 means "not a recurring cost",
    callers then fall back to counting occurrences in a date range.
    """
    if sub.billing_type != BillingType.RECURRING.value:
        return 0.0

    if sub.recurrence_type == RecurrenceType.INTERVAL.value:
        if sub.interval_count is None or sub.interval_count <= 0:
            return 0.0
        count = float(sub.interval_count)
        if sub.interval_unit == IntervalUnit.DAY.value:
            return DAYS_PER_MONTH / count
        if sub.interval_unit == IntervalUnit.WEEK.value:
            return WEEKS_PER_MONTH / count
        if sub.interval_unit == IntervalUnit.MONTH.value:
            return 1 / count
        if sub.interval_unit == IntervalUnit.YEAR.value:
            return 1 / (12 * count)
        return 0.0
    if sub.recurrence_type == RecurrenceType.MONTHLY_DATE.value:
        return 1.0
    if sub.recurrence_type == RecurrenceType.YEARLY_DATE.value:
        return 1.0 / 12.0
    return 0.0
