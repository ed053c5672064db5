"""
Billing draft validation and canonicalization.

Used by the CRUD layer before a subscription is created or updated:
- checks that the recurrence fields match the recurrence type
- clears the fields of every other recurrence type
- normalizes the billing date (it is never advanced here; the rollover
  service does that lazily on read paths)
"""
from datetime import date, datetime
from typing import Optional, Tuple

from core.exceptions import BillingValidationError
from models.billing import BillingDraft, BillingType, IntervalUnit, LEGACY_LIFETIME, RecurrenceType
from models.subscription import MAX_NOTIFICATION_DAYS_BEFORE
from services.schedule_math import normalize_date

_VALID_UNITS = {u.value for u in IntervalUnit}


def _clean(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def normalize_billing_type(value: Optional[str]) -> str:
    normalized = _clean(value)
    if normalized == LEGACY_LIFETIME:
        return BillingType.ONE_TIME.value
    return normalized


def is_valid_interval_unit(unit: Optional[str]) -> bool:
    return unit in _VALID_UNITS


def normalize_billing_draft(draft: BillingDraft) -> Tuple[BillingDraft, date]:
    """
    Validate a draft and return (normalized draft, resolved next occurrence).

    Raises BillingValidationError with a field-specific message; the draft
    passed in is not modified.
    """
    draft = draft.model_copy()
    draft.billing_type = normalize_billing_type(draft.billing_type) or BillingType.RECURRING.value

    if draft.next_occurrence is None:
        if draft.billing_type == BillingType.RECURRING.value:
            raise BillingValidationError("next_billing_date is required for recurring subscriptions")
        if draft.billing_type == BillingType.ONE_TIME.value:
            raise BillingValidationError("next_billing_date is required for one-time subscriptions")

    if draft.billing_type == BillingType.ONE_TIME.value:
        draft.next_occurrence = normalize_date(draft.next_occurrence)
        draft.recurrence_type = ""
        draft.interval_count = None
        draft.interval_unit = ""
        draft.monthly_day = None
        draft.yearly_month = None
        draft.yearly_day = None
        return draft, draft.next_occurrence

    if draft.billing_type != BillingType.RECURRING.value:
        raise BillingValidationError("billing_type must be one of: recurring, one_time")

    draft.recurrence_type = _clean(draft.recurrence_type) or RecurrenceType.INTERVAL.value
    draft.next_occurrence = normalize_date(draft.next_occurrence)

    if draft.recurrence_type == RecurrenceType.INTERVAL.value:
        if draft.interval_count is None or draft.interval_count < 1:
            raise BillingValidationError("interval_count must be at least 1 for interval recurrence")
        draft.interval_unit = _clean(draft.interval_unit)
        if not is_valid_interval_unit(draft.interval_unit):
            raise BillingValidationError("interval_unit must be one of: day, week, month, year")
        draft.monthly_day = None
        draft.yearly_month = None
        draft.yearly_day = None

    elif draft.recurrence_type == RecurrenceType.MONTHLY_DATE.value:
        if draft.monthly_day is None or not 1 <= draft.monthly_day <= 31:
            raise BillingValidationError("monthly_day must be between 1 and 31 for monthly date recurrence")
        draft.interval_count = None
        draft.interval_unit = ""
        draft.yearly_month = None
        draft.yearly_day = None

    elif draft.recurrence_type == RecurrenceType.YEARLY_DATE.value:
        if draft.yearly_month is None or not 1 <= draft.yearly_month <= 12:
            raise BillingValidationError("yearly_month must be between 1 and 12 for yearly date recurrence")
        if draft.yearly_day is None or not 1 <= draft.yearly_day <= 31:
            raise BillingValidationError("yearly_day must be between 1 and 31 for yearly date recurrence")
        draft.interval_count = None
        draft.interval_unit = ""
        draft.monthly_day = None

    else:
        raise BillingValidationError("recurrence_type must be one of: interval, monthly_date, yearly_date")

    return draft, draft.next_occurrence


def parse_optional_date(value: Optional[str]) -> Optional[date]:
    """Parse a YYYY-MM-DD string; blank input means "not provided"."""
    trimmed = (value or "").strip()
    if not trimmed:
        return None
    try:
        return datetime.strptime(trimmed, "%Y-%m-%d").date()
    except ValueError:
        raise BillingValidationError("invalid date format, expected YYYY-MM-DD") from None


def validate_notify_days_before(value: Optional[int]) -> None:
    """Per-subscription reminder override; None means "use the user's policy"."""
    if value is None:
        return
    if value < 0 or value > MAX_NOTIFICATION_DAYS_BEFORE:
        raise BillingValidationError(
            f"notify_days_before must be between 0 and {MAX_NOTIFICATION_DAYS_BEFORE}"
        )
