# models/billing.py
from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class BillingType(str, Enum):
    RECURRING = "recurring"
    ONE_TIME = "one_time"


# accepted on input, stored as one_time
LEGACY_LIFETIME = "lifetime"


class RecurrenceType(str, Enum):
    INTERVAL = "interval"
    MONTHLY_DATE = "monthly_date"
    YEARLY_DATE = "yearly_date"


class IntervalUnit(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


class BillingDraft(BaseModel):
    """Proposed billing configuration, as submitted by the CRUD layer.

    Types are kept as raw strings so the normalizer can report bad values
    with its own messages instead of pydantic's.
    """
    billing_type: str = ""
    recurrence_type: str = ""
    interval_count: Optional[int] = None
    interval_unit: str = ""
    monthly_day: Optional[int] = None
    yearly_month: Optional[int] = None
    yearly_day: Optional[int] = None
    next_occurrence: Optional[date] = None
