"""
System timezone helpers.

The scheduler works in a single configured timezone: settings.TZ if it names
a valid IANA zone, otherwise the host's local zone. "Today" and "days until"
are always calendar-date computations in that zone.
"""
import logging
from datetime import date, datetime, tzinfo
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from config.settings import settings

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_system_timezone() -> tzinfo:
    if settings.TZ:
        try:
            return ZoneInfo(settings.TZ)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown TZ %r, falling back to host local timezone", settings.TZ)
    return datetime.now().astimezone().tzinfo


def now_in_system_timezone() -> datetime:
    return datetime.now(get_system_timezone())


def today_in_timezone(now: datetime | None = None, tz: tzinfo | None = None) -> date:
    """Calendar date of `now` (default: current time) in the system timezone.

    Naive datetimes are taken to already be in that timezone.
    """
    tz = tz or get_system_timezone()
    if now is None:
        return datetime.now(tz).date()
    if now.tzinfo is None:
        return now.date()
    return now.astimezone(tz).date()


def days_until(target: date, now: datetime | None = None, tz: tzinfo | None = None) -> int:
    """Whole days from today (system timezone) until the target calendar date."""
    return (target - today_in_timezone(now, tz)).days
