"""Reference clock for every calendar-day decision in the service.

Check-in streaks, generation quotas and monthly check-in counts all use
``business_today()``, the date in ``settings.BUSINESS_TIMEZONE``, never the
host's local time.
"""

from datetime import date, datetime, timedelta, UTC
from zoneinfo import ZoneInfo

from economy.core.config import settings


def utc_now() -> datetime:
    return datetime.now(UTC)


def business_timezone() -> ZoneInfo:
    return ZoneInfo(settings.BUSINESS_TIMEZONE)


def business_today() -> date:
    """Current calendar date in the business timezone."""
    return utc_now().astimezone(business_timezone()).date()


def seconds_until_next_day() -> int:
    """Seconds until the next business-day boundary (used for Retry-After)."""
    now = utc_now().astimezone(business_timezone())
    tomorrow = datetime.combine(now.date() + timedelta(days=1), datetime.min.time(), tzinfo=now.tzinfo)
    return max(1, int((tomorrow - now).total_seconds()))


def ensure_aware(value: datetime | None) -> datetime | None:
    """Treat naive datetimes (as returned by SQLite) as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)
