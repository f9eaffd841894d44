"""
utils/time_utils.py

Purpose: Time and expiry helpers

- Stale registration checks
- Timestamp utilities
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

TAIPEI_TZ = timezone(timedelta(hours=8))


def utcnow() -> datetime:
    """
    Naive UTC now, matching what MongoDB returns for stored datetimes.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def stale_cutoff(now: datetime, stale_hours: int) -> datetime:
    """
    Returns the last-activity timestamp before which a registration is stale.
    """
    return now - timedelta(hours=stale_hours)


def is_registration_stale(last_active_at: Optional[datetime], now: datetime, stale_hours: int = 24) -> bool:
    """
    Checks if an unfinished registration has been idle longer than the window.
    """
    if not last_active_at:
        return True
    return last_active_at < stale_cutoff(now, stale_hours)


def format_date(dt: Optional[datetime], format_str: str = "%Y/%m/%d") -> str:
    """
    Formats a stored (UTC) datetime as a local Taiwan date.
    """
    if not dt:
        return "N/A"
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(TAIPEI_TZ).strftime(format_str)


def unix_timestamp(dt: datetime) -> int:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp())
