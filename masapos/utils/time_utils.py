"""Time utilities in the restaurant's local time zone (APP_TIMEZONE)."""

import os
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo
from typing import Optional

DEFAULT_TIMEZONE = "Europe/Istanbul"

try:
    LOCAL_TZ = ZoneInfo(os.getenv("APP_TIMEZONE", DEFAULT_TIMEZONE))
except Exception:
    # Fallback to system local timezone when tzdata is unavailable (Windows)
    LOCAL_TZ = datetime.now().astimezone().tzinfo


def now_local() -> datetime:
    """Return timezone-aware datetime in the local zone."""
    return datetime.now(LOCAL_TZ)


def now_local_naive() -> datetime:
    """Return naive datetime representing local wall-clock time."""
    return now_local().replace(tzinfo=None)


def start_of_day(dt: Optional[datetime] = None) -> datetime:
    """Return naive local midnight for *dt* (today when omitted)."""
    dt = dt or now_local_naive()
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def day_range_start(days: int, now: Optional[datetime] = None) -> datetime:
    """Return local midnight of the first day in a window of *days* days ending today."""
    return start_of_day(now) - timedelta(days=days - 1)
