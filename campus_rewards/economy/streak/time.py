from __future__ import annotations

from datetime import date, datetime
from zoneinfo import ZoneInfo

from campus_rewards.economy.streak.constants import DEFAULT_CAMPUS_TIMEZONE


def campus_local_date(now_utc: datetime, timezone_name: str = DEFAULT_CAMPUS_TIMEZONE) -> date:
    """Converts a UTC instant to the calendar date on campus."""
    return now_utc.astimezone(ZoneInfo(timezone_name)).date()
