"""
Time utilities for the clinic outreach scheduler

Provides timezone-aware datetime handling and an injectable clock so that
schedule expansion, reconciliation and due-item selection can be tested
deterministically.
"""
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Union
import logging

import pytz

logger = logging.getLogger("time-utils")

# Default timezone for the system (UTC)
SYSTEM_TIMEZONE = timezone.utc


def now_utc() -> datetime:
    """
    Get current time in UTC

    Returns:
        Current datetime in UTC timezone
    """
    return datetime.now(SYSTEM_TIMEZONE)


def parse_iso_to_utc(iso_string: str) -> datetime:
    """
    Parse ISO datetime string to UTC datetime

    Args:
        iso_string: ISO format datetime string

    Returns:
        datetime object in UTC timezone

    Raises:
        ValueError: If the ISO string is invalid
    """
    try:
        # fromisoformat() before 3.11 does not accept a trailing "Z"
        if iso_string.endswith("Z"):
            iso_string = iso_string[:-1] + "+00:00"
        dt = datetime.fromisoformat(iso_string)
    except ValueError as e:
        logger.error(f"Failed to parse ISO datetime string '{iso_string}': {e}")
        raise

    return to_utc(dt)


def to_utc(dt: datetime, assume_timezone: str = 'UTC') -> datetime:
    """
    Convert datetime to UTC

    Args:
        dt: Datetime to convert
        assume_timezone: Timezone to assume if datetime is naive

    Returns:
        datetime object in UTC timezone
    """
    if dt.tzinfo is None:
        dt = get_timezone(assume_timezone).localize(dt)

    return dt.astimezone(SYSTEM_TIMEZONE)


def get_timezone(name: str):
    """Resolve a timezone name, falling back to UTC for unknown names"""
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        logger.warning(f"Unknown timezone '{name}', assuming UTC")
        return pytz.UTC


def local_date(value: Union[date, datetime], tz_name: str = 'UTC') -> date:
    """Calendar date of a date or datetime as seen in the given timezone"""
    if isinstance(value, datetime):
        return to_utc(value).astimezone(get_timezone(tz_name)).date()
    return value


def at_local_hour(day: date, hour: int, tz_name: str = 'UTC') -> datetime:
    """
    Wall-clock time ``hour:00`` on ``day`` in ``tz_name``, returned as UTC

    Args:
        day: Calendar day
        hour: Hour of day (0-23)
        tz_name: IANA timezone of the wall clock

    Returns:
        Timezone-aware UTC datetime
    """
    local_tz = get_timezone(tz_name)
    local_dt = local_tz.localize(datetime.combine(day, time(hour=hour)))
    return local_dt.astimezone(SYSTEM_TIMEZONE)


def isoformat_or_none(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None


def parse_optional(value: Optional[str]) -> Optional[datetime]:
    """Parse an optional ISO string; Redis empty strings count as missing"""
    if not value:
        return None
    return parse_iso_to_utc(value)


class Clock:
    """Source of the current time"""

    def now(self) -> datetime:
        raise NotImplementedError


class SystemClock(Clock):
    """Wall clock in UTC"""

    def now(self) -> datetime:
        return now_utc()


class FixedClock(Clock):
    """
    Settable clock for tests and dry runs

    Usage:
        clock = FixedClock(datetime(2024, 1, 1, 8, tzinfo=timezone.utc))
        clock.advance(minutes=6)
    """

    def __init__(self, current: datetime):
        self.current = to_utc(current)

    def now(self) -> datetime:
        return self.current

    def set(self, current: datetime):
        self.current = to_utc(current)

    def advance(self, **delta):
        self.current = self.current + timedelta(**delta)
        return self.current
