"""
Datetime utilities for consistent timezone handling across the application.
Timestamps are stored in UTC; appointment dates and times are clinic-local.
"""

from datetime import date, datetime, time, timezone
from typing import Optional, Union
from zoneinfo import ZoneInfo

DATE_FORMAT = "%Y-%m-%d"
TIME_FORMATS = ("%H:%M", "%H:%M:%S")


def utc_now() -> datetime:
    """
    Get current UTC time as timezone-aware datetime.

    Returns:
        Current UTC datetime with timezone info
    """
    return datetime.now(timezone.utc)


def clinic_timezone(tz_name: Optional[str] = None) -> ZoneInfo:
    """Return the clinic's timezone (defaults to ``settings.timezone``)."""
    if tz_name is None:
        from config import settings

        tz_name = settings.timezone
    return ZoneInfo(tz_name)


def clinic_today(tz_name: Optional[str] = None) -> date:
    """Current calendar date at the clinic."""
    return utc_now().astimezone(clinic_timezone(tz_name)).date()


def parse_iso_datetime(iso_string: str) -> datetime:
    """
    Parse ISO format datetime string to timezone-aware datetime.
    Handles both 'Z' suffix and '+00:00' timezone formats.

    Raises:
        ValueError: If datetime string cannot be parsed
    """
    normalized = iso_string.replace("Z", "+00:00")

    try:
        dt = datetime.fromisoformat(normalized)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt
    except ValueError as e:
        raise ValueError(f"Invalid datetime string: {iso_string}") from e


def parse_date(value: Union[str, date]) -> date:
    """
    Parse a calendar date in ``YYYY-MM-DD`` form.

    Raises:
        ValueError: If the value is not a valid calendar date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValueError(f"Invalid date: {value!r}")
    try:
        return datetime.strptime(value.strip(), DATE_FORMAT).date()
    except ValueError as e:
        raise ValueError(f"Invalid date: {value}") from e


def parse_time(value: Union[str, time]) -> time:
    """
    Parse a time of day in ``HH:MM`` or ``HH:MM:SS`` form.

    Raises:
        ValueError: If the value is not a valid time of day
    """
    if isinstance(value, time):
        return value
    if not isinstance(value, str):
        raise ValueError(f"Invalid time: {value!r}")
    for fmt in TIME_FORMATS:
        try:
            return datetime.strptime(value.strip(), fmt).time()
        except ValueError:
            continue
    raise ValueError(f"Invalid time: {value}")


def format_time(value: Union[str, time]) -> str:
    """Normalize a time of day to ``HH:MM``."""
    return parse_time(value).strftime("%H:%M")


def format_date(value: Union[str, date]) -> str:
    """Normalize a calendar date to ``YYYY-MM-DD``."""
    return parse_date(value).strftime(DATE_FORMAT)


def combine_local(day: date, at: time, tz_name: Optional[str] = None) -> datetime:
    """Combine a clinic-local date and time into a timezone-aware instant."""
    return datetime.combine(day, at, tzinfo=clinic_timezone(tz_name))
