# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""DateTime utilities for Pleeno.

All timestamps are stored in UTC (PostgreSQL TIMESTAMPTZ) and every Python
datetime is timezone-aware. Business dates, such as installment due dates,
are plain dates interpreted in the owning agency's timezone.

Usage:
------
    from src.utils.datetime import utc_now, agency_today

    # For current time
    now = utc_now()

    # For "today" as seen by an agency in Brisbane
    today = agency_today("Australia/Brisbane")
"""

import calendar
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DEFAULT_TIMEZONE = "Australia/Brisbane"


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Timezone-aware datetime representing current UTC time.
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Ensure a datetime is timezone-aware UTC.

    Args:
        dt: A datetime object (naive or aware) or None.

    Returns:
        Timezone-aware UTC datetime or None.

    Note:
        - If dt is None, returns None
        - If dt is naive, assumes UTC and adds tzinfo
        - If dt is aware, converts to UTC
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        # Naive datetime - assume UTC
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def get_zone(tz_name: str | None) -> ZoneInfo:
    """Resolve an IANA timezone name, falling back to the default zone.

    Args:
        tz_name: IANA timezone name such as "Australia/Sydney".

    Returns:
        ZoneInfo for the name, or for DEFAULT_TIMEZONE if unknown.
    """
    try:
        return ZoneInfo(tz_name or DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo(DEFAULT_TIMEZONE)


def is_valid_timezone(tz_name: str) -> bool:
    """Check whether a string is a known IANA timezone name."""
    try:
        ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def agency_now(tz_name: str | None, now: datetime | None = None) -> datetime:
    """Get the current wall-clock time in an agency's timezone.

    Args:
        tz_name: Agency IANA timezone.
        now: Reference instant, defaults to the current UTC time.

    Returns:
        Timezone-aware datetime in the agency zone.
    """
    reference = ensure_utc(now) if now is not None else utc_now()
    return reference.astimezone(get_zone(tz_name))


def agency_today(tz_name: str | None, now: datetime | None = None) -> date:
    """Get today's date as seen in an agency's timezone."""
    return agency_now(tz_name, now).date()


def is_past_cutoff(local_now: datetime, cutoff: time) -> bool:
    """Check whether a local time is strictly after a cutoff time of day.

    Args:
        local_now: Wall-clock datetime in the agency zone.
        cutoff: Agency overdue cutoff, e.g. 17:00.

    Returns:
        True once the cutoff has passed for the day.
    """
    return local_now.time().replace(tzinfo=None) > cutoff


def add_months(value: date, months: int) -> date:
    """Add calendar months to a date, clamping to the end of the month.

    Args:
        value: Starting date.
        months: Number of months to add (may be negative).

    Returns:
        Shifted date. Jan 31 plus one month gives Feb 28 or 29.

    Example:
        >>> add_months(date(2025, 1, 31), 1)
        datetime.date(2025, 2, 28)
    """
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def start_of_week(value: date) -> date:
    """Get the Monday of the week containing a date."""
    return value - timedelta(days=value.weekday())


def start_of_month(value: date) -> date:
    """Get the first day of the month containing a date."""
    return value.replace(day=1)


def end_of_month(value: date) -> date:
    """Get the last day of the month containing a date."""
    return value.replace(day=calendar.monthrange(value.year, value.month)[1])


def days_from_now(days: int) -> datetime:
    """Get a datetime N days from now.

    Args:
        days: Number of days to add.

    Returns:
        Timezone-aware UTC datetime.
    """
    return utc_now() + timedelta(days=days)


def is_expired(expiry: datetime | None) -> bool:
    """Check if a datetime has passed (is expired).

    Args:
        expiry: The expiry datetime to check.

    Returns:
        True if expired or expiry is None, False otherwise.
    """
    if expiry is None:
        return True

    expiry_utc = ensure_utc(expiry)
    return utc_now() > expiry_utc


def hours_since(start: datetime, now: datetime | None = None) -> float:
    """Calculate hours elapsed since a start datetime."""
    reference = ensure_utc(now) if now is not None else utc_now()
    return (reference - ensure_utc(start)).total_seconds() / 3600


def format_iso(dt: datetime | None) -> str | None:
    """Format a datetime as ISO 8601 string.

    Args:
        dt: Datetime to format.

    Returns:
        ISO 8601 formatted string or None.
    """
    if dt is None:
        return None

    return ensure_utc(dt).isoformat()


def parse_date(value: str) -> date:
    """Parse a strict YYYY-MM-DD date string.

    Args:
        value: Date string.

    Returns:
        Parsed date.

    Raises:
        ValueError: If the string is not a valid YYYY-MM-DD date.
    """
    if len(value) != 10:
        raise ValueError(f"Invalid date format: {value}. Expected YYYY-MM-DD")
    return date.fromisoformat(value)


# Aliases for convenience
now = utc_now
