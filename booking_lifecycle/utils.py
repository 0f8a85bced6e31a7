"""Shared date/time helpers used across the booking lifecycle."""

import calendar
from datetime import date, datetime, timezone


def ensure_utc(value: datetime) -> datetime:
    """Return a timezone-aware datetime in UTC. Naive values are taken as UTC.

    Examples:
        >>> ensure_utc(datetime(2025, 3, 15, 10, 0)).isoformat()
        '2025-03-15T10:00:00+00:00'
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def calendar_days_between(target: date, now: datetime) -> int:
    """Whole calendar days from now's date until target (negative if past).

    Examples:
        >>> calendar_days_between(date(2025, 3, 19), datetime(2025, 3, 15, 23, 59))
        4
    """
    return (target - now.date()).days


def subtract_months(value: datetime, months: int) -> datetime:
    """Go back N calendar months, clamping the day to the target month's length.

    Examples:
        >>> subtract_months(datetime(2025, 5, 31, 9, 0), 3).isoformat()
        '2025-02-28T09:00:00'
    """
    month_index = value.year * 12 + (value.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def parse_calendar_date(value: object) -> date:
    """Coerce a date, datetime or ISO string into a calendar date.

    Raises:
        ValueError: If the value cannot be interpreted as a date.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError("empty date string")
        if len(text) == 10:
            return date.fromisoformat(text)
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    raise ValueError(f"unsupported date value: {value!r}")
