# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""DateTime utilities for Academy Insights.

Design Decisions:
-----------------
1. All timestamps are stored in UTC (PostgreSQL TIMESTAMPTZ)
2. All Python datetimes are timezone-aware (with timezone.utc)
3. Calendar arithmetic (cohort months, whole days) works on dates

Usage:
------
    from academy_insights.utils.datetime import utc_now

    # For SQLAlchemy model defaults
    created_at = mapped_column(DateTime(timezone=True), default=utc_now)
"""

from datetime import date, datetime, timedelta, timezone


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
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def days_ago(days: int, since: datetime | None = None) -> datetime:
    """Get a datetime N days before ``since`` (default: now).

    Args:
        days: Number of days to go back.
        since: Reference point, defaults to utc_now().

    Returns:
        Timezone-aware UTC datetime.
    """
    return (since or utc_now()) - timedelta(days=days)


def days_between(start: datetime | date, end: datetime | date) -> int:
    """Whole calendar days from start to end (negative if end is earlier)."""
    start_day = start.date() if isinstance(start, datetime) else start
    end_day = end.date() if isinstance(end, datetime) else end
    return (end_day - start_day).days


def elapsed_days(start: datetime, end: datetime) -> float:
    """Fractional days between two instants."""
    return (ensure_utc(end) - ensure_utc(start)).total_seconds() / 86400


def month_key(value: datetime | date) -> str:
    """Format the calendar month of a date as ``YYYY-MM``."""
    return f"{value.year:04d}-{value.month:02d}"


def months_between(start: datetime | date, end: datetime | date) -> int:
    """Calendar months from start's month to end's month.

    Example:
        >>> months_between(date(2024, 1, 31), date(2024, 2, 1))
        1
    """
    return (end.year - start.year) * 12 + (end.month - start.month)
