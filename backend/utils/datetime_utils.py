"""Logical-day helpers.

A logical day starts at a configurable boundary hour instead of midnight, so
3 AM on January 2nd with a 6 AM boundary still belongs to January 1st. Every
date-sensitive feature resolves "today" through these functions; the boundary
hour is always passed in by the caller.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta

from services.errors import InvalidBoundaryHour, InvalidDate


ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")


def validate_boundary_hour(boundary_hour) -> int:
    if isinstance(boundary_hour, bool) or not isinstance(boundary_hour, int):
        raise InvalidBoundaryHour(f"Day boundary hour must be an integer, got {boundary_hour!r}")
    if not 0 <= boundary_hour <= 23:
        raise InvalidBoundaryHour(f"Day boundary hour must be between 0 and 23, got {boundary_hour}")
    return boundary_hour


def _logical_date(instant: datetime, boundary_hour: int) -> date:
    validate_boundary_hour(boundary_hour)
    resolved = instant.date()
    if instant.hour < boundary_hour:
        resolved = resolved - timedelta(days=1)
    return resolved


def to_logical_day_id(instant: datetime, boundary_hour: int) -> str:
    """Return the YYYY-MM-DD logical day an instant belongs to.

    The boundary is inclusive on the forward side: at exactly the boundary
    hour the instant already belongs to its own calendar date.
    """
    return format_iso_date(_logical_date(instant, boundary_hour))


def to_logical_day_start(instant: datetime, boundary_hour: int) -> datetime:
    """Same rule as to_logical_day_id, normalized to midnight of the resolved date."""
    resolved = _logical_date(instant, boundary_hour)
    return datetime(resolved.year, resolved.month, resolved.day, tzinfo=instant.tzinfo)


def format_iso_date(value: date) -> str:
    return f"{value.year:04d}-{value.month:02d}-{value.day:02d}"


def parse_iso_date(value: str) -> datetime:
    """Parse YYYY-MM-DD into a naive datetime at local midnight."""
    match = ISO_DATE_RE.match((value or "").strip()) if isinstance(value, str) else None
    if not match:
        raise InvalidDate(f"Invalid date {value!r}, expected YYYY-MM-DD")
    year, month, day = (int(part) for part in match.groups())
    try:
        return datetime(year, month, day)
    except ValueError as exc:
        raise InvalidDate(f"Invalid date {value!r}: {exc}") from exc


def _as_date(value: str | date) -> date:
    if isinstance(value, str):
        return parse_iso_date(value).date()
    if isinstance(value, datetime):
        return value.date()
    return value


def date_range(start: str | date, end: str | date) -> list[str]:
    """Inclusive list of ISO dates from start to end; empty when start > end."""
    cursor = _as_date(start)
    last = _as_date(end)
    days: list[str] = []
    while cursor <= last:
        days.append(format_iso_date(cursor))
        cursor = cursor + timedelta(days=1)
    return days


def effective_today(boundary_hour: int, now: datetime | None = None) -> str:
    return to_logical_day_id(now or datetime.now(), boundary_hour)


def is_past(date_id: str, boundary_hour: int, now: datetime | None = None) -> bool:
    return format_iso_date(_as_date(date_id)) < effective_today(boundary_hour, now)


def is_effectively_today(date_id: str, boundary_hour: int, now: datetime | None = None) -> bool:
    return format_iso_date(_as_date(date_id)) == effective_today(boundary_hour, now)


def start_of_week(d: date, week_start_day: int = 0) -> date:
    """Return the first day of the week containing d.

    week_start_day follows the settings convention: 0 = Sunday ... 6 = Saturday.
    """
    # date.weekday() is Monday=0; shift to the Sunday=0 convention.
    sunday_based = (d.weekday() + 1) % 7
    return d - timedelta(days=(sunday_based - week_start_day) % 7)


def start_of_month(d: date) -> date:
    return d.replace(day=1)


def end_of_month(d: date) -> date:
    following = (d.replace(day=28) + timedelta(days=4)).replace(day=1)
    return following - timedelta(days=1)
