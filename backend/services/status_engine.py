from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Iterable

from sqlalchemy.orm import Session

from db.models import Habit, HabitEntry
from services.errors import InvalidCount, InvalidStatus
from utils.datetime_utils import (
    end_of_month,
    format_iso_date,
    is_past,
    parse_iso_date,
    start_of_month,
)

logger = logging.getLogger(__name__)

STATUSES = ("empty", "complete", "missed", "partial", "na", "exempt", "extra", "trending", "pink")
# Quick-tap order. "trending" is a derived overlay and never part of the cycle.
CYCLE_ORDER = ("empty", "complete", "missed", "partial", "na", "exempt", "extra", "pink")
DERIVED_STATUSES = frozenset({"trending"})
COMPLETED_STATUSES = frozenset({"complete", "extra"})


def _field(item: Any, name: str) -> Any:
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def validate_status(status: Any) -> str:
    if not isinstance(status, str) or status not in STATUSES:
        raise InvalidStatus(f"Invalid status {status!r}; expected one of {list(STATUSES)}")
    return status


def validate_count(count: Any) -> int | None:
    if count is None:
        return None
    if isinstance(count, bool) or not isinstance(count, int):
        raise InvalidCount(f"Count must be a non-negative integer, got {count!r}")
    if count < 0:
        raise InvalidCount(f"Count must be a non-negative integer, got {count}")
    return count


def cycle_status(current: str) -> str:
    """Next status for a quick tap: empty -> complete -> ... -> pink -> empty."""
    validate_status(current)
    if current in DERIVED_STATUSES:
        # An overlay has no position in the cycle; the tap starts it fresh.
        return CYCLE_ORDER[1]
    index = CYCLE_ORDER.index(current)
    return CYCLE_ORDER[(index + 1) % len(CYCLE_ORDER)]


def get_entry(db: Session, habit_id: int, day: str) -> HabitEntry | None:
    return (
        db.query(HabitEntry)
        .filter(HabitEntry.habit_id == habit_id, HabitEntry.date == day)
        .first()
    )


def set_status(
    db: Session,
    habit: Habit,
    day: str,
    status: str,
    count: int | None = None,
    notes: str | None = None,
) -> HabitEntry:
    """Upsert the entry for (habit, day).

    Atomicity of the read-modify-write is the session's concern; this only
    guarantees that repeating the same call leaves the same row behind.
    """
    norm_status = validate_status(status)
    if norm_status in DERIVED_STATUSES:
        raise InvalidStatus(f"Status {norm_status!r} is derived and cannot be set directly")
    norm_count = validate_count(count)
    day_id = format_iso_date(parse_iso_date(day))

    entry = get_entry(db, habit.id, day_id)
    if entry is None:
        entry = HabitEntry(
            habit_id=habit.id,
            date=day_id,
            status=norm_status,
            count=norm_count if (habit.is_count_based and norm_count is not None) else 0,
            notes=notes,
        )
        db.add(entry)
    else:
        entry.status = norm_status
        if habit.is_count_based and norm_count is not None:
            entry.count = norm_count
        if notes is not None:
            entry.notes = notes
        entry.updated_at = datetime.utcnow()
    db.flush()
    return entry


@dataclass(frozen=True)
class TrendResult:
    on_pace: bool
    completed_count: int
    expected_count: float
    remaining_days: int
    target: int | None
    period_start: date
    period_end: date

    @property
    def overlay(self) -> str | None:
        return trend_overlay(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "on_pace": self.on_pace,
            "completed_count": self.completed_count,
            "expected_count": self.expected_count,
            "remaining_days": self.remaining_days,
            "target": self.target,
            "period_start": format_iso_date(self.period_start),
            "period_end": format_iso_date(self.period_end),
            "overlay": self.overlay,
        }


def evaluate_trend(habit: Any, as_of_day: str | date, entries: Iterable[Any]) -> TrendResult:
    """Linear pace check of a habit against its monthly target.

    The period is the calendar month containing as_of_day. Completions
    (complete/extra) on or before as_of_day are projected over the whole month:
    on pace when completed / elapsed_fraction >= target.
    """
    as_of = parse_iso_date(as_of_day).date() if isinstance(as_of_day, str) else as_of_day
    period_start = start_of_month(as_of)
    period_end = end_of_month(as_of)
    period_days = (period_end - period_start).days + 1
    elapsed_days = (as_of - period_start).days + 1
    remaining_days = (period_end - as_of).days
    first_id = format_iso_date(period_start)
    as_of_id = format_iso_date(as_of)

    completed = 0
    for entry in entries:
        entry_day = _field(entry, "date")
        if not entry_day or not first_id <= entry_day <= as_of_id:
            continue
        if _field(entry, "status") in COMPLETED_STATUSES:
            completed += 1

    target = _field(habit, "monthly_target")
    if not target or target <= 0:
        return TrendResult(
            on_pace=True,
            completed_count=completed,
            expected_count=0.0,
            remaining_days=remaining_days,
            target=None,
            period_start=period_start,
            period_end=period_end,
        )

    elapsed_fraction = elapsed_days / period_days
    projected = completed / elapsed_fraction
    return TrendResult(
        on_pace=projected >= target,
        completed_count=completed,
        expected_count=round(target * elapsed_fraction, 2),
        remaining_days=remaining_days,
        target=target,
        period_start=period_start,
        period_end=period_end,
    )


def trend_overlay(result: TrendResult) -> str | None:
    if result.on_pace:
        return None
    if result.remaining_days > 0:
        return "trending"
    if result.target is not None and result.completed_count < result.target:
        return "missed"
    return None


def display_sort_key(item: Any) -> tuple:
    priority = _field(item, "priority")
    return (
        _field(item, "status") == "complete",
        priority is None,
        priority if priority is not None else 0,
        _field(item, "sort_order") or 0,
    )


def order_for_display(items: Iterable[Any]) -> list[Any]:
    """Pending before complete, then priority ascending (unset last), then sort order."""
    return sorted(items, key=display_sort_key)


def display_status(
    status: str,
    day_id: str,
    boundary_hour: int,
    auto_mark_missed: bool = False,
    now: datetime | None = None,
) -> str:
    validate_status(status)
    if auto_mark_missed and status == "empty" and is_past(day_id, boundary_hour, now):
        return "pink"
    return status


def summarize_entries(entries: Iterable[Any]) -> dict[str, int]:
    counts = {status: 0 for status in STATUSES}
    for entry in entries:
        status = _field(entry, "status")
        if status in counts:
            counts[status] += 1
        else:
            logger.warning(f"Ignoring entry with unknown status {status!r}")
    return counts
