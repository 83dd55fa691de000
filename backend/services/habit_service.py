from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Any, Iterable

from sqlalchemy.orm import Session

from config import settings as app_settings
from db.models import Category, Habit, HabitEntry
from services.errors import InvalidHabitParent, InvalidStatus, NotFound
from services.status_engine import (
    DERIVED_STATUSES,
    display_status,
    evaluate_trend,
    order_for_display,
    validate_status,
)
from utils.datetime_utils import (
    date_range,
    effective_today,
    end_of_month,
    format_iso_date,
    parse_iso_date,
    start_of_month,
)
from utils.habit_list_parser import ImportResult

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


def get_habit(db: Session, habit_id: int) -> Habit:
    habit = db.query(Habit).filter(Habit.id == habit_id).first()
    if not habit:
        raise NotFound("Habit not found", code="HABIT_NOT_FOUND")
    return habit


def get_category(db: Session, category_id: int) -> Category:
    category = db.query(Category).filter(Category.id == category_id).first()
    if not category:
        raise NotFound("Category not found", code="CATEGORY_NOT_FOUND")
    return category


def list_habits(db: Session, *, include_deleted: bool = False, category_id: int | None = None) -> list[Habit]:
    query = db.query(Habit)
    if not include_deleted:
        query = query.filter(Habit.is_deleted.is_(False))
    if category_id is not None:
        query = query.filter(Habit.category_id == category_id)
    return query.order_by(Habit.sort_order.asc(), Habit.id.asc()).all()


def list_entries(db: Session, habit_id: int, start_date: str | None = None, end_date: str | None = None) -> list[HabitEntry]:
    query = db.query(HabitEntry).filter(HabitEntry.habit_id == habit_id)
    if start_date:
        query = query.filter(HabitEntry.date >= format_iso_date(parse_iso_date(start_date)))
    if end_date:
        query = query.filter(HabitEntry.date <= format_iso_date(parse_iso_date(end_date)))
    return query.order_by(HabitEntry.date.desc()).all()


# ---------------------------------------------------------------------------
# Composite habit tree
# ---------------------------------------------------------------------------


def children_index(habits: Iterable[Habit]) -> dict[int, list[Habit]]:
    index: dict[int, list[Habit]] = {}
    for habit in habits:
        if habit.parent_habit_id is not None:
            index.setdefault(habit.parent_habit_id, []).append(habit)
    for children in index.values():
        children.sort(key=lambda h: (h.sort_order or 0, h.id))
    return index


def validate_parent(db: Session, habit_id: int | None, parent_id: int | None) -> None:
    """Reject self references and any parent chain that leads back to habit_id."""
    if parent_id is None:
        return
    if habit_id is not None and parent_id == habit_id:
        raise InvalidHabitParent("A habit cannot be its own parent")

    visited: set[int] = set()
    cursor: int | None = parent_id
    while cursor is not None:
        if cursor in visited:
            # Pre-existing loop above us; refuse to attach to it.
            raise InvalidHabitParent(f"Parent chain of habit {parent_id} contains a cycle")
        visited.add(cursor)
        row = db.query(Habit.id, Habit.parent_habit_id).filter(Habit.id == cursor).first()
        if row is None:
            if cursor == parent_id:
                raise InvalidHabitParent(f"Parent habit {parent_id} does not exist")
            break
        if habit_id is not None and row.parent_habit_id == habit_id:
            logger.warning(f"Rejected parent {parent_id} for habit {habit_id}: would create a cycle")
            raise InvalidHabitParent("Parent assignment would create a cycle")
        cursor = row.parent_habit_id


HABIT_FIELDS = (
    "name",
    "category_id",
    "parent_habit_id",
    "icon",
    "icon_color",
    "is_active",
    "sort_order",
    "priority",
    "daily_target",
    "monthly_target",
)
NON_NULLABLE_FIELDS = frozenset({"name", "is_active", "sort_order"})


def create_habit(db: Session, fields: dict[str, Any]) -> Habit:
    if fields.get("category_id") is not None:
        get_category(db, fields["category_id"])
    validate_parent(db, None, fields.get("parent_habit_id"))
    habit = Habit(**{key: value for key, value in fields.items() if key in HABIT_FIELDS})
    habit.name = habit.name.strip()
    db.add(habit)
    db.flush()
    return habit


def update_habit(db: Session, habit: Habit, fields: dict[str, Any]) -> Habit:
    if "category_id" in fields and fields["category_id"] is not None:
        get_category(db, fields["category_id"])
    if "parent_habit_id" in fields:
        validate_parent(db, habit.id, fields["parent_habit_id"])
    for key, value in fields.items():
        if key not in HABIT_FIELDS:
            continue
        if value is None and key in NON_NULLABLE_FIELDS:
            continue
        if key == "name" and isinstance(value, str):
            value = value.strip()
        setattr(habit, key, value)
    habit.updated_at = datetime.utcnow()
    db.flush()
    return habit


def soft_delete(row: Habit | Category) -> None:
    row.is_deleted = True
    row.deleted_at = datetime.utcnow()


def restore(row: Habit | Category) -> None:
    row.is_deleted = False
    row.deleted_at = None


def reorder_categories(db: Session, order: list[dict[str, int]]) -> list[Category]:
    for item in order:
        category = get_category(db, int(item["id"]))
        category.sort_order = int(item["sort_order"])
        category.updated_at = datetime.utcnow()
    db.flush()
    return (
        db.query(Category)
        .filter(Category.is_deleted.is_(False))
        .order_by(Category.sort_order.asc(), Category.id.asc())
        .all()
    )


# ---------------------------------------------------------------------------
# Bulk import
# ---------------------------------------------------------------------------


def apply_import(db: Session, result: ImportResult) -> dict[str, Any]:
    """Insert parsed categories and habits, reusing categories and skipping known habit names."""
    category_ids: dict[str, int] = {}
    created_categories = 0
    for parsed in result.categories:
        existing = (
            db.query(Category)
            .filter(Category.name == parsed.name, Category.is_deleted.is_(False))
            .first()
        )
        if existing:
            category_ids[parsed.name] = existing.id
            continue
        category = Category(name=parsed.name, sort_order=parsed.sort_order)
        db.add(category)
        db.flush()
        category_ids[parsed.name] = category.id
        created_categories += 1

    created_habits: list[Habit] = []
    skipped_habits: list[str] = []
    seen_names: set[str] = set()
    for parsed in result.habits:
        if parsed.name in seen_names:
            skipped_habits.append(parsed.name)
            continue
        seen_names.add(parsed.name)
        existing = (
            db.query(Habit.id)
            .filter(Habit.name == parsed.name, Habit.is_deleted.is_(False))
            .first()
        )
        if existing:
            skipped_habits.append(parsed.name)
            continue
        habit = Habit(
            name=parsed.name,
            category_id=category_ids.get(parsed.category_name) if parsed.category_name else None,
            sort_order=parsed.sort_order,
        )
        db.add(habit)
        created_habits.append(habit)
    db.flush()

    if result.errors:
        logger.warning(f"Habit import finished with {len(result.errors)} warnings: {result.errors}")
    logger.info(
        f"Habit import created {created_categories} categories and {len(created_habits)} habits "
        f"({len(skipped_habits)} skipped)"
    )
    return {
        "created": {"categories": created_categories, "habits": len(created_habits)},
        "skipped": {"habits": skipped_habits},
        "stats": result.to_dict()["stats"],
        "warnings": list(result.errors),
    }


# ---------------------------------------------------------------------------
# Auto-fill of unrecorded past days
# ---------------------------------------------------------------------------


def default_fill_start(today_id: str, habit: Habit | None = None) -> str:
    lookback = parse_iso_date(today_id).date() - timedelta(days=app_settings.AUTO_FILL_LOOKBACK_DAYS)
    start = format_iso_date(lookback)
    if habit is not None and habit.created_at is not None:
        created = format_iso_date(habit.created_at)
        if created > start:
            start = created
    return start


def auto_fill_missed(
    db: Session,
    habits: list[Habit],
    *,
    boundary_hour: int,
    start_date: str | None = None,
    status: str = "missed",
    from_creation: bool = False,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Fill unrecorded past days with status.

    Without start_date the range opens at the lookback window; from_creation
    moves it forward to each habit's creation day when that is later.
    """
    norm_status = validate_status(status)
    if norm_status in DERIVED_STATUSES:
        raise InvalidStatus(f"Status {norm_status!r} is derived and cannot be set directly")

    today_id = effective_today(boundary_hour, now)
    filled: list[dict[str, Any]] = []
    ranges: list[str] = []
    for habit in habits:
        start = format_iso_date(parse_iso_date(start_date)) if start_date else default_fill_start(
            today_id, habit if from_creation else None
        )
        ranges.append(start)
        past_days = [day for day in date_range(start, today_id) if day < today_id]
        if not past_days:
            continue
        existing = {
            row.date
            for row in db.query(HabitEntry.date).filter(
                HabitEntry.habit_id == habit.id,
                HabitEntry.date >= start,
                HabitEntry.date < today_id,
            )
        }
        for day in past_days:
            if day in existing:
                continue
            db.add(HabitEntry(habit_id=habit.id, date=day, status=norm_status, count=0))
            filled.append({"habit_id": habit.id, "date": day})
    db.flush()

    logger.info(f"Auto-filled {len(filled)} entries with status {norm_status!r} across {len(habits)} habits")
    return {
        "message": f"Auto-filled {len(filled)} entries with status '{norm_status}'",
        "filled": len(filled),
        "date_range": {"start": min(ranges) if ranges else None, "end": today_id},
        "habits_processed": len(habits),
        "entries": filled[: app_settings.AUTO_FILL_MAX_REPORTED_ENTRIES],
    }


# ---------------------------------------------------------------------------
# Day view
# ---------------------------------------------------------------------------


def day_view(
    db: Session,
    day_id: str,
    *,
    boundary_hour: int,
    auto_mark_missed: bool = False,
    now: datetime | None = None,
) -> list[dict[str, Any]]:
    """Active habits with their status for one logical day, in display order."""
    day = parse_iso_date(day_id).date()
    day_id = format_iso_date(day)
    habits = [h for h in list_habits(db) if h.is_active]
    if not habits:
        return []

    month_rows = (
        db.query(HabitEntry)
        .filter(
            HabitEntry.habit_id.in_([h.id for h in habits]),
            HabitEntry.date >= format_iso_date(start_of_month(day)),
            HabitEntry.date <= format_iso_date(end_of_month(day)),
        )
        .all()
    )
    by_habit: dict[int, list[HabitEntry]] = {}
    for row in month_rows:
        by_habit.setdefault(row.habit_id, []).append(row)

    rows: list[dict[str, Any]] = []
    for habit in habits:
        entries = by_habit.get(habit.id, [])
        entry = next((e for e in entries if e.date == day_id), None)
        status = entry.status if entry else "empty"
        trend = evaluate_trend(habit, day, entries)
        rows.append(
            {
                "habit_id": habit.id,
                "name": habit.name,
                "category_id": habit.category_id,
                "parent_habit_id": habit.parent_habit_id,
                "priority": habit.priority,
                "sort_order": habit.sort_order,
                "status": status,
                "display_status": display_status(status, day_id, boundary_hour, auto_mark_missed, now),
                "count": entry.count if entry else 0,
                "daily_target": habit.daily_target,
                "notes": entry.notes if entry else None,
                "trend": trend.to_dict() if habit.monthly_target else None,
            }
        )
    return order_for_display(rows)


def month_entries(db: Session, habit_id: int, as_of: date) -> list[HabitEntry]:
    return (
        db.query(HabitEntry)
        .filter(
            HabitEntry.habit_id == habit_id,
            HabitEntry.date >= format_iso_date(start_of_month(as_of)),
            HabitEntry.date <= format_iso_date(as_of),
        )
        .all()
    )
