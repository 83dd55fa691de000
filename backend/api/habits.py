import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from db.database import get_db
from db.models import Habit, HabitEntry
from services import habit_service
from services.settings_service import get_auto_mark_missed, get_day_boundary_hour, get_week_start_day
from services.status_engine import cycle_status, evaluate_trend, get_entry, set_status, summarize_entries
from utils import habit_list_parser
from utils.datetime_utils import effective_today, format_iso_date, parse_iso_date, start_of_week

router = APIRouter(prefix="/habits", tags=["habits"])
logger = logging.getLogger(__name__)


def _habit_to_dict(habit: Habit) -> dict:
    return {
        "id": habit.id,
        "name": habit.name,
        "category_id": habit.category_id,
        "category_name": habit.category.name if habit.category else None,
        "parent_habit_id": habit.parent_habit_id,
        "icon": habit.icon,
        "icon_color": habit.icon_color,
        "is_active": habit.is_active,
        "sort_order": habit.sort_order,
        "priority": habit.priority,
        "daily_target": habit.daily_target,
        "monthly_target": habit.monthly_target,
        "is_deleted": habit.is_deleted,
        "deleted_at": habit.deleted_at.isoformat() if habit.deleted_at else None,
        "created_at": habit.created_at.isoformat() if habit.created_at else None,
        "updated_at": habit.updated_at.isoformat() if habit.updated_at else None,
    }


def _entry_to_dict(entry: HabitEntry) -> dict:
    return {
        "id": entry.id,
        "habit_id": entry.habit_id,
        "date": entry.date,
        "status": entry.status,
        "count": entry.count,
        "notes": entry.notes,
        "updated_at": entry.updated_at.isoformat() if entry.updated_at else None,
    }


class HabitCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    category_id: Optional[int] = None
    parent_habit_id: Optional[int] = None
    icon: Optional[str] = None
    icon_color: Optional[str] = None
    is_active: bool = True
    sort_order: int = 0
    priority: Optional[int] = None
    daily_target: Optional[int] = Field(default=None, ge=1)
    monthly_target: Optional[int] = Field(default=None, ge=1, le=31)


class HabitUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    category_id: Optional[int] = None
    parent_habit_id: Optional[int] = None
    icon: Optional[str] = None
    icon_color: Optional[str] = None
    is_active: Optional[bool] = None
    sort_order: Optional[int] = None
    priority: Optional[int] = None
    daily_target: Optional[int] = Field(default=None, ge=1)
    monthly_target: Optional[int] = Field(default=None, ge=1, le=31)


class EntryRequest(BaseModel):
    date: str
    # Left untyped so malformed values reach the status engine and are rejected there.
    status: Any = "empty"
    count: Any = None
    notes: Optional[str] = None


class CycleRequest(BaseModel):
    date: str


class ImportRequest(BaseModel):
    content: Any = None
    dry_run: bool = False


class AutoFillRequest(BaseModel):
    start_date: Optional[str] = None
    habit_ids: Optional[list[int]] = None
    status: Any = "missed"


@router.get("")
def list_habits(
    include_deleted: bool = False,
    category_id: Optional[int] = None,
    db: Session = Depends(get_db),
):
    habits = habit_service.list_habits(db, include_deleted=include_deleted, category_id=category_id)
    return {"data": [_habit_to_dict(h) for h in habits], "count": len(habits)}


@router.get("/today")
def get_today(db: Session = Depends(get_db)):
    boundary_hour = get_day_boundary_hour(db)
    week_start_day = get_week_start_day(db)
    today_id = effective_today(boundary_hour)
    return {
        "data": {
            "effective_date": today_id,
            "day_boundary_hour": boundary_hour,
            "week_start_day": week_start_day,
            "week_start": format_iso_date(start_of_week(parse_iso_date(today_id).date(), week_start_day)),
            "server_time": datetime.now(timezone.utc).isoformat(),
        }
    }


@router.get("/day/{day}")
def get_day(day: str, db: Session = Depends(get_db)):
    rows = habit_service.day_view(
        db,
        day,
        boundary_hour=get_day_boundary_hour(db),
        auto_mark_missed=get_auto_mark_missed(db),
    )
    return {"data": rows, "count": len(rows)}


@router.post("/import/validate")
def validate_import(req: ImportRequest):
    validation = habit_list_parser.validate(req.content)
    return {"data": {"is_valid": validation.is_valid, "errors": validation.errors}}


@router.post("/import", status_code=201)
def import_habits(req: ImportRequest, db: Session = Depends(get_db)):
    result = habit_list_parser.parse_or_raise(req.content)
    if result.errors:
        logger.warning(f"Habit list parsing warnings: {result.errors}")

    if req.dry_run:
        parsed = result.to_dict()
        return {
            "data": {
                "dry_run": True,
                "categories": parsed["categories"],
                "habits": parsed["habits"],
                "stats": parsed["stats"],
                "warnings": parsed["errors"],
            }
        }

    summary = habit_service.apply_import(db, result)
    db.commit()
    return {"data": summary}


@router.post("/auto-fill-missed")
def auto_fill_missed_all(req: AutoFillRequest, db: Session = Depends(get_db)):
    wanted = set(req.habit_ids or [])
    habits = [h for h in habit_service.list_habits(db) if h.is_active and (not wanted or h.id in wanted)]
    if not habits:
        return {"data": {"message": "No habits to process", "filled": 0}}
    summary = habit_service.auto_fill_missed(
        db,
        habits,
        boundary_hour=get_day_boundary_hour(db),
        start_date=req.start_date,
        status=req.status,
    )
    db.commit()
    return {"data": summary}


@router.get("/{habit_id}")
def get_habit(habit_id: int, db: Session = Depends(get_db)):
    habit = habit_service.get_habit(db, habit_id)
    payload = _habit_to_dict(habit)
    children = habit_service.children_index(habit_service.list_habits(db)).get(habit.id, [])
    payload["children"] = [c.id for c in children]
    return {"data": payload}


@router.post("", status_code=201)
def create_habit(req: HabitCreateRequest, db: Session = Depends(get_db)):
    habit = habit_service.create_habit(db, req.model_dump())
    db.commit()
    db.refresh(habit)
    return {"data": _habit_to_dict(habit)}


@router.put("/{habit_id}")
def update_habit(habit_id: int, req: HabitUpdateRequest, db: Session = Depends(get_db)):
    habit = habit_service.get_habit(db, habit_id)
    habit_service.update_habit(db, habit, req.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(habit)
    return {"data": _habit_to_dict(habit)}


@router.delete("/{habit_id}")
def delete_habit(habit_id: int, db: Session = Depends(get_db)):
    habit = habit_service.get_habit(db, habit_id)
    habit_service.soft_delete(habit)
    db.commit()
    return {"data": {"id": habit_id, "is_deleted": True}}


@router.patch("/{habit_id}/restore")
def restore_habit(habit_id: int, db: Session = Depends(get_db)):
    habit = habit_service.get_habit(db, habit_id)
    habit_service.restore(habit)
    db.commit()
    db.refresh(habit)
    return {"data": _habit_to_dict(habit)}


@router.post("/{habit_id}/entries", status_code=201)
def upsert_entry(habit_id: int, req: EntryRequest, db: Session = Depends(get_db)):
    habit = habit_service.get_habit(db, habit_id)
    entry = set_status(db, habit, req.date, req.status, count=req.count, notes=req.notes)
    db.commit()
    db.refresh(entry)
    return {"data": _entry_to_dict(entry)}


@router.post("/{habit_id}/entries/cycle", status_code=201)
def cycle_entry(habit_id: int, req: CycleRequest, db: Session = Depends(get_db)):
    habit = habit_service.get_habit(db, habit_id)
    day_id = format_iso_date(parse_iso_date(req.date))
    current = get_entry(db, habit.id, day_id)
    entry = set_status(db, habit, day_id, cycle_status(current.status if current else "empty"))
    db.commit()
    db.refresh(entry)
    return {"data": _entry_to_dict(entry)}


@router.get("/{habit_id}/entries")
def list_entries(
    habit_id: int,
    start_date: Optional[str] = Query(default=None),
    end_date: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
):
    habit_service.get_habit(db, habit_id)
    entries = habit_service.list_entries(db, habit_id, start_date, end_date)
    return {
        "data": [_entry_to_dict(e) for e in entries],
        "count": len(entries),
        "summary": summarize_entries(entries),
    }


@router.get("/{habit_id}/trend")
def get_trend(habit_id: int, as_of: Optional[str] = None, db: Session = Depends(get_db)):
    habit = habit_service.get_habit(db, habit_id)
    as_of_id = as_of or effective_today(get_day_boundary_hour(db))
    as_of_day = parse_iso_date(as_of_id).date()
    trend = evaluate_trend(habit, as_of_day, habit_service.month_entries(db, habit.id, as_of_day))
    return {"data": trend.to_dict()}


@router.post("/{habit_id}/auto-fill-missed")
def auto_fill_missed_one(habit_id: int, req: AutoFillRequest, db: Session = Depends(get_db)):
    habit = habit_service.get_habit(db, habit_id)
    summary = habit_service.auto_fill_missed(
        db,
        [habit],
        boundary_hour=get_day_boundary_hour(db),
        start_date=req.start_date,
        status=req.status,
        from_creation=True,
    )
    db.commit()
    return {"data": summary}
