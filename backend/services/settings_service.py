from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from config import settings as app_settings
from db.models import Setting
from services.errors import InvalidBoundaryHour, InvalidSetting, NotFound
from utils.datetime_utils import validate_boundary_hour

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS: dict[str, Any] = {
    "dayBoundaryHour": app_settings.DEFAULT_DAY_BOUNDARY_HOUR,
    "theme": "dark",
    "defaultView": "today",
    "weekStartDay": app_settings.DEFAULT_WEEK_START_DAY,
    "showCompletedTasks": True,
    "showDeletedItems": False,
    "habitMatrixWeeks": 4,
    "kanbanDays": 7,
    "autoSyncInterval": 30000,
    "notificationsEnabled": False,
    "autoMarkPink": False,
}
ALLOWED_THEMES = {"light", "dark", "auto"}


def _to_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return None


def normalize_setting(key: str, value: Any) -> Any:
    if key == "dayBoundaryHour":
        hour = _to_int(value)
        if hour is None:
            raise InvalidBoundaryHour("Day boundary hour must be between 0 and 23")
        return validate_boundary_hour(hour)
    if key == "weekStartDay":
        day = _to_int(value)
        if day is None or not 0 <= day <= 6:
            raise InvalidSetting("Week start day must be between 0 (Sunday) and 6 (Saturday)")
        return day
    if key == "theme" and value not in ALLOWED_THEMES:
        raise InvalidSetting("Theme must be light, dark, or auto")
    return value


def _row(db: Session, key: str) -> Setting | None:
    return db.query(Setting).filter(Setting.key == key).first()


def get_all_settings(db: Session) -> dict[str, Any]:
    merged = dict(DEFAULT_SETTINGS)
    for row in db.query(Setting).all():
        merged[row.key] = row.value
    return merged


def get_setting(db: Session, key: str) -> dict[str, Any]:
    row = _row(db, key)
    if row is not None:
        return {"key": key, "value": row.value, "is_default": False}
    if key in DEFAULT_SETTINGS:
        return {"key": key, "value": DEFAULT_SETTINGS[key], "is_default": True}
    raise NotFound("Setting not found", code="SETTING_NOT_FOUND")


def put_setting(db: Session, key: str, value: Any) -> Setting:
    norm_value = normalize_setting(key, value)
    row = _row(db, key)
    if row is None:
        row = Setting(key=key, value=norm_value)
        db.add(row)
    else:
        row.value = norm_value
        row.updated_at = datetime.utcnow()
    db.flush()
    return row


def delete_setting(db: Session, key: str) -> dict[str, Any]:
    row = _row(db, key)
    if row is None and key not in DEFAULT_SETTINGS:
        raise NotFound("Setting not found", code="SETTING_NOT_FOUND")
    if row is not None:
        db.delete(row)
        db.flush()
    return {"key": key, "value": DEFAULT_SETTINGS.get(key), "is_default": key in DEFAULT_SETTINGS}


def reset_settings(db: Session) -> dict[str, Any]:
    removed = db.query(Setting).delete()
    db.flush()
    logger.info(f"Reset {removed} stored settings to defaults")
    return dict(DEFAULT_SETTINGS)


def _int_setting(db: Session, key: str, low: int, high: int) -> int:
    row = _row(db, key)
    default = DEFAULT_SETTINGS[key]
    if row is None:
        return default
    value = _to_int(row.value)
    if value is None or not low <= value <= high:
        logger.warning(f"Stored setting {key}={row.value!r} is out of range, using default {default}")
        return default
    return value


def get_day_boundary_hour(db: Session) -> int:
    return _int_setting(db, "dayBoundaryHour", 0, 23)


def get_week_start_day(db: Session) -> int:
    return _int_setting(db, "weekStartDay", 0, 6)


def get_auto_mark_missed(db: Session) -> bool:
    row = _row(db, "autoMarkPink")
    return bool(row.value) if row is not None else bool(DEFAULT_SETTINGS["autoMarkPink"])
