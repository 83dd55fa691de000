import logging
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from db.database import get_db
from services import settings_service

router = APIRouter(prefix="/settings", tags=["settings"])
logger = logging.getLogger(__name__)


class SettingValueRequest(BaseModel):
    value: Any


@router.get("")
def get_settings(db: Session = Depends(get_db)):
    return {"data": settings_service.get_all_settings(db)}


@router.get("/defaults")
def get_default_settings():
    return {"data": dict(settings_service.DEFAULT_SETTINGS)}


@router.post("/reset")
def reset_settings(db: Session = Depends(get_db)):
    defaults = settings_service.reset_settings(db)
    db.commit()
    return {"data": defaults, "message": "All settings reset to defaults"}


@router.put("")
def update_settings(req: dict[str, Any], db: Session = Depends(get_db)):
    for key, value in req.items():
        settings_service.put_setting(db, key, value)
    db.commit()
    return {"data": settings_service.get_all_settings(db)}


@router.get("/{key}")
def get_setting(key: str, db: Session = Depends(get_db)):
    return {"data": settings_service.get_setting(db, key)}


@router.put("/{key}")
def update_setting(key: str, req: SettingValueRequest, db: Session = Depends(get_db)):
    row = settings_service.put_setting(db, key, req.value)
    db.commit()
    if key == "dayBoundaryHour":
        logger.info(f"Day boundary hour changed to {row.value}")
    return {"data": {"key": row.key, "value": row.value, "is_default": False}}


@router.delete("/{key}")
def delete_setting(key: str, db: Session = Depends(get_db)):
    data = settings_service.delete_setting(db, key)
    db.commit()
    return {"data": data}
