from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from db.database import get_db
from db.models import Category
from services import habit_service

router = APIRouter(prefix="/categories", tags=["categories"])


def _category_to_dict(category: Category) -> dict:
    return {
        "id": category.id,
        "name": category.name,
        "icon": category.icon,
        "icon_color": category.icon_color,
        "sort_order": category.sort_order,
        "is_deleted": category.is_deleted,
        "created_at": category.created_at.isoformat() if category.created_at else None,
        "updated_at": category.updated_at.isoformat() if category.updated_at else None,
    }


class CategoryRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    icon: Optional[str] = None
    icon_color: Optional[str] = None
    sort_order: int = 0


class CategoryUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    icon: Optional[str] = None
    icon_color: Optional[str] = None
    sort_order: Optional[int] = None


class ReorderItem(BaseModel):
    id: int
    sort_order: int


class ReorderRequest(BaseModel):
    order: list[ReorderItem]


@router.get("")
def list_categories(include_deleted: bool = False, db: Session = Depends(get_db)):
    query = db.query(Category)
    if not include_deleted:
        query = query.filter(Category.is_deleted.is_(False))
    rows = query.order_by(Category.sort_order.asc(), Category.id.asc()).all()
    return {"data": [_category_to_dict(c) for c in rows], "count": len(rows)}


@router.put("/reorder")
def reorder_categories(req: ReorderRequest, db: Session = Depends(get_db)):
    rows = habit_service.reorder_categories(db, [item.model_dump() for item in req.order])
    db.commit()
    return {"data": [_category_to_dict(c) for c in rows], "count": len(rows)}


@router.get("/{category_id}")
def get_category(category_id: int, db: Session = Depends(get_db)):
    return {"data": _category_to_dict(habit_service.get_category(db, category_id))}


@router.post("", status_code=201)
def create_category(req: CategoryRequest, db: Session = Depends(get_db)):
    category = Category(
        name=req.name.strip(),
        icon=req.icon,
        icon_color=req.icon_color,
        sort_order=req.sort_order,
    )
    db.add(category)
    db.commit()
    db.refresh(category)
    return {"data": _category_to_dict(category)}


@router.put("/{category_id}")
def update_category(category_id: int, req: CategoryUpdateRequest, db: Session = Depends(get_db)):
    category = habit_service.get_category(db, category_id)
    if req.name is not None:
        category.name = req.name.strip()
    if req.icon is not None:
        category.icon = req.icon
    if req.icon_color is not None:
        category.icon_color = req.icon_color
    if req.sort_order is not None:
        category.sort_order = req.sort_order
    category.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(category)
    return {"data": _category_to_dict(category)}


@router.delete("/{category_id}")
def delete_category(category_id: int, db: Session = Depends(get_db)):
    category = habit_service.get_category(db, category_id)
    habit_service.soft_delete(category)
    db.commit()
    return {"data": {"id": category_id, "is_deleted": True}}


@router.patch("/{category_id}/restore")
def restore_category(category_id: int, db: Session = Depends(get_db)):
    category = habit_service.get_category(db, category_id)
    habit_service.restore(category)
    db.commit()
    db.refresh(category)
    return {"data": _category_to_dict(category)}
