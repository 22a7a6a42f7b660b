from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from app.core.database import get_db, transaction
from app.core.errors import Conflict, NotFound
from app.models.category import Category
from app.models.item import Item


router = APIRouter()


class CategoryIn(BaseModel):
    name: str

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, value):
        if isinstance(value, str):
            value = value.strip()
        if not value:
            raise ValueError("name is required")
        return value


class CategoryOut(BaseModel):
    id: int
    name: str

    class Config:
        from_attributes = True


def _get_category(db: Session, category_id: int) -> Category:
    category = db.get(Category, category_id)
    if not category:
        raise NotFound.entity("Category", category_id)
    return category


@router.get("", response_model=List[CategoryOut])
def list_categories(db: Session = Depends(get_db)):
    return db.query(Category).order_by(Category.name.asc()).all()


@router.get("/{category_id}", response_model=CategoryOut)
def get_category(category_id: int, db: Session = Depends(get_db)):
    return _get_category(db, category_id)


@router.post("", response_model=CategoryOut, status_code=201)
def create_category(data: CategoryIn, db: Session = Depends(get_db)):
    category = Category(name=data.name)
    with transaction(db):
        db.add(category)
    db.refresh(category)
    return category


@router.put("/{category_id}", response_model=CategoryOut)
def update_category(category_id: int, data: CategoryIn, db: Session = Depends(get_db)):
    category = _get_category(db, category_id)
    with transaction(db):
        category.name = data.name
    db.refresh(category)
    return category


@router.delete("/{category_id}")
def delete_category(category_id: int, db: Session = Depends(get_db)):
    category = _get_category(db, category_id)
    in_use: Optional[int] = db.query(Item.id).filter(Item.category_id == category_id).limit(1).scalar()
    if in_use is not None:
        raise Conflict(f"Category {category_id} is referenced by items")
    with transaction(db, conflict_message=f"Category {category_id} is referenced by items"):
        db.delete(category)
    return {"ok": True, "id": category_id}
