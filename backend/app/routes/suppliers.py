from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from app.core.database import get_db, transaction
from app.core.errors import Conflict, NotFound
from app.models.item import Item
from app.models.supplier import Supplier


router = APIRouter()


class SupplierIn(BaseModel):
    name: str
    rfc: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    contact: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, value):
        if isinstance(value, str):
            value = value.strip()
        if not value:
            raise ValueError("name is required")
        return value

    @field_validator("rfc", "phone", "email", "address", "contact", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value


class SupplierOut(SupplierIn):
    id: int

    class Config:
        from_attributes = True


def _get_supplier(db: Session, supplier_id: int) -> Supplier:
    supplier = db.get(Supplier, supplier_id)
    if not supplier:
        raise NotFound.entity("Supplier", supplier_id)
    return supplier


@router.get("", response_model=List[SupplierOut])
def list_suppliers(db: Session = Depends(get_db)):
    return db.query(Supplier).order_by(Supplier.name.asc()).all()


@router.get("/{supplier_id}", response_model=SupplierOut)
def get_supplier(supplier_id: int, db: Session = Depends(get_db)):
    return _get_supplier(db, supplier_id)


@router.post("", response_model=SupplierOut, status_code=201)
def create_supplier(data: SupplierIn, db: Session = Depends(get_db)):
    supplier = Supplier(**data.model_dump())
    with transaction(db):
        db.add(supplier)
    db.refresh(supplier)
    return supplier


@router.put("/{supplier_id}", response_model=SupplierOut)
def update_supplier(supplier_id: int, data: SupplierIn, db: Session = Depends(get_db)):
    supplier = _get_supplier(db, supplier_id)
    with transaction(db):
        for key, value in data.model_dump().items():
            setattr(supplier, key, value)
    db.refresh(supplier)
    return supplier


@router.delete("/{supplier_id}")
def delete_supplier(supplier_id: int, db: Session = Depends(get_db)):
    supplier = _get_supplier(db, supplier_id)
    if db.query(Item.id).filter(Item.supplier_id == supplier_id).limit(1).scalar() is not None:
        raise Conflict(f"Supplier {supplier_id} is referenced by items")
    with transaction(db, conflict_message=f"Supplier {supplier_id} is referenced by items"):
        db.delete(supplier)
    return {"ok": True, "id": supplier_id}
