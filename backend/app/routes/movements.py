from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.deps import get_token_user_id, resolve_actor
from app.core.errors import Conflict, NotFound, ValidationError
from app.models.movement import Movement, MovementKind
from app.services.stock_ledger import BALANCE_KINDS, StockLedger


router = APIRouter()


class MovementCreate(BaseModel):
    item_id: int
    kind: str
    quantity: int = Field(..., gt=0)
    actor_id: Optional[int] = None


class MovementCreated(BaseModel):
    item_id: int
    kind: str
    quantity: int  # units moved
    stock: int  # item quantity after the movement
    movement_id: int


class MovementOut(BaseModel):
    id: int
    item_id: Optional[int]
    item_name: str
    item_code: Optional[str]
    kind: str
    quantity: int
    created_at: datetime
    actor_id: Optional[int]
    actor_name: Optional[str]


@router.get("", response_model=List[MovementOut])
def list_movements(
    item_id: Optional[int] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    return StockLedger(db).history(item_id=item_id, skip=skip, limit=limit)


@router.post("", response_model=MovementCreated, status_code=201)
def create_movement(
    data: MovementCreate,
    db: Session = Depends(get_db),
    token_user_id: Optional[int] = Depends(get_token_user_id),
):
    """
    Manual entrada/salida. Goes through the same locked path as
    consume/restock; editado and eliminado rows are only written by item
    edits and deletions.
    """
    try:
        kind = MovementKind(data.kind.strip().lower())
    except ValueError:
        raise ValidationError(f"Invalid movement kind {data.kind!r}", field="kind") from None
    if kind not in BALANCE_KINDS:
        raise ValidationError(f"Movements of kind {kind.value!r} cannot be created directly", field="kind")

    result = StockLedger(db).apply_delta(
        data.item_id, data.quantity, kind, resolve_actor(data.actor_id, token_user_id)
    )
    return MovementCreated(
        item_id=data.item_id,
        kind=kind.value,
        quantity=data.quantity,
        stock=result.quantity,
        movement_id=result.movement_id,
    )


def _refuse_change(movement_id: int, db: Session):
    if db.get(Movement, movement_id) is None:
        raise NotFound.entity("Movement", movement_id)
    raise Conflict(f"Movement {movement_id} is immutable")


@router.put("/{movement_id}")
def update_movement(movement_id: int, db: Session = Depends(get_db)):
    _refuse_change(movement_id, db)


@router.delete("/{movement_id}")
def delete_movement(movement_id: int, db: Session = Depends(get_db)):
    _refuse_change(movement_id, db)
