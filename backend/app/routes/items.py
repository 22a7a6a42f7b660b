from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional
import logging

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field, condecimal, field_validator
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, or_
from sqlalchemy.orm import Session
from starlette.datastructures import UploadFile

from app.core.database import get_db
from app.core.deps import get_blob_store, get_token_user_id, resolve_actor
from app.core.errors import NotFound, PayloadTooLarge, ValidationError
from app.models.item import Item, UnitKind, normalize_unit_kind
from app.models.movement import MovementKind
from app.services import item_service
from app.services.blob_store import BlobStore
from app.services.images import ImagePayload
from app.services.stock_ledger import StockLedger


logger = logging.getLogger(__name__)

router = APIRouter()

FORM_CONTENT_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")


class ItemBase(BaseModel):
    code: str
    name: str
    description: Optional[str] = None
    quantity: int = Field(0, ge=0)
    unit_kind: str = UnitKind.piece.value
    unit_price: condecimal(max_digits=12, decimal_places=2, ge=0) = 0
    stock_min: int = Field(0, ge=0)
    stock_max: int = Field(0, ge=0)
    entry_date: Optional[date] = None
    category_id: Optional[int] = None
    supplier_id: Optional[int] = None


class ItemIn(ItemBase):
    image_url: Optional[str] = None  # data URI to upload, or an external http(s) URL
    actor_id: Optional[int] = None

    @field_validator("code", "name", mode="before")
    @classmethod
    def _strip_required(cls, value):
        if value is not None:
            value = str(value).strip()
        if not value:
            raise ValueError("field is required")
        return value

    @field_validator(
        "description", "entry_date", "category_id", "supplier_id", "image_url", "actor_id", mode="before"
    )
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("quantity", "unit_price", "stock_min", "stock_max", mode="before")
    @classmethod
    def _blank_to_zero(cls, value):
        if value is None or (isinstance(value, str) and not value.strip()):
            return 0
        return value

    @field_validator("unit_kind", mode="before")
    @classmethod
    def _unit_kind(cls, value):
        return normalize_unit_kind(value)

    def item_fields(self) -> dict:
        return self.model_dump(exclude={"quantity", "image_url", "actor_id"})


class ItemOut(ItemBase):
    id: int
    image_url: Optional[str] = None
    image_public_id: Optional[str] = None

    class Config:
        from_attributes = True


class StockChange(BaseModel):
    quantity: int = Field(..., gt=0)
    actor_id: Optional[int] = None


class StockChangeOut(BaseModel):
    message: str
    quantity: int
    movement_id: int


class ItemMovementOut(BaseModel):
    id: int
    item_id: Optional[int]
    item_name: str
    item_code: Optional[str]
    kind: str
    quantity: int
    created_at: datetime
    actor_id: Optional[int]
    actor_name: Optional[str]


@dataclass
class ItemRequest:
    data: ItemIn
    image: ImagePayload


def _validation_error(exc: PydanticValidationError) -> ValidationError:
    error = exc.errors()[0]
    field = ".".join(str(part) for part in error.get("loc", ())) or None
    return ValidationError(f"{field}: {error.get('msg')}" if field else error.get("msg"), field=field)


async def read_item_request(request: Request) -> ItemRequest:
    """
    Accept either a JSON body or a multipart form with an optional ``image``
    file. Images larger than ``max_image_bytes`` are rejected.
    """
    content_type = request.headers.get("content-type", "")
    file_bytes = None
    if content_type.startswith(FORM_CONTENT_TYPES):
        form = await request.form()
        data = {key: value for key, value in form.items() if not isinstance(value, UploadFile)}
        upload = form.get("image")
        if isinstance(upload, UploadFile):
            limit = request.app.state.settings.max_image_bytes
            file_bytes = await upload.read(limit + 1)
            if len(file_bytes) > limit:
                raise PayloadTooLarge(f"Image exceeds {limit} bytes", field="image")
    else:
        try:
            data = await request.json()
        except ValueError:
            raise ValidationError("Body must be JSON or multipart/form-data") from None
        if not isinstance(data, dict):
            raise ValidationError("Body must be a JSON object")

    try:
        item_in = ItemIn.model_validate(data)
    except PydanticValidationError as exc:
        raise _validation_error(exc) from None
    return ItemRequest(data=item_in, image=ImagePayload(file_bytes=file_bytes or None, reference=item_in.image_url))


def _escape_like(value: str) -> str:
    """Match ``%`` and ``_`` literally in a LIKE pattern."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


@router.get("", response_model=List[ItemOut])
def list_items(
    db: Session = Depends(get_db),
    q: Optional[str] = Query(None, description="Search by name or code"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
):
    logger.info("list_items q=%s skip=%s limit=%s", q, skip, limit)
    query = db.query(Item)
    if q:
        qn = q.strip().lower()
        if qn:
            pattern = f"%{_escape_like(qn)}%"
            query = query.filter(
                or_(
                    func.lower(Item.name).like(pattern, escape="\\"),
                    func.lower(Item.code).like(pattern, escape="\\"),
                )
            )
    return query.order_by(Item.id.desc()).offset(skip).limit(limit).all()


@router.get("/{item_id}", response_model=ItemOut)
def get_item(item_id: int, db: Session = Depends(get_db)):
    item = db.get(Item, item_id)
    if not item:
        raise NotFound.entity("Item", item_id)
    return item


@router.get("/{item_id}/movements", response_model=List[ItemMovementOut])
def get_item_movements(
    item_id: int,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    """Movement history of one item, newest first."""
    if not db.get(Item, item_id):
        raise NotFound.entity("Item", item_id)
    return StockLedger(db).history(item_id=item_id, skip=skip, limit=limit)


@router.post("", response_model=ItemOut, status_code=201)
def create_item(
    payload: ItemRequest = Depends(read_item_request),
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
    token_user_id: Optional[int] = Depends(get_token_user_id),
):
    data = payload.data
    return item_service.create_item(
        db,
        blob_store,
        fields=data.item_fields(),
        quantity=data.quantity,
        image=payload.image,
        actor_id=resolve_actor(data.actor_id, token_user_id),
    )


@router.put("/{item_id}", response_model=ItemOut)
def update_item(
    item_id: int,
    payload: ItemRequest = Depends(read_item_request),
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
    token_user_id: Optional[int] = Depends(get_token_user_id),
):
    data = payload.data
    return item_service.update_item(
        db,
        blob_store,
        item_id,
        fields=data.item_fields(),
        quantity=data.quantity,
        image=payload.image,
        actor_id=resolve_actor(data.actor_id, token_user_id),
    )


@router.delete("/{item_id}")
def delete_item(
    item_id: int,
    actor_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
    token_user_id: Optional[int] = Depends(get_token_user_id),
):
    deleted = item_service.delete_item(db, blob_store, item_id, resolve_actor(actor_id, token_user_id))
    return {"ok": True, "id": deleted.id, "movement_id": deleted.movement_id}


def _stock_change(db: Session, item_id: int, data: StockChange, direction: MovementKind, actor_id, message: str):
    result = StockLedger(db).apply_delta(item_id, data.quantity, direction, actor_id)
    return StockChangeOut(message=message, quantity=result.quantity, movement_id=result.movement_id)


@router.post("/{item_id}/consume", response_model=StockChangeOut)
def consume_item(
    item_id: int,
    data: StockChange,
    db: Session = Depends(get_db),
    token_user_id: Optional[int] = Depends(get_token_user_id),
):
    """Salida: take units out of stock."""
    actor_id = resolve_actor(data.actor_id, token_user_id)
    return _stock_change(db, item_id, data, MovementKind.outbound, actor_id, "Consumo registrado")


@router.post("/{item_id}/restock", response_model=StockChangeOut)
def restock_item(
    item_id: int,
    data: StockChange,
    db: Session = Depends(get_db),
    token_user_id: Optional[int] = Depends(get_token_user_id),
):
    """Entrada: put units into stock."""
    actor_id = resolve_actor(data.actor_id, token_user_id)
    return _stock_change(db, item_id, data, MovementKind.inbound, actor_id, "Ingreso registrado")
