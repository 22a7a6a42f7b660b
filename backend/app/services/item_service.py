"""
Item lifecycle: ties the image helper to the stock ledger.

Ordering is always upload -> database transaction -> blob cleanup.
"""
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from app.core.errors import NotFound
from app.models.item import Item
from app.services.blob_store import BlobStore
from app.services.images import (
    ImagePayload,
    discard_image_change,
    finish_image_change,
    prepare_image,
    rebase_image_change,
    release_blob,
)
from app.services.stock_ledger import DeletedItem, StockLedger


def create_item(
    db: Session,
    blob_store: BlobStore,
    fields: Dict[str, Any],
    quantity: int = 0,
    image: Optional[ImagePayload] = None,
    actor_id: Optional[int] = None,
) -> Item:
    change = prepare_image(blob_store, image)
    values = {**fields, "image_url": change.url, "image_public_id": change.public_id}
    try:
        item = StockLedger(db).create_with_initial_stock(values, quantity, actor_id)
    except Exception:
        discard_image_change(blob_store, change)
        raise
    finish_image_change(blob_store, change)
    return item


def update_item(
    db: Session,
    blob_store: BlobStore,
    item_id: int,
    fields: Dict[str, Any],
    quantity: int,
    image: Optional[ImagePayload] = None,
    actor_id: Optional[int] = None,
) -> Item:
    current = db.get(Item, item_id)
    if current is None:
        raise NotFound.entity("Item", item_id)
    current_url, current_public_id = current.image_url, current.image_public_id
    # End the read before talking to the blob store
    db.rollback()

    change = prepare_image(blob_store, image, current_url, current_public_id)

    def _bind_image(item: Item) -> Dict[str, Any]:
        nonlocal change
        change = rebase_image_change(change, item.image_url, item.image_public_id)
        return {"image_url": change.url, "image_public_id": change.public_id}

    try:
        item = StockLedger(db).record_edit(item_id, fields, quantity, actor_id, locked_fields=_bind_image)
    except Exception:
        discard_image_change(blob_store, change)
        raise
    finish_image_change(blob_store, change)
    return item


def delete_item(
    db: Session,
    blob_store: BlobStore,
    item_id: int,
    actor_id: Optional[int] = None,
) -> DeletedItem:
    deleted = StockLedger(db).delete_with_snapshot(item_id, actor_id)
    # Best effort: a failed image delete never undoes the item deletion
    release_blob(blob_store, deleted.image_public_id)
    return deleted
