"""
Stock ledger: keeps ``Item.quantity`` and the movement history consistent.

Every operation runs in one transaction. Balance changes read the item under
an exclusive row lock, so two requests against the same item serialize while
requests against different items do not wait on each other. Any failure rolls
the whole transaction back; no half-applied quantity/movement pair is ever
committed.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, TypeVar

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.database import transaction
from app.core.errors import InsufficientStock, NotFound, ValidationError
from app.models.category import Category
from app.models.item import Item, normalize_unit_kind
from app.models.movement import Movement, MovementKind
from app.models.supplier import Supplier
from app.models.user import User


logger = logging.getLogger(__name__)

T = TypeVar("T")

BALANCE_KINDS = {MovementKind.inbound, MovementKind.outbound}

EDITABLE_FIELDS = (
    "code",
    "name",
    "description",
    "unit_kind",
    "unit_price",
    "stock_min",
    "stock_max",
    "entry_date",
    "image_url",
    "image_public_id",
    "category_id",
    "supplier_id",
)


@dataclass(frozen=True)
class LedgerResult:
    quantity: int
    movement_id: int


@dataclass(frozen=True)
class DeletedItem:
    id: int
    name: str
    code: str
    image_public_id: Optional[str]
    movement_id: int


def _positive_int(value: Any, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{field} must be a positive integer", field=field)
    return value


def _non_negative_int(value: Any, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{field} must be a non-negative integer", field=field)
    return value


class StockLedger:
    def __init__(self, session: Session):
        self.session = session

    # -- locking -----------------------------------------------------------

    def with_locked_item(self, item_id: int, fn: Callable[[Item], T]) -> T:
        """
        Run ``fn`` with the item row exclusively locked until the enclosing
        transaction ends. The row is always re-read from the store.
        """
        stmt = (
            select(Item)
            .where(Item.id == item_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        item = self.session.execute(stmt).scalar_one_or_none()
        if item is None:
            raise NotFound.entity("Item", item_id)
        return fn(item)

    # -- checks ------------------------------------------------------------

    def _check_actor(self, actor_id: Optional[int]) -> None:
        if actor_id is not None and self.session.get(User, actor_id) is None:
            raise NotFound(f"User {actor_id} not found", field="actor_id")

    def _check_references(self, fields: Dict[str, Any]) -> None:
        category_id = fields.get("category_id")
        if category_id is not None and self.session.get(Category, category_id) is None:
            raise NotFound(f"Category {category_id} not found", field="category_id")
        supplier_id = fields.get("supplier_id")
        if supplier_id is not None and self.session.get(Supplier, supplier_id) is None:
            raise NotFound(f"Supplier {supplier_id} not found", field="supplier_id")

    @staticmethod
    def _clean_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
        cleaned = {key: fields[key] for key in EDITABLE_FIELDS if key in fields}
        code = (cleaned.get("code") or "").strip()
        if not code:
            raise ValidationError("code is required", field="code")
        cleaned["code"] = code
        cleaned["unit_kind"] = normalize_unit_kind(cleaned.get("unit_kind"))
        return cleaned

    # -- operations --------------------------------------------------------

    def apply_delta(
        self,
        item_id: int,
        magnitude: int,
        direction: MovementKind,
        actor_id: Optional[int] = None,
    ) -> LedgerResult:
        """
        Add (entrada) or subtract (salida) ``magnitude`` units and append the
        matching movement.

        Raises:
            ValidationError: magnitude is not a positive integer or direction
                is not entrada/salida.
            NotFound: the item (or actor) does not exist.
            InsufficientStock: an outbound delta would leave quantity below 0.
            StorageError: the store failed; nothing was written.
        """
        magnitude = _positive_int(magnitude, "quantity")
        try:
            direction = MovementKind(direction)
        except ValueError:
            raise ValidationError(f"Invalid movement kind {direction!r}", field="kind") from None
        if direction not in BALANCE_KINDS:
            raise ValidationError("Only entrada and salida change stock", field="kind")

        def _apply(item: Item) -> LedgerResult:
            current = int(item.quantity or 0)
            if direction is MovementKind.inbound:
                new_quantity = current + magnitude
            else:
                new_quantity = current - magnitude
            if new_quantity < 0:
                raise InsufficientStock(item.id, current, magnitude)
            self._check_actor(actor_id)

            item.quantity = new_quantity
            movement = Movement(
                item_id=item.id,
                kind=direction.value,
                quantity=magnitude,
                actor_id=actor_id,
            )
            self.session.add(movement)
            self.session.flush()
            return LedgerResult(quantity=new_quantity, movement_id=movement.id)

        with transaction(self.session):
            result = self.with_locked_item(item_id, _apply)

        logger.info(
            "ledger %s item=%s qty=%s -> %s (movement %s)",
            direction.value, item_id, magnitude, result.quantity, result.movement_id,
        )
        return result

    def create_with_initial_stock(
        self,
        fields: Dict[str, Any],
        initial_quantity: int = 0,
        actor_id: Optional[int] = None,
    ) -> Item:
        """Insert an item; a nonzero starting quantity gets its entrada movement in the same transaction."""
        initial_quantity = _non_negative_int(initial_quantity, "quantity")
        values = self._clean_fields(fields)

        with transaction(self.session, conflict_message=f"Item code {values['code']!r} already exists"):
            self._check_references(values)
            self._check_actor(actor_id)
            item = Item(**values, quantity=initial_quantity)
            self.session.add(item)
            self.session.flush()
            if initial_quantity > 0:
                self.session.add(
                    Movement(
                        item_id=item.id,
                        kind=MovementKind.inbound.value,
                        quantity=initial_quantity,
                        actor_id=actor_id,
                    )
                )
        self.session.refresh(item)
        logger.info("ledger created item=%s code=%s qty=%s", item.id, item.code, initial_quantity)
        return item

    def record_edit(
        self,
        item_id: int,
        fields: Dict[str, Any],
        quantity: int,
        actor_id: Optional[int] = None,
        locked_fields: Optional[Callable[[Item], Dict[str, Any]]] = None,
    ) -> Item:
        """
        Overwrite the item's fields, quantity included, and append an editado
        movement carrying the submitted quantity. ``locked_fields`` is called
        with the locked row and returns extra values to write, for fields that
        depend on what the row holds at that point.

        The quantity is set, not added. An edit that races a concurrent
        consume/restock wins over it; see DESIGN.md.
        """
        quantity = _non_negative_int(quantity, "quantity")
        values = self._clean_fields(fields)

        def _edit(item: Item) -> Item:
            self._check_references(values)
            self._check_actor(actor_id)
            row_values = dict(values)
            if locked_fields is not None:
                row_values.update(locked_fields(item))
            for key, value in row_values.items():
                setattr(item, key, value)
            item.quantity = quantity
            self.session.add(
                Movement(
                    item_id=item.id,
                    kind=MovementKind.edited.value,
                    quantity=quantity,
                    actor_id=actor_id,
                )
            )
            self.session.flush()
            return item

        with transaction(self.session, conflict_message=f"Item code {values['code']!r} already exists"):
            item = self.with_locked_item(item_id, _edit)
        self.session.refresh(item)
        logger.info("ledger edited item=%s qty=%s", item_id, quantity)
        return item

    def delete_with_snapshot(self, item_id: int, actor_id: Optional[int] = None) -> DeletedItem:
        """
        Write the eliminado movement with a name/code snapshot, then delete
        the item row. The blob cleanup is left to the caller.
        """

        def _delete(item: Item) -> DeletedItem:
            self._check_actor(actor_id)
            movement = Movement(
                item_id=item.id,
                kind=MovementKind.deleted.value,
                quantity=0,
                actor_id=actor_id,
                item_name=item.name,
                item_code=item.code,
            )
            self.session.add(movement)
            # The snapshot row must exist before the item goes away
            self.session.flush()
            deleted = DeletedItem(
                id=item.id,
                name=item.name,
                code=item.code,
                image_public_id=item.image_public_id,
                movement_id=movement.id,
            )
            self.session.delete(item)
            self.session.flush()
            return deleted

        with transaction(self.session):
            deleted = self.with_locked_item(item_id, _delete)
        logger.info("ledger deleted item=%s code=%s", deleted.id, deleted.code)
        return deleted

    # -- history -----------------------------------------------------------

    def history(
        self,
        item_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        """
        Movements newest first (timestamp, then id, both descending). Item
        name/code come from the deletion snapshot when present, else from the
        live item.
        """
        query = (
            self.session.query(
                Movement.id,
                Movement.item_id,
                func.coalesce(Movement.item_name, Item.name, "Producto").label("item_name"),
                func.coalesce(Movement.item_code, Item.code).label("item_code"),
                Movement.kind,
                Movement.quantity,
                Movement.created_at,
                Movement.actor_id,
                User.name.label("actor_name"),
            )
            .select_from(Movement)
            .outerjoin(Item, Movement.item_id == Item.id)
            .outerjoin(User, Movement.actor_id == User.id)
        )
        if item_id is not None:
            query = query.filter(Movement.item_id == item_id)
        rows = (
            query.order_by(Movement.created_at.desc(), Movement.id.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )
        return [dict(row._mapping) for row in rows]
