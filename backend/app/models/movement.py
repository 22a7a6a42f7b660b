from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, event

from app.core.database import Base


class MovementKind(str, Enum):
    inbound = "entrada"
    outbound = "salida"
    edited = "editado"
    deleted = "eliminado"


class Movement(Base):
    """Append-only stock ledger entry.

    ``item_id`` is nulled by the store when the item is deleted; the
    ``item_name``/``item_code`` snapshot keeps the history readable after that.
    """
    __tablename__ = "movimientos"

    id = Column("id_movimiento", Integer, primary_key=True, index=True)
    item_id = Column(
        "id_producto", Integer, ForeignKey("productos.id_producto", ondelete="SET NULL"), nullable=True, index=True
    )
    kind = Column("tipo", String(20), nullable=False, index=True)

    # Magnitude for entrada/salida, informational for editado, 0 for eliminado
    quantity = Column("cantidad", Integer, nullable=False, default=0)

    actor_id = Column(
        "id_usuario", Integer, ForeignKey("usuarios.id_usuario", ondelete="SET NULL"), nullable=True, index=True
    )
    created_at = Column(
        "fecha", DateTime(timezone=True), nullable=False, index=True,
        default=lambda: datetime.now(timezone.utc),
    )

    # Snapshot captured when the item is deleted
    item_name = Column("producto_nombre", String(255), nullable=True)
    item_code = Column("producto_codigo", String(100), nullable=True)


class ImmutableMovementError(RuntimeError):
    pass


@event.listens_for(Movement, "before_update")
def _forbid_update(mapper, connection, target):
    raise ImmutableMovementError(f"Movement {target.id} is immutable")


@event.listens_for(Movement, "before_delete")
def _forbid_delete(mapper, connection, target):
    raise ImmutableMovementError(f"Movement {target.id} is immutable")
