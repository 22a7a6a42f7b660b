from enum import Enum

from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, Date, Text, CheckConstraint
from sqlalchemy.orm import relationship

from app.core.database import Base


class UnitKind(str, Enum):
    mass = "Kilogramo"
    volume = "Litro"
    piece = "Pieza"


def normalize_unit_kind(value) -> str:
    """Unknown or missing units fall back to pieces."""
    allowed = {kind.value for kind in UnitKind}
    return value if value in allowed else UnitKind.piece.value


class Item(Base):
    __tablename__ = "productos"
    __table_args__ = (
        CheckConstraint("cantidad >= 0", name="ck_productos_cantidad_no_negativa"),
    )

    id = Column("id_producto", Integer, primary_key=True, index=True)
    code = Column("codigo", String(100), nullable=False, unique=True, index=True)
    name = Column("nombre", String(255), nullable=False)
    description = Column("descripcion", Text, nullable=True)
    quantity = Column("cantidad", Integer, nullable=False, default=0)
    unit_kind = Column("tipo_unidad", String(20), nullable=False, default=UnitKind.piece.value)
    unit_price = Column("precio_unitario", Numeric(12, 2), nullable=False, default=0)
    stock_min = Column(Integer, nullable=False, default=0)
    stock_max = Column(Integer, nullable=False, default=0)
    entry_date = Column("fecha_ingreso", Date, nullable=True)

    # Image hosted on the blob store (public id set) or externally (url only)
    image_url = Column("imagen_url", String(1000), nullable=True)
    image_public_id = Column("imagen_public_id", String(255), nullable=True)

    category_id = Column(
        "id_categoria", Integer, ForeignKey("categorias.id_categoria", ondelete="RESTRICT"), nullable=True, index=True
    )
    supplier_id = Column(
        "id_proveedor", Integer, ForeignKey("proveedores.id_proveedor", ondelete="RESTRICT"), nullable=True, index=True
    )

    category = relationship("Category")
    supplier = relationship("Supplier")
