from sqlalchemy import Column, Integer, String

from app.core.database import Base


class Supplier(Base):
    __tablename__ = "proveedores"

    id = Column("id_proveedor", Integer, primary_key=True, index=True)
    name = Column("nombre", String(200), nullable=False)
    rfc = Column(String(20), nullable=True)  # Tax id
    phone = Column("telefono", String(40), nullable=True)
    email = Column(String(255), nullable=True)
    address = Column("direccion", String(255), nullable=True)
    contact = Column("contacto", String(120), nullable=True)
