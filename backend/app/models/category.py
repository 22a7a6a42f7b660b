from sqlalchemy import Column, Integer, String

from app.core.database import Base


class Category(Base):
    __tablename__ = "categorias"

    id = Column("id_categoria", Integer, primary_key=True, index=True)
    name = Column("nombre", String(120), nullable=False)
