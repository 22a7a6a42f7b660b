from sqlalchemy import Column, Integer, String, UniqueConstraint

from app.core.database import Base
from app.core.roles import Role


class User(Base):
    __tablename__ = "usuarios"
    __table_args__ = (
        UniqueConstraint("nombre", name="uq_usuarios_nombre"),
    )

    id = Column("id_usuario", Integer, primary_key=True, index=True)
    name = Column("nombre", String(120), nullable=False, index=True)
    hashed_password = Column("contrasena", String(255), nullable=False)
    role = Column("rol", String(50), nullable=False, default=Role.employee.value)
