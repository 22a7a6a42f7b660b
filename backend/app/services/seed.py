import logging

from sqlalchemy.orm import Session

from app.core.roles import Role
from app.core.security import Security
from app.models.category import Category
from app.models.supplier import Supplier
from app.models.user import User


logger = logging.getLogger(__name__)

DEMO_CATEGORIES = ("Abarrotes", "Limpieza", "Bebidas")


def seed_demo(db: Session, security: Security):
    """Idempotent demo data: a few categories, one supplier and an admin user."""
    if db.query(User).filter(User.name == "admin").first():
        return
    for name in DEMO_CATEGORIES:
        db.add(Category(name=name))
    db.add(Supplier(name="Proveedor Demo", rfc="XAXX010101000", phone="5550000000", contact="Ventas"))
    db.add(User(name="admin", hashed_password=security.hash_password("admin123"), role=Role.admin.value))
    db.commit()
    logger.info("demo data seeded")
