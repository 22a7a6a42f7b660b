#!/usr/bin/env python3
"""
Create (or reset) an administrator user.

    python create_admin.py [name] [password]

Defaults to admin / admin123. Uses DATABASE_URL from the environment or .env.
"""
import logging
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from app.core.config import settings
from app.core.database import Database
from app.core.roles import Role
from app.core.security import Security
from app.models.user import User


logger = logging.getLogger("create_admin")


def create_admin(name: str = "admin", password: str = "admin123") -> User:
    database = Database(settings)
    security = Security(settings)
    db = database.session()
    try:
        user = db.query(User).filter(User.name == name).first()
        if user:
            user.role = Role.admin.value
            user.hashed_password = security.hash_password(password)
            logger.info("user %r reset to %s", name, user.role)
        else:
            user = User(name=name, hashed_password=security.hash_password(password), role=Role.admin.value)
            db.add(user)
            logger.info("user %r created as %s", name, user.role)
        db.commit()
        db.refresh(user)
        return user
    except Exception:
        db.rollback()
        logger.exception("could not create admin user")
        raise
    finally:
        db.close()
        database.dispose()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    args = sys.argv[1:]
    user = create_admin(*args[:2])
    print(f"Name: {user.name}")
    print(f"Role: {user.role}")
