import logging
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from app.core.database import get_db, transaction
from app.core.errors import Conflict, NotFound, Unauthorized, ValidationError
from app.core.roles import normalize_role
from app.core.deps import get_security
from app.core.security import Security
from app.models.user import User


logger = logging.getLogger(__name__)

router = APIRouter()


def _required_name(value):
    if isinstance(value, str):
        value = value.strip()
    if not value:
        raise ValueError("name is required")
    return value


class UserCreate(BaseModel):
    name: str
    password: str
    role: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def _name(cls, value):
        return _required_name(value)

    @field_validator("password")
    @classmethod
    def _password(cls, value):
        if not value:
            raise ValueError("password is required")
        return value


class UserUpdate(BaseModel):
    name: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None


class UserOut(BaseModel):
    id: int
    name: str
    role: str

    class Config:
        from_attributes = True


class LoginRequest(BaseModel):
    name: str
    password: str


class LoginResponse(BaseModel):
    user_id: int
    name: str
    role: str
    access_token: str
    token_type: str = "bearer"


def _duplicate_name(name: str) -> str:
    return f"User name {name!r} already exists"


@router.get("", response_model=List[UserOut])
def list_users(db: Session = Depends(get_db)):
    """List users without their password hashes."""
    return db.query(User).order_by(User.id.desc()).all()


@router.get("/{user_id}", response_model=UserOut)
def get_user(user_id: int, db: Session = Depends(get_db)):
    user = db.get(User, user_id)
    if not user:
        raise NotFound.entity("User", user_id)
    return user


@router.post("", response_model=UserOut, status_code=201)
def create_user(data: UserCreate, db: Session = Depends(get_db), security: Security = Depends(get_security)):
    if db.query(User.id).filter(User.name == data.name).first():
        raise Conflict(_duplicate_name(data.name), field="name")
    user = User(name=data.name, hashed_password=security.hash_password(data.password), role=normalize_role(data.role))
    with transaction(db, conflict_message=_duplicate_name(data.name)):
        db.add(user)
    db.refresh(user)
    logger.info("created user id=%s role=%s", user.id, user.role)
    return user


@router.put("/{user_id}", response_model=UserOut)
def update_user(
    user_id: int,
    data: UserUpdate,
    db: Session = Depends(get_db),
    security: Security = Depends(get_security),
):
    """Partial update; a new password is re-hashed."""
    changes = data.model_dump(exclude_unset=True)
    if not changes:
        raise ValidationError("Nothing to update")

    user = db.get(User, user_id)
    if not user:
        raise NotFound.entity("User", user_id)

    if "name" in changes:
        try:
            changes["name"] = _required_name(changes["name"])
        except ValueError:
            raise ValidationError("name is required", field="name") from None
    if "password" in changes and not changes["password"]:
        raise ValidationError("password is required", field="password")

    with transaction(db, conflict_message=_duplicate_name(changes.get("name", user.name))):
        if "name" in changes:
            user.name = changes["name"]
        if "role" in changes:
            user.role = normalize_role(changes["role"])
        if "password" in changes:
            user.hashed_password = security.hash_password(changes["password"])
    db.refresh(user)
    return user


@router.delete("/{user_id}")
def delete_user(user_id: int, db: Session = Depends(get_db)):
    """Movements recorded by the user keep their rows with a null actor."""
    user = db.get(User, user_id)
    if not user:
        raise NotFound.entity("User", user_id)
    with transaction(db):
        db.delete(user)
    return {"ok": True, "id": user_id}


@router.post("/login", response_model=LoginResponse)
def login(data: LoginRequest, db: Session = Depends(get_db), security: Security = Depends(get_security)):
    user = db.query(User).filter(User.name == data.name.strip()).first()
    if not user or not security.verify_password(data.password, user.hashed_password):
        raise Unauthorized("Invalid credentials")
    access = security.create_token(str(user.id), token_type="access")
    return LoginResponse(user_id=user.id, name=user.name, role=user.role, access_token=access)
