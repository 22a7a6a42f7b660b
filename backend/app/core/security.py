from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import jwt
from passlib.context import CryptContext

from app.core.config import Settings


class Security:
    """Password hashing and access tokens for one ``Settings`` instance.

    The application builds one in ``create_app`` and keeps it on
    ``app.state.security``; scripts build their own.
    """

    def __init__(self, settings: Settings):
        self.secret_key = settings.secret_key
        self.algorithm = settings.jwt_algorithm
        self.access_token_expire_minutes = settings.access_token_expire_minutes
        self.password_context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=settings.bcrypt_rounds,
        )

    def hash_password(self, password: str) -> str:
        return self.password_context.hash(password)

    def verify_password(self, password: str, hashed_password: str) -> bool:
        return self.password_context.verify(password, hashed_password)

    def create_token(
        self, subject: str, expires_minutes: Optional[int] = None, token_type: str = "access"
    ) -> str:
        now = datetime.now(timezone.utc)
        minutes = self.access_token_expire_minutes if expires_minutes is None else expires_minutes
        payload: dict[str, Any] = {
            "sub": subject,
            "type": token_type,
            "exp": now + timedelta(minutes=minutes),
            "iat": now,
        }
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def decode_token(self, token: str) -> Optional[dict[str, Any]]:
        """Claims of a valid token, ``None`` when the signature or expiry is wrong."""
        try:
            return jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except jwt.PyJWTError:
            return None
