from typing import Optional

from fastapi import Header, Request

from app.core.errors import Unauthorized
from app.core.security import Security
from app.services.blob_store import BlobStore


def get_blob_store(request: Request) -> BlobStore:
    return request.app.state.blob_store


def get_security(request: Request) -> Security:
    return request.app.state.security


def get_token_user_id(request: Request, authorization: Optional[str] = Header(None)) -> Optional[int]:
    """User id from an optional ``Authorization: Bearer`` access token."""
    if not authorization:
        return None
    if not authorization.startswith("Bearer "):
        raise Unauthorized("Malformed Authorization header")
    payload = get_security(request).decode_token(authorization.split(" ", 1)[1])
    if not payload or payload.get("type") != "access":
        raise Unauthorized("Invalid token")
    try:
        return int(payload.get("sub"))
    except (TypeError, ValueError):
        raise Unauthorized("Invalid token subject") from None


def resolve_actor(explicit_actor_id: Optional[int], token_user_id: Optional[int]) -> Optional[int]:
    # The body wins; the token is the fallback
    return explicit_actor_id if explicit_actor_id is not None else token_user_id
