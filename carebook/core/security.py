# carebook/core/security.py
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional
from uuid import UUID

from jose import JWTError, jwt
from pydantic import BaseModel

from carebook.core.config import settings

# Access tokens are issued by the identity provider (Supabase-style JWTs).
# This service only verifies them and reads the caller's id and role.


class Role(str, Enum):
    patient = "patient"
    doctor = "doctor"
    admin = "admin"


class CurrentUser(BaseModel):
    """Caller identity extracted from a verified access token."""

    id: UUID
    role: Role
    email: Optional[str] = None


class InvalidTokenError(Exception):
    """Raised when a token is missing/invalid/expired or claims are malformed."""


def decode_token(token: str) -> Dict[str, Any]:
    """
    Decode and validate a JWT. Raises InvalidTokenError on failure.
    """
    if not token:
        raise InvalidTokenError("missing_token")

    options = {"verify_aud": bool(settings.JWT_AUDIENCE)}
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
            options=options,
        )
    except JWTError as exc:
        # JWTError covers expired signature, invalid signature, bad format, etc.
        raise InvalidTokenError("invalid_token") from exc

    # Minimal sanity checks on claims
    if "sub" not in payload:
        raise InvalidTokenError("invalid_claims")

    return payload


def _role_from_claims(payload: Dict[str, Any]) -> Role:
    """
    Application role lookup order: app_metadata.role, user_metadata.role,
    then a top-level `role` claim. The provider's own "authenticated" role
    is not an application role and is skipped.
    """
    candidates = [
        (payload.get("app_metadata") or {}).get("role"),
        (payload.get("user_metadata") or {}).get("role"),
        payload.get("role"),
    ]
    for value in candidates:
        if value in {r.value for r in Role}:
            return Role(value)
    raise InvalidTokenError("missing_role")


def principal_from_claims(payload: Dict[str, Any]) -> CurrentUser:
    try:
        user_id = UUID(str(payload["sub"]))
    except (KeyError, ValueError) as exc:
        raise InvalidTokenError("invalid_subject") from exc
    return CurrentUser(id=user_id, role=_role_from_claims(payload), email=payload.get("email"))
