"""
Bearer-token verification.

Tokens are issued by the identity service; this module only verifies them
and turns the claims into a :class:`Principal`.

Claims read:
    sub      — user id (required)
    role     — "user" | "sereno" | "responder" (defaults to "user")
    country  — ISO 3166-1 alpha-2 code
    name     — first name shown to responders
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from sereno.app.core.config import settings
from sereno.app.core.errors import AuthenticationError, AuthorizationError
from sereno.app.core.logging_config import update_request_context

logger = logging.getLogger(__name__)

_bearer = HTTPBearer(auto_error=False)


class Role(str, Enum):
    USER = "user"
    RESPONDER = "responder"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "Role":
        # "sereno" is the product name for volunteer responders
        value = (raw or "").strip().lower()
        if value in ("sereno", "responder"):
            return cls.RESPONDER
        return cls.USER


@dataclass(frozen=True)
class Principal:
    """Verified caller identity."""
    id: str
    role: Role = Role.USER
    country: Optional[str] = None
    first_name: Optional[str] = None

    @property
    def is_responder(self) -> bool:
        return self.role is Role.RESPONDER


def create_access_token(
    user_id: str,
    *,
    role: str = "user",
    country: Optional[str] = None,
    first_name: Optional[str] = None,
    expires_minutes: Optional[int] = None,
) -> str:
    """Sign a token with the shared secret (used by tests and local tooling)."""
    expire = datetime.now(timezone.utc) + timedelta(
        minutes=expires_minutes or settings.JWT_EXPIRE_MINUTES
    )
    claims: Dict[str, Any] = {"sub": user_id, "role": role, "exp": expire}
    if country:
        claims["country"] = country
    if first_name:
        claims["name"] = first_name
    return jwt.encode(claims, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> Principal:
    try:
        claims = jwt.decode(
            token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM]
        )
    except JWTError as exc:
        logger.warning("Rejected bearer token: %s", exc)
        raise AuthenticationError("Invalid or expired token") from exc

    user_id = claims.get("sub")
    if not user_id:
        raise AuthenticationError("Token has no subject")

    country = claims.get("country")
    return Principal(
        id=str(user_id),
        role=Role.parse(claims.get("role")),
        country=country.upper() if country else None,
        first_name=claims.get("name"),
    )


async def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Principal:
    """FastAPI dependency: verified caller or 401."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthenticationError()
    principal = decode_access_token(credentials.credentials)
    update_request_context(user_id=principal.id)
    return principal


async def require_responder(
    principal: Principal = Depends(get_current_principal),
) -> Principal:
    """FastAPI dependency: caller must hold the responder role."""
    if not principal.is_responder:
        raise AuthorizationError(
            "Only SERENO responders can perform this action",
            error_code="UNAUTHORIZED",
        )
    return principal
