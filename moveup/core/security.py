"""Bearer token decoding and acting-user resolution.

Tokens are issued by the identity service outside this core; here they are
only verified so every service call can receive the acting user explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

from moveup.core.config import get_settings
from moveup.core.enums import RoleEnum

settings = get_settings()

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.api_prefix}/identity/auth/login")


@dataclass(frozen=True, slots=True)
class Actor:
    """User performing an operation."""

    id: UUID
    role: RoleEnum

    @property
    def is_admin(self) -> bool:
        return self.role == RoleEnum.ADMIN


def decode_token(token: str) -> dict[str, Any]:
    """Decode and validate JWT token."""
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        ) from exc


def actor_from_claims(payload: dict[str, Any]) -> Actor:
    """Build actor from decoded access-token claims."""
    if payload.get("type") != "access":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid access token")

    subject = payload.get("sub")
    role = payload.get("role")
    if not subject or not role:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token claims are missing")

    try:
        return Actor(id=UUID(str(subject)), role=RoleEnum(str(role).lower()))
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token claims are invalid",
        ) from exc


async def get_current_actor(token: str = Depends(oauth2_scheme)) -> Actor:
    """Resolve acting user from bearer token."""
    return actor_from_claims(decode_token(token))


def require_roles(*roles: RoleEnum):
    """Dependency factory for role-based access."""

    async def _checker(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Operation not permitted for your role",
            )
        return actor

    return _checker
