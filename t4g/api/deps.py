"""
t4g.api.deps — FastAPI dependency injection
============================================

Engine/config singletons plus the identity chain:

    Authorization: Bearer <jwt>
        → get_current_identity   (401 on missing / invalid token)
        → get_current_user       (end-user side, local profile required)
        → get_current_tenant     (organization side, local profile required)
        → require_capability(c)  (403 unless the caller's role grants *c*)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine
from sqlalchemy.orm import Session

from t4g.config import T4GConfig, load_config
from t4g.database.engine import create_db_engine
from t4g.engine.permissions import Capability, has_capability
from t4g.services import directory_service

_WEAK_SECRETS = frozenset({
    "t4g-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"

IDENTITY_TYPES = frozenset({"user", "tenant"})


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine(get_config().db_timeout_seconds)


@lru_cache(maxsize=1)
def get_config() -> T4GConfig:
    return load_config()


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Identity:
    """Verified token claims."""

    id: str
    email: str | None
    name: str | None
    type: str


@dataclass(frozen=True, slots=True)
class Principal:
    """A registered user or tenant resolved from an :class:`Identity`."""

    id: str
    auth0_id: str
    type: str
    role: str
    organization_id: str | None = None


def verify_token(token: str) -> Identity | None:
    """Decode *token*; ``None`` when it is invalid or lacks the claims we need."""
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except InvalidTokenError:
        return None
    sub = payload.get("sub")
    kind = payload.get("type", "user")
    if not sub or kind not in IDENTITY_TYPES:
        return None
    return Identity(
        id=str(sub),
        email=payload.get("email"),
        name=payload.get("name"),
        type=kind,
    )


def get_current_identity(
    authorization: Annotated[str | None, Header()] = None,
) -> Identity:
    """Validate the bearer token. Raises 401 if missing or invalid."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    identity = verify_token(authorization.split(" ", 1)[1])
    if identity is None:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")
    return identity


def _resolve(engine: Engine, identity: Identity) -> Principal | None:
    with Session(engine) as session:
        if identity.type == "tenant":
            tenant = directory_service.find_tenant_by_auth0_id(session, identity.id)
            if tenant is None:
                return None
            if not tenant.is_active:
                raise HTTPException(status.HTTP_403_FORBIDDEN, "Account is inactive")
            return Principal(
                id=tenant.id,
                auth0_id=tenant.auth0_id,
                type="tenant",
                role=tenant.role,
                organization_id=tenant.organization_id,
            )
        user = directory_service.find_user_by_auth0_id(session, identity.id)
        if user is None:
            return None
        if not user.is_active:
            raise HTTPException(status.HTTP_403_FORBIDDEN, "Account is inactive")
        return Principal(id=user.id, auth0_id=user.auth0_id, type="user", role=user.role)


def get_current_user(
    identity: Identity = Depends(get_current_identity),
    engine: Engine = Depends(get_engine),
) -> Principal:
    """The registered end user behind the token."""
    if identity.type != "user":
        raise HTTPException(status.HTTP_403_FORBIDDEN, "User token required")
    principal = _resolve(engine, identity)
    if principal is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "User profile not found")
    return principal


def get_current_tenant(
    identity: Identity = Depends(get_current_identity),
    engine: Engine = Depends(get_engine),
) -> Principal:
    """The registered tenant behind the token."""
    if identity.type != "tenant":
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Tenant token required")
    principal = _resolve(engine, identity)
    if principal is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Tenant profile not found")
    return principal


def require_capability(capability: Capability):
    """Dependency factory: the caller's role must grant *capability*."""

    def _check(
        identity: Identity = Depends(get_current_identity),
        engine: Engine = Depends(get_engine),
    ) -> Principal:
        principal = _resolve(engine, identity)
        if principal is None or not has_capability(principal.role, capability):
            raise HTTPException(status.HTTP_403_FORBIDDEN, "Insufficient permissions")
        return principal

    return _check
