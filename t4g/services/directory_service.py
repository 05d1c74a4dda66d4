"""
t4g.services.directory_service — Users & Tenants
=================================================

Profile CRUD for both identity sides.  End users come from the Auth0
"user" application, tenants (organization staff) from the "tenant"
application; both are keyed locally by a generated id and looked up by
their Auth0 subject.

All functions take an open :class:`Session`; route handlers wrap them in
:func:`~t4g.database.engine.get_session` via ``run_db``.
"""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from t4g.database.models import Tenant, TenantRole, User, UserRole
from t4g.errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_USER_PREFERENCES = {
    "notifications": True,
    "theme": "light",
    "language": "en",
    "emailUpdates": True,
}

DEFAULT_TENANT_SETTINGS = {
    "dashboardTheme": "light",
    "notifications": True,
    "analyticsEnabled": True,
    "realTimeUpdates": True,
}

# Profile fields a caller may change through update_user / update_tenant
_USER_FIELDS = ("name", "email", "picture")
_TENANT_FIELDS = ("name", "email", "picture", "organization_name")


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------
def exists(session: Session, user_id: str) -> bool:
    return session.scalar(select(User.id).where(User.id == user_id)) is not None


def get_user(session: Session, user_id: str) -> User:
    user = session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def find_user_by_auth0_id(session: Session, auth0_id: str) -> User | None:
    return session.scalar(select(User).where(User.auth0_id == auth0_id))


def create_user(
    session: Session,
    *,
    auth0_id: str,
    email: str,
    name: str,
    picture: str | None = None,
    role: str = UserRole.USER,
) -> User:
    """Provision a user for *auth0_id*.  Raises ConflictError on duplicates."""
    if not auth0_id or not email or not name:
        raise ValidationError("auth0Id, email and name are required")
    if role not in set(UserRole):
        raise ValidationError(f"Invalid user role: {role}")
    if find_user_by_auth0_id(session, auth0_id) is not None:
        raise ConflictError("User already exists")

    user = User(
        id=new_id("user"),
        auth0_id=auth0_id,
        email=email,
        name=name,
        picture=picture,
        role=str(role),
        is_active=True,
        preferences=dict(DEFAULT_USER_PREFERENCES),
    )
    session.add(user)
    session.flush()
    logger.info("Created user %s (%s)", user.id, email)
    return user


def update_user(session: Session, user_id: str, changes: dict) -> User:
    """Apply profile *changes*; ``preferences`` is merged, not replaced."""
    user = get_user(session, user_id)
    for key in _USER_FIELDS:
        if changes.get(key) is not None:
            setattr(user, key, changes[key])
    if changes.get("preferences"):
        user.preferences = {**(user.preferences or {}), **changes["preferences"]}
    session.flush()
    logger.info("Updated user %s", user_id)
    return user


def set_user_active(session: Session, user_id: str, active: bool) -> User:
    user = get_user(session, user_id)
    user.is_active = active
    session.flush()
    logger.info("User %s %s", user_id, "activated" if active else "deactivated")
    return user


def list_users(
    session: Session, *, role: str | None = None, active: bool | None = None
) -> list[User]:
    query = select(User).order_by(User.created_at, User.id)
    if role is not None:
        query = query.where(User.role == role)
    if active is not None:
        query = query.where(User.is_active.is_(active))
    return list(session.scalars(query).all())


def touch_last_login(session: Session, user: User | Tenant) -> None:
    user.last_login_at = datetime.now(UTC)
    session.flush()


def user_dict(user: User) -> dict:
    return {
        "id": user.id,
        "auth0Id": user.auth0_id,
        "email": user.email,
        "name": user.name,
        "picture": user.picture,
        "role": user.role,
        "isActive": user.is_active,
        "preferences": user.preferences or {},
        "lastLoginAt": _iso(user.last_login_at),
        "createdAt": _iso(user.created_at),
        "updatedAt": _iso(user.updated_at),
    }


# ---------------------------------------------------------------------------
# Tenants
# ---------------------------------------------------------------------------
def get_tenant(session: Session, tenant_id: str) -> Tenant:
    tenant = session.get(Tenant, tenant_id)
    if tenant is None:
        raise NotFoundError("Tenant not found")
    return tenant


def find_tenant_by_auth0_id(session: Session, auth0_id: str) -> Tenant | None:
    return session.scalar(select(Tenant).where(Tenant.auth0_id == auth0_id))


def create_tenant(
    session: Session,
    *,
    auth0_id: str,
    email: str,
    name: str,
    organization_id: str,
    organization_name: str,
    picture: str | None = None,
    role: str = TenantRole.TENANT_USER,
) -> Tenant:
    """Provision a tenant for *auth0_id*.  Raises ConflictError on duplicates."""
    if not auth0_id or not email or not name:
        raise ValidationError("auth0Id, email and name are required")
    if not organization_id or not organization_name:
        raise ValidationError("organizationId and organizationName are required")
    if role not in set(TenantRole):
        raise ValidationError(f"Invalid tenant role: {role}")
    if find_tenant_by_auth0_id(session, auth0_id) is not None:
        raise ConflictError("Tenant already exists")

    tenant = Tenant(
        id=new_id("tenant"),
        auth0_id=auth0_id,
        email=email,
        name=name,
        picture=picture,
        role=str(role),
        organization_id=organization_id,
        organization_name=organization_name,
        is_active=True,
        settings=dict(DEFAULT_TENANT_SETTINGS),
    )
    session.add(tenant)
    session.flush()
    logger.info("Created tenant %s for organization %s", tenant.id, organization_id)
    return tenant


def update_tenant(session: Session, tenant_id: str, changes: dict) -> Tenant:
    """Apply profile *changes*; ``settings`` is merged, not replaced."""
    tenant = get_tenant(session, tenant_id)
    for key in _TENANT_FIELDS:
        if changes.get(key) is not None:
            setattr(tenant, key, changes[key])
    if changes.get("settings"):
        tenant.settings = {**(tenant.settings or {}), **changes["settings"]}
    session.flush()
    logger.info("Updated tenant %s", tenant_id)
    return tenant


def tenant_dict(tenant: Tenant) -> dict:
    return {
        "id": tenant.id,
        "auth0Id": tenant.auth0_id,
        "email": tenant.email,
        "name": tenant.name,
        "picture": tenant.picture,
        "role": tenant.role,
        "organizationId": tenant.organization_id,
        "organizationName": tenant.organization_name,
        "isActive": tenant.is_active,
        "settings": tenant.settings or {},
        "lastLoginAt": _iso(tenant.last_login_at),
        "createdAt": _iso(tenant.created_at),
        "updatedAt": _iso(tenant.updated_at),
    }
