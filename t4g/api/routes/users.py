"""
t4g.api.routes.users — End-user profile endpoints
==================================================
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy import Engine
from sqlalchemy.orm import Session

from t4g.api.deps import (
    Identity,
    Principal,
    get_current_identity,
    get_current_user,
    get_engine,
    require_capability,
)
from t4g.database.engine import get_session, run_db
from t4g.engine.permissions import Capability, has_capability
from t4g.services import directory_service

router = APIRouter(prefix="/users", tags=["users"])

require_user_admin = require_capability(Capability.MANAGE_USERS)


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class UserRegister(BaseModel):
    name: str | None = None
    email: str | None = None
    picture: str | None = None


class UserUpdate(BaseModel):
    name: str | None = None
    email: str | None = None
    picture: str | None = None
    preferences: dict[str, Any] | None = None


# ---------------------------------------------------------------------------
# Sync helpers (run on a worker thread)
# ---------------------------------------------------------------------------
def _register(engine: Engine, identity: Identity, body: UserRegister) -> dict:
    with get_session(engine) as session:
        user = directory_service.create_user(
            session,
            auth0_id=identity.id,
            email=body.email or identity.email or "",
            name=body.name or identity.name or "",
            picture=body.picture,
        )
        directory_service.touch_last_login(session, user)
        return directory_service.user_dict(user)


def _profile(engine: Engine, user_id: str) -> dict:
    with Session(engine) as session:
        return directory_service.user_dict(directory_service.get_user(session, user_id))


def _update(engine: Engine, user_id: str, changes: dict) -> dict:
    with get_session(engine) as session:
        user = directory_service.update_user(session, user_id, changes)
        return directory_service.user_dict(user)


def _set_active(engine: Engine, user_id: str, active: bool) -> dict:
    with get_session(engine) as session:
        user = directory_service.set_user_active(session, user_id, active)
        return directory_service.user_dict(user)


def _list(engine: Engine, role: str | None, active: bool | None) -> list[dict]:
    with Session(engine) as session:
        users = directory_service.list_users(session, role=role, active=active)
        return [directory_service.user_dict(u) for u in users]


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@router.post("/register", status_code=201)
async def register(
    body: UserRegister,
    identity: Identity = Depends(get_current_identity),
    engine: Engine = Depends(get_engine),
):
    """Create the local profile for the token's subject."""
    if identity.type != "user":
        raise HTTPException(403, "User token required")
    return await run_db(_register, engine, identity, body)


@router.get("/profile")
async def get_profile(
    user: Principal = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    return await run_db(_profile, engine, user.id)


@router.put("/profile")
async def update_profile(
    body: UserUpdate,
    user: Principal = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    return await run_db(_update, engine, user.id, body.model_dump(exclude_none=True))


@router.get("")
async def list_users(
    role: str | None = Query(None),
    active: bool | None = Query(None),
    admin: Principal = Depends(require_user_admin),
    engine: Engine = Depends(get_engine),
):
    return await run_db(_list, engine, role, active)


@router.get("/{user_id}")
async def get_user(
    user_id: str,
    user: Principal = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    """A user's profile; callers may read their own or need manage_users."""
    if user_id != user.id and not has_capability(user.role, Capability.MANAGE_USERS):
        raise HTTPException(403, "Insufficient permissions")
    return await run_db(_profile, engine, user_id)


@router.post("/{user_id}/deactivate")
async def deactivate(
    user_id: str,
    admin: Principal = Depends(require_user_admin),
    engine: Engine = Depends(get_engine),
):
    return await run_db(_set_active, engine, user_id, False)


@router.post("/{user_id}/activate")
async def activate(
    user_id: str,
    admin: Principal = Depends(require_user_admin),
    engine: Engine = Depends(get_engine),
):
    return await run_db(_set_active, engine, user_id, True)
