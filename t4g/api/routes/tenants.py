"""
t4g.api.routes.tenants — Organization-side endpoints
=====================================================

Tenant profile, gift & challenge management, challenge completions and
the dashboard.  Capability and organization checks live in
:mod:`t4g.services.tenant_service`; this module only resolves the caller
and ships work to a worker thread.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import Engine
from sqlalchemy.orm import Session

from t4g.api.deps import (
    Identity,
    Principal,
    get_config,
    get_current_identity,
    get_current_tenant,
    get_engine,
)
from t4g.config import T4GConfig
from t4g.database.engine import get_session, run_db
from t4g.services import directory_service, tenant_service

router = APIRouter(prefix="/tenants", tags=["tenants"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class TenantRegister(_CamelModel):
    organization_id: str = Field(alias="organizationId")
    organization_name: str = Field(alias="organizationName")
    name: str | None = None
    email: str | None = None
    picture: str | None = None


class TenantUpdate(_CamelModel):
    name: str | None = None
    email: str | None = None
    picture: str | None = None
    organization_name: str | None = Field(None, alias="organizationName")
    settings: dict[str, Any] | None = None


class GiftCreate(_CamelModel):
    name: str
    category: str
    description: str = ""
    value: int = 0
    image_url: str | None = Field(None, alias="imageUrl")


class GiftUpdate(_CamelModel):
    name: str | None = None
    category: str | None = None
    description: str | None = None
    value: int | None = None
    image_url: str | None = Field(None, alias="imageUrl")
    is_active: bool | None = Field(None, alias="isActive")


class ChallengeCreate(_CamelModel):
    title: str
    type: str
    difficulty: str
    start_date: datetime = Field(alias="startDate")
    end_date: datetime = Field(alias="endDate")
    description: str = ""
    points: int = 0
    rules: list[str] = Field(default_factory=list)
    rewards: list[str] = Field(default_factory=list)


class ChallengeUpdate(_CamelModel):
    title: str | None = None
    type: str | None = None
    difficulty: str | None = None
    start_date: datetime | None = Field(None, alias="startDate")
    end_date: datetime | None = Field(None, alias="endDate")
    description: str | None = None
    points: int | None = None
    rules: list[str] | None = None
    rewards: list[str] | None = None
    is_active: bool | None = Field(None, alias="isActive")


class CompletionCreate(_CamelModel):
    user_id: str = Field(alias="userId")


# ---------------------------------------------------------------------------
# Sync helpers
# ---------------------------------------------------------------------------
def _register(engine: Engine, identity: Identity, body: TenantRegister) -> dict:
    with get_session(engine) as session:
        tenant = directory_service.create_tenant(
            session,
            auth0_id=identity.id,
            email=body.email or identity.email or "",
            name=body.name or identity.name or "",
            organization_id=body.organization_id,
            organization_name=body.organization_name,
            picture=body.picture,
        )
        directory_service.touch_last_login(session, tenant)
        return directory_service.tenant_dict(tenant)


def _profile(engine: Engine, tenant_id: str) -> dict:
    with Session(engine) as session:
        return directory_service.tenant_dict(directory_service.get_tenant(session, tenant_id))


def _update_profile(engine: Engine, tenant_id: str, changes: dict) -> dict:
    with get_session(engine) as session:
        return directory_service.tenant_dict(
            directory_service.update_tenant(session, tenant_id, changes)
        )


def _write(engine: Engine, func, serialize, *args):
    """Run a tenant_service mutation in a committing session."""
    with get_session(engine) as session:
        row = func(session, *args)
        return serialize(row) if serialize else None


def _read(engine: Engine, func, serialize, *args):
    with Session(engine) as session:
        result = func(session, *args)
        if serialize is None:
            return result
        return [serialize(row) for row in result]


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------
@router.post("/register", status_code=201)
async def register(
    body: TenantRegister,
    identity: Identity = Depends(get_current_identity),
    engine: Engine = Depends(get_engine),
):
    """Create the local tenant profile for the token's subject."""
    if identity.type != "tenant":
        raise HTTPException(403, "Tenant token required")
    return await run_db(_register, engine, identity, body)


@router.get("/profile")
async def get_profile(
    tenant: Principal = Depends(get_current_tenant),
    engine: Engine = Depends(get_engine),
):
    return await run_db(_profile, engine, tenant.id)


@router.put("/profile")
async def update_profile(
    body: TenantUpdate,
    tenant: Principal = Depends(get_current_tenant),
    engine: Engine = Depends(get_engine),
):
    return await run_db(_update_profile, engine, tenant.id, body.model_dump(exclude_none=True))


@router.get("/dashboard/analytics")
async def dashboard_analytics(
    tenant: Principal = Depends(get_current_tenant),
    engine: Engine = Depends(get_engine),
):
    return await run_db(_read, engine, tenant_service.dashboard_analytics, None, tenant.id)


# ---------------------------------------------------------------------------
# Gifts
# ---------------------------------------------------------------------------
@router.post("/gifts", status_code=201)
async def create_gift(
    body: GiftCreate,
    tenant: Principal = Depends(get_current_tenant),
    engine: Engine = Depends(get_engine),
):
    return await run_db(
        _write, engine, tenant_service.create_gift, tenant_service.gift_dict,
        tenant.id, body.model_dump(),
    )


@router.get("/gifts")
async def list_gifts(
    tenant: Principal = Depends(get_current_tenant),
    engine: Engine = Depends(get_engine),
):
    return await run_db(
        _read, engine, tenant_service.list_gifts, tenant_service.gift_dict, tenant.id
    )


@router.put("/gifts/{gift_id}")
async def update_gift(
    gift_id: str,
    body: GiftUpdate,
    tenant: Principal = Depends(get_current_tenant),
    engine: Engine = Depends(get_engine),
):
    return await run_db(
        _write, engine, tenant_service.update_gift, tenant_service.gift_dict,
        tenant.id, gift_id, body.model_dump(exclude_none=True),
    )


@router.delete("/gifts/{gift_id}")
async def delete_gift(
    gift_id: str,
    tenant: Principal = Depends(get_current_tenant),
    engine: Engine = Depends(get_engine),
):
    await run_db(_write, engine, tenant_service.delete_gift, None, tenant.id, gift_id)
    return {"message": "Gift deleted successfully"}


# ---------------------------------------------------------------------------
# Challenges
# ---------------------------------------------------------------------------
@router.post("/challenges", status_code=201)
async def create_challenge(
    body: ChallengeCreate,
    tenant: Principal = Depends(get_current_tenant),
    engine: Engine = Depends(get_engine),
):
    return await run_db(
        _write, engine, tenant_service.create_challenge, tenant_service.challenge_dict,
        tenant.id, body.model_dump(),
    )


@router.get("/challenges")
async def list_challenges(
    tenant: Principal = Depends(get_current_tenant),
    engine: Engine = Depends(get_engine),
):
    return await run_db(
        _read, engine, tenant_service.list_challenges, tenant_service.challenge_dict,
        tenant.id,
    )


@router.put("/challenges/{challenge_id}")
async def update_challenge(
    challenge_id: str,
    body: ChallengeUpdate,
    tenant: Principal = Depends(get_current_tenant),
    engine: Engine = Depends(get_engine),
):
    return await run_db(
        _write, engine, tenant_service.update_challenge, tenant_service.challenge_dict,
        tenant.id, challenge_id, body.model_dump(exclude_none=True),
    )


@router.delete("/challenges/{challenge_id}")
async def delete_challenge(
    challenge_id: str,
    tenant: Principal = Depends(get_current_tenant),
    engine: Engine = Depends(get_engine),
    cfg: T4GConfig = Depends(get_config),
):
    """Delete the challenge; users who had completed it lose its points."""
    await run_db(
        tenant_service.remove_challenge, engine, tenant.id, challenge_id, config=cfg
    )
    return {"message": "Challenge deleted successfully"}


@router.post("/challenges/{challenge_id}/completions", status_code=201)
async def complete_challenge(
    challenge_id: str,
    body: CompletionCreate,
    tenant: Principal = Depends(get_current_tenant),
    engine: Engine = Depends(get_engine),
    cfg: T4GConfig = Depends(get_config),
):
    """Confirm that a user completed the challenge; their score is updated."""
    return await run_db(
        tenant_service.complete_challenge,
        engine, tenant.id, challenge_id, body.user_id, config=cfg,
    )


@router.get("/challenges/{challenge_id}/completions")
async def list_completions(
    challenge_id: str,
    tenant: Principal = Depends(get_current_tenant),
    engine: Engine = Depends(get_engine),
):
    return await run_db(
        _read, engine, tenant_service.list_completions, None, tenant.id, challenge_id
    )
