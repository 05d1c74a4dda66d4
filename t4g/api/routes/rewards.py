"""
t4g.api.routes.rewards — Rewards Engine endpoints
==================================================

Action logging, per-user summaries, eligibility and leaderboard queries,
plus the admin-only batch resets.  Every storage call goes through
``run_db`` so the event loop never blocks on the database.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import Engine
from sqlalchemy.orm import Session

from t4g.api.deps import Principal, get_config, get_engine, require_capability
from t4g.config import T4GConfig
from t4g.constants import (
    CONTEXT_DEFAULT_RANGE,
    CONTEXT_MAX_RANGE,
    LEADERBOARD_DEFAULT_LIMIT,
    LEADERBOARD_MAX_LIMIT,
    TOP_BY_ACTION_MAX_LIMIT,
)
from t4g.database.engine import run_db
from t4g.engine.events import parse_action_type, validate_user_id
from t4g.engine.permissions import Capability
from t4g.errors import ValidationError
from t4g.services import (
    admin_service,
    eligibility_service,
    leaderboard_service,
    reward_service,
)

router = APIRouter(prefix="/rewards", tags=["rewards"])

require_rewards_admin = require_capability(Capability.MANAGE_REWARDS)


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class ActionRequest(BaseModel):
    # userId / type stay loosely typed so bad values get our own 400 message
    model_config = ConfigDict(populate_by_name=True)

    user_id: Any = Field(None, alias="userId")
    type: Any = None
    metadata: dict[str, Any] | None = None


def _check_range(name: str, value: int, low: int, high: int | None = None) -> None:
    if value < low or (high is not None and value > high):
        bound = f"between {low} and {high}" if high is not None else f"at least {low}"
        raise ValidationError(f"{name} must be {bound}")


# ---------------------------------------------------------------------------
# Actions & per-user views
# ---------------------------------------------------------------------------
@router.post("/actions", status_code=201)
async def log_action(
    body: ActionRequest,
    engine: Engine = Depends(get_engine),
    cfg: T4GConfig = Depends(get_config),
):
    """Log one SCAN / SHARE / GAME action and apply its rewards."""
    result = await run_db(
        reward_service.log_action,
        engine,
        body.user_id,
        body.type,
        body.metadata,
        config=cfg,
    )
    return {
        "success": True,
        "message": f"Action {result.kind} logged successfully",
        "coinsAwarded": result.coins_awarded,
    }


@router.get("/users/{user_id}/summary")
async def user_summary(
    user_id: str,
    engine: Engine = Depends(get_engine),
    cfg: T4GConfig = Depends(get_config),
):
    return await run_db(reward_service.get_summary, engine, user_id, config=cfg)


@router.get("/users/{user_id}/eligibility")
async def user_eligibility(user_id: str, engine: Engine = Depends(get_engine)):
    uid = validate_user_id(user_id)
    status = await run_db(eligibility_service.get_status, engine, uid)
    return status.to_dict()


@router.get("/users/{user_id}/score")
async def user_score(user_id: str, engine: Engine = Depends(get_engine)):
    uid = validate_user_id(user_id)
    return await run_db(leaderboard_service.get_user_score, engine, uid)


# ---------------------------------------------------------------------------
# Leaderboard
# ---------------------------------------------------------------------------
@router.get("/leaderboard")
async def leaderboard(
    limit: int = Query(LEADERBOARD_DEFAULT_LIMIT),
    offset: int = Query(0),
    engine: Engine = Depends(get_engine),
):
    """A page of the ranked leaderboard."""
    _check_range("limit", limit, 1, LEADERBOARD_MAX_LIMIT)
    _check_range("offset", offset, 0)
    return await run_db(leaderboard_service.get_leaderboard, engine, limit, offset)


@router.get("/leaderboard/stats")
async def leaderboard_stats(engine: Engine = Depends(get_engine)):
    return await run_db(leaderboard_service.get_stats, engine)


@router.get("/leaderboard/users/{user_id}/context")
async def leaderboard_context(
    user_id: str,
    range_: int = Query(CONTEXT_DEFAULT_RANGE, alias="range"),
    engine: Engine = Depends(get_engine),
):
    """Entries surrounding one user's position."""
    uid = validate_user_id(user_id)
    _check_range("range", range_, 1, CONTEXT_MAX_RANGE)
    return await run_db(leaderboard_service.get_around_user, engine, uid, range_)


@router.get("/leaderboard/actions/{action_type}")
async def leaderboard_by_action(
    action_type: str,
    limit: int = Query(LEADERBOARD_DEFAULT_LIMIT),
    engine: Engine = Depends(get_engine),
):
    """Top users by number of actions of one type."""
    kind = parse_action_type(action_type)
    _check_range("limit", limit, 1, TOP_BY_ACTION_MAX_LIMIT)
    return await run_db(leaderboard_service.top_by_action, engine, kind, limit)


# ---------------------------------------------------------------------------
# Eligibility lists
# ---------------------------------------------------------------------------
@router.get("/eligibility/gifts")
async def gift_eligible(engine: Engine = Depends(get_engine)):
    users = await run_db(eligibility_service.gift_eligible_users, engine)
    return {"eligibleUsers": users, "count": len(users)}


@router.get("/eligibility/challenges")
async def challenge_eligible(engine: Engine = Depends(get_engine)):
    users = await run_db(eligibility_service.challenge_eligible_users, engine)
    return {"eligibleUsers": users, "count": len(users)}


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------
@router.post("/admin/reset/weekly")
async def reset_weekly(
    admin: Principal = Depends(require_rewards_admin),
    engine: Engine = Depends(get_engine),
):
    touched = await run_db(
        eligibility_service.reset_weekly_counters, engine, actor_id=admin.id
    )
    return {"success": True, "message": f"Weekly counters reset ({touched} users)"}


@router.post("/admin/reset/monthly")
async def reset_monthly(
    admin: Principal = Depends(require_rewards_admin),
    engine: Engine = Depends(get_engine),
):
    touched = await run_db(
        eligibility_service.reset_monthly_counters, engine, actor_id=admin.id
    )
    return {"success": True, "message": f"Monthly counters reset ({touched} users)"}


@router.post("/admin/reset/leaderboard")
async def reset_leaderboard(
    admin: Principal = Depends(require_rewards_admin),
    engine: Engine = Depends(get_engine),
    cfg: T4GConfig = Depends(get_config),
):
    touched = await run_db(
        leaderboard_service.reset_leaderboard,
        engine,
        actor_id=admin.id,
        lock_timeout=cfg.lock_timeout_seconds,
    )
    return {"success": True, "message": f"Leaderboard reset ({touched} entries)"}


def _audit_entries(engine: Engine, target_table: str | None, limit: int) -> list[dict]:
    with Session(engine) as session:
        rows = admin_service.get_audit_log(session, target_table=target_table, limit=limit)
        return [
            {
                "id": r.id,
                "actorId": r.actor_id,
                "actionType": r.action_type,
                "targetTable": r.target_table,
                "targetId": r.target_id,
                "before": r.before_snapshot,
                "after": r.after_snapshot,
                "reason": r.reason,
                "timestamp": r.timestamp.isoformat() if r.timestamp else None,
            }
            for r in rows
        ]


@router.get("/admin/audit")
async def audit_log(
    table: str | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    admin: Principal = Depends(require_rewards_admin),
    engine: Engine = Depends(get_engine),
):
    """Most recent admin/tenant mutations."""
    return await run_db(_audit_entries, engine, table, limit)


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------
@router.get("/health")
async def health():
    return {"status": "healthy", "timestamp": datetime.now(UTC).isoformat()}
