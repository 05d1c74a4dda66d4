"""
t4g.services.tenant_service — Gifts, Challenges & Tenant Dashboard
===================================================================

Organization-scoped management for tenant accounts.  Every operation
loads the acting tenant, checks its role's capabilities and refuses to
touch another organization's rows.  Each mutation writes an
``admin_log`` entry in the same transaction.

Challenge completion is the external signal that turns a challenge's
``points`` into leaderboard score; it re-scores the user through the
same locked path as a logged action.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from t4g.config import POLICY_IGNORE, T4GConfig
from t4g.database.engine import bounded_timeout, get_session
from t4g.database.models import (
    Challenge,
    ChallengeDifficulty,
    ChallengeType,
    Gift,
    Tenant,
    UserChallenge,
)
from t4g.engine.locks import user_locks
from t4g.engine.permissions import Capability, has_capability
from t4g.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from t4g.services import directory_service, leaderboard_service, reward_service
from t4g.services.admin_service import log_admin_action, row_to_dict

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

RECENT_ACTIVITY_LIMIT = 5

_GIFT_FIELDS = ("name", "description", "value", "category", "image_url", "is_active")
_CHALLENGE_FIELDS = (
    "title", "description", "type", "difficulty", "points",
    "start_date", "end_date", "rules", "rewards", "is_active",
)


# ---------------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------------
def _acting_tenant(session: Session, tenant_id: str, *capabilities: Capability) -> Tenant:
    """Load the tenant and require at least one of *capabilities*."""
    tenant = directory_service.get_tenant(session, tenant_id)
    if not tenant.is_active:
        raise PermissionDeniedError("Tenant account is inactive")
    if not any(has_capability(tenant.role, cap) for cap in capabilities):
        names = " or ".join(cap.value for cap in capabilities)
        raise PermissionDeniedError(f"Insufficient permissions ({names} required)")
    return tenant


def _same_org(tenant: Tenant, row: Gift | Challenge, noun: str) -> None:
    if row.organization_id != tenant.organization_id:
        raise PermissionDeniedError(f"Cannot modify {noun} from another organization")


def _non_negative(data: dict, key: str) -> None:
    value = data.get(key)
    if value is not None and (not isinstance(value, int) or value < 0):
        raise ValidationError(f"{key} must be a non-negative integer")


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=UTC)


def _validate_challenge(data: dict) -> None:
    if data.get("type") is not None and data["type"] not in set(ChallengeType):
        raise ValidationError(f"Invalid challenge type: {data['type']}")
    if data.get("difficulty") is not None and data["difficulty"] not in set(ChallengeDifficulty):
        raise ValidationError(f"Invalid challenge difficulty: {data['difficulty']}")
    _non_negative(data, "points")
    start, end = data.get("start_date"), data.get("end_date")
    if start is not None and end is not None and _aware(end) <= _aware(start):
        raise ValidationError("endDate must be after startDate")


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------
def gift_dict(gift: Gift) -> dict:
    return {
        "id": gift.id,
        "organizationId": gift.organization_id,
        "name": gift.name,
        "description": gift.description,
        "value": gift.value,
        "category": gift.category,
        "imageUrl": gift.image_url,
        "isActive": gift.is_active,
        "createdBy": gift.created_by,
        "createdAt": _iso(gift.created_at),
        "updatedAt": _iso(gift.updated_at),
    }


def challenge_dict(challenge: Challenge) -> dict:
    return {
        "id": challenge.id,
        "organizationId": challenge.organization_id,
        "title": challenge.title,
        "description": challenge.description,
        "type": challenge.type,
        "difficulty": challenge.difficulty,
        "points": challenge.points,
        "startDate": _iso(challenge.start_date),
        "endDate": _iso(challenge.end_date),
        "rules": challenge.rules or [],
        "rewards": challenge.rewards or [],
        "isActive": challenge.is_active,
        "createdBy": challenge.created_by,
        "createdAt": _iso(challenge.created_at),
        "updatedAt": _iso(challenge.updated_at),
    }


# ---------------------------------------------------------------------------
# Gifts
# ---------------------------------------------------------------------------
def create_gift(session: Session, tenant_id: str, data: dict) -> Gift:
    tenant = _acting_tenant(session, tenant_id, Capability.MANAGE_GIFTS)
    if not data.get("name") or not data.get("category"):
        raise ValidationError("name and category are required")
    _non_negative(data, "value")

    gift = Gift(
        id=directory_service.new_id("gift"),
        organization_id=tenant.organization_id,
        name=data["name"],
        description=data.get("description") or "",
        value=data.get("value") or 0,
        category=data["category"],
        image_url=data.get("image_url"),
        is_active=True,
        created_by=tenant.id,
    )
    session.add(gift)
    session.flush()
    log_admin_action(
        session,
        actor_id=tenant.id,
        action_type="CREATE",
        target_table="gifts",
        target_id=gift.id,
        after=row_to_dict(gift),
    )
    logger.info("Tenant %s created gift %s", tenant.id, gift.id)
    return gift


def _owned_gift(session: Session, tenant: Tenant, gift_id: str) -> Gift:
    gift = session.get(Gift, gift_id)
    if gift is None:
        raise NotFoundError("Gift not found")
    _same_org(tenant, gift, "gifts")
    return gift


def update_gift(session: Session, tenant_id: str, gift_id: str, changes: dict) -> Gift:
    tenant = _acting_tenant(session, tenant_id, Capability.MANAGE_GIFTS)
    gift = _owned_gift(session, tenant, gift_id)
    _non_negative(changes, "value")

    before = row_to_dict(gift)
    for key in _GIFT_FIELDS:
        if changes.get(key) is not None:
            setattr(gift, key, changes[key])
    session.flush()
    log_admin_action(
        session,
        actor_id=tenant.id,
        action_type="UPDATE",
        target_table="gifts",
        target_id=gift.id,
        before=before,
        after=row_to_dict(gift),
    )
    return gift


def delete_gift(session: Session, tenant_id: str, gift_id: str) -> None:
    tenant = _acting_tenant(session, tenant_id, Capability.MANAGE_GIFTS)
    gift = _owned_gift(session, tenant, gift_id)
    before = row_to_dict(gift)
    session.delete(gift)
    log_admin_action(
        session,
        actor_id=tenant.id,
        action_type="DELETE",
        target_table="gifts",
        target_id=gift_id,
        before=before,
    )
    logger.info("Tenant %s deleted gift %s", tenant.id, gift_id)


def list_gifts(session: Session, tenant_id: str) -> list[Gift]:
    tenant = _acting_tenant(
        session, tenant_id, Capability.MANAGE_GIFTS, Capability.VIEW_ANALYTICS
    )
    return list(session.scalars(
        select(Gift)
        .where(Gift.organization_id == tenant.organization_id)
        .order_by(Gift.created_at, Gift.id)
    ).all())


# ---------------------------------------------------------------------------
# Challenges
# ---------------------------------------------------------------------------
def create_challenge(session: Session, tenant_id: str, data: dict) -> Challenge:
    tenant = _acting_tenant(session, tenant_id, Capability.MANAGE_CHALLENGES)
    missing = [k for k in ("title", "type", "difficulty", "start_date", "end_date") if not data.get(k)]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    _validate_challenge(data)

    challenge = Challenge(
        id=directory_service.new_id("challenge"),
        organization_id=tenant.organization_id,
        title=data["title"],
        description=data.get("description") or "",
        type=str(data["type"]),
        difficulty=str(data["difficulty"]),
        points=data.get("points") or 0,
        start_date=_aware(data["start_date"]),
        end_date=_aware(data["end_date"]),
        rules=list(data.get("rules") or []),
        rewards=list(data.get("rewards") or []),
        is_active=True,
        created_by=tenant.id,
    )
    session.add(challenge)
    session.flush()
    log_admin_action(
        session,
        actor_id=tenant.id,
        action_type="CREATE",
        target_table="challenges",
        target_id=challenge.id,
        after=row_to_dict(challenge),
    )
    logger.info("Tenant %s created challenge %s", tenant.id, challenge.id)
    return challenge


def _owned_challenge(session: Session, tenant: Tenant, challenge_id: str) -> Challenge:
    challenge = session.get(Challenge, challenge_id)
    if challenge is None:
        raise NotFoundError("Challenge not found")
    _same_org(tenant, challenge, "challenges")
    return challenge


def update_challenge(
    session: Session, tenant_id: str, challenge_id: str, changes: dict
) -> Challenge:
    tenant = _acting_tenant(session, tenant_id, Capability.MANAGE_CHALLENGES)
    challenge = _owned_challenge(session, tenant, challenge_id)

    # Validate the merged date range, not just the fields supplied
    merged = {
        "start_date": changes.get("start_date") or challenge.start_date,
        "end_date": changes.get("end_date") or challenge.end_date,
        **{k: v for k, v in changes.items() if k not in ("start_date", "end_date")},
    }
    _validate_challenge(merged)

    before = row_to_dict(challenge)
    for key in _CHALLENGE_FIELDS:
        value = changes.get(key)
        if value is None:
            continue
        if key in ("start_date", "end_date"):
            value = _aware(value)
        setattr(challenge, key, value)
    session.flush()
    log_admin_action(
        session,
        actor_id=tenant.id,
        action_type="UPDATE",
        target_table="challenges",
        target_id=challenge.id,
        before=before,
        after=row_to_dict(challenge),
    )
    return challenge


def delete_challenge(session: Session, tenant_id: str, challenge_id: str) -> list[str]:
    """Delete the challenge; returns the users whose completion went with it."""
    tenant = _acting_tenant(session, tenant_id, Capability.MANAGE_CHALLENGES)
    challenge = _owned_challenge(session, tenant, challenge_id)
    completers = sorted(c.user_id for c in challenge.completions if c.completed)
    before = row_to_dict(challenge)
    session.delete(challenge)
    log_admin_action(
        session,
        actor_id=tenant.id,
        action_type="DELETE",
        target_table="challenges",
        target_id=challenge_id,
        before=before,
    )
    logger.info("Tenant %s deleted challenge %s", tenant.id, challenge_id)
    return completers


def remove_challenge(
    engine: Engine,
    tenant_id: str,
    challenge_id: str,
    *,
    config: T4GConfig | None = None,
) -> list[str]:
    """Delete the challenge, then re-score everyone who had completed it."""
    config = config or T4GConfig()
    with get_session(engine) as session:
        completers = delete_challenge(session, tenant_id, challenge_id)
    for user_id in completers:
        reward_service.rescore_user(engine, user_id, config=config)
    return completers


def list_challenges(session: Session, tenant_id: str) -> list[Challenge]:
    tenant = _acting_tenant(
        session, tenant_id, Capability.MANAGE_CHALLENGES, Capability.VIEW_ANALYTICS
    )
    return list(session.scalars(
        select(Challenge)
        .where(Challenge.organization_id == tenant.organization_id)
        .order_by(Challenge.created_at, Challenge.id)
    ).all())


def complete_challenge(
    engine: Engine,
    tenant_id: str,
    challenge_id: str,
    user_id: str,
    *,
    config: T4GConfig | None = None,
) -> dict:
    """Record that *user_id* completed *challenge_id* and re-score them.

    Raises ConflictError if the completion was already recorded.
    """
    config = config or T4GConfig()
    with user_locks.hold(user_id, bounded_timeout(config.lock_timeout_seconds)):
        with get_session(engine) as session:
            tenant = _acting_tenant(session, tenant_id, Capability.MANAGE_CHALLENGES)
            challenge = _owned_challenge(session, tenant, challenge_id)
            if not challenge.is_active:
                raise ValidationError("Challenge is not active")
            if not directory_service.exists(session, user_id):
                raise NotFoundError(f"User with id {user_id} not found")

            completion = session.get(UserChallenge, (user_id, challenge_id))
            if completion is not None and completion.completed:
                raise ConflictError("Challenge already completed by this user")
            if completion is None:
                completion = UserChallenge(user_id=user_id, challenge_id=challenge_id)
                session.add(completion)
            completion.completed = True
            completion.completed_at = datetime.now(UTC)
            completion.confirmed_by = tenant.id
            session.flush()

            log_admin_action(
                session,
                actor_id=tenant.id,
                action_type="COMPLETE_CHALLENGE",
                target_table="user_challenges",
                target_id=f"{user_id}:{challenge_id}",
                after={"user_id": user_id, "challenge_id": challenge_id, "points": challenge.points},
            )
            entry = leaderboard_service.update_score(
                session,
                user_id,
                policy=config.challenge_points_policy,
                lock_timeout=config.lock_timeout_seconds,
            )
            result = {
                "userId": user_id,
                "challengeId": challenge_id,
                "completed": True,
                "completedAt": _iso(completion.completed_at),
                "pointsAwarded": (
                    0 if config.challenge_points_policy == POLICY_IGNORE else challenge.points
                ),
                "totalScore": entry.total_score,
                "position": entry.position,
            }

    logger.info("User %s completed challenge %s", user_id, challenge_id)
    return result


def list_completions(session: Session, tenant_id: str, challenge_id: str) -> list[dict]:
    tenant = _acting_tenant(
        session, tenant_id, Capability.MANAGE_CHALLENGES, Capability.VIEW_ANALYTICS
    )
    _owned_challenge(session, tenant, challenge_id)
    rows = session.scalars(
        select(UserChallenge)
        .where(UserChallenge.challenge_id == challenge_id, UserChallenge.completed.is_(True))
        .order_by(UserChallenge.completed_at, UserChallenge.user_id)
    ).all()
    return [
        {
            "userId": row.user_id,
            "challengeId": row.challenge_id,
            "completedAt": _iso(row.completed_at),
            "confirmedBy": row.confirmed_by,
        }
        for row in rows
    ]


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------
def dashboard_analytics(session: Session, tenant_id: str) -> dict[str, Any]:
    """Organization-level counts plus the most recent gifts/challenges."""
    tenant = _acting_tenant(session, tenant_id, Capability.VIEW_ANALYTICS)
    org = tenant.organization_id

    gifts = list(session.scalars(
        select(Gift).where(Gift.organization_id == org).order_by(Gift.created_at, Gift.id)
    ).all())
    challenges = list(session.scalars(
        select(Challenge)
        .where(Challenge.organization_id == org)
        .order_by(Challenge.created_at, Challenge.id)
    ).all())
    completions = session.scalar(
        select(func.count())
        .select_from(UserChallenge)
        .join(Challenge, UserChallenge.challenge_id == Challenge.id)
        .where(Challenge.organization_id == org, UserChallenge.completed.is_(True))
    ) or 0

    return {
        "organizationId": org,
        "stats": {
            "totalGifts": len(gifts),
            "activeGifts": sum(1 for g in gifts if g.is_active),
            "totalChallenges": len(challenges),
            "activeChallenges": sum(1 for c in challenges if c.is_active),
            "challengeCompletions": completions,
        },
        "recentActivity": {
            "gifts": [gift_dict(g) for g in gifts[-RECENT_ACTIVITY_LIMIT:]],
            "challenges": [challenge_dict(c) for c in challenges[-RECENT_ACTIVITY_LIMIT:]],
        },
    }
