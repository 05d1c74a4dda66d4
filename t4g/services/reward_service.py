"""
t4g.services.reward_service — Action Orchestration & Reward Summary
====================================================================

The single write path for user actions.  One logged action runs, under
the user's lock and inside one transaction:

    1. Validate the request (before anything is written)
    2. Append to the action ledger (404 for unknown users)
    3. Award coins
    4. Update the eligibility windows and flags
    5. Re-score the user and re-rank the leaderboard, then commit

Any failure rolls the whole transaction back.  The summary is a
read-only fan-out over the same stores.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from t4g.config import T4GConfig
from t4g.database.engine import bounded_timeout, get_session
from t4g.engine.events import RewardAction, validate_user_id
from t4g.engine.locks import user_locks
from t4g.errors import DependencyError, NotFoundError
from t4g.services import (
    action_ledger,
    coin_ledger,
    directory_service,
    eligibility_service,
    leaderboard_service,
)

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ActionResult:
    """Outcome of one logged action."""

    action_id: int
    kind: str
    coins_awarded: int
    total_coins: int
    gift_eligible: bool
    challenge_eligible: bool


def log_action(
    engine: Engine,
    user_id: Any,
    kind: Any,
    metadata: dict | None = None,
    *,
    config: T4GConfig | None = None,
    now: datetime | None = None,
) -> ActionResult:
    """Log one action for *user_id* and apply all of its rewards."""
    config = config or T4GConfig()
    action = RewardAction.build(user_id, kind, metadata, now=now)

    with user_locks.hold(action.user_id, bounded_timeout(config.lock_timeout_seconds)):
        try:
            with get_session(engine) as session:
                row = action_ledger.record(session, action)
                total = coin_ledger.award(session, action.user_id, config.coins_per_action)
                counters = eligibility_service.update_eligibility(
                    session, action.user_id, action.kind, now=action.occurred_at
                )
                result = ActionResult(
                    action_id=row.id,
                    kind=action.kind.value,
                    coins_awarded=config.coins_per_action,
                    total_coins=total,
                    gift_eligible=bool(counters.gift_eligible),
                    challenge_eligible=bool(counters.challenge_eligible),
                )
                leaderboard_service.update_score(
                    session,
                    action.user_id,
                    policy=config.challenge_points_policy,
                    lock_timeout=config.lock_timeout_seconds,
                )
        except SQLAlchemyError as exc:
            logger.exception("Failed to log %s for user %s", action.kind.value, action.user_id)
            raise DependencyError("Failed to record action") from exc

    logger.info(
        "Processed %s for user %s (+%d coins, balance %d)",
        result.kind, action.user_id, result.coins_awarded, result.total_coins,
    )
    return result


def get_summary(
    engine: Engine,
    user_id: Any,
    *,
    config: T4GConfig | None = None,
    now: datetime | None = None,
) -> dict:
    """Coins, score, position, eligibility and recent actions for one user."""
    config = config or T4GConfig()
    uid = validate_user_id(user_id)

    with Session(engine) as session:
        if not directory_service.exists(session, uid):
            raise NotFoundError(f"User with id {uid} not found")

        total_coins = coin_ledger.get_balance(session, uid)
        score = leaderboard_service.score_in_session(session, uid)
        status = eligibility_service.status_in_session(session, uid, now=now)
        recent = action_ledger.recent_actions(session, uid, config.recent_actions_limit)

        return {
            "userId": uid,
            "totalCoins": total_coins,
            "totalScore": score["totalScore"],
            "position": score["position"],
            "eligibilityStatus": status.to_dict(),
            "recentActions": [action_ledger.action_dict(a) for a in recent],
        }


def rescore_user(engine: Engine, user_id: str, *, config: T4GConfig | None = None) -> int:
    """Recompute one user's score through the serialized write path.

    Used when something other than an action changes the score, such as
    a deleted challenge taking its completion points with it.
    """
    config = config or T4GConfig()
    with user_locks.hold(user_id, bounded_timeout(config.lock_timeout_seconds)):
        with get_session(engine) as session:
            entry = leaderboard_service.update_score(
                session,
                user_id,
                policy=config.challenge_points_policy,
                lock_timeout=config.lock_timeout_seconds,
            )
            return entry.total_score
