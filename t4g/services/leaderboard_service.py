"""
t4g.services.leaderboard_service — Scores, Positions & Ranking Queries
=======================================================================

Score = coin balance + bonus points of completed challenges (subject to
``challenge_points_policy``).  Every score change triggers a full, stable
re-rank (see :mod:`t4g.engine.ranking`) under the process-wide re-rank
lock, plus a transaction-scoped advisory lock on PostgreSQL so several
API workers don't re-rank over each other.

Reads never lock; they may see a slightly stale ranking, but always the
last committed score.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, func, select, text, update
from sqlalchemy.orm import Session

from t4g.config import POLICY_ON_COMPLETION
from t4g.database.engine import bounded_timeout, claim_commit, get_session
from t4g.database.models import (
    ActionType,
    Challenge,
    LeaderboardEntry,
    User,
    UserChallenge,
)
from t4g.engine.locks import DEFAULT_LOCK_TIMEOUT, rank_lock
from t4g.engine.ranking import RankCandidate, context_window, rerank
from t4g.services import action_ledger, coin_ledger
from t4g.services.admin_service import SYSTEM_ACTOR, log_admin_action

logger = logging.getLogger(__name__)

# Arbitrary, fixed key for pg_advisory_xact_lock
RANK_ADVISORY_KEY = 7_240_001


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------
def challenge_points(session: Session, user_id: str) -> int:
    """Sum of points from challenges confirmed completed for *user_id*."""
    total = session.scalar(
        select(func.coalesce(func.sum(Challenge.points), 0))
        .select_from(UserChallenge)
        .join(Challenge, UserChallenge.challenge_id == Challenge.id)
        .where(UserChallenge.user_id == user_id, UserChallenge.completed.is_(True))
    )
    return int(total or 0)


def compute_score(
    session: Session, user_id: str, *, policy: str = POLICY_ON_COMPLETION
) -> int:
    score = coin_ledger.get_balance(session, user_id)
    if policy == POLICY_ON_COMPLETION:
        score += challenge_points(session, user_id)
    return score


def recalculate_positions(session: Session) -> int:
    """Re-rank every entry; returns how many positions changed."""
    entries = session.scalars(select(LeaderboardEntry)).all()
    positions = rerank(
        RankCandidate(
            user_id=e.user_id, score=e.total_score or 0, position=e.position, seq=e.id
        )
        for e in entries
    )
    changed = 0
    for entry in entries:
        new_position = positions[entry.user_id]
        if entry.position != new_position:
            entry.position = new_position
            changed += 1
    session.flush()
    logger.debug("Recalculated leaderboard positions (%d changed)", changed)
    return changed


def update_score(
    session: Session,
    user_id: str,
    *,
    policy: str = POLICY_ON_COMPLETION,
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
) -> LeaderboardEntry:
    """Recompute *user_id*'s score, re-rank the board and commit.

    This commits the caller's transaction while holding the re-rank lock,
    so it must be the last step of a write path.  The user's own entry is
    only written once the re-rank locks are held: a transaction never sits
    on an entry row lock while waiting for another writer's re-rank.
    """
    try:
        total = compute_score(session, user_id, policy=policy)

        with rank_lock.hold(bounded_timeout(lock_timeout)):
            if session.get_bind().dialect.name == "postgresql":
                session.execute(
                    text("SELECT pg_advisory_xact_lock(:key)"), {"key": RANK_ADVISORY_KEY}
                )
            entry = session.scalar(
                select(LeaderboardEntry).where(LeaderboardEntry.user_id == user_id)
            )
            if entry is None:
                entry = LeaderboardEntry(user_id=user_id, total_score=total)
                session.add(entry)
            else:
                entry.total_score = total
            session.flush()

            recalculate_positions(session)
            claim_commit()
            session.commit()
    except Exception:
        logger.exception("Failed to update score for user %s", user_id)
        raise

    logger.info("Updated score for user %s: %d points", user_id, total)
    return entry


# ---------------------------------------------------------------------------
# Read queries
# ---------------------------------------------------------------------------
def _entry_dict(entry: LeaderboardEntry, user: User | None) -> dict:
    return {
        "userId": entry.user_id,
        "name": user.name if user else None,
        "picture": user.picture if user else None,
        "totalScore": entry.total_score,
        "position": entry.position,
        "lastUpdated": entry.last_updated.isoformat() if entry.last_updated else None,
    }


def _page(session: Session, limit: int, offset: int) -> list[dict]:
    rows = session.execute(
        select(LeaderboardEntry, User)
        .join(User, LeaderboardEntry.user_id == User.id, isouter=True)
        .where(LeaderboardEntry.position.is_not(None))
        .order_by(LeaderboardEntry.position)
        .offset(offset)
        .limit(limit)
    ).all()
    return [_entry_dict(entry, user) for entry, user in rows]


def get_leaderboard(engine: Engine, limit: int = 10, offset: int = 0) -> list[dict]:
    """A page of the board, ordered by position."""
    with Session(engine) as session:
        return _page(session, limit, offset)


def get_position(engine: Engine, user_id: str) -> int | None:
    """1-based position, or ``None`` if the user isn't ranked yet."""
    with Session(engine) as session:
        return session.scalar(
            select(LeaderboardEntry.position).where(LeaderboardEntry.user_id == user_id)
        )


def score_in_session(session: Session, user_id: str) -> dict:
    entry = session.scalar(
        select(LeaderboardEntry).where(LeaderboardEntry.user_id == user_id)
    )
    if entry is None:
        return {"totalScore": 0, "position": None}
    return {"totalScore": entry.total_score, "position": entry.position}


def get_user_score(engine: Engine, user_id: str) -> dict:
    """``{totalScore, position}``; zero / ``None`` for unknown users."""
    with Session(engine) as session:
        return score_in_session(session, user_id)


def get_around_user(engine: Engine, user_id: str, range_: int = 5) -> list[dict]:
    """Entries within *range_* positions of *user_id*.

    An unranked user gets the top ``2 * range_`` entries instead.
    """
    with Session(engine) as session:
        position = session.scalar(
            select(LeaderboardEntry.position).where(LeaderboardEntry.user_id == user_id)
        )
        if position is None:
            return _page(session, range_ * 2, 0)
        offset, limit = context_window(position, range_)
        return _page(session, limit, offset)


def top_by_action(engine: Engine, kind: ActionType, limit: int = 10) -> list[dict]:
    """Users ranked by how many actions of *kind* they logged."""
    with Session(engine) as session:
        counts = action_ledger.count_by_kind(session, kind, limit)
        users = {
            u.id: u for u in session.scalars(
                select(User).where(User.id.in_([uid for uid, _ in counts]))
            ).all()
        } if counts else {}

    logger.debug("Fetched top performers for %s", kind.value)
    return [
        {
            "rank": rank,
            "userId": uid,
            "name": users[uid].name if uid in users else None,
            "actionType": kind.value,
            "count": cnt,
        }
        for rank, (uid, cnt) in enumerate(counts, start=1)
    ]


def get_stats(engine: Engine) -> dict:
    """``{totalUsers, averageScore, topScore}`` across all entries."""
    with Session(engine) as session:
        row = session.execute(
            select(
                func.count(LeaderboardEntry.id),
                func.avg(LeaderboardEntry.total_score),
                func.max(LeaderboardEntry.total_score),
            )
        ).one()
    total_users, average, top = row
    return {
        "totalUsers": total_users or 0,
        "averageScore": round(float(average or 0), 2),
        "topScore": top or 0,
    }


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------
def reset_leaderboard(
    engine: Engine,
    *,
    actor_id: str = SYSTEM_ACTOR,
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
) -> int:
    """Zero every score and clear every position (admin / testing)."""
    with rank_lock.hold(bounded_timeout(lock_timeout)):
        with get_session(engine) as session:
            if session.get_bind().dialect.name == "postgresql":
                session.execute(
                    text("SELECT pg_advisory_xact_lock(:key)"), {"key": RANK_ADVISORY_KEY}
                )
            result = session.execute(
                update(LeaderboardEntry).values(total_score=0, position=None)
            )
            touched = result.rowcount
            log_admin_action(
                session,
                actor_id=actor_id,
                action_type="RESET_LEADERBOARD",
                target_table="leaderboard_entries",
                after={"rows": touched},
            )
    logger.info("Leaderboard reset completed (%d entries)", touched)
    return touched
