"""
t4g.services.action_ledger — Append-only action journal
========================================================

Each logged SCAN/SHARE/GAME becomes one immutable ``user_actions`` row
with a server-assigned timestamp.  There is no update or delete path.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from t4g.database.models import ActionType, UserAction
from t4g.engine.events import RewardAction
from t4g.errors import NotFoundError
from t4g.services import directory_service

logger = logging.getLogger(__name__)


def record(session: Session, action: RewardAction) -> UserAction:
    """Append *action* for an existing user and return the new row."""
    if not directory_service.exists(session, action.user_id):
        raise NotFoundError(f"User with id {action.user_id} not found")

    row = UserAction(
        user_id=action.user_id,
        kind=action.kind.value,
        metadata_=action.metadata,
        occurred_at=action.occurred_at,
    )
    session.add(row)
    session.flush()
    logger.info("Action logged: %s for user %s", action.kind.value, action.user_id)
    return row


def recent_actions(session: Session, user_id: str, limit: int = 10) -> list[UserAction]:
    """Newest-first actions for *user_id*."""
    return list(
        session.scalars(
            select(UserAction)
            .where(UserAction.user_id == user_id)
            .order_by(UserAction.occurred_at.desc(), UserAction.id.desc())
            .limit(limit)
        ).all()
    )


def count_by_kind(
    session: Session, kind: ActionType, limit: int = 10
) -> list[tuple[str, int]]:
    """``(user_id, count)`` pairs for *kind*, highest count first.

    Ties go to whoever logged that kind first.
    """
    cnt = func.count(UserAction.id).label("cnt")
    rows = session.execute(
        select(UserAction.user_id, cnt)
        .where(UserAction.kind == kind.value)
        .group_by(UserAction.user_id)
        .order_by(cnt.desc(), func.min(UserAction.id))
        .limit(limit)
    ).all()
    return [(row.user_id, row.cnt) for row in rows]


def action_dict(action: UserAction) -> dict:
    return {
        "id": str(action.id),
        "userId": action.user_id,
        "type": action.kind,
        "metadata": action.metadata_ or {},
        "createdAt": action.occurred_at.isoformat() if action.occurred_at else None,
    }
