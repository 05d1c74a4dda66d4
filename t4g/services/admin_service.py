"""
t4g.services.admin_service — Audit Log Helpers
===============================================

Every admin or tenant mutation (gift/challenge CRUD, challenge
completions, window resets, leaderboard resets) writes one ``admin_log``
row inside the same transaction as the change itself:

  1. Read "before" snapshot
  2. Apply change
  3. Write admin_log with before/after JSONB
  4. Commit
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from t4g.database.models import AdminLog

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


def row_to_dict(obj: Any) -> dict | None:
    """Convert a SQLAlchemy model instance to a JSON-serializable dict."""
    if obj is None:
        return None
    result = {}
    for col in obj.__table__.columns:
        val = getattr(obj, col.key if col.key != "metadata" else "metadata_", None)
        if isinstance(val, (datetime, date)):
            val = val.isoformat()
        result[col.name] = val
    return result


def log_admin_action(
    session: Session,
    *,
    actor_id: str,
    action_type: str,
    target_table: str,
    target_id: str | None = None,
    before: dict | None = None,
    after: dict | None = None,
    reason: str | None = None,
) -> None:
    """Insert a row into admin_log within the current transaction."""
    session.add(AdminLog(
        actor_id=actor_id,
        action_type=action_type,
        target_table=target_table,
        target_id=target_id,
        before_snapshot=before,
        after_snapshot=after,
        reason=reason,
    ))
    logger.info("Audit: %s %s %s by %s", action_type, target_table, target_id or "*", actor_id)


def get_audit_log(session: Session, *, target_table: str | None = None, limit: int = 50) -> list[AdminLog]:
    """Most recent audit rows, optionally for one table."""
    query = select(AdminLog).order_by(AdminLog.id.desc()).limit(limit)
    if target_table:
        query = query.where(AdminLog.target_table == target_table)
    return list(session.scalars(query).all())
