"""
t4g.services.eligibility_service — Window Counters & Eligibility Flags
=======================================================================

Persists the rolling monthly/weekly counters per user and the two flags
derived from them.  The rules themselves live in
:mod:`t4g.engine.eligibility`; this module only loads, locks and stores.

Per action (inside the orchestrator's per-user transaction):
  1. Load the counters row ``FOR UPDATE`` (create it lazily)
  2. Roll stale windows (idempotent marker comparison)
  3. Increment the matching counter in both windows
  4. Recompute and store both flags
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import Engine, select, update
from sqlalchemy.orm import Session

from t4g.database.engine import get_session
from t4g.database.models import ActionType, UserEligibility
from t4g.engine import eligibility
from t4g.engine.eligibility import EligibilityStatus
from t4g.engine.windows import month_start, utcnow, week_start
from t4g.services.admin_service import SYSTEM_ACTOR, log_admin_action

logger = logging.getLogger(__name__)


def update_eligibility(
    session: Session,
    user_id: str,
    kind: ActionType,
    *,
    now: datetime | None = None,
) -> UserEligibility:
    """Apply one action of *kind* to *user_id*'s counters."""
    now = now or utcnow()
    try:
        row = session.scalar(
            select(UserEligibility)
            .where(UserEligibility.user_id == user_id)
            .with_for_update()
        )
        if row is None:
            row = UserEligibility(user_id=user_id)
            session.add(row)

        was_gift, was_challenge = bool(row.gift_eligible), bool(row.challenge_eligible)

        monthly_reset, weekly_reset = eligibility.roll_windows(row, now)
        if monthly_reset or weekly_reset:
            logger.debug(
                "Rolled windows for %s (monthly=%s, weekly=%s)",
                user_id, monthly_reset, weekly_reset,
            )
        eligibility.increment(row, kind)
        gift, challenge = eligibility.refresh_flags(row)

        if gift and not was_gift:
            row.last_gift_eligibility = now
            logger.info("User %s is now eligible for gifts!", user_id)
        if challenge and not was_challenge:
            row.last_challenge_eligibility = now
            logger.info("User %s is now eligible for challenges!", user_id)

        session.flush()
    except Exception:
        logger.exception("Failed to update eligibility for user %s", user_id)
        raise

    return row


def get_status(
    engine: Engine, user_id: str, *, now: datetime | None = None
) -> EligibilityStatus:
    """Current eligibility for *user_id*; zeroed defaults when unknown."""
    with Session(engine) as session:
        return status_in_session(session, user_id, now=now)


def status_in_session(
    session: Session, user_id: str, *, now: datetime | None = None
) -> EligibilityStatus:
    row = session.get(UserEligibility, user_id)
    return eligibility.evaluate(row, now or utcnow())


# ---------------------------------------------------------------------------
# Batch resets — run by the scheduler at window boundaries
# ---------------------------------------------------------------------------
def reset_weekly_counters(
    engine: Engine, *, now: datetime | None = None, actor_id: str = SYSTEM_ACTOR
) -> int:
    """Zero every user's weekly counters and stamp the current week.

    Idempotent within a week.  Returns the number of rows touched.
    """
    current_week = week_start(now or utcnow())
    with get_session(engine) as session:
        result = session.execute(
            update(UserEligibility).values(
                weekly_scans=0,
                weekly_shares=0,
                weekly_games=0,
                last_reset_week=current_week,
                challenge_eligible=False,
            )
        )
        touched = result.rowcount
        log_admin_action(
            session,
            actor_id=actor_id,
            action_type="RESET_WEEKLY",
            target_table="user_eligibility",
            after={"week_start": current_week.isoformat(), "rows": touched},
        )
    logger.info("Weekly counters reset completed (%d users)", touched)
    return touched


def reset_monthly_counters(
    engine: Engine, *, now: datetime | None = None, actor_id: str = SYSTEM_ACTOR
) -> int:
    """Zero every user's monthly counters and stamp the current month.

    Idempotent within a month.  Returns the number of rows touched.
    """
    current_month = month_start(now or utcnow())
    with get_session(engine) as session:
        result = session.execute(
            update(UserEligibility).values(
                monthly_scans=0,
                monthly_shares=0,
                monthly_games=0,
                last_reset_month=current_month,
                gift_eligible=False,
            )
        )
        touched = result.rowcount
        log_admin_action(
            session,
            actor_id=actor_id,
            action_type="RESET_MONTHLY",
            target_table="user_eligibility",
            after={"month_start": current_month.isoformat(), "rows": touched},
        )
    logger.info("Monthly counters reset completed (%d users)", touched)
    return touched


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------
def gift_eligible_users(engine: Engine, *, now: datetime | None = None) -> list[str]:
    """Users whose gift flag is set for the current month."""
    current_month = month_start(now or utcnow())
    with Session(engine) as session:
        rows = session.scalars(
            select(UserEligibility.user_id)
            .where(
                UserEligibility.gift_eligible.is_(True),
                UserEligibility.last_reset_month == current_month,
            )
            .order_by(UserEligibility.user_id)
        ).all()
    logger.debug("Fetched %d gift-eligible users", len(rows))
    return list(rows)


def challenge_eligible_users(engine: Engine, *, now: datetime | None = None) -> list[str]:
    """Users whose challenge flag is set for the current week."""
    current_week = week_start(now or utcnow())
    with Session(engine) as session:
        rows = session.scalars(
            select(UserEligibility.user_id)
            .where(
                UserEligibility.challenge_eligible.is_(True),
                UserEligibility.last_reset_week == current_week,
            )
            .order_by(UserEligibility.user_id)
        ).all()
    logger.debug("Fetched %d challenge-eligible users", len(rows))
    return list(rows)
