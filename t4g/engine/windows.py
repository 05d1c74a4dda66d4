"""
t4g.engine.windows — Eligibility window boundaries
===================================================

Monthly windows start on the 1st; weekly windows start on Sunday.  A
window reset is keyed off comparing a stored marker to the freshly
computed start — never off elapsed time — so the check is idempotent.
"""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta


def utcnow() -> datetime:
    return datetime.now(UTC)


def _as_date(moment: datetime | date) -> date:
    if isinstance(moment, datetime):
        if moment.tzinfo is not None:
            moment = moment.astimezone(UTC)
        return moment.date()
    return moment


def month_start(moment: datetime | date) -> date:
    """First day of the calendar month containing *moment*."""
    return _as_date(moment).replace(day=1)


def week_start(moment: datetime | date) -> date:
    """The Sunday on or before *moment*."""
    day = _as_date(moment)
    # date.weekday(): Monday=0 … Sunday=6
    return day - timedelta(days=(day.weekday() + 1) % 7)
