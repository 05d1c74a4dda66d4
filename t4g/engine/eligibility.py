"""
t4g.engine.eligibility — Window counters & eligibility rules
=============================================================

Pure rules, no DB I/O.  Works on any object shaped like
:class:`~t4g.database.models.UserEligibility` (the ORM row in production,
a plain namespace in tests).

Rules:
  giftEligible      = monthly scans ≥ 8 ∧ shares ≥ 3 ∧ games ≥ 8
  challengeEligible = weekly  scans ≥ 3 ∧ shares ≥ 1 ∧ games ≥ 3

Flags are always derived from the counters; nothing sets them directly.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from t4g.constants import (
    CHALLENGE_WEEKLY_GAMES,
    CHALLENGE_WEEKLY_SCANS,
    CHALLENGE_WEEKLY_SHARES,
    GIFT_MONTHLY_GAMES,
    GIFT_MONTHLY_SCANS,
    GIFT_MONTHLY_SHARES,
)
from t4g.database.models import ActionType
from t4g.engine.windows import month_start, week_start

# ActionType → counter suffix (monthly_<suffix>, weekly_<suffix>)
KIND_COUNTER: dict[ActionType, str] = {
    ActionType.SCAN: "scans",
    ActionType.SHARE: "shares",
    ActionType.GAME: "games",
}


@dataclass(frozen=True, slots=True)
class Thresholds:
    scans: int
    shares: int
    games: int


GIFT_THRESHOLDS = Thresholds(GIFT_MONTHLY_SCANS, GIFT_MONTHLY_SHARES, GIFT_MONTHLY_GAMES)
CHALLENGE_THRESHOLDS = Thresholds(
    CHALLENGE_WEEKLY_SCANS, CHALLENGE_WEEKLY_SHARES, CHALLENGE_WEEKLY_GAMES
)


@dataclass(frozen=True, slots=True)
class WindowCounts:
    scans: int = 0
    shares: int = 0
    games: int = 0

    def meets(self, thresholds: Thresholds) -> bool:
        return (
            self.scans >= thresholds.scans
            and self.shares >= thresholds.shares
            and self.games >= thresholds.games
        )

    def progress(self, thresholds: Thresholds) -> dict[str, int]:
        return {
            "scans": self.scans,
            "shares": self.shares,
            "games": self.games,
            "requiredScans": thresholds.scans,
            "requiredShares": thresholds.shares,
            "requiredGames": thresholds.games,
        }


@dataclass(frozen=True, slots=True)
class EligibilityStatus:
    """Both flags plus per-window progress, as returned to callers."""

    gift_eligible: bool
    challenge_eligible: bool
    monthly: WindowCounts
    weekly: WindowCounts

    def to_dict(self) -> dict[str, Any]:
        return {
            "giftEligible": self.gift_eligible,
            "challengeEligible": self.challenge_eligible,
            "monthlyProgress": self.monthly.progress(GIFT_THRESHOLDS),
            "weeklyProgress": self.weekly.progress(CHALLENGE_THRESHOLDS),
        }


def _counts(row: Any, prefix: str) -> WindowCounts:
    return WindowCounts(
        scans=getattr(row, f"{prefix}_scans") or 0,
        shares=getattr(row, f"{prefix}_shares") or 0,
        games=getattr(row, f"{prefix}_games") or 0,
    )


def _zero(row: Any, prefix: str) -> None:
    for suffix in KIND_COUNTER.values():
        setattr(row, f"{prefix}_{suffix}", 0)


# ---------------------------------------------------------------------------
# Window handling
# ---------------------------------------------------------------------------
def roll_windows(row: Any, now: datetime | date) -> tuple[bool, bool]:
    """Zero stale windows on *row* and stamp the fresh markers.

    Returns ``(monthly_reset, weekly_reset)``.  Calling it again within the
    same window is a no-op, so it is safe to run before every increment.
    """
    current_month = month_start(now)
    current_week = week_start(now)

    monthly_reset = row.last_reset_month != current_month
    if monthly_reset:
        _zero(row, "monthly")
        row.last_reset_month = current_month

    weekly_reset = row.last_reset_week != current_week
    if weekly_reset:
        _zero(row, "weekly")
        row.last_reset_week = current_week

    return monthly_reset, weekly_reset


def increment(row: Any, kind: ActionType) -> None:
    """Add one to the counter for *kind* in both windows."""
    suffix = KIND_COUNTER[kind]
    for prefix in ("monthly", "weekly"):
        field_name = f"{prefix}_{suffix}"
        setattr(row, field_name, (getattr(row, field_name) or 0) + 1)


def refresh_flags(row: Any) -> tuple[bool, bool]:
    """Recompute and store both flags from the counters on *row*."""
    row.gift_eligible = _counts(row, "monthly").meets(GIFT_THRESHOLDS)
    row.challenge_eligible = _counts(row, "weekly").meets(CHALLENGE_THRESHOLDS)
    return row.gift_eligible, row.challenge_eligible


def effective_counts(row: Any | None, now: datetime | date) -> tuple[WindowCounts, WindowCounts]:
    """Read-only view of ``(monthly, weekly)`` counts as of *now*.

    A window whose stored marker is not the current one reads as zero.
    """
    if row is None:
        return WindowCounts(), WindowCounts()
    monthly = (
        _counts(row, "monthly")
        if row.last_reset_month == month_start(now)
        else WindowCounts()
    )
    weekly = (
        _counts(row, "weekly")
        if row.last_reset_week == week_start(now)
        else WindowCounts()
    )
    return monthly, weekly


def evaluate(row: Any | None, now: datetime | date) -> EligibilityStatus:
    """Build the :class:`EligibilityStatus` for *row* (``None`` → zeroed)."""
    monthly, weekly = effective_counts(row, now)
    return EligibilityStatus(
        gift_eligible=monthly.meets(GIFT_THRESHOLDS),
        challenge_eligible=weekly.meets(CHALLENGE_THRESHOLDS),
        monthly=monthly,
        weekly=weekly,
    )
