"""
t4g.constants — Shared Constants
=================================

Single source of truth for eligibility thresholds and the request bounds
enforced by the REST façade.  Import from here instead of duplicating in
services and routes.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Gift eligibility — monthly window
# ---------------------------------------------------------------------------
GIFT_MONTHLY_SCANS = 8
GIFT_MONTHLY_SHARES = 3
GIFT_MONTHLY_GAMES = 8

# ---------------------------------------------------------------------------
# Challenge eligibility — weekly window (weeks start on Sunday)
# ---------------------------------------------------------------------------
CHALLENGE_WEEKLY_SCANS = 3
CHALLENGE_WEEKLY_SHARES = 1
CHALLENGE_WEEKLY_GAMES = 3

# ---------------------------------------------------------------------------
# Request bounds
# ---------------------------------------------------------------------------
LEADERBOARD_DEFAULT_LIMIT = 10
LEADERBOARD_MAX_LIMIT = 100
CONTEXT_DEFAULT_RANGE = 5
CONTEXT_MAX_RANGE = 20
TOP_BY_ACTION_MAX_LIMIT = 50
