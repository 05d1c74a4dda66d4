"""
T4G — Rewards Backend for Users and Organizations
==================================================
Ingests user actions (scans, shares, game plays), converts them into
coins, tracks rolling weekly/monthly eligibility for gifts and
challenges, and keeps a ranked leaderboard.  Organizations (tenants)
manage the gifts and challenges their users compete for.

Package layout::

    t4g/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Thresholds, page bounds
    ├── errors.py          # Error taxonomy (→ HTTP status)
    ├── jobs.py            # Cron entry for window resets
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # All ORM models
    ├── engine/
    │   ├── events.py      # ActionType + RewardAction envelope
    │   ├── windows.py     # Month / Sunday-week window starts
    │   ├── eligibility.py # Threshold checks + progress payloads
    │   ├── ranking.py     # Stable leaderboard re-rank
    │   ├── locks.py       # Per-user and re-rank locks
    │   └── permissions.py # Role → capability resolution
    ├── services/
    │   ├── action_ledger.py       # Append-only action journal
    │   ├── coin_ledger.py         # Coin balances
    │   ├── eligibility_service.py # Window counters + flags
    │   ├── leaderboard_service.py # Scores, positions, queries
    │   ├── reward_service.py      # Orchestrator façade
    │   ├── directory_service.py   # User / tenant profiles
    │   ├── tenant_service.py      # Gifts, challenges, analytics
    │   └── admin_service.py       # Audit log helpers
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # Token verification + DI
        ├── auth.py        # Auth0 redirects, /auth/me
        └── routes/        # Rewards, users, tenants
"""

__version__ = "0.1.0"
