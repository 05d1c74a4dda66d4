"""
t4g.config — YAML Configuration Loader
=======================================

Reads ``config.yaml`` for the tunable, non-secret settings of the
rewards backend (coin award size, challenge-point policy, timeouts,
Auth0 tenant identities).  Secrets (``DATABASE_URL``, ``JWT_SECRET``)
stay in the environment / ``.env``.

Usage::

    from t4g.config import load_config

    cfg = load_config()              # ./config.yaml or $T4G_CONFIG
    print(cfg.coins_per_action)      # 1
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"

# Challenge bonus points are added to the leaderboard score only once the
# challenge has been marked completed for the user.
POLICY_ON_COMPLETION = "on_completion"
POLICY_IGNORE = "ignore"
CHALLENGE_POINT_POLICIES = frozenset({POLICY_ON_COMPLETION, POLICY_IGNORE})


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Auth0Tenant:
    """One Auth0 application (end-user side or organization side)."""

    domain: str = ""
    client_id: str = ""
    callback_url: str = ""
    frontend_url: str = ""


@dataclass(frozen=True, slots=True)
class T4GConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    app_name: str = "T4G Rewards"

    # Economy
    coins_per_action: int = 1
    challenge_points_policy: str = POLICY_ON_COMPLETION

    # Read paths
    recent_actions_limit: int = 10

    # Fail-fast bounds for storage calls and lock waits
    db_timeout_seconds: float = 10.0
    lock_timeout_seconds: float = 5.0

    # Identity providers
    auth0_user: Auth0Tenant = Auth0Tenant(
        callback_url="http://localhost:3000/api/auth/callback/user",
        frontend_url="https://t4g.fun",
    )
    auth0_tenant: Auth0Tenant = Auth0Tenant(
        callback_url="http://localhost:3000/api/auth/callback/tenant",
        frontend_url="https://t4g.space",
    )


def _auth0_section(raw: dict | None, fallback: Auth0Tenant) -> Auth0Tenant:
    if not raw:
        return fallback
    return Auth0Tenant(
        domain=str(raw.get("domain", fallback.domain)),
        client_id=str(raw.get("client_id", fallback.client_id)),
        callback_url=str(raw.get("callback_url", fallback.callback_url)),
        frontend_url=str(raw.get("frontend_url", fallback.frontend_url)),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path | None = None) -> T4GConfig:
    """Read *path* and return a :class:`T4GConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.  When omitted,
        ``$T4G_CONFIG`` is used, then ``config.yaml`` in the working
        directory.  A missing *default* file yields built-in defaults.

    Raises
    ------
    FileNotFoundError
        If an explicitly requested file doesn't exist.
    ValueError
        If a value is out of range.
    """
    explicit = path is not None or bool(os.getenv("T4G_CONFIG"))
    config_path = Path(path or os.getenv("T4G_CONFIG") or DEFAULT_CONFIG_PATH)

    if not config_path.exists():
        if explicit:
            raise FileNotFoundError(
                f"Configuration file not found: {config_path.resolve()}\n"
                "Hint: copy config.yaml.example → config.yaml and edit it."
            )
        logger.info("No %s found — using built-in defaults", config_path)
        return T4GConfig()

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    defaults = T4GConfig()
    auth0 = raw.get("auth0") or {}
    cfg = T4GConfig(
        app_name=raw.get("app_name", defaults.app_name),
        coins_per_action=int(raw.get("coins_per_action", defaults.coins_per_action)),
        challenge_points_policy=raw.get(
            "challenge_points_policy", defaults.challenge_points_policy
        ),
        recent_actions_limit=int(
            raw.get("recent_actions_limit", defaults.recent_actions_limit)
        ),
        db_timeout_seconds=float(
            raw.get("db_timeout_seconds", defaults.db_timeout_seconds)
        ),
        lock_timeout_seconds=float(
            raw.get("lock_timeout_seconds", defaults.lock_timeout_seconds)
        ),
        auth0_user=_auth0_section(auth0.get("user"), defaults.auth0_user),
        auth0_tenant=_auth0_section(auth0.get("tenant"), defaults.auth0_tenant),
    )

    if cfg.coins_per_action < 1:
        raise ValueError("coins_per_action must be at least 1")
    if cfg.challenge_points_policy not in CHALLENGE_POINT_POLICIES:
        raise ValueError(
            f"challenge_points_policy must be one of {sorted(CHALLENGE_POINT_POLICIES)}"
        )
    return cfg
