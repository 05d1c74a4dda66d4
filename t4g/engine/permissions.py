"""
t4g.engine.permissions — Role → capability resolution
======================================================

Each role maps to an explicit, frozen capability set.  Checks go through
:func:`has_capability`; nothing compares permission strings directly.
"""

from __future__ import annotations

import enum

from t4g.database.models import TenantRole, UserRole


class Capability(enum.StrEnum):
    READ_PROFILE = "read_profile"
    UPDATE_PROFILE = "update_profile"
    MODERATE_CONTENT = "moderate_content"
    MANAGE_USERS = "manage_users"
    MANAGE_REWARDS = "manage_rewards"
    VIEW_ANALYTICS = "view_analytics"
    MANAGE_GIFTS = "manage_gifts"
    MANAGE_CHALLENGES = "manage_challenges"
    MANAGE_SETTINGS = "manage_settings"


_USER_BASE = frozenset({Capability.READ_PROFILE, Capability.UPDATE_PROFILE})

ROLE_CAPABILITIES: dict[str, frozenset[Capability]] = {
    UserRole.USER: _USER_BASE,
    UserRole.MODERATOR: _USER_BASE | {Capability.MODERATE_CONTENT},
    UserRole.ADMIN: frozenset(Capability),
    TenantRole.TENANT_USER: frozenset({Capability.VIEW_ANALYTICS}),
    TenantRole.TENANT_MANAGER: frozenset({
        Capability.VIEW_ANALYTICS,
        Capability.MANAGE_GIFTS,
        Capability.MANAGE_CHALLENGES,
    }),
    TenantRole.TENANT_ADMIN: frozenset({
        Capability.VIEW_ANALYTICS,
        Capability.MANAGE_GIFTS,
        Capability.MANAGE_CHALLENGES,
        Capability.MANAGE_USERS,
        Capability.MANAGE_SETTINGS,
        Capability.MANAGE_REWARDS,
    }),
}


def capabilities_for(role: str | None) -> frozenset[Capability]:
    """Capabilities granted to *role*; unknown roles get none."""
    if role is None:
        return frozenset()
    return ROLE_CAPABILITIES.get(role, frozenset())


def has_capability(role: str | None, capability: Capability) -> bool:
    return capability in capabilities_for(role)
