"""
t4g.engine.events — RewardAction envelope
==========================================

Every incoming action is normalized into a :class:`RewardAction` before
the orchestrator drives it through the ledgers.  Parsing happens here so
a malformed request is rejected before anything is written.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from t4g.database.models import ActionType
from t4g.errors import ValidationError

__all__ = ["ActionType", "RewardAction", "parse_action_type", "validate_user_id"]


def validate_user_id(user_id: Any) -> str:
    """Return *user_id* stripped, or raise if it isn't a non-empty string."""
    if not isinstance(user_id, str) or not user_id.strip():
        raise ValidationError("Valid userId is required")
    return user_id.strip()


def parse_action_type(value: Any) -> ActionType:
    """Map ``"SCAN"``/``"SHARE"``/``"GAME"`` to :class:`ActionType`."""
    if isinstance(value, ActionType):
        return value
    try:
        return ActionType(value)
    except ValueError:
        raise ValidationError("Invalid action type") from None


@dataclass(frozen=True, slots=True)
class RewardAction:
    """A validated action, ready for the orchestrator."""

    user_id: str
    kind: ActionType
    metadata: dict = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def build(
        cls,
        user_id: Any,
        kind: Any,
        metadata: dict | None = None,
        *,
        now: datetime | None = None,
    ) -> RewardAction:
        """Validate raw request values and build the envelope."""
        uid = validate_user_id(user_id)
        action_type = parse_action_type(kind)
        if metadata is not None and not isinstance(metadata, dict):
            raise ValidationError("metadata must be an object")
        return cls(
            user_id=uid,
            kind=action_type,
            metadata=dict(metadata or {}),
            occurred_at=now or datetime.now(UTC),
        )
