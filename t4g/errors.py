"""
t4g.errors — Error Taxonomy
============================

Every failure the services raise on purpose derives from
:class:`RewardsError` and carries the HTTP status the API surfaces for
it.  The FastAPI app installs one handler for the whole hierarchy, so
services never import FastAPI.
"""

from __future__ import annotations


class RewardsError(Exception):
    """Base class for expected, caller-visible failures."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(RewardsError):
    """Bad input shape or range.  Raised before any mutation."""

    status_code = 400


class PermissionDeniedError(RewardsError):
    """Role or ownership check failed."""

    status_code = 403


class NotFoundError(RewardsError):
    """Unknown user, tenant, gift or challenge."""

    status_code = 404


class ConflictError(RewardsError):
    """Duplicate create."""

    status_code = 409


class DependencyError(RewardsError):
    """Storage or identity-provider failure, including timeouts.

    Not retried at this layer.
    """

    status_code = 500
