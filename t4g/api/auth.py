"""
t4g.api.auth — Auth0 login/logout redirects & token introspection
==================================================================

Two Auth0 applications sit in front of the API: ``user`` (end users,
t4g.fun) and ``tenant`` (organization staff, t4g.space).  This router
only builds the redirect URLs; the frontend completes the code exchange
and presents an HS256 identity token on every request.
"""

from __future__ import annotations

import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import RedirectResponse

from t4g.api.deps import IDENTITY_TYPES, Identity, get_config, get_current_identity
from t4g.config import Auth0Tenant, T4GConfig

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])


def _auth0_app(cfg: T4GConfig, kind: str) -> Auth0Tenant:
    """Return the Auth0 settings for *kind* or raise a clear error."""
    if kind not in IDENTITY_TYPES:
        raise HTTPException(404, f"Unknown identity type: {kind}")
    app = cfg.auth0_user if kind == "user" else cfg.auth0_tenant
    if not app.domain or not app.client_id:
        raise HTTPException(
            status_code=500,
            detail=f"Auth0 is not configured for {kind}: missing domain or client_id",
        )
    return app


def login_url(app: Auth0Tenant, return_to: str | None = None) -> str:
    params = {
        "response_type": "code",
        "client_id": app.client_id,
        "redirect_uri": app.callback_url,
        "scope": "openid profile email",
    }
    if return_to:
        params["state"] = return_to
    return f"https://{app.domain}/authorize?{urlencode(params)}"


def logout_url(app: Auth0Tenant) -> str:
    query = urlencode({"client_id": app.client_id, "returnTo": app.frontend_url})
    return f"https://{app.domain}/v2/logout?{query}"


@router.get("/{kind}/login")
async def login(
    kind: str,
    return_to: str | None = Query(None, alias="returnTo"),
    cfg: T4GConfig = Depends(get_config),
):
    """Redirect to the Auth0 consent screen for *kind*."""
    return RedirectResponse(login_url(_auth0_app(cfg, kind), return_to))


@router.get("/{kind}/logout")
async def logout(kind: str, cfg: T4GConfig = Depends(get_config)):
    """Redirect to Auth0's logout endpoint, then back to the frontend."""
    return RedirectResponse(logout_url(_auth0_app(cfg, kind)))


@router.get("/me")
async def me(identity: Identity = Depends(get_current_identity)):
    """Return the identity carried by the bearer token."""
    return {
        "id": identity.id,
        "email": identity.email,
        "name": identity.name,
        "type": identity.type,
    }
