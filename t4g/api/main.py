"""
t4g.api.main — FastAPI application entry point
===============================================

Run with::

    uvicorn t4g.api.main:app --reload --port 3000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from t4g.api.auth import router as auth_router  # noqa: E402
from t4g.api.deps import get_config, get_engine  # noqa: E402
from t4g.api.routes.rewards import router as rewards_router  # noqa: E402
from t4g.api.routes.tenants import router as tenants_router  # noqa: E402
from t4g.api.routes.users import router as users_router  # noqa: E402
from t4g.database.engine import set_db_timeout  # noqa: E402
from t4g.errors import RewardsError  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env with safe defaults.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — apply timeouts and warm the DB engine."""
    cfg = get_config()
    set_db_timeout(cfg.db_timeout_seconds)
    engine = get_engine()
    logger.info("%s API started — engine ready (%s)", cfg.app_name, engine.url.database)
    yield
    logger.info("%s API shutting down", cfg.app_name)


app = FastAPI(
    title="T4G Rewards API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------
@app.exception_handler(RewardsError)
async def rewards_error_handler(request: Request, exc: RewardsError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse({"detail": exc.message}, status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"{field}: {first.get('msg')}" if field else str(first.get("msg", "Invalid request"))
    return JSONResponse({"detail": message}, status_code=400)


# Mount routers
app.include_router(auth_router)
app.include_router(users_router)
app.include_router(tenants_router)
app.include_router(rewards_router)


@app.get("/health")
def health():
    return {"status": "ok"}
