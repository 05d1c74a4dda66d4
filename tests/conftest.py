"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of t4g.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively, but SQLAlchemy's JSON type works.
# We register a custom type compiler so SQLite renders JSONB as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from t4g.database.engine import init_db  # noqa: E402
from t4g.database.models import Tenant, TenantRole, User, UserRole  # noqa: E402

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent)."""
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all T4G tables.

    JSONB columns are transparently mapped to TEXT for SQLite compatibility.
    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used in ``run_db``).
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    return engine


@pytest.fixture
def file_db_engine(tmp_path) -> Engine:
    """A file-backed SQLite engine with one connection per thread.

    Every transaction starts with ``BEGIN IMMEDIATE`` so concurrent writers
    queue on SQLite's write lock instead of failing a lock upgrade.
    """
    from sqlalchemy import event

    engine = create_engine(
        f"sqlite:///{tmp_path / 't4g.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    @event.listens_for(engine, "connect")
    def _no_implicit_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a transactional session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


# ---------------------------------------------------------------------------
# Seed helpers (usable as plain functions)
# ---------------------------------------------------------------------------
def make_user(
    engine: Engine,
    user_id: str = "user_1",
    *,
    name: str | None = None,
    role: str = UserRole.USER,
    auth0_id: str | None = None,
    is_active: bool = True,
) -> str:
    """Insert a User row directly and return its id."""
    with Session(engine) as session:
        session.add(User(
            id=user_id,
            auth0_id=auth0_id or f"auth0|{user_id}",
            email=f"{user_id}@example.com",
            name=name or user_id.replace("_", " ").title(),
            role=str(role),
            is_active=is_active,
            preferences={},
        ))
        session.commit()
    return user_id


def make_tenant(
    engine: Engine,
    tenant_id: str = "tenant_1",
    *,
    organization_id: str = "org_1",
    role: str = TenantRole.TENANT_MANAGER,
    auth0_id: str | None = None,
) -> str:
    """Insert a Tenant row directly and return its id."""
    with Session(engine) as session:
        session.add(Tenant(
            id=tenant_id,
            auth0_id=auth0_id or f"auth0|{tenant_id}",
            email=f"{tenant_id}@example.org",
            name=tenant_id.replace("_", " ").title(),
            role=str(role),
            organization_id=organization_id,
            organization_name=organization_id.upper(),
            settings={},
        ))
        session.commit()
    return tenant_id


def make_token(sub: str, *, type: str = "user", **claims) -> str:
    """Create an identity JWT.  Usable as both a fixture helper and a factory."""
    import jwt

    from t4g.api.deps import JWT_ALGORITHM, JWT_SECRET

    payload = {"sub": sub, "email": f"{sub}@example.com", "name": sub, "type": type}
    payload.update(claims)
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(db_engine):
    """A FastAPI TestClient bound to the in-memory engine.

    Created without ``with`` so the lifespan (real engine warm-up) never runs.
    """
    from fastapi.testclient import TestClient

    from t4g.api.deps import get_config, get_engine
    from t4g.api.main import app
    from t4g.config import T4GConfig

    app.dependency_overrides[get_engine] = lambda: db_engine
    app.dependency_overrides[get_config] = lambda: T4GConfig()
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
