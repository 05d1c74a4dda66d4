"""
t4g.database.engine — Database Connection & Async Helper
=========================================================

FastAPI routes run on an ``asyncio`` event loop while SQLAlchemy +
psycopg2 is **synchronous**.  Calling the DB directly from a coroutine
would stall every other request until the query returns.

The bridge:

    1. A request arrives (async world).
    2. The route calls ``await run_db(some_function, engine, arg1)``.
    3. ``run_db`` ships the synchronous function to a **thread pool** via
       ``asyncio.to_thread()`` and bounds the wait with a timeout.
    4. The DB work happens on a background thread — the event loop stays free.
    5. Timeouts and driver failures surface as :class:`DependencyError`.

A worker thread cannot be cancelled, so the timeout is also handed to
the worker as a :class:`Deadline`.  Write paths call
:func:`claim_commit` right before committing: past the deadline the
worker rolls back instead, and once a commit has been claimed the caller
waits for it rather than reporting a failure that did not happen.

Usage::

    from t4g.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()          # reads DATABASE_URL from .env
    init_db(engine)                      # CREATE TABLE IF NOT EXISTS …

    summary = await run_db(reward_service.get_summary, engine, user_id)
"""

from __future__ import annotations

import asyncio
import logging
import os
import threading
import time
from collections.abc import Callable
from contextlib import contextmanager
from contextvars import ContextVar
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from t4g.database.models import Base
from t4g.errors import DependencyError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

DEFAULT_DB_TIMEOUT_SECONDS = 10.0

_db_timeout: float = DEFAULT_DB_TIMEOUT_SECONDS


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine(timeout_seconds: float = DEFAULT_DB_TIMEOUT_SECONDS) -> Engine:
    """Build a SQLAlchemy :class:`Engine` from the ``DATABASE_URL`` env var.

    * ``pool_size=5`` — five persistent connections.
    * ``max_overflow=10`` — up to 10 extra connections under load.
    * ``pool_timeout`` — fail after *timeout_seconds* if no connection is free.
    * ``pool_recycle=3600`` — recycle connections after 1 hour.

    PostgreSQL connections also get a ``statement_timeout`` so a stuck
    query fails instead of holding row locks forever.

    Raises
    ------
    RuntimeError
        If ``DATABASE_URL`` is not set.
    """
    url = os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and set a valid PostgreSQL URL."
        )

    connect_args: dict = {}
    if url.startswith("postgresql"):
        connect_args = {
            "connect_timeout": int(timeout_seconds),
            "options": f"-c statement_timeout={int(timeout_seconds * 1000)}",
        }

    engine = create_engine(
        url,
        echo=False,        # Set True for SQL debugging
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,   # Reconnect stale connections automatically
        pool_timeout=timeout_seconds,
        pool_recycle=3600,
        connect_args=connect_args,
    )
    logger.info("Database engine created → %s", engine.url.host)
    return engine


def set_db_timeout(seconds: float) -> None:
    """Set the wait bound applied by :func:`run_db`."""
    global _db_timeout
    _db_timeout = seconds


# ---------------------------------------------------------------------------
# Deadlines
# ---------------------------------------------------------------------------
class Deadline:
    """The point after which a worker must not commit.

    Shared between :func:`run_db` (which may abandon the call) and the
    worker thread (which claims the commit).  Exactly one of the two wins.
    """

    def __init__(self, seconds: float) -> None:
        self.expires_at = time.monotonic() + seconds
        self._lock = threading.Lock()
        self._abandoned = False
        self._committing = False

    def remaining(self) -> float:
        return max(0.0, self.expires_at - time.monotonic())

    def claim_commit(self) -> None:
        """Reserve the right to commit; raises once the caller gave up."""
        with self._lock:
            if self._committing:
                return
            if self._abandoned or time.monotonic() >= self.expires_at:
                raise DependencyError("Storage request deadline exceeded")
            self._committing = True

    def abandon(self) -> bool:
        """Give up on the call.  False if a commit is already under way."""
        with self._lock:
            if self._committing:
                return False
            self._abandoned = True
            return True


_current_deadline: ContextVar[Deadline | None] = ContextVar("t4g_db_deadline", default=None)


def claim_commit() -> None:
    """Check the active :class:`Deadline`, if any, before a commit."""
    deadline = _current_deadline.get()
    if deadline is not None:
        deadline.claim_commit()


def bounded_timeout(timeout: float) -> float:
    """*timeout* capped by the time left on the active deadline."""
    deadline = _current_deadline.get()
    return timeout if deadline is None else min(timeout, deadline.remaining())


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """Create all tables defined in :mod:`t4g.database.models`.

    .. note::

        In production the schema is managed by Alembic (``alembic upgrade
        head``).  ``create_all`` is retained for dev/test environments.
    """
    Base.metadata.create_all(engine)
    logger.info("Database tables verified / created.")


# ---------------------------------------------------------------------------
# Session helper
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine):
    """Yield a :class:`Session` that auto-commits on success and rolls back
    on exception.

    Usage::

        with get_session(engine) as session:
            session.add(User(id="user_1", ...))
            # commit happens automatically on block exit
    """
    session = Session(engine, expire_on_commit=False)
    try:
        yield session
        claim_commit()
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Async bridge
# ---------------------------------------------------------------------------
async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Run a **synchronous** database function on a background thread.

    Every DB call in a route goes through this wrapper::

        result = await run_db(my_sync_db_function, engine, user_id)

    The wait is bounded by the configured timeout.  On expiry — or when
    the driver raises — a :class:`DependencyError` reaches the caller.
    The worker sees the same bound as a :class:`Deadline`; if it already
    claimed its commit when the wait expires, the commit's outcome is
    returned instead.

    Returns
    -------
    T
        Whatever *func* returns.
    """
    deadline = Deadline(_db_timeout)
    token = _current_deadline.set(deadline)
    try:
        # The task copies the current context, deadline included
        task = asyncio.ensure_future(asyncio.to_thread(func, *args, **kwargs))
    finally:
        _current_deadline.reset(token)

    try:
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout=_db_timeout)
        except TimeoutError:
            if not deadline.abandon():
                logger.warning("%s passed its deadline mid-commit; waiting for it", func.__name__)
                return await task
            task.add_done_callback(_discard_outcome)
            logger.error("%s timed out after %.1fs", func.__name__, _db_timeout)
            raise DependencyError("Storage request timed out") from None
    except SQLAlchemyError as exc:
        logger.exception("%s failed against the backing store", func.__name__)
        raise DependencyError("Storage request failed") from exc


def _discard_outcome(task: asyncio.Future) -> None:
    # The caller already got its error; the worker rolls back on its own
    if not task.cancelled() and task.exception() is not None:
        logger.info("Abandoned storage call ended with: %s", task.exception())
