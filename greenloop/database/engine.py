"""
greenloop.database.engine — Database Connection, Unit of Work & Async Helper
=============================================================================

The engine never reaches for an ambient, process-wide connection.  Callers
build one :class:`~sqlalchemy.Engine` at startup and hand it to
:class:`~greenloop.services.gamification.GamificationEngine` (or to the
service functions directly).

SQLAlchemy + psycopg2 is **synchronous**.  Request workers running on an
event loop go through :func:`run_db`, which ships the call to a thread pool
via ``asyncio.to_thread()`` so the loop stays free while a ledger apply
waits on a row lock.

Usage::

    from greenloop.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()          # reads DATABASE_URL from .env
    init_db(engine)                      # CREATE TABLE IF NOT EXISTS …

    # Inside a coroutine:
    result = await run_db(gamification.compute_and_apply_points, action_id)
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from greenloop.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

# PostgreSQL SQLSTATEs for lock_not_available and deadlock_detected
_PG_LOCK_CODES = frozenset({"55P03", "40P01"})


# ---------------------------------------------------------------------------
# SQLite transaction handling
# ---------------------------------------------------------------------------
def _use_immediate_transactions(engine: Engine) -> None:
    """Make every SQLite transaction take the write lock up front.

    pysqlite defers BEGIN until the first DML statement, which lets two
    writers each hold a SHARED lock and then deadlock on upgrade.  With
    ``BEGIN IMMEDIATE`` a second writer waits on the busy timeout instead,
    which is what the per-user ledger lock relies on.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine(url: str | None = None) -> Engine:
    """Build a SQLAlchemy :class:`Engine` from *url* or ``DATABASE_URL``.

    PostgreSQL pools are sized for concurrent request workers:

    * ``pool_size=10`` — ten persistent connections.
    * ``max_overflow=20`` — up to 20 extra connections under load.
    * ``pool_timeout=10`` — fail after 10 s if no connection is available.
    * ``pool_recycle=3600`` — recycle connections after 1 hour.

    SQLite URLs (local development) get a 5 s busy timeout instead, so
    concurrent writers queue on the database lock rather than failing.

    Raises
    ------
    RuntimeError
        If neither *url* nor ``DATABASE_URL`` is set.
    """
    url = url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and set a valid PostgreSQL URL."
        )

    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            echo=False,
            connect_args={"check_same_thread": False, "timeout": 5.0},
        )
        _use_immediate_transactions(engine)
    else:
        engine = create_engine(
            url,
            echo=False,        # Set True for SQL debugging
            pool_size=10,
            max_overflow=20,
            pool_pre_ping=True,   # Reconnect stale connections automatically
            pool_timeout=10,
            pool_recycle=3600,
        )
    logger.info("Database engine created → %s", engine.url.render_as_string())
    return engine


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """Create all tables defined in :mod:`greenloop.database.models`.

    Safe to call on every startup (``CREATE TABLE IF NOT EXISTS`` under the
    hood).  Default gameplay settings are seeded afterwards; seeding only
    inserts keys that don't already exist.

    .. note::

        In production the schema is managed by Alembic (``alembic upgrade
        head``).  ``create_all`` is kept for dev/test environments.
    """
    Base.metadata.create_all(engine)
    logger.info("Database tables verified / created.")

    from greenloop.database.seed import seed_default_settings

    seed_default_settings(engine)


# ---------------------------------------------------------------------------
# Unit of work
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine, **kwargs) -> Iterator[Session]:
    """Yield a :class:`Session` that commits on success and rolls back on
    exception.

    ``close()`` in the ``finally`` block also discards an open transaction
    when the block is interrupted by a ``BaseException`` (task cancellation,
    ``KeyboardInterrupt``), so a half-applied unit never commits.

    Usage::

        with get_session(engine) as session:
            session.add(User(email="ada@example.com", display_name="Ada"))
            # commit happens automatically on block exit
    """
    session = Session(engine, **kwargs)
    try:
        yield session
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

    Under the hood it calls :func:`asyncio.to_thread`, which schedules
    *func* on the default ``ThreadPoolExecutor`` so the event loop is never
    blocked by a lock wait.

    Parameters
    ----------
    func:
        Any sync callable (typically an engine operation).
    *args, **kwargs:
        Forwarded to *func*.
    """
    return await asyncio.to_thread(func, *args, **kwargs)


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------
def is_lock_timeout(exc: OperationalError) -> bool:
    """True if *exc* means a lock could not be acquired in time."""
    orig = getattr(exc, "orig", None)
    if getattr(orig, "pgcode", None) in _PG_LOCK_CODES:
        return True
    return "database is locked" in str(orig or exc).lower()
