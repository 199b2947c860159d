"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from sqlalchemy import Engine, create_engine

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively, but SQLAlchemy's JSON type works.
# We register a custom type compiler so SQLite renders JSONB as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from greenloop.config import GreenloopConfig
from greenloop.database.engine import create_db_engine
from greenloop.database.models import (
    Action,
    Badge,
    Base,
    Category,
    User,
    VerificationStatus,
)
from greenloop.database.seed import seed_default_settings
from greenloop.engine.cache import ConfigCache

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


# ---------------------------------------------------------------------------
# Engines
# ---------------------------------------------------------------------------
@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine with all GreenLoop tables and default settings.

    Uses StaticPool so every session shares the same in-memory database.
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    seed_default_settings(engine)
    return engine


@pytest.fixture
def file_db_engine(tmp_path) -> Engine:
    """File-backed SQLite engine for multi-threaded tests.

    Built through :func:`create_db_engine`, so each thread gets its own
    connection and transactions take the write lock up front.
    """
    engine = create_db_engine(f"sqlite:///{tmp_path / 'greenloop.db'}")
    Base.metadata.create_all(engine)
    seed_default_settings(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


# ---------------------------------------------------------------------------
# Config & cache
# ---------------------------------------------------------------------------
@pytest.fixture
def config() -> GreenloopConfig:
    return GreenloopConfig(organization_name="Test Org", ledger_lock_timeout_ms=2000)


@pytest.fixture
def cache(db_engine) -> ConfigCache:
    c = ConfigCache(db_engine)
    c.load_all()
    return c


# ---------------------------------------------------------------------------
# Row factories
# ---------------------------------------------------------------------------
class Factory:
    """Inserts committed rows and returns their ids."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._n = 0

    def _next(self) -> int:
        self._n += 1
        return self._n

    def user(self, *, display_name: str | None = None, is_active: bool = True,
             user_id: str | None = None) -> str:
        n = self._next()
        with Session(self.engine) as session:
            user = User(
                email=f"user{n}@example.com",
                display_name=display_name or f"User {n}",
                is_active=is_active,
            )
            if user_id is not None:
                user.id = user_id
            session.add(user)
            session.commit()
            return user.id

    def category(self, *, multiplier: float = 1.0, is_active: bool = True,
                 name: str | None = None) -> str:
        n = self._next()
        with Session(self.engine) as session:
            category = Category(
                name=name or f"Category {n}",
                points_multiplier=multiplier,
                is_active=is_active,
            )
            session.add(category)
            session.commit()
            return category.id

    def action(
        self,
        user_id: str,
        category_id: str,
        *,
        impact_value: float | None = None,
        impact_unit: str | None = None,
        action_date: datetime | None = None,
        status: str = VerificationStatus.VERIFIED.value,
    ) -> str:
        n = self._next()
        with Session(self.engine) as session:
            action = Action(
                user_id=user_id,
                category_id=category_id,
                title=f"Action {n}",
                impact_value=impact_value,
                impact_unit=impact_unit,
                action_date=action_date or datetime(2026, 3, 2, 12, 0, tzinfo=UTC),
                verification_status=status,
            )
            session.add(action)
            session.commit()
            return action.id

    def badge(
        self,
        criteria_type: str,
        criteria_value: int,
        *,
        category_id: str | None = None,
        is_active: bool = True,
        rarity: str = "common",
        name: str | None = None,
    ) -> str:
        n = self._next()
        with Session(self.engine) as session:
            badge = Badge(
                name=name or f"Badge {n}",
                criteria_type=criteria_type,
                criteria_value=criteria_value,
                category_id=category_id,
                is_active=is_active,
                rarity=rarity,
            )
            session.add(badge)
            session.commit()
            return badge.id


@pytest.fixture
def factory(db_engine) -> Factory:
    return Factory(db_engine)


@pytest.fixture
def file_factory(file_db_engine) -> Factory:
    return Factory(file_db_engine)
