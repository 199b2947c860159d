"""
greenloop.engine.cache — In-Memory Config Cache
================================================

Settings and active badge definitions are cached in memory so scoring and
badge evaluation don't hit the ``settings`` / ``badges`` tables on every
action.  Writers in :mod:`greenloop.services.settings_service` call
:meth:`ConfigCache.handle_notify` after commit to reload the affected
partition.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from greenloop.database.models import Badge, Setting
from greenloop.engine.points import DEFAULT_POLICY, PointsPolicy
from greenloop.engine.records import BadgeRecord
from greenloop.errors import ValidationError

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


class ConfigCache:
    """Thread-safe in-memory cache for settings and badge definitions.

    Usage:
        cache = ConfigCache(engine)
        cache.load_all()

        policy = cache.get_points_policy()
        badges = cache.get_active_badges()
        auto = cache.get_bool("badges.auto_award", default=True)
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._lock = threading.Lock()

        # key → parsed JSON value
        self._settings: dict[str, Any] = {}
        # badge_id → BadgeRecord (active badges only)
        self._badges: dict[str, BadgeRecord] = {}
        self._policy: PointsPolicy = DEFAULT_POLICY

    # -------------------------------------------------------------------
    # Cache loading
    # -------------------------------------------------------------------
    def load_all(self) -> None:
        """Load all config caches from DB. Call on startup."""
        self._load_settings()
        self._load_badges()
        logger.info(
            "ConfigCache loaded: %d settings, %d active badges",
            len(self._settings), len(self._badges),
        )

    def _load_settings(self) -> None:
        with Session(self._engine) as session:
            rows = session.scalars(select(Setting)).all()
            parsed: dict[str, Any] = {}
            for row in rows:
                try:
                    parsed[row.key] = json.loads(row.value_json)
                except (json.JSONDecodeError, TypeError):
                    parsed[row.key] = row.value_json

        policy = self._build_policy(parsed)
        with self._lock:
            self._settings = parsed
            self._policy = policy

    def _load_badges(self) -> None:
        with Session(self._engine) as session:
            rows = session.scalars(
                select(Badge).where(Badge.is_active.is_(True)).order_by(Badge.id)
            ).all()
            badges = {row.id: BadgeRecord.from_row(row) for row in rows}
        with self._lock:
            self._badges = badges

    @staticmethod
    def _build_policy(settings: dict[str, Any]) -> PointsPolicy:
        """Points policy from raw settings, falling back to defaults if invalid."""
        flat_base = settings.get("points.flat_base", DEFAULT_POLICY.flat_base)
        tiers = settings.get("points.streak_bonus_tiers")
        if tiers is None:
            tiers = [(t.min_streak, t.bonus) for t in DEFAULT_POLICY.tiers]
        try:
            return PointsPolicy.build(flat_base, tiers)
        except ValidationError:
            logger.exception("Invalid points settings; using defaults")
            return DEFAULT_POLICY

    # -------------------------------------------------------------------
    # Cache reads (thread-safe)
    # -------------------------------------------------------------------
    def get_points_policy(self) -> PointsPolicy:
        with self._lock:
            return self._policy

    def get_active_badges(self) -> list[BadgeRecord]:
        with self._lock:
            return list(self._badges.values())

    def get_badge(self, badge_id: str) -> BadgeRecord | None:
        with self._lock:
            return self._badges.get(badge_id)

    # -------------------------------------------------------------------
    # Typed setting accessors (thread-safe)
    # -------------------------------------------------------------------
    def get_setting(self, key: str, default: Any = None) -> Any:
        """Return the parsed JSON value for *key*, or *default*."""
        with self._lock:
            return self._settings.get(key, default)

    def get_int(self, key: str, default: int = 0) -> int:
        val = self.get_setting(key)
        if val is None:
            return default
        try:
            return int(val)
        except (TypeError, ValueError):
            return default

    def get_float(self, key: str, default: float = 0.0) -> float:
        val = self.get_setting(key)
        if val is None:
            return default
        try:
            return float(val)
        except (TypeError, ValueError):
            return default

    def get_bool(self, key: str, default: bool = False) -> bool:
        val = self.get_setting(key)
        if val is None:
            return default
        return bool(val)

    # -------------------------------------------------------------------
    # Invalidation
    # -------------------------------------------------------------------
    def handle_notify(self, table_name: str) -> None:
        """Reload the cache partition backing *table_name*."""
        table_name = table_name.strip().lower()
        logger.info("Config cache invalidation for table: %s", table_name)

        if table_name == "settings":
            self._load_settings()
        elif table_name == "badges":
            self._load_badges()
        else:
            logger.warning("Unknown table in invalidation: %s; ignoring", table_name)
