"""
greenloop.services.settings_service — Settings CRUD
====================================================

Typed read/write access to the ``settings`` table.  Every mutation ends
with :meth:`~greenloop.engine.cache.ConfigCache.handle_notify` so the
in-memory cache picks up the new values.  Points-policy keys are
validated before they are written.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from greenloop.database.models import AdminLog, Setting
from greenloop.engine.points import DEFAULT_POLICY, PointsPolicy

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from greenloop.engine.cache import ConfigCache

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def get_setting(engine: Engine, key: str) -> dict | None:
    """Fetch a single setting by key, returned as a plain dict."""
    with Session(engine) as session:
        row = session.get(Setting, key)
        if row is None:
            return None
        return {
            "key": row.key,
            "value": _decode(row.value_json),
            "category": row.category,
            "description": row.description,
        }


def get_all_settings(engine: Engine) -> list[dict]:
    """Every setting, ordered by category then key."""
    with Session(engine) as session:
        rows = session.scalars(
            select(Setting).order_by(Setting.category, Setting.key)
        ).all()
        return [
            {
                "key": r.key,
                "value": _decode(r.value_json),
                "category": r.category,
                "description": r.description,
            }
            for r in rows
        ]


def _decode(value_json: str | None) -> Any:
    try:
        return json.loads(value_json)
    except (json.JSONDecodeError, TypeError):
        return value_json


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def _validate(key: str, value: Any, pending: dict[str, Any]) -> None:
    """Reject values that would leave the points policy unusable.

    *pending* holds other keys written in the same batch so a base and its
    tiers can change together.
    """
    if key == "points.flat_base":
        tiers = pending.get(
            "points.streak_bonus_tiers",
            [(t.min_streak, t.bonus) for t in DEFAULT_POLICY.tiers],
        )
        PointsPolicy.build(value, tiers)
    elif key == "points.streak_bonus_tiers":
        PointsPolicy.build(pending.get("points.flat_base", DEFAULT_POLICY.flat_base), value)


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

def upsert_setting(
    engine: Engine,
    *,
    key: str,
    value: Any,
    category: str = "general",
    description: str | None = None,
    actor_id: str | None = None,
    cache: ConfigCache | None = None,
) -> dict:
    """Insert or update a single setting and refresh *cache*."""
    bulk_upsert(
        engine,
        [{"key": key, "value": value, "category": category, "description": description}],
        actor_id=actor_id,
        cache=cache,
    )
    return get_setting(engine, key)


def bulk_upsert(
    engine: Engine,
    settings: list[dict],
    *,
    actor_id: str | None = None,
    cache: ConfigCache | None = None,
) -> int:
    """Upsert many settings at once.

    Each dict should have at least ``key`` and ``value``.
    Optional: ``category``, ``description``.

    When *actor_id* is provided, each change is individually recorded in the
    ``admin_log`` table with before/after snapshots.

    Raises
    ------
    ValidationError
        A points-policy value is invalid.  Nothing is written.

    Returns the number of rows touched.
    """
    count = 0
    with Session(engine) as session:
        current = {
            r.key: _decode(r.value_json)
            for r in session.scalars(
                select(Setting).where(Setting.key.in_(
                    ["points.flat_base", "points.streak_bonus_tiers"]
                ))
            ).all()
        }
        pending = {**current, **{item["key"]: item["value"] for item in settings}}
        for item in settings:
            _validate(item["key"], item["value"], pending)

        for item in settings:
            key = item["key"]
            value_json = json.dumps(item["value"])
            existing = session.get(Setting, key)

            before_snapshot: dict | None = None
            if existing and actor_id is not None:
                before_snapshot = {
                    "key": existing.key,
                    "value": _decode(existing.value_json),
                    "category": existing.category,
                    "description": existing.description,
                }

            if existing:
                existing.value_json = value_json
                if item.get("category"):
                    existing.category = item["category"]
                if item.get("description") is not None:
                    existing.description = item["description"]
            else:
                existing = Setting(
                    key=key,
                    value_json=value_json,
                    category=item.get("category") or "general",
                    description=item.get("description"),
                )
                session.add(existing)

            if actor_id is not None:
                after_snapshot = {
                    "key": key,
                    "value": item["value"],
                    "category": existing.category,
                    "description": existing.description,
                }
                # Only log if something actually changed
                if before_snapshot != after_snapshot:
                    session.add(AdminLog(
                        actor_id=actor_id,
                        action_type="UPDATE" if before_snapshot else "CREATE",
                        target_table="settings",
                        target_id=key,
                        before_snapshot=before_snapshot,
                        after_snapshot=after_snapshot,
                    ))

            count += 1
        session.commit()

    logger.info("Updated %d settings", count)
    if cache is not None:
        cache.handle_notify("settings")
    return count
