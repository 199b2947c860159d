"""
greenloop.database.seed — Default Settings Seeder
==================================================

Baseline gameplay settings seeded on first startup so scoring works out of
the box.

Idempotent — only inserts keys that don't already exist.  Settings edited
later by admins are never overwritten.
"""

from __future__ import annotations

import json
import logging

from sqlalchemy import Engine
from sqlalchemy.orm import Session

from greenloop.constants import DEFAULT_FLAT_BASE_POINTS, DEFAULT_STREAK_BONUS_TIERS
from greenloop.database.models import Setting

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Default settings catalogue
# ---------------------------------------------------------------------------
DEFAULT_SETTINGS: dict[str, tuple[object, str, str]] = {
    "points.flat_base": (
        DEFAULT_FLAT_BASE_POINTS, "points",
        "Points for a verified action that reports no impact value",
    ),
    "points.streak_bonus_tiers": (
        [{"min_streak": days, "bonus": bonus} for days, bonus in DEFAULT_STREAK_BONUS_TIERS],
        "points",
        "Streak bonus tiers applied to base points (rounded down)",
    ),
    "badges.auto_award": (
        True, "badges", "Evaluate and award badges after every scored action",
    ),
}
"""Each entry maps ``key`` → ``(default_value, category, description)``."""


# ---------------------------------------------------------------------------
# Seeder
# ---------------------------------------------------------------------------
def seed_default_settings(engine: Engine) -> None:
    """Insert default settings that don't yet exist.

    Runs on every startup but only writes rows for keys that are missing,
    so it is safe to call repeatedly.
    """
    session = Session(engine)
    inserted = 0
    try:
        for key, (value, category, desc) in DEFAULT_SETTINGS.items():
            existing = session.get(Setting, key)
            if existing is None:
                session.add(Setting(
                    key=key,
                    value_json=json.dumps(value),
                    category=category,
                    description=desc,
                ))
                inserted += 1
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    if inserted:
        logger.info("Seeded %d default settings.", inserted)
