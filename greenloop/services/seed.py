"""
greenloop.services.seed — Database Seed Service
================================================

Seeds default action categories and badges from YAML fixture files in the
``greenloop/seeds/`` directory.  Settings are seeded separately by
:func:`greenloop.database.seed.seed_default_settings`.

YAML is used only for initial seeding.  After that, categories and badges
are managed in the database.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from greenloop.database.models import Badge, BadgeRarity, Category, CriteriaType
from greenloop.errors import ValidationError

logger = logging.getLogger(__name__)

_SEEDS_DIR = Path(__file__).resolve().parent.parent / "seeds"


def _load_yaml(filename: str) -> Any:
    """Load a YAML file from the seeds directory."""
    path = _SEEDS_DIR / filename
    if not path.exists():
        logger.warning("Seed file not found: %s", path)
        return {}
    with open(path, encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


def _seed_categories(session: Session) -> dict[str, Category]:
    """Seed categories from seeds/categories.yaml; returns name → row."""
    by_name = {c.name: c for c in session.scalars(select(Category)).all()}
    data = _load_yaml("categories.yaml")

    added = 0
    for item in data.get("categories", []):
        if item["name"] in by_name:
            continue
        multiplier = float(item.get("points_multiplier", 1.0))
        if multiplier < 0:
            raise ValidationError(f"Category {item['name']!r} has a negative multiplier")
        row = Category(
            name=item["name"],
            description=item.get("description"),
            icon=item.get("icon"),
            color=item.get("color"),
            points_multiplier=multiplier,
        )
        session.add(row)
        by_name[row.name] = row
        added += 1

    session.flush()
    logger.info("Seeded %d categories.", added)
    return by_name


def _seed_badges(session: Session, categories: dict[str, Category]) -> int:
    """Seed badges from seeds/badges.yaml, skipping names that exist."""
    existing = set(session.scalars(select(Badge.name)).all())
    data = _load_yaml("badges.yaml")

    added = 0
    for item in data.get("badges", []):
        if item["name"] in existing:
            continue
        criteria_type = CriteriaType(item["criteria_type"])
        category_id = None
        if item.get("category"):
            category = categories.get(item["category"])
            if category is None:
                raise ValidationError(
                    f"Badge {item['name']!r} references unknown category {item['category']!r}"
                )
            category_id = category.id
        elif criteria_type is CriteriaType.CATEGORY_MASTER:
            raise ValidationError(f"Badge {item['name']!r} needs a category")
        session.add(Badge(
            name=item["name"],
            description=item.get("description"),
            icon_url=item.get("icon_url"),
            criteria_type=criteria_type.value,
            criteria_value=int(item["criteria_value"]),
            category_id=category_id,
            rarity=BadgeRarity(item.get("rarity", "common")).value,
        ))
        added += 1

    logger.info("Seeded %d badges.", added)
    return added


def seed_database(engine: Engine) -> dict:
    """Seed default categories and badges.

    Idempotent: rows are matched by name, and existing rows are never
    modified.  Returns ``{"categories": N, "badges": M}`` totals present
    after seeding.
    """
    with Session(engine) as session:
        categories = _seed_categories(session)
        _seed_badges(session, categories)
        session.commit()
        totals = {
            "categories": len(categories),
            "badges": len(session.scalars(select(Badge.id)).all()),
        }
    logger.info("Database seeded: %s", totals)
    return totals
