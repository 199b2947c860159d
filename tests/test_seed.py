"""
tests/test_seed.py — Seed Data Tests
=====================================
Default categories, badges and settings load cleanly and re-seeding is a
no-op.
"""

from __future__ import annotations

from unittest.mock import patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from greenloop.database.models import Badge, Category, Setting
from greenloop.database.seed import DEFAULT_SETTINGS, seed_default_settings
from greenloop.errors import ValidationError
from greenloop.services import seed


class TestSeedDatabase:
    def test_seeds_categories_and_badges(self, db_engine):
        totals = seed.seed_database(db_engine)
        assert totals["categories"] == 5
        assert totals["badges"] == 8

        with Session(db_engine) as session:
            commuter = session.scalars(select(Badge).where(Badge.name == "Commuter Hero")).one()
            transport = session.get(Category, commuter.category_id)
            assert transport.name == "Transportation"
            assert transport.points_multiplier == 2.0

    def test_idempotent(self, db_engine):
        first = seed.seed_database(db_engine)
        second = seed.seed_database(db_engine)
        assert first == second

    def test_existing_rows_not_modified(self, db_engine, factory):
        factory.category(name="Energy", multiplier=9.0)
        seed.seed_database(db_engine)
        with Session(db_engine) as session:
            energy = session.scalars(select(Category).where(Category.name == "Energy")).one()
            assert energy.points_multiplier == 9.0

    def test_category_master_without_category_rejected(self, db_engine):
        bad = {"badges": [{"name": "Nowhere", "criteria_type": "category_master", "criteria_value": 3}]}
        with patch.object(seed, "_load_yaml", side_effect=[{"categories": []}, bad]):
            with pytest.raises(ValidationError):
                seed.seed_database(db_engine)

    def test_unknown_criteria_type_rejected(self, db_engine):
        bad = {"badges": [{"name": "Odd", "criteria_type": "moon_phase", "criteria_value": 1}]}
        with patch.object(seed, "_load_yaml", side_effect=[{"categories": []}, bad]):
            with pytest.raises(ValueError):
                seed.seed_database(db_engine)


def test_default_settings_not_overwritten(db_engine):
    with Session(db_engine) as session:
        session.get(Setting, "points.flat_base").value_json = "42"
        session.commit()

    seed_default_settings(db_engine)
    with Session(db_engine) as session:
        assert session.get(Setting, "points.flat_base").value_json == "42"
        count = session.scalar(select(func.count()).select_from(Setting))
    assert count == len(DEFAULT_SETTINGS)


def test_only_gameplay_settings_seeded(db_engine):
    with Session(db_engine) as session:
        keys = set(session.scalars(select(Setting.key)).all())
    assert keys == {"points.flat_base", "points.streak_bonus_tiers", "badges.auto_award"}
