"""
tests/test_action_service.py — Action Reads & Verification Writes
==================================================================
"""

from __future__ import annotations

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from greenloop.database.models import AdminLog
from greenloop.errors import NotFoundError, ValidationError
from greenloop.services import action_service


class TestReads:
    def test_get_action_record(self, db_engine, factory):
        user = factory.user()
        category = factory.category()
        action_id = factory.action(user, category, impact_value=2.5)

        record = action_service.get_action(db_engine, action_id)
        assert (record.user_id, record.category_id, record.impact_value) == (user, category, 2.5)
        assert record.is_verified

    def test_missing_rows(self, db_engine):
        with pytest.raises(NotFoundError):
            action_service.get_action(db_engine, "nope")
        with pytest.raises(NotFoundError):
            action_service.get_category(db_engine, "nope")
        with pytest.raises(NotFoundError):
            action_service.get_user(db_engine, "nope")

    def test_list_actions_filters(self, db_engine, factory):
        ada = factory.user()
        bob = factory.user()
        category = factory.category()
        pending = factory.action(ada, category, status="pending")
        factory.action(ada, category)
        factory.action(bob, category, status="pending")

        ids = [a.id for a in action_service.list_actions(db_engine, status="pending", user_id=ada)]
        assert ids == [pending]


class TestRecordVerification:
    def test_writes_audit_entry(self, db_engine, factory):
        action_id = factory.action(factory.user(), factory.category(), status="pending")

        record, changed = action_service.record_verification(
            db_engine, action_id, admin_id="admin-7", status="verified", notes="Looks good",
        )
        assert changed is True
        assert record.is_verified

        with Session(db_engine) as session:
            log = session.scalars(select(AdminLog).where(AdminLog.target_id == action_id)).one()
        assert log.actor_id == "admin-7"
        assert log.action_type == "action_verified"
        assert log.before_snapshot["verification_status"] == "pending"
        assert log.after_snapshot["verification_notes"] == "Looks good"

    def test_same_status_writes_nothing(self, db_engine, factory):
        action_id = factory.action(factory.user(), factory.category())
        _, changed = action_service.record_verification(
            db_engine, action_id, admin_id="admin-7", status="verified",
        )
        assert changed is False
        with Session(db_engine) as session:
            assert session.scalars(select(AdminLog)).all() == []

    def test_notes_limit(self, db_engine, factory):
        action_id = factory.action(factory.user(), factory.category(), status="pending")
        notes = "x" * action_service.MAX_NOTES_LENGTH
        _, changed = action_service.record_verification(
            db_engine, action_id, admin_id="a", status="rejected", notes=notes,
        )
        assert changed
        with pytest.raises(ValidationError):
            action_service.record_verification(
                db_engine, action_id, admin_id="a", status="verified", notes=notes + "x",
            )
