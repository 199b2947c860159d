"""
greenloop.services.action_service — Actions, Categories & Users
================================================================

Storage-boundary reads the scoring pipeline depends on, plus the admin
verification write.  Every read returns a typed record from
:mod:`greenloop.engine.records`, never a live ORM row.

Verification is committed on its own, BEFORE any scoring.  A scoring
failure afterwards never rolls back the admin's decision; the caller
retries scoring separately (see
:meth:`~greenloop.services.gamification.GamificationEngine.verify_action`).
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from greenloop.database.models import Action, AdminLog, Category, User, VerificationStatus
from greenloop.engine.records import ActionRecord, CategoryRecord
from greenloop.errors import NotFoundError, ValidationError

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

MAX_NOTES_LENGTH = 500

_DECISIONS = frozenset({VerificationStatus.VERIFIED.value, VerificationStatus.REJECTED.value})


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_action(engine: Engine, action_id: str) -> ActionRecord:
    """Raises :class:`NotFoundError` if the action does not exist."""
    with Session(engine) as session:
        row = session.get(Action, action_id)
        if row is None:
            raise NotFoundError("action", action_id)
        return ActionRecord.from_row(row)


def get_category(engine: Engine, category_id: str) -> CategoryRecord:
    """Raises :class:`NotFoundError` if the category does not exist."""
    with Session(engine) as session:
        row = session.get(Category, category_id)
        if row is None:
            raise NotFoundError("category", category_id)
        return CategoryRecord.from_row(row)


def get_user(engine: Engine, user_id: str) -> dict:
    """Plain-dict view of a user.  Raises :class:`NotFoundError`."""
    with Session(engine) as session:
        row = session.get(User, user_id)
        if row is None:
            raise NotFoundError("user", user_id)
        return {
            "id": row.id,
            "email": row.email,
            "display_name": row.display_name,
            "department": row.department,
            "is_active": row.is_active,
        }


def list_actions(
    engine: Engine,
    *,
    status: str | None = None,
    user_id: str | None = None,
    limit: int = 100,
) -> list[ActionRecord]:
    """Actions newest first, optionally filtered by status and user."""
    stmt = select(Action).order_by(Action.created_at.desc(), Action.id)
    if status is not None:
        stmt = stmt.where(Action.verification_status == status)
    if user_id is not None:
        stmt = stmt.where(Action.user_id == user_id)
    with Session(engine) as session:
        return [ActionRecord.from_row(r) for r in session.scalars(stmt.limit(limit)).all()]


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------
def _verification_snapshot(action: Action) -> dict[str, Any]:
    return {
        "verification_status": action.verification_status,
        "verified_by": action.verified_by,
        "verified_at": action.verified_at.isoformat() if action.verified_at else None,
        "verification_notes": action.verification_notes,
    }


def record_verification(
    engine: Engine,
    action_id: str,
    *,
    admin_id: str,
    status: str,
    notes: str | None = None,
) -> tuple[ActionRecord, bool]:
    """Record an admin's verification decision and commit it.

    A verified action is final: its points are already in (or on their way
    into) the append-only ledger, so it cannot be rejected afterwards.
    Re-verifying it is a no-op.

    Returns
    -------
    (ActionRecord, changed)
        ``changed`` is False when the action already carried *status*.

    Raises
    ------
    ValidationError
        Unknown status, notes too long, or an attempt to reject an
        already verified action.
    NotFoundError
        If the action does not exist.
    """
    if status not in _DECISIONS:
        raise ValidationError(
            f"status must be one of {sorted(_DECISIONS)} (got {status!r})"
        )
    if notes is not None and len(notes) > MAX_NOTES_LENGTH:
        raise ValidationError(f"Notes too long (max {MAX_NOTES_LENGTH} characters)")

    with Session(engine) as session:
        action = session.get(Action, action_id)
        if action is None:
            raise NotFoundError("action", action_id)

        current = action.verification_status
        if current == status:
            return ActionRecord.from_row(action), False
        if current == VerificationStatus.VERIFIED:
            raise ValidationError(f"Action {action_id} is already verified")

        before = _verification_snapshot(action)
        action.verification_status = status
        action.verified_by = admin_id
        action.verified_at = datetime.now(UTC)
        action.verification_notes = notes
        session.add(AdminLog(
            actor_id=admin_id,
            action_type=f"action_{status}",
            target_table="sustainability_actions",
            target_id=action_id,
            before_snapshot=before,
            after_snapshot=_verification_snapshot(action),
            reason=notes,
        ))
        session.commit()

        logger.info("Action %s marked %s by %s", action_id, status, admin_id)
        return ActionRecord.from_row(action), True
