"""
greenloop.services.ledger_service — Points Ledger & Aggregate
==============================================================

Applies point credits to the append-only ``point_transactions`` ledger and
keeps ``user_points`` consistent with it, in ONE transaction:

1. per-user serialization point (``UPDATE … SET lock_version + 1``);
   a missing aggregate row is created under a SAVEPOINT
2. idempotency re-check on ``related_action_id`` while holding the lock
3. ledger insert under a SAVEPOINT (the partial unique index is the
   final guard against a concurrent duplicate)
4. points scored against the streak held before this action, then
   ``total_points = total_points + :points`` as a SQL expression
5. streak update in the canonical zone
6. ``sustainability_actions.points_earned``

Invariant, at every commit boundary::

    user_points.total_points == SUM(point_transactions.points) per user
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta, tzinfo
from typing import TYPE_CHECKING

from sqlalchemy import func, select, text, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from greenloop.constants import (
    IMPACT_UNIT_CO2,
    PROGRESS_DAYS,
    RECENT_TRANSACTIONS_LIMIT,
    TRANSACTION_ACTION_CREDIT,
)
from greenloop.database.engine import is_lock_timeout
from greenloop.database.models import (
    Action,
    Category,
    PointTransaction,
    User,
    UserPoints,
    VerificationStatus,
)
from greenloop.engine.records import ActionRecord, AggregateRecord, TransactionRecord
from greenloop.engine.streaks import calendar_day, streak_before, update_streak
from greenloop.errors import ConcurrencyError, NotFoundError, ValidationError

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LedgerResult:
    """Outcome of :func:`apply_action`.

    ``applied`` is False when the action had already been credited; the
    aggregate and ``points`` then describe the earlier credit.
    """
    aggregate: AggregateRecord
    points: int
    applied: bool
    transaction_id: int | None = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _set_lock_timeout(session: Session, lock_timeout_ms: int | None) -> None:
    """Bound how long this transaction waits on a row lock."""
    if not lock_timeout_ms:
        return
    dialect = session.get_bind().dialect.name
    # SET can't take bind parameters; the value is an int.
    # SQLite waits on its connection busy timeout instead.
    if dialect == "postgresql":
        session.execute(text(f"SET LOCAL lock_timeout = '{int(lock_timeout_ms)}ms'"))


def _bump_lock_version(session: Session, user_id: str) -> int:
    result = session.execute(
        update(UserPoints)
        .where(UserPoints.user_id == user_id)
        .values(lock_version=UserPoints.lock_version + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def _lock_aggregate(session: Session, user_id: str) -> UserPoints:
    """Take the per-user serialization point and return the locked row.

    Creates the ``user_points`` row on first use.  If a concurrent
    transaction created it first, the SAVEPOINT absorbs the
    ``IntegrityError`` and we queue behind that transaction instead.
    """
    if _bump_lock_version(session, user_id) == 0:
        try:
            with session.begin_nested():   # SAVEPOINT
                session.add(UserPoints(user_id=user_id, lock_version=1))
                session.flush()
        except IntegrityError:
            logger.debug("Aggregate row for %s created concurrently", user_id)
            _bump_lock_version(session, user_id)

    row = session.get(UserPoints, user_id, populate_existing=True)
    if row is None:
        raise NotFoundError("user_points", user_id)
    return row


def _existing_credit(session: Session, action_id: str) -> PointTransaction | None:
    return session.scalar(
        select(PointTransaction).where(PointTransaction.related_action_id == action_id)
    )


# ---------------------------------------------------------------------------
# Apply
# ---------------------------------------------------------------------------
def apply_action(
    engine: Engine,
    action: ActionRecord,
    points: int | Callable[[int], int],
    *,
    tz: tzinfo = UTC,
    lock_timeout_ms: int | None = None,
    description: str | None = None,
) -> LedgerResult:
    """Credit *action* to its user's ledger exactly once.

    Parameters
    ----------
    engine : SQLAlchemy engine.
    action : the verified action being credited.
    points : the credit, or a callable that receives the streak the user
        holds going into this action (read under the per-user lock) and
        returns the credit.
    tz : zone whose calendar days define streak boundaries.
    lock_timeout_ms : how long to wait for the per-user lock.

    Raises
    ------
    ConcurrencyError
        The per-user lock was not acquired within *lock_timeout_ms*.
    ValidationError
        The computed credit is negative.
    """
    try:
        with Session(engine) as session:
            _set_lock_timeout(session, lock_timeout_ms)
            row = _lock_aggregate(session, action.user_id)

            existing = _existing_credit(session, action.id)
            if existing is not None:
                result = LedgerResult(
                    aggregate=AggregateRecord.from_row(row),
                    points=existing.points,
                    applied=False,
                    transaction_id=existing.id,
                )
                session.rollback()
                logger.info("Action %s already credited; skipping", action.id)
                return result

            before = AggregateRecord.from_row(row)
            streak = update_streak(before, action.action_date, tz)
            if callable(points):
                credit = points(streak_before(before, action.action_date, tz))
            else:
                credit = int(points)
            if credit < 0:
                raise ValidationError(f"Point credit must be >= 0 (got {credit})")

            txn = PointTransaction(
                user_id=action.user_id,
                points=credit,
                transaction_type=TRANSACTION_ACTION_CREDIT,
                description=description,
                related_action_id=action.id,
            )
            try:
                with session.begin_nested():   # SAVEPOINT
                    session.add(txn)
                    session.flush()
            except IntegrityError:
                # Unique index on related_action_id caught a duplicate the
                # lock did not (credit written outside apply_action).
                existing = _existing_credit(session, action.id)
                result = LedgerResult(
                    aggregate=AggregateRecord.from_row(row),
                    points=existing.points if existing is not None else 0,
                    applied=False,
                    transaction_id=existing.id if existing is not None else None,
                )
                session.rollback()
                logger.warning("Concurrent duplicate credit for action %s", action.id)
                return result

            row.total_points = UserPoints.total_points + credit
            row.current_streak = streak.current_streak
            row.longest_streak = streak.longest_streak
            row.last_action_date = streak.last_action_date
            session.execute(
                update(Action)
                .where(Action.id == action.id)
                .values(points_earned=credit)
                .execution_options(synchronize_session=False)
            )
            session.flush()
            session.refresh(row)
            aggregate = AggregateRecord.from_row(row)
            txn_id = txn.id
            session.commit()
    except OperationalError as exc:
        if is_lock_timeout(exc):
            raise ConcurrencyError(
                f"Timed out waiting for the points lock of user {action.user_id}"
            ) from exc
        raise

    logger.info(
        "Credited %d points to %s for action %s (total=%d, streak=%d)",
        credit, action.user_id, action.id, aggregate.total_points, aggregate.current_streak,
    )
    return LedgerResult(aggregate=aggregate, points=credit, applied=True, transaction_id=txn_id)


def reconcile_user(
    engine: Engine,
    user_id: str,
    *,
    lock_timeout_ms: int | None = None,
) -> int:
    """Reset ``total_points`` for *user_id* to the ledger sum.

    Takes the same per-user lock as :func:`apply_action` (creating the
    aggregate row if it is missing) and reads the sum under it, so a
    concurrent credit is either fully counted or not yet visible.  Streak
    fields are left alone.  Returns the ledger total that was written.

    Raises
    ------
    ConcurrencyError
        The per-user lock was not acquired within *lock_timeout_ms*.
    """
    try:
        with Session(engine) as session:
            _set_lock_timeout(session, lock_timeout_ms)
            row = _lock_aggregate(session, user_id)
            actual = int(session.scalar(
                select(func.coalesce(func.sum(PointTransaction.points), 0))
                .where(PointTransaction.user_id == user_id)
            ))
            previous = row.total_points
            row.total_points = actual
            session.commit()
    except OperationalError as exc:
        if is_lock_timeout(exc):
            raise ConcurrencyError(
                f"Timed out waiting for the points lock of user {user_id}"
            ) from exc
        raise

    if previous != actual:
        logger.warning("Reset total_points of %s from %d to %d", user_id, previous, actual)
    return actual


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_aggregate(engine: Engine, user_id: str) -> AggregateRecord:
    """Current aggregate for *user_id*; zeroes if nothing was ever credited."""
    with Session(engine) as session:
        row = session.get(UserPoints, user_id)
        if row is None:
            return AggregateRecord(user_id=user_id)
        return AggregateRecord.from_row(row)


def get_points_summary(engine: Engine, user_id: str) -> dict:
    """Aggregate, recent transactions and per-category breakdown for a user.

    Raises
    ------
    NotFoundError
        If the user does not exist.
    """
    with Session(engine) as session:
        if session.get(User, user_id) is None:
            raise NotFoundError("user", user_id)

        row = session.get(UserPoints, user_id)
        aggregate = (
            AggregateRecord.from_row(row) if row is not None
            else AggregateRecord(user_id=user_id)
        )

        recent = session.scalars(
            select(PointTransaction)
            .where(PointTransaction.user_id == user_id)
            .order_by(PointTransaction.created_at.desc(), PointTransaction.id.desc())
            .limit(RECENT_TRANSACTIONS_LIMIT)
        ).all()

        breakdown_rows = session.execute(
            select(
                Category.name,
                func.count(Action.id).label("actions"),
                func.coalesce(func.sum(Action.points_earned), 0).label("points"),
            )
            .join(Category, Action.category_id == Category.id)
            .where(
                Action.user_id == user_id,
                Action.verification_status == VerificationStatus.VERIFIED.value,
            )
            .group_by(Category.name)
            .order_by(Category.name)
        ).all()

        return {
            "user_id": user_id,
            "total_points": aggregate.total_points,
            "current_streak": aggregate.current_streak,
            "longest_streak": aggregate.longest_streak,
            "last_action_date": aggregate.last_action_date,
            "recent_transactions": [TransactionRecord.from_row(t) for t in recent],
            "category_breakdown": {
                r.name: {"actions": int(r.actions), "points": int(r.points)}
                for r in breakdown_rows
            },
        }


def get_progress(
    engine: Engine,
    user_id: str,
    *,
    days: int = PROGRESS_DAYS,
    now: datetime | None = None,
    tz: tzinfo = UTC,
) -> dict:
    """Activity over the trailing *days* and per-category scoring.

    ``daily`` has one entry per calendar day (in *tz*) on which the user
    logged actions, oldest first, counting every action regardless of
    verification status.  ``categories`` covers verified actions only,
    highest total first.

    Raises
    ------
    NotFoundError
        If the user does not exist.
    """
    since = (now or datetime.now(UTC)) - timedelta(days=days)

    with Session(engine) as session:
        if session.get(User, user_id) is None:
            raise NotFoundError("user", user_id)

        logged = session.execute(
            select(
                Action.created_at,
                Action.points_earned,
                Action.impact_value,
                Action.impact_unit,
            )
            .where(Action.user_id == user_id, Action.created_at >= since)
            .order_by(Action.created_at)
        ).all()

        total = func.coalesce(func.sum(Action.points_earned), 0).label("total_points")
        category_rows = session.execute(
            select(
                Category.name,
                Category.color,
                func.count(Action.id).label("actions"),
                total,
                func.avg(Action.points_earned).label("average_points"),
            )
            .join(Category, Action.category_id == Category.id)
            .where(
                Action.user_id == user_id,
                Action.verification_status == VerificationStatus.VERIFIED.value,
            )
            .group_by(Category.id, Category.name, Category.color)
            .order_by(total.desc(), Category.name)
        ).all()

    daily: dict[date, dict] = {}
    for r in logged:
        day = calendar_day(r.created_at, tz)
        entry = daily.setdefault(day, {"date": day, "actions": 0, "points": 0, "kg_co2": 0.0})
        entry["actions"] += 1
        entry["points"] += r.points_earned or 0
        if r.impact_unit == IMPACT_UNIT_CO2 and r.impact_value:
            entry["kg_co2"] += r.impact_value

    return {
        "user_id": user_id,
        "days": days,
        "daily": [daily[d] for d in sorted(daily)],
        "categories": [
            {
                "name": r.name,
                "color": r.color,
                "actions": int(r.actions),
                "total_points": int(r.total_points),
                "average_points": round(float(r.average_points or 0), 2),
            }
            for r in category_rows
        ],
    }
