"""
greenloop.services.badge_service — Badge Awarding & Catalogue
==============================================================

Persists badge awards decided by :mod:`greenloop.engine.badges`.

Awarding is idempotent.  The composite primary key on
``user_badges(user_id, badge_id)`` is the final guard: when two workers
race to award the same badge, the loser's ``IntegrityError`` is absorbed
and reported as ``ALREADY_AWARDED``.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from greenloop.constants import RARITY_ORDER, RECENT_BADGES_DAYS
from greenloop.database.engine import is_lock_timeout
from greenloop.database.models import (
    Action,
    Badge,
    User,
    UserBadge,
    UserPoints,
    VerificationStatus,
)
from greenloop.engine.badges import Eligibility, badge_progress, check_eligibility, evaluate
from greenloop.engine.records import BadgeRecord, StatsSnapshot, UserBadgeRecord
from greenloop.errors import ConcurrencyError, ConflictError, NotFoundError

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from greenloop.engine.cache import ConfigCache

logger = logging.getLogger(__name__)


class AwardStatus(enum.StrEnum):
    AWARDED = "awarded"
    ALREADY_AWARDED = "already_awarded"
    NOT_ELIGIBLE = "not_eligible"


@dataclass(frozen=True, slots=True)
class AwardResult:
    user_id: str
    badge_id: str
    status: AwardStatus
    user_badge: UserBadgeRecord | None = None

    @property
    def awarded(self) -> bool:
        return self.status is AwardStatus.AWARDED


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------
def build_snapshot(session: Session, user_id: str) -> StatsSnapshot:
    """Read the user's current stats inside *session*."""
    agg = session.get(UserPoints, user_id)

    per_category = session.execute(
        select(Action.category_id, func.count(Action.id))
        .where(
            Action.user_id == user_id,
            Action.verification_status == VerificationStatus.VERIFIED.value,
        )
        .group_by(Action.category_id)
    ).all()
    category_actions = {category_id: int(count) for category_id, count in per_category}

    return StatsSnapshot(
        user_id=user_id,
        total_points=agg.total_points if agg else 0,
        current_streak=agg.current_streak if agg else 0,
        longest_streak=agg.longest_streak if agg else 0,
        verified_actions=sum(category_actions.values()),
        category_actions=category_actions,
    )


def get_owned_badge_ids(session: Session, user_id: str) -> set[str]:
    rows = session.scalars(
        select(UserBadge.badge_id).where(UserBadge.user_id == user_id)
    ).all()
    return set(rows)


def _find_user_badge(session: Session, user_id: str, badge_id: str) -> UserBadge | None:
    return session.get(UserBadge, (user_id, badge_id))


# ---------------------------------------------------------------------------
# Award
# ---------------------------------------------------------------------------
def award_badge(engine: Engine, user_id: str, badge_id: str) -> AwardResult:
    """Award *badge_id* to *user_id* if the user currently qualifies.

    Eligibility is re-checked against a fresh snapshot, so a stale
    "claimable" list can never award a badge the user no longer meets.

    Raises
    ------
    NotFoundError
        Unknown user or badge.
    ConflictError
        The store rejected the insert but no award row exists.
    ConcurrencyError
        The store's lock could not be acquired in time.
    """
    try:
        with Session(engine) as session:
            if session.get(User, user_id) is None:
                raise NotFoundError("user", user_id)
            badge_row = session.get(Badge, badge_id)
            if badge_row is None:
                raise NotFoundError("badge", badge_id)
            badge = BadgeRecord.from_row(badge_row)

            held = _find_user_badge(session, user_id, badge_id)
            if held is not None:
                return AwardResult(
                    user_id, badge_id, AwardStatus.ALREADY_AWARDED,
                    UserBadgeRecord.from_row(held),
                )

            snapshot = build_snapshot(session, user_id)
            verdict = check_eligibility(badge, snapshot)
            if verdict is not Eligibility.ELIGIBLE:
                logger.debug("Badge %s not awarded to %s: %s", badge_id, user_id, verdict)
                return AwardResult(user_id, badge_id, AwardStatus.NOT_ELIGIBLE)

            user_badge = UserBadge(user_id=user_id, badge_id=badge_id)
            session.add(user_badge)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                held = _find_user_badge(session, user_id, badge_id)
                if held is None:
                    raise ConflictError(
                        f"Award of badge {badge_id} to {user_id} rejected by the store"
                    ) from None
                logger.info("Badge %s already awarded to %s (race absorbed)", badge_id, user_id)
                return AwardResult(
                    user_id, badge_id, AwardStatus.ALREADY_AWARDED,
                    UserBadgeRecord.from_row(held),
                )

            record = UserBadgeRecord.from_row(user_badge)
    except OperationalError as exc:
        if is_lock_timeout(exc):
            raise ConcurrencyError(f"Timed out awarding badge {badge_id} to {user_id}") from exc
        raise

    logger.info("Badge awarded: user=%s badge=%s (%s)", user_id, badge_id, badge.name)
    return AwardResult(user_id, badge_id, AwardStatus.AWARDED, record)


def check_badge_eligibility(
    engine: Engine, cache: ConfigCache, user_id: str,
) -> list[BadgeRecord]:
    """Active badges the user meets but does not hold.  Read-only."""
    with Session(engine) as session:
        if session.get(User, user_id) is None:
            raise NotFoundError("user", user_id)
        snapshot = build_snapshot(session, user_id)
        owned = get_owned_badge_ids(session, user_id)
    badges = cache.get_active_badges()
    eligible = evaluate(user_id, snapshot, badges, owned)
    return sorted(
        (b for b in badges if b.id in eligible),
        key=lambda b: (RARITY_ORDER.get(b.rarity, 0), b.name),
    )


def process_automatic_badge_awards(
    engine: Engine, cache: ConfigCache, user_id: str,
) -> list[AwardResult]:
    """Award every badge the user newly qualifies for.

    Each badge is awarded independently; one failing award is logged and
    does not stop the others.
    """
    results: list[AwardResult] = []
    for badge in check_badge_eligibility(engine, cache, user_id):
        try:
            results.append(award_badge(engine, user_id, badge.id))
        except (ConflictError, ConcurrencyError):
            logger.warning(
                "Automatic award of badge %s to %s failed; skipping",
                badge.id, user_id, exc_info=True,
            )
        except NotFoundError:
            # Badge deleted since the cache was loaded
            logger.warning("Badge %s vanished during automatic award", badge.id)
    return results


# ---------------------------------------------------------------------------
# Catalogue views
# ---------------------------------------------------------------------------
def get_badge_catalogue(engine: Engine, user_id: str) -> dict:
    """Every active badge with the user's earned state and progress."""
    with Session(engine) as session:
        if session.get(User, user_id) is None:
            raise NotFoundError("user", user_id)
        snapshot = build_snapshot(session, user_id)
        earned = {
            ub.badge_id: ub.earned_at
            for ub in session.scalars(
                select(UserBadge).where(UserBadge.user_id == user_id)
            ).all()
        }
        badges = [
            BadgeRecord.from_row(b)
            for b in session.scalars(select(Badge).where(Badge.is_active.is_(True))).all()
        ]

    badges.sort(key=lambda b: (RARITY_ORDER.get(b.rarity, 0), b.name))
    entries = []
    for badge in badges:
        progress = badge_progress(badge, snapshot)
        entries.append({
            "badge": badge,
            "earned": badge.id in earned,
            "earned_at": earned.get(badge.id),
            "progress": progress.current,
            "target": progress.target,
            "percent": 100 if badge.id in earned else progress.percent,
        })

    earned_count = sum(1 for e in entries if e["earned"])
    total = len(entries)
    return {
        "user_id": user_id,
        "badges": entries,
        "total": total,
        "earned": earned_count,
        "completion_percent": round(earned_count * 100 / total) if total else 0,
    }


def get_recent_badges(
    engine: Engine,
    user_id: str | None = None,
    *,
    days: int = RECENT_BADGES_DAYS,
    now: datetime | None = None,
) -> list[dict]:
    """Badges earned in the trailing *days*, newest first."""
    since = (now or datetime.now(UTC)) - timedelta(days=days)
    stmt = (
        select(UserBadge, Badge, User)
        .join(Badge, UserBadge.badge_id == Badge.id)
        .join(User, UserBadge.user_id == User.id)
        .where(UserBadge.earned_at >= since)
        .order_by(UserBadge.earned_at.desc())
    )
    if user_id is not None:
        stmt = stmt.where(UserBadge.user_id == user_id)

    with Session(engine) as session:
        return [
            {
                "user_id": ub.user_id,
                "display_name": user.display_name,
                "badge_id": badge.id,
                "badge_name": badge.name,
                "rarity": badge.rarity,
                "earned_at": ub.earned_at,
            }
            for ub, badge, user in session.execute(stmt).all()
        ]


def get_achievements(
    engine: Engine,
    cache: ConfigCache,
    user_id: str,
    *,
    days: int = RECENT_BADGES_DAYS,
    now: datetime | None = None,
) -> dict:
    """Recently earned and currently claimable badges for one user.

    Raises
    ------
    NotFoundError
        If the user does not exist.
    """
    claimable = check_badge_eligibility(engine, cache, user_id)
    recent = get_recent_badges(engine, user_id, days=days, now=now)
    return {
        "user_id": user_id,
        "recent": recent,
        "claimable": claimable,
        "recent_count": len(recent),
        "claimable_count": len(claimable),
    }
