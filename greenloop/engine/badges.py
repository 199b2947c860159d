"""
greenloop.engine.badges — Badge Rule Engine
============================================

Handler-registry evaluation of badge criteria.  Each
:class:`~greenloop.database.models.CriteriaType` maps to a pure handler
``(badge, snapshot) → current value``; a badge is met when that value
reaches ``criteria_value``.

This module is pure calculation: no database I/O.  It is safe to call
speculatively (the "claimable badges" view) or from automatic award
processing; it never mutates anything.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from greenloop.database.models import CriteriaType
from greenloop.engine.records import BadgeRecord, StatsSnapshot
from greenloop.errors import ValidationError

logger = logging.getLogger(__name__)

__all__ = [
    "CRITERIA_HANDLERS",
    "BadgeProgress",
    "Eligibility",
    "badge_progress",
    "check_eligibility",
    "evaluate",
]


class Eligibility(enum.StrEnum):
    """Outcome of checking one badge for one user."""
    ELIGIBLE = "eligible"
    ALREADY_OWNED = "already_owned"
    NOT_ELIGIBLE = "not_eligible"
    INACTIVE = "inactive"


@dataclass(frozen=True, slots=True)
class BadgeProgress:
    badge_id: str
    current: int
    target: int

    @property
    def met(self) -> bool:
        return self.current >= self.target

    @property
    def percent(self) -> int:
        if self.target <= 0:
            return 100
        return min(100, (self.current * 100) // self.target)


# ---------------------------------------------------------------------------
# Criteria handlers: (badge, snapshot) → current value
# ---------------------------------------------------------------------------

def _action_count(badge: BadgeRecord, snap: StatsSnapshot) -> int:
    return snap.verified_actions


def _points_total(badge: BadgeRecord, snap: StatsSnapshot) -> int:
    return snap.total_points


def _streak_days(badge: BadgeRecord, snap: StatsSnapshot) -> int:
    return snap.current_streak


def _category_master(badge: BadgeRecord, snap: StatsSnapshot) -> int:
    """Verified actions within the badge's category.

    A category_master badge without a ``category_id`` can never be met.
    """
    if badge.category_id is None:
        return 0
    return snap.category_actions.get(badge.category_id, 0)


CRITERIA_HANDLERS: dict[str, Callable[[BadgeRecord, StatsSnapshot], int]] = {
    CriteriaType.ACTION_COUNT: _action_count,
    CriteriaType.POINTS_TOTAL: _points_total,
    CriteriaType.STREAK_DAYS: _streak_days,
    CriteriaType.CATEGORY_MASTER: _category_master,
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def badge_progress(badge: BadgeRecord, snapshot: StatsSnapshot) -> BadgeProgress:
    """Current value vs. target for *badge*.  Unknown criteria report 0."""
    handler = CRITERIA_HANDLERS.get(badge.criteria_type)
    current = handler(badge, snapshot) if handler is not None else 0
    return BadgeProgress(badge_id=badge.id, current=current, target=badge.criteria_value)


def check_eligibility(
    badge: BadgeRecord,
    snapshot: StatsSnapshot,
    owned: Iterable[str] = (),
) -> Eligibility:
    """Classify *badge* for the snapshot's user.

    Ownership wins over every other outcome, so a held badge is reported
    as ``ALREADY_OWNED`` even if it has since been deactivated.
    """
    if badge.id in set(owned):
        return Eligibility.ALREADY_OWNED
    if not badge.is_active:
        return Eligibility.INACTIVE
    if badge.criteria_type not in CRITERIA_HANDLERS:
        logger.warning(
            "Badge %s has unknown criteria type %r; skipping",
            badge.id, badge.criteria_type,
        )
        return Eligibility.NOT_ELIGIBLE
    if badge_progress(badge, snapshot).met:
        return Eligibility.ELIGIBLE
    return Eligibility.NOT_ELIGIBLE


def evaluate(
    user_id: str,
    snapshot: StatsSnapshot,
    badges: Iterable[BadgeRecord],
    owned: Iterable[str] = (),
) -> set[str]:
    """Return ids of active badges the user meets and does not yet hold.

    Parameters
    ----------
    user_id : the user being evaluated (must match ``snapshot.user_id``).
    snapshot : point-in-time stats.
    badges : badge definitions to consider.
    owned : badge ids already present in ``user_badges`` for the user.
    """
    if snapshot.user_id != user_id:
        raise ValidationError(
            f"Snapshot belongs to {snapshot.user_id!r}, not {user_id!r}"
        )
    owned_ids = set(owned)
    return {
        badge.id
        for badge in badges
        if check_eligibility(badge, snapshot, owned_ids) is Eligibility.ELIGIBLE
    }
