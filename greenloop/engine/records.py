"""
greenloop.engine.records — Typed Records
=========================================

Every entity the engine reasons about, as an immutable record.  ORM rows
are converted with the ``from_row`` constructors at the storage boundary
(inside the services); everything under :mod:`greenloop.engine` works on
these records only and never touches a session.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import TYPE_CHECKING

from greenloop.database.models import VerificationStatus

if TYPE_CHECKING:
    from greenloop.database.models import (
        Action,
        Badge,
        Category,
        PointTransaction,
        UserBadge,
        UserPoints,
    )

__all__ = [
    "ActionRecord",
    "AggregateRecord",
    "BadgeRecord",
    "CategoryRecord",
    "LeaderboardEntry",
    "StatsSnapshot",
    "TransactionRecord",
    "UserBadgeRecord",
]


@dataclass(frozen=True, slots=True)
class CategoryRecord:
    id: str
    points_multiplier: float = 1.0
    is_active: bool = True
    name: str | None = None

    @classmethod
    def from_row(cls, row: Category) -> CategoryRecord:
        return cls(
            id=row.id,
            points_multiplier=row.points_multiplier,
            is_active=row.is_active,
            name=row.name,
        )


@dataclass(frozen=True, slots=True)
class ActionRecord:
    """A logged action as seen by the scorer."""

    id: str
    user_id: str
    category_id: str
    action_date: datetime
    verification_status: str = VerificationStatus.PENDING.value
    impact_value: float | None = None
    impact_unit: str | None = None
    points_earned: int = 0

    @property
    def is_verified(self) -> bool:
        return self.verification_status == VerificationStatus.VERIFIED

    @classmethod
    def from_row(cls, row: Action) -> ActionRecord:
        return cls(
            id=row.id,
            user_id=row.user_id,
            category_id=row.category_id,
            action_date=row.action_date,
            verification_status=row.verification_status,
            impact_value=row.impact_value,
            impact_unit=row.impact_unit,
            points_earned=row.points_earned or 0,
        )


@dataclass(frozen=True, slots=True)
class AggregateRecord:
    """Snapshot of a ``user_points`` row."""

    user_id: str
    total_points: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    last_action_date: date | None = None

    @classmethod
    def from_row(cls, row: UserPoints) -> AggregateRecord:
        return cls(
            user_id=row.user_id,
            total_points=row.total_points or 0,
            current_streak=row.current_streak or 0,
            longest_streak=row.longest_streak or 0,
            last_action_date=row.last_action_date,
        )


@dataclass(frozen=True, slots=True)
class BadgeRecord:
    id: str
    name: str
    criteria_type: str
    criteria_value: int
    category_id: str | None = None
    rarity: str = "common"
    is_active: bool = True
    description: str | None = None
    icon_url: str | None = None

    @classmethod
    def from_row(cls, row: Badge) -> BadgeRecord:
        return cls(
            id=row.id,
            name=row.name,
            criteria_type=row.criteria_type,
            criteria_value=row.criteria_value,
            category_id=row.category_id,
            rarity=row.rarity,
            is_active=row.is_active,
            description=row.description,
            icon_url=row.icon_url,
        )


@dataclass(frozen=True, slots=True)
class UserBadgeRecord:
    user_id: str
    badge_id: str
    earned_at: datetime | None = None

    @classmethod
    def from_row(cls, row: UserBadge) -> UserBadgeRecord:
        return cls(user_id=row.user_id, badge_id=row.badge_id, earned_at=row.earned_at)


@dataclass(frozen=True, slots=True)
class TransactionRecord:
    id: int
    user_id: str
    points: int
    transaction_type: str
    description: str | None = None
    related_action_id: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_row(cls, row: PointTransaction) -> TransactionRecord:
        return cls(
            id=row.id,
            user_id=row.user_id,
            points=row.points,
            transaction_type=row.transaction_type,
            description=row.description,
            related_action_id=row.related_action_id,
            created_at=row.created_at,
        )


@dataclass(frozen=True, slots=True)
class StatsSnapshot:
    """Point-in-time read of a user's stats, the input to badge evaluation.

    Parameters
    ----------
    total_points : ``user_points.total_points``.
    current_streak : Consecutive active days as of the last scored action.
    verified_actions : Count of the user's verified actions.
    category_actions : Verified action count per category id.
    """

    user_id: str
    total_points: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    verified_actions: int = 0
    category_actions: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class LeaderboardEntry:
    """One ranked row; derived on read, never persisted."""

    user_id: str
    points: int
    rank: int
    display_name: str | None = None
