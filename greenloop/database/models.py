"""
greenloop.database.models — SQLAlchemy 2.0 Data Models
=======================================================

Tables:
- users                  — Employees who log actions
- action_categories      — Scoring multipliers per kind of action
- sustainability_actions — Logged actions and their verification state
- point_transactions     — Append-only points ledger (sole source of truth)
- user_points            — Per-user aggregate kept consistent with the ledger
- badges                 — Static badge definitions with typed criteria
- user_badges            — Earned badges, unique per (user, badge)
- admin_log              — Append-only audit trail of admin decisions
- settings               — Admin-configurable gameplay tuning
"""

from __future__ import annotations

import enum
import uuid
from datetime import UTC, date, datetime

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all GreenLoop ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class VerificationStatus(enum.StrEnum):
    """Lifecycle of a logged action."""
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class CriteriaType(enum.StrEnum):
    """Rule family a badge uses to decide eligibility."""
    ACTION_COUNT = "action_count"
    POINTS_TOTAL = "points_total"
    STREAK_DAYS = "streak_days"
    CATEGORY_MASTER = "category_master"


class BadgeRarity(enum.StrEnum):
    COMMON = "common"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    display_name: Mapped[str] = mapped_column(String(200), nullable=False)
    department: Mapped[str | None] = mapped_column(String(100), default=None)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    # Relationships
    actions: Mapped[list[Action]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )
    points: Mapped[UserPoints | None] = relationship(
        back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
    badges: Mapped[list[UserBadge]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} name={self.display_name!r} active={self.is_active}>"


# ---------------------------------------------------------------------------
# Categories — read-only input to scoring
# ---------------------------------------------------------------------------
class Category(Base):
    __tablename__ = "action_categories"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    icon: Mapped[str | None] = mapped_column(String(50), default=None)
    color: Mapped[str | None] = mapped_column(String(7), default=None)
    points_multiplier: Mapped[float] = mapped_column(Float, default=1.0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    def __repr__(self) -> str:
        return f"<Category id={self.id} name={self.name!r} x{self.points_multiplier}>"


# ---------------------------------------------------------------------------
# Action — one logged sustainability action
# ---------------------------------------------------------------------------
class Action(Base):
    """A user-logged action.

    Mutated only by verification (admin) and by the ledger apply step,
    which writes ``points_earned``.
    """
    __tablename__ = "sustainability_actions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    category_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("action_categories.id"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    impact_value: Mapped[float | None] = mapped_column(Float, nullable=True)
    impact_unit: Mapped[str | None] = mapped_column(String(20), nullable=True)
    action_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    points_earned: Mapped[int] = mapped_column(Integer, default=0)
    verification_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=VerificationStatus.PENDING.value
    )
    verified_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    verification_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    user: Mapped[User] = relationship(back_populates="actions")
    category: Mapped[Category] = relationship()

    __table_args__ = (
        Index("ix_actions_user_status", "user_id", "verification_status"),
        Index("ix_actions_status_created", "verification_status", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Action id={self.id} user={self.user_id} "
            f"status={self.verification_status} pts={self.points_earned}>"
        )


# ---------------------------------------------------------------------------
# PointTransaction — append-only ledger
# ---------------------------------------------------------------------------
class PointTransaction(Base):
    __tablename__ = "point_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    points: Mapped[int] = mapped_column(Integer, nullable=False)
    transaction_type: Mapped[str] = mapped_column(String(30), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    related_action_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("sustainability_actions.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    __table_args__ = (
        # At most one credit per action, enforced by the store
        Index(
            "ix_point_transactions_action",
            "related_action_id",
            unique=True,
            postgresql_where=related_action_id.isnot(None),
            sqlite_where=related_action_id.isnot(None),
        ),
        Index("ix_point_transactions_user_time", "user_id", "created_at"),
        Index("ix_point_transactions_created", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<PointTransaction id={self.id} user={self.user_id} pts={self.points}>"


# ---------------------------------------------------------------------------
# UserPoints — per-user aggregate, owned by the ledger service
# ---------------------------------------------------------------------------
class UserPoints(Base):
    """Cached projection of the ledger plus streak state.

    ``lock_version`` is bumped on every apply or reconcile; the UPDATE that
    bumps it is the per-user serialization point.
    """
    __tablename__ = "user_points"

    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    total_points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    current_streak: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    longest_streak: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_action_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    lock_version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    user: Mapped[User] = relationship(back_populates="points")

    __table_args__ = (
        Index("ix_user_points_total_desc", "total_points"),
    )

    def __repr__(self) -> str:
        return (
            f"<UserPoints user={self.user_id} total={self.total_points} "
            f"streak={self.current_streak}>"
        )


# ---------------------------------------------------------------------------
# Badge — static configuration
# ---------------------------------------------------------------------------
class Badge(Base):
    __tablename__ = "badges"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    icon_url: Mapped[str | None] = mapped_column(String(500), default=None)
    criteria_type: Mapped[str] = mapped_column(String(30), nullable=False)
    criteria_value: Mapped[int] = mapped_column(Integer, nullable=False)
    # Only meaningful for category_master
    category_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("action_categories.id", ondelete="SET NULL"),
        nullable=True,
    )
    rarity: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BadgeRarity.COMMON.value
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    earned_by: Mapped[list[UserBadge]] = relationship(back_populates="badge")

    def __repr__(self) -> str:
        return (
            f"<Badge id={self.id} name={self.name!r} "
            f"criteria={self.criteria_type}:{self.criteria_value}>"
        )


# ---------------------------------------------------------------------------
# UserBadge — earned badges; the composite PK is the uniqueness guarantee
# ---------------------------------------------------------------------------
class UserBadge(Base):
    __tablename__ = "user_badges"

    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    badge_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("badges.id", ondelete="CASCADE"), primary_key=True
    )
    earned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    user: Mapped[User] = relationship(back_populates="badges")
    badge: Mapped[Badge] = relationship(back_populates="earned_by")

    __table_args__ = (
        Index("ix_user_badges_earned_at", "user_id", "earned_at"),
    )

    def __repr__(self) -> str:
        return f"<UserBadge user={self.user_id} badge={self.badge_id}>"


# ---------------------------------------------------------------------------
# AdminLog — append-only audit trail
# ---------------------------------------------------------------------------
class AdminLog(Base):
    __tablename__ = "admin_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_id: Mapped[str] = mapped_column(String(36), nullable=False)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    target_table: Mapped[str] = mapped_column(String(50), nullable=False)
    target_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    before_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    after_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_admin_log_actor_time", "actor_id", "timestamp"),
        Index("ix_admin_log_target", "target_table", "target_id", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<AdminLog id={self.id} actor={self.actor_id} action={self.action_type}>"


# ---------------------------------------------------------------------------
# Setting — admin-configurable key-value store
# ---------------------------------------------------------------------------
class Setting(Base):
    """Key-value configuration store.

    Gameplay tuning knobs (flat base points, streak bonus tiers) live here
    so admins can adjust values without redeploying.  Values are stored as
    JSON strings; typed accessors live in
    :class:`~greenloop.engine.cache.ConfigCache`.
    """
    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value_json: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False, default="general")
    description: Mapped[str | None] = mapped_column(Text, default=None)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        Index("ix_settings_category", "category"),
    )

    def __repr__(self) -> str:
        return f"<Setting key={self.key!r} category={self.category!r}>"
