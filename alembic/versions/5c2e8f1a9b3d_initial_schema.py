"""Initial GreenLoop schema

Revision ID: 5c2e8f1a9b3d
Revises:
Create Date: 2026-10-18 09:12:04.118203

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '5c2e8f1a9b3d'
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create users, actions, ledger, aggregates, badges, audit and settings."""

    # --- users ---
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("display_name", sa.String(200), nullable=False),
        sa.Column("department", sa.String(100), nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=True, server_default=sa.true()),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(),
        ),
    )

    # --- action_categories ---
    op.create_table(
        "action_categories",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("icon", sa.String(50), nullable=True),
        sa.Column("color", sa.String(7), nullable=True),
        sa.Column("points_multiplier", sa.Float, server_default="1.0"),
        sa.Column("is_active", sa.Boolean, server_default=sa.true()),
    )

    # --- sustainability_actions ---
    op.create_table(
        "sustainability_actions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "user_id", sa.String(36),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "category_id", sa.String(36),
            sa.ForeignKey("action_categories.id"), nullable=False,
        ),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("impact_value", sa.Float, nullable=True),
        sa.Column("impact_unit", sa.String(20), nullable=True),
        sa.Column("action_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("points_earned", sa.Integer, server_default="0"),
        sa.Column(
            "verification_status", sa.String(20), nullable=False,
            server_default="pending",
        ),
        sa.Column("verified_by", sa.String(36), nullable=True),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verification_notes", sa.Text, nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "ix_actions_user_status", "sustainability_actions",
        ["user_id", "verification_status"],
    )
    op.create_index(
        "ix_actions_status_created", "sustainability_actions",
        ["verification_status", "created_at"],
    )

    # --- point_transactions (append-only ledger) ---
    op.create_table(
        "point_transactions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.String(36),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("points", sa.Integer, nullable=False),
        sa.Column("transaction_type", sa.String(30), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column(
            "related_action_id", sa.String(36),
            sa.ForeignKey("sustainability_actions.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(),
        ),
    )
    # Idempotency: at most one credit per action
    op.create_index(
        "ix_point_transactions_action", "point_transactions",
        ["related_action_id"],
        unique=True,
        postgresql_where=sa.text("related_action_id IS NOT NULL"),
        sqlite_where=sa.text("related_action_id IS NOT NULL"),
    )
    op.create_index(
        "ix_point_transactions_user_time", "point_transactions",
        ["user_id", "created_at"],
    )
    op.create_index(
        "ix_point_transactions_created", "point_transactions", ["created_at"],
    )

    # --- user_points (aggregate) ---
    op.create_table(
        "user_points",
        sa.Column(
            "user_id", sa.String(36),
            sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("total_points", sa.Integer, nullable=False, server_default="0"),
        sa.Column("current_streak", sa.Integer, nullable=False, server_default="0"),
        sa.Column("longest_streak", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_action_date", sa.Date, nullable=True),
        sa.Column("lock_version", sa.Integer, nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_user_points_total_desc", "user_points", ["total_points"])

    # --- badges ---
    op.create_table(
        "badges",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("icon_url", sa.String(500), nullable=True),
        sa.Column("criteria_type", sa.String(30), nullable=False),
        sa.Column("criteria_value", sa.Integer, nullable=False),
        sa.Column(
            "category_id", sa.String(36),
            sa.ForeignKey("action_categories.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("rarity", sa.String(20), nullable=False, server_default="common"),
        sa.Column("is_active", sa.Boolean, server_default=sa.true()),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(),
        ),
    )

    # --- user_badges (PK is the uniqueness guarantee) ---
    op.create_table(
        "user_badges",
        sa.Column(
            "user_id", sa.String(36),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "badge_id", sa.String(36),
            sa.ForeignKey("badges.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "earned_at", sa.DateTime(timezone=True), server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("user_id", "badge_id"),
    )
    op.create_index("ix_user_badges_earned_at", "user_badges", ["user_id", "earned_at"])

    # --- admin_log ---
    op.create_table(
        "admin_log",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("actor_id", sa.String(36), nullable=False),
        sa.Column("action_type", sa.String(50), nullable=False),
        sa.Column("target_table", sa.String(50), nullable=False),
        sa.Column("target_id", sa.String(100), nullable=True),
        sa.Column("before_snapshot", postgresql.JSONB, nullable=True),
        sa.Column("after_snapshot", postgresql.JSONB, nullable=True),
        sa.Column("reason", sa.Text, nullable=True),
        sa.Column(
            "timestamp", sa.DateTime(timezone=True), server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_admin_log_actor_time", "admin_log", ["actor_id", "timestamp"])
    op.create_index(
        "ix_admin_log_target", "admin_log", ["target_table", "target_id", "timestamp"],
    )

    # --- settings ---
    op.create_table(
        "settings",
        sa.Column("key", sa.String(100), primary_key=True),
        sa.Column("value_json", sa.Text, nullable=False),
        sa.Column("category", sa.String(50), nullable=False, server_default="general"),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_settings_category", "settings", ["category"])


def downgrade() -> None:
    """Drop every GreenLoop table."""
    op.drop_index("ix_settings_category", table_name="settings")
    op.drop_table("settings")
    op.drop_index("ix_admin_log_target", table_name="admin_log")
    op.drop_index("ix_admin_log_actor_time", table_name="admin_log")
    op.drop_table("admin_log")
    op.drop_index("ix_user_badges_earned_at", table_name="user_badges")
    op.drop_table("user_badges")
    op.drop_table("badges")
    op.drop_index("ix_user_points_total_desc", table_name="user_points")
    op.drop_table("user_points")
    op.drop_index("ix_point_transactions_created", table_name="point_transactions")
    op.drop_index("ix_point_transactions_user_time", table_name="point_transactions")
    op.drop_index("ix_point_transactions_action", table_name="point_transactions")
    op.drop_table("point_transactions")
    op.drop_index("ix_actions_status_created", table_name="sustainability_actions")
    op.drop_index("ix_actions_user_status", table_name="sustainability_actions")
    op.drop_table("sustainability_actions")
    op.drop_table("action_categories")
    op.drop_table("users")
