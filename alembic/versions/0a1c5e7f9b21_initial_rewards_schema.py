"""Initial rewards schema

Revision ID: 0a1c5e7f9b21
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0a1c5e7f9b21"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def upgrade() -> None:
    """Create directory, catalog, ledger and audit tables."""
    op.create_table(
        "users",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("auth0_id", sa.String(128), nullable=False, unique=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("picture", sa.String(500)),
        sa.Column("role", sa.String(20), server_default="user"),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("preferences", postgresql.JSONB()),
        sa.Column("last_login_at", sa.DateTime(timezone=True)),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"])

    op.create_table(
        "tenants",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("auth0_id", sa.String(128), nullable=False, unique=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("picture", sa.String(500)),
        sa.Column("role", sa.String(30), server_default="tenant_user"),
        sa.Column("organization_id", sa.String(64), nullable=False),
        sa.Column("organization_name", sa.String(200), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("settings", postgresql.JSONB()),
        sa.Column("last_login_at", sa.DateTime(timezone=True)),
        *_timestamps(),
    )
    op.create_index("ix_tenants_organization", "tenants", ["organization_id"])

    op.create_table(
        "gifts",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("organization_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("value", sa.Integer(), server_default="0"),
        sa.Column("category", sa.String(50), nullable=False),
        sa.Column("image_url", sa.String(500)),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column(
            "created_by", sa.String(64),
            sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False,
        ),
        *_timestamps(),
    )
    op.create_index("ix_gifts_organization", "gifts", ["organization_id"])

    op.create_table(
        "challenges",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("organization_id", sa.String(64), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("difficulty", sa.String(20), nullable=False),
        sa.Column("points", sa.Integer(), server_default="0"),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("rules", postgresql.JSONB()),
        sa.Column("rewards", postgresql.JSONB()),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column(
            "created_by", sa.String(64),
            sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False,
        ),
        *_timestamps(),
    )
    op.create_index("ix_challenges_organization", "challenges", ["organization_id"])

    op.create_table(
        "user_challenges",
        sa.Column(
            "user_id", sa.String(64),
            sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column(
            "challenge_id", sa.String(64),
            sa.ForeignKey("challenges.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("completed", sa.Boolean(), server_default=sa.false()),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("confirmed_by", sa.String(64)),
    )

    op.create_table(
        "user_actions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.String(64),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("kind", sa.String(10), nullable=False),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_user_actions_user_time", "user_actions", ["user_id", "occurred_at"])
    op.create_index("ix_user_actions_kind_user", "user_actions", ["kind", "user_id"])

    op.create_table(
        "coin_balances",
        sa.Column(
            "user_id", sa.String(64),
            sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("total_coins", sa.Integer(), server_default="0"),
        sa.Column("last_updated", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "user_eligibility",
        sa.Column(
            "user_id", sa.String(64),
            sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("monthly_scans", sa.Integer(), server_default="0"),
        sa.Column("monthly_shares", sa.Integer(), server_default="0"),
        sa.Column("monthly_games", sa.Integer(), server_default="0"),
        sa.Column("weekly_scans", sa.Integer(), server_default="0"),
        sa.Column("weekly_shares", sa.Integer(), server_default="0"),
        sa.Column("weekly_games", sa.Integer(), server_default="0"),
        sa.Column("last_reset_month", sa.Date()),
        sa.Column("last_reset_week", sa.Date()),
        sa.Column("gift_eligible", sa.Boolean(), server_default=sa.false()),
        sa.Column("challenge_eligible", sa.Boolean(), server_default=sa.false()),
        sa.Column("last_gift_eligibility", sa.DateTime(timezone=True)),
        sa.Column("last_challenge_eligibility", sa.DateTime(timezone=True)),
    )
    op.create_index("ix_user_eligibility_gift", "user_eligibility", ["gift_eligible"])
    op.create_index("ix_user_eligibility_challenge", "user_eligibility", ["challenge_eligible"])

    op.create_table(
        "leaderboard_entries",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.String(64),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("total_score", sa.Integer(), server_default="0"),
        sa.Column("position", sa.Integer()),
        sa.Column("last_updated", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", name="uq_leaderboard_entries_user"),
    )
    op.create_index("ix_leaderboard_entries_position", "leaderboard_entries", ["position"])

    op.create_table(
        "admin_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("actor_id", sa.String(64), nullable=False),
        sa.Column("action_type", sa.String(50), nullable=False),
        sa.Column("target_table", sa.String(50), nullable=False),
        sa.Column("target_id", sa.String(100)),
        sa.Column("before_snapshot", postgresql.JSONB()),
        sa.Column("after_snapshot", postgresql.JSONB()),
        sa.Column("reason", sa.Text()),
        sa.Column("timestamp", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_admin_log_actor_time", "admin_log", ["actor_id", "timestamp"])
    op.create_index(
        "ix_admin_log_target", "admin_log", ["target_table", "target_id", "timestamp"]
    )


def downgrade() -> None:
    """Drop every rewards table (children first)."""
    for table in (
        "admin_log",
        "leaderboard_entries",
        "user_eligibility",
        "coin_balances",
        "user_actions",
        "user_challenges",
        "challenges",
        "gifts",
        "tenants",
        "users",
    ):
        op.drop_table(table)
