"""Initial progress snapshot schema.

Revision ID: 0001_initial_schema
Revises: None
Create Date: 2026-10-17
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Source tables (profiles, jobs, team_members, mentor_goals) belong to the
    # host application and are not managed here.
    op.create_table(
        "progress_snapshots",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("team_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("snapshot_date", sa.Date(), nullable=False),
        sa.Column("period_type", sa.String(length=10), nullable=False),
        sa.Column("period_start", sa.Date(), nullable=False),
        sa.Column("period_end", sa.Date(), nullable=False),
        sa.Column("applications_total", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("applications_this_period", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "applications_by_status",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("interviews_scheduled", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("interviews_completed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("interviews_this_period", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("offers_received", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("offers_this_period", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("goals_total", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("goals_completed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "goals_completion_rate",
            sa.Numeric(5, 2),
            nullable=False,
            server_default="0",
        ),
        sa.Column("activity_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("streak_days", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("applications_trend", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("interviews_trend", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("activity_trend", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column(
            "daily_breakdown",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column(
            "extensions",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("generated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.UniqueConstraint(
            "user_id",
            "period_type",
            "snapshot_date",
            name="uq_progress_snapshot_user_period_date",
        ),
        sa.CheckConstraint(
            "period_type IN ('daily', 'weekly', 'monthly')",
            name="check_progress_snapshot_period_type",
        ),
        sa.CheckConstraint(
            "period_end >= period_start",
            name="check_progress_snapshot_bounds",
        ),
    )
    op.create_index(
        "idx_progress_snapshots_user_period_date",
        "progress_snapshots",
        ["user_id", "period_type", "snapshot_date"],
    )
    op.create_index("idx_progress_snapshots_team", "progress_snapshots", ["team_id"])


def downgrade() -> None:
    op.drop_index("idx_progress_snapshots_team", table_name="progress_snapshots")
    op.drop_index("idx_progress_snapshots_user_period_date", table_name="progress_snapshots")
    op.drop_table("progress_snapshots")
