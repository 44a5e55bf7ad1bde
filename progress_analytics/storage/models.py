"""
Database models for the progress analytics engine.

``ProgressSnapshot`` is the only table the engine writes. The remaining
models map the host application's source tables and are read-only here.
Uses async SQLAlchemy 2.0 patterns.
"""

from __future__ import annotations

from datetime import date, datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# =============================================================================
# Base Configuration
# =============================================================================


class Base(DeclarativeBase):
    """Base class for all models."""

    type_annotation_map = {
        dict: JSONB,
        list[str]: ARRAY(String),
        UUID: PGUUID(as_uuid=True),
    }


# =============================================================================
# Source Models (read-only)
# =============================================================================


class Profile(Base):
    """
    A member profile. Its mutable fields feed cache fingerprints.

    ``updated_at`` is maintained by the host application's write paths.
    """

    __tablename__ = "profiles"

    id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), primary_key=True)
    first_name: Mapped[str] = mapped_column(Text, nullable=False)
    last_name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str] = mapped_column(Text, nullable=False)
    professional_title: Mapped[str | None] = mapped_column(Text)
    summary: Mapped[str | None] = mapped_column(Text)
    experience_level: Mapped[str | None] = mapped_column(Text)
    industry: Mapped[str | None] = mapped_column(Text)
    city: Mapped[str | None] = mapped_column(Text)
    state: Mapped[str | None] = mapped_column(Text)
    metadata_: Mapped[dict] = mapped_column("metadata", JSONB, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class Job(Base):
    """A job application in a member's pipeline; the engine's activity log."""

    __tablename__ = "jobs"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    user_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    job_title: Mapped[str] = mapped_column(Text, nullable=False)
    company_name: Mapped[str | None] = mapped_column(Text)
    job_description: Mapped[str | None] = mapped_column(Text)
    required_skills: Mapped[list[str]] = mapped_column(ARRAY(Text), default=list)
    preferred_skills: Mapped[list[str]] = mapped_column(ARRAY(Text), default=list)
    job_status: Mapped[str | None] = mapped_column(Text)
    status_changed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    is_archived: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class TeamMember(Base):
    """Membership of a profile in a team."""

    __tablename__ = "team_members"

    id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), primary_key=True, default=uuid4)
    team_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), nullable=False, index=True)
    user_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
    )
    role: Mapped[str] = mapped_column(String(32), nullable=False, default="candidate")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class MentorGoal(Base):
    """
    A goal assigned to a candidate.

    Optional: not every deployment has this table.
    """

    __tablename__ = "mentor_goals"

    id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), primary_key=True, default=uuid4)
    candidate_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), nullable=False, index=True)
    status: Mapped[str | None] = mapped_column(String(32))


# =============================================================================
# Snapshot Models
# =============================================================================


class ProgressSnapshot(Base):
    """
    Immutable, dated progress metrics for one member and period.

    Rows are never updated in place. Re-running a day replaces the row for
    (user_id, period_type, snapshot_date) as a delete plus insert in one
    transaction. ``generated_at`` is written explicitly by the store.
    """

    __tablename__ = "progress_snapshots"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    user_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), nullable=False)
    team_id: Mapped[UUID | None] = mapped_column(PGUUID(as_uuid=True))
    snapshot_date: Mapped[date] = mapped_column(Date, nullable=False)
    period_type: Mapped[str] = mapped_column(String(10), nullable=False)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)

    applications_total: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    applications_this_period: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    applications_by_status: Mapped[dict] = mapped_column(JSONB, default=dict, nullable=False)
    interviews_scheduled: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    interviews_completed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    interviews_this_period: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    offers_received: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    offers_this_period: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    goals_total: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    goals_completed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    goals_completion_rate: Mapped[float] = mapped_column(
        Numeric(5, 2),
        default=0,
        nullable=False,
    )
    activity_score: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    streak_days: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    applications_trend: Mapped[float] = mapped_column(Numeric(10, 2), default=0, nullable=False)
    interviews_trend: Mapped[float] = mapped_column(Numeric(10, 2), default=0, nullable=False)
    activity_trend: Mapped[float] = mapped_column(Numeric(10, 2), default=0, nullable=False)

    daily_breakdown: Mapped[list[dict]] = mapped_column(JSONB, default=list, nullable=False)
    extensions: Mapped[dict] = mapped_column(JSONB, default=dict, nullable=False)

    generated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "period_type",
            "snapshot_date",
            name="uq_progress_snapshot_user_period_date",
        ),
        CheckConstraint(
            "period_type IN ('daily', 'weekly', 'monthly')",
            name="check_progress_snapshot_period_type",
        ),
        CheckConstraint(
            "period_end >= period_start",
            name="check_progress_snapshot_bounds",
        ),
        Index(
            "idx_progress_snapshots_user_period_date",
            "user_id",
            "period_type",
            "snapshot_date",
        ),
        Index("idx_progress_snapshots_team", "team_id"),
    )
