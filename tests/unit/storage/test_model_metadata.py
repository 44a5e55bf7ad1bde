from __future__ import annotations

import pytest
from sqlalchemy import CheckConstraint, UniqueConstraint
from sqlalchemy.dialects import postgresql

from progress_analytics.storage.models import Base, Job, ProgressSnapshot

pytestmark = pytest.mark.unit


def test_progress_snapshot_unique_key_is_member_period_and_date() -> None:
    unique_constraints = {
        constraint.name: [column.name for column in constraint.columns]
        for constraint in ProgressSnapshot.__table__.constraints
        if isinstance(constraint, UniqueConstraint)
    }

    assert unique_constraints["uq_progress_snapshot_user_period_date"] == [
        "user_id",
        "period_type",
        "snapshot_date",
    ]


def test_progress_snapshot_check_constraints_present() -> None:
    checks = {
        constraint.name: str(constraint.sqltext)
        for constraint in ProgressSnapshot.__table__.constraints
        if isinstance(constraint, CheckConstraint)
    }

    assert "'daily', 'weekly', 'monthly'" in checks["check_progress_snapshot_period_type"]
    assert checks["check_progress_snapshot_bounds"] == "period_end >= period_start"


def test_progress_snapshot_indexes_present_in_model_metadata() -> None:
    indexes = {
        index.name: [column.name for column in index.columns]
        for index in ProgressSnapshot.__table__.indexes
    }

    assert indexes["idx_progress_snapshots_user_period_date"] == [
        "user_id",
        "period_type",
        "snapshot_date",
    ]
    assert indexes["idx_progress_snapshots_team"] == ["team_id"]


def test_progress_snapshot_created_at_defaults_to_now() -> None:
    server_default = ProgressSnapshot.__table__.c["created_at"].server_default
    assert server_default is not None
    rendered = str(server_default.arg.compile(dialect=postgresql.dialect()))
    assert rendered.lower() == "now()"


def test_source_tables_share_metadata_with_snapshots() -> None:
    assert {"profiles", "jobs", "team_members", "mentor_goals", "progress_snapshots"} <= set(
        Base.metadata.tables
    )
    assert Job.__table__.c["id"].primary_key
