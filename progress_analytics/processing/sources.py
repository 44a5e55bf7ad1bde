"""
Read-side data sources consumed by the snapshot and cache engine.

Each source is a ``Protocol`` so services can be driven by in-memory fakes;
the ``Sql*`` implementations read the host application's tables through an
``AsyncSession``.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import ProgrammingError
from sqlalchemy.ext.asyncio import AsyncSession

from progress_analytics.core.errors import SourceUnavailable
from progress_analytics.core.fingerprint import CacheSubject, compute_fingerprint
from progress_analytics.core.metrics import ActivityRecord
from progress_analytics.core.snapshots import GoalCounts
from progress_analytics.storage.models import Job, MentorGoal, Profile, TeamMember

logger = structlog.get_logger(__name__)

GOAL_COMPLETED_STATUS = "completed"

# Fields of a job row that derived artifacts depend on.
_JOB_FINGERPRINT_FIELDS = (
    "id",
    "job_title",
    "company_name",
    "job_description",
    "required_skills",
    "preferred_skills",
    "job_status",
    "updated_at",
)
_PROFILE_FINGERPRINT_EXCLUDED = frozenset({"created_at"})


class ActivitySource(Protocol):
    async def list_activity(
        self,
        entity_id: UUID,
        since: datetime | None = None,
    ) -> Sequence[ActivityRecord]: ...


class ProfileFingerprintSource(Protocol):
    async def current_fingerprint(self, subject: CacheSubject) -> str: ...


class PopulationSource(Protocol):
    async def active_members(self, group_id: UUID) -> Sequence[UUID]: ...


class GoalSource(Protocol):
    async def goal_counts(self, entity_id: UUID) -> GoalCounts: ...


def _coerce_uuid(value: UUID | str) -> UUID:
    return value if isinstance(value, UUID) else UUID(str(value))


def _row_state(row: Any, columns: Sequence[str]) -> dict[str, Any]:
    return {column: getattr(row, column) for column in columns}


class SqlActivitySource:
    """
    Job applications of one member, oldest first.

    Raises:
        SourceUnavailable: If the jobs table is not present in this deployment
    """

    source_name = "jobs"

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list_activity(
        self,
        entity_id: UUID,
        since: datetime | None = None,
    ) -> Sequence[ActivityRecord]:
        query = select(
            Job.id,
            Job.user_id,
            Job.job_status,
            Job.created_at,
            Job.updated_at,
        ).where(Job.user_id == entity_id)
        if since is not None:
            query = query.where(Job.created_at >= since)
        query = query.order_by(Job.created_at.asc(), Job.id.asc())

        try:
            async with self.session.begin_nested():
                result = await self.session.execute(query)
                rows = result.all()
        except ProgrammingError as exc:
            raise SourceUnavailable(self.source_name, str(exc.orig)) from exc
        return [
            ActivityRecord(
                record_id=row.id,
                entity_id=row.user_id,
                status=row.job_status,
                created_at=row.created_at,
                updated_at=row.updated_at,
            )
            for row in rows
        ]


class SqlPopulationSource:
    """Active members of a team."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def active_members(self, group_id: UUID) -> Sequence[UUID]:
        rows = await self.session.scalars(
            select(TeamMember.user_id)
            .where(TeamMember.team_id == group_id)
            .where(TeamMember.is_active.is_(True))
            .order_by(TeamMember.joined_at.asc())
        )
        return list(rows.all())


class SqlGoalSource:
    """
    Goal counts from the optional ``mentor_goals`` table.

    Raises:
        SourceUnavailable: If the table is not present in this deployment
    """

    source_name = "mentor_goals"

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def goal_counts(self, entity_id: UUID) -> GoalCounts:
        completed = func.count().filter(func.lower(MentorGoal.status) == GOAL_COMPLETED_STATUS)
        query = select(func.count().label("total"), completed.label("completed")).where(
            MentorGoal.candidate_id == entity_id
        )
        try:
            async with self.session.begin_nested():
                result = await self.session.execute(query)
                row = result.one()
        except ProgrammingError as exc:
            raise SourceUnavailable(self.source_name, str(exc.orig)) from exc
        return GoalCounts(total=int(row.total or 0), completed=int(row.completed or 0))


class SqlProfileFingerprintSource:
    """
    Fingerprints of the source state behind a member's derived artifacts.

    A member subject hashes the profile row together with a summary of the
    member's job activity (count and latest update), so logging or moving an
    application changes it. A composite subject hashes the profile row and the
    related job row. A missing profile or job hashes as an absent state, so
    deleting either one changes the fingerprint too.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def current_fingerprint(self, subject: CacheSubject) -> str:
        profile = await self.session.get(Profile, _coerce_uuid(subject.entity_id))
        profile_state = None
        if profile is not None:
            columns = [
                column.key
                for column in Profile.__mapper__.column_attrs
                if column.key not in _PROFILE_FINGERPRINT_EXCLUDED
            ]
            profile_state = _row_state(profile, columns)

        if not subject.is_composite:
            activity_state = await self._activity_state(subject.entity_id)
            return compute_fingerprint(profile_state, activity_state)

        job = await self.session.get(Job, int(str(subject.related_id)))
        job_state = None if job is None else _row_state(job, _JOB_FINGERPRINT_FIELDS)
        return compute_fingerprint(profile_state, job_state)

    async def _activity_state(self, entity_id: UUID | str) -> dict[str, Any]:
        result = await self.session.execute(
            select(
                func.count(Job.id).label("jobs"),
                func.max(Job.updated_at).label("last_updated_at"),
            ).where(Job.user_id == _coerce_uuid(entity_id))
        )
        row = result.one()
        return {"jobs": int(row.jobs or 0), "last_updated_at": row.last_updated_at}
