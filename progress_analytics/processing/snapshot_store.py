"""
Persistence of immutable progress snapshots.

Writes follow an idempotent-replace policy: storing a snapshot for an
(entity, period type, snapshot date) that already exists removes the old row
and inserts the new one in the same nested transaction. Rows are never
updated in place.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from typing import Protocol
from uuid import UUID

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from progress_analytics.core.errors import DuplicateSnapshot
from progress_analytics.core.metrics import DailyActivity
from progress_analytics.core.periods import PeriodType
from progress_analytics.core.snapshots import Snapshot, SnapshotMetrics
from progress_analytics.core.trends import TrendDeltas
from progress_analytics.storage.models import ProgressSnapshot

logger = structlog.get_logger(__name__)

DEFAULT_HISTORY_LIMIT = 12


class SnapshotStore(Protocol):
    async def put(self, snapshot: Snapshot) -> UUID: ...

    async def latest_before(
        self,
        entity_id: UUID,
        period_type: PeriodType,
        before_date: date,
    ) -> Snapshot | None: ...


def snapshot_to_row(snapshot: Snapshot) -> ProgressSnapshot:
    metrics = snapshot.metrics
    return ProgressSnapshot(
        id=snapshot.id,
        user_id=snapshot.entity_id,
        team_id=snapshot.group_id,
        snapshot_date=snapshot.snapshot_date,
        period_type=snapshot.period_type.value,
        period_start=snapshot.period_start,
        period_end=snapshot.period_end,
        applications_total=metrics.applications_total,
        applications_this_period=metrics.applications_this_period,
        applications_by_status=dict(metrics.applications_by_status),
        interviews_scheduled=metrics.interviews_scheduled,
        interviews_completed=metrics.interviews_completed,
        interviews_this_period=metrics.interviews_this_period,
        offers_received=metrics.offers_received,
        offers_this_period=metrics.offers_this_period,
        goals_total=metrics.goals_total,
        goals_completed=metrics.goals_completed,
        goals_completion_rate=round(metrics.goals_completion_rate, 2),
        activity_score=metrics.activity_score,
        streak_days=metrics.streak_days,
        applications_trend=round(snapshot.trend_deltas.applications, 2),
        interviews_trend=round(snapshot.trend_deltas.interviews, 2),
        activity_trend=round(snapshot.trend_deltas.activity, 2),
        daily_breakdown=[entry.to_dict() for entry in metrics.daily_breakdown],
        extensions=dict(metrics.extensions),
        generated_at=snapshot.generated_at,
    )


def row_to_snapshot(row: ProgressSnapshot) -> Snapshot:
    metrics = SnapshotMetrics(
        applications_total=row.applications_total,
        applications_this_period=row.applications_this_period,
        applications_by_status={
            str(label): int(count) for label, count in (row.applications_by_status or {}).items()
        },
        interviews_scheduled=row.interviews_scheduled,
        interviews_completed=row.interviews_completed,
        interviews_this_period=row.interviews_this_period,
        offers_received=row.offers_received,
        offers_this_period=row.offers_this_period,
        goals_total=row.goals_total,
        goals_completed=row.goals_completed,
        goals_completion_rate=float(row.goals_completion_rate),
        activity_score=row.activity_score,
        streak_days=row.streak_days,
        daily_breakdown=[
            DailyActivity(
                day=date.fromisoformat(str(entry["date"])),
                applications=int(entry.get("applications", 0)),
            )
            for entry in (row.daily_breakdown or [])
        ],
        extensions=dict(row.extensions or {}),
    )
    return Snapshot(
        id=row.id,
        entity_id=row.user_id,
        group_id=row.team_id,
        period_type=PeriodType.parse(row.period_type),
        period_start=row.period_start,
        period_end=row.period_end,
        snapshot_date=row.snapshot_date,
        metrics=metrics,
        trend_deltas=TrendDeltas(
            applications=float(row.applications_trend),
            interviews=float(row.interviews_trend),
            activity=float(row.activity_trend),
        ),
        generated_at=row.generated_at,
    )


class SqlSnapshotStore:
    """Snapshot store backed by the ``progress_snapshots`` table."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def put(self, snapshot: Snapshot) -> UUID:
        """
        Store a snapshot, replacing any existing one for the same key.

        Returns:
            Id of the stored snapshot, or of the concurrent writer's snapshot
            when another transaction inserted the same key first

        Raises:
            DuplicateSnapshot: If the key conflicts but no winner can be loaded
        """
        period_type = snapshot.period_type.value
        try:
            async with self.session.begin_nested():
                await self.session.execute(
                    delete(ProgressSnapshot)
                    .where(ProgressSnapshot.user_id == snapshot.entity_id)
                    .where(ProgressSnapshot.period_type == period_type)
                    .where(ProgressSnapshot.snapshot_date == snapshot.snapshot_date)
                )
                self.session.add(snapshot_to_row(snapshot))
                await self.session.flush()
            return snapshot.id
        except IntegrityError:
            pass

        winner_id = await self.session.scalar(
            select(ProgressSnapshot.id)
            .where(ProgressSnapshot.user_id == snapshot.entity_id)
            .where(ProgressSnapshot.period_type == period_type)
            .where(ProgressSnapshot.snapshot_date == snapshot.snapshot_date)
            .limit(1)
        )
        if winner_id is None:
            msg = (
                f"Snapshot for entity {snapshot.entity_id} "
                f"({period_type}, {snapshot.snapshot_date}) conflicted without a winner"
            )
            raise DuplicateSnapshot(msg)

        logger.info(
            "Concurrent snapshot write won; keeping existing row",
            entity_id=str(snapshot.entity_id),
            period_type=period_type,
            snapshot_date=snapshot.snapshot_date.isoformat(),
            snapshot_id=str(winner_id),
        )
        return winner_id

    async def latest_before(
        self,
        entity_id: UUID,
        period_type: PeriodType,
        before_date: date,
    ) -> Snapshot | None:
        """Most recent snapshot of this period type strictly before ``before_date``."""
        row = await self.session.scalar(
            select(ProgressSnapshot)
            .where(ProgressSnapshot.user_id == entity_id)
            .where(ProgressSnapshot.period_type == PeriodType.parse(period_type).value)
            .where(ProgressSnapshot.snapshot_date < before_date)
            .order_by(ProgressSnapshot.snapshot_date.desc())
            .limit(1)
        )
        return None if row is None else row_to_snapshot(row)

    async def get(self, snapshot_id: UUID) -> Snapshot | None:
        row = await self.session.get(ProgressSnapshot, snapshot_id)
        return None if row is None else row_to_snapshot(row)

    async def list_for_entity(
        self,
        entity_id: UUID,
        period_type: PeriodType | str,
        limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> Sequence[Snapshot]:
        """Newest-first snapshot history for one member."""
        rows = await self.session.scalars(
            select(ProgressSnapshot)
            .where(ProgressSnapshot.user_id == entity_id)
            .where(ProgressSnapshot.period_type == PeriodType.parse(period_type).value)
            .order_by(ProgressSnapshot.snapshot_date.desc())
            .limit(max(1, limit))
        )
        return [row_to_snapshot(row) for row in rows.all()]
