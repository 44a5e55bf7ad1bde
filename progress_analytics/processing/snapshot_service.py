"""
Snapshot generation for one member and the cached profile analytics read path.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import UTC, date, datetime, timedelta
from typing import Any
from uuid import UUID, uuid4

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from progress_analytics.core.config import settings
from progress_analytics.core.errors import SourceUnavailable
from progress_analytics.core.fingerprint import CacheSubject
from progress_analytics.core.metrics import ActivityRecord, aggregate_activity, conversion_rates
from progress_analytics.core.observability import (
    record_snapshot_generation,
    record_source_unavailable,
)
from progress_analytics.core.periods import PeriodType, period_bounds
from progress_analytics.core.snapshots import GoalCounts, Snapshot, SnapshotMetrics
from progress_analytics.core.trends import compute_trend_deltas
from progress_analytics.processing.snapshot_store import SnapshotStore, SqlSnapshotStore
from progress_analytics.processing.sources import (
    ActivitySource,
    GoalSource,
    SqlActivitySource,
    SqlGoalSource,
)
from progress_analytics.processing.versioned_cache import CacheKind, VersionedCache

logger = structlog.get_logger(__name__)


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


class SnapshotService:
    """Computes and stores progress snapshots for individual members."""

    def __init__(
        self,
        activity_source: ActivitySource,
        snapshot_store: SnapshotStore,
        goal_source: GoalSource | None = None,
        *,
        lookback_days: int | None = None,
        now_fn: Callable[[], datetime] | None = None,
    ) -> None:
        self.activity_source = activity_source
        self.snapshot_store = snapshot_store
        self.goal_source = goal_source
        self.lookback_days = (
            settings.STREAK_LOOKBACK_DAYS if lookback_days is None else max(1, lookback_days)
        )
        self._now_fn = now_fn or _utc_now

    async def build_snapshot(
        self,
        entity_id: UUID,
        group_id: UUID | None,
        period_type: PeriodType | str,
        *,
        as_of: date | None = None,
    ) -> Snapshot:
        """
        Compute a snapshot without storing it.

        Args:
            entity_id: Member being snapshotted
            group_id: Team the snapshot is attributed to, if any
            period_type: daily, weekly, or monthly
            as_of: Snapshot day; defaults to today in UTC

        Raises:
            ConfigurationError: If period_type is not recognised
        """
        resolved = PeriodType.parse(period_type)
        generated_at = self._now_fn()
        snapshot_date = as_of or generated_at.astimezone(UTC).date()
        bounds = period_bounds(resolved, snapshot_date)

        records = await self._load_activity(entity_id)
        aggregate = aggregate_activity(
            records,
            bounds,
            as_of=snapshot_date,
            lookback_days=self.lookback_days,
        )
        metrics = SnapshotMetrics.from_aggregate(aggregate, goals=await self._load_goals(entity_id))

        prior = await self.snapshot_store.latest_before(entity_id, resolved, snapshot_date)
        trend_deltas = compute_trend_deltas(metrics, None if prior is None else prior.metrics)

        return Snapshot(
            id=uuid4(),
            entity_id=entity_id,
            group_id=group_id,
            period_type=resolved,
            period_start=bounds.start,
            period_end=bounds.end,
            snapshot_date=snapshot_date,
            metrics=metrics,
            trend_deltas=trend_deltas,
            generated_at=generated_at,
        )

    async def generate_snapshot(
        self,
        entity_id: UUID,
        group_id: UUID | None,
        period_type: PeriodType | str,
        *,
        as_of: date | None = None,
    ) -> UUID:
        """Compute and store a snapshot, replacing any existing one for the same day."""
        resolved = PeriodType.parse(period_type)
        try:
            snapshot = await self.build_snapshot(entity_id, group_id, resolved, as_of=as_of)
            snapshot_id = await self.snapshot_store.put(snapshot)
        except Exception:
            record_snapshot_generation(period_type=resolved.value, outcome="failed")
            raise

        record_snapshot_generation(period_type=resolved.value, outcome="succeeded")
        logger.info(
            "Generated progress snapshot",
            entity_id=str(entity_id),
            group_id=str(group_id) if group_id else None,
            period_type=resolved.value,
            snapshot_date=snapshot.snapshot_date.isoformat(),
            snapshot_id=str(snapshot_id),
            applications_this_period=snapshot.metrics.applications_this_period,
            streak_days=snapshot.metrics.streak_days,
        )
        return snapshot_id

    async def get_profile_analytics(
        self,
        entity_id: UUID,
        cache: VersionedCache,
        *,
        period_type: PeriodType | str = PeriodType.WEEKLY,
    ) -> dict[str, Any]:
        """
        Lifetime funnel summary for a member, served through the derived cache.

        Raises:
            DerivedComputationError: If the summary cannot be computed
        """
        resolved = PeriodType.parse(period_type)

        async def _compute() -> dict[str, Any]:
            return await self._profile_analytics(entity_id, resolved)

        payload: dict[str, Any] = await cache.get_or_compute(
            CacheSubject(entity_id=entity_id),
            CacheKind.PROFILE_ANALYTICS,
            _compute,
        )
        return payload

    async def _profile_analytics(self, entity_id: UUID, period_type: PeriodType) -> dict[str, Any]:
        records = await self._load_activity(entity_id)
        rates = conversion_rates(records)
        today = self._now_fn().astimezone(UTC).date()
        latest = await self.snapshot_store.latest_before(
            entity_id,
            period_type,
            today + timedelta(days=1),
        )
        status_counts: dict[str, int] = {}
        for record in records:
            status_counts[record.status_label] = status_counts.get(record.status_label, 0) + 1

        return {
            "entity_id": str(entity_id),
            "applications_total": len(records),
            "applications_by_status": status_counts,
            "applied": rates.applied,
            "response_rate": round(rates.response_rate, 4),
            "interview_rate": round(rates.interview_rate, 4),
            "offer_rate": round(rates.offer_rate, 4),
            "latest_snapshot_date": None if latest is None else latest.snapshot_date.isoformat(),
            "streak_days": 0 if latest is None else latest.metrics.streak_days,
            "trend": None if latest is None else latest.trend_deltas.to_dict(),
        }

    async def _load_activity(self, entity_id: UUID) -> list[ActivityRecord]:
        try:
            return list(await self.activity_source.list_activity(entity_id))
        except SourceUnavailable as exc:
            record_source_unavailable(source=exc.source)
            logger.warning(
                "Activity source unavailable; treating as no activity",
                entity_id=str(entity_id),
                source=exc.source,
            )
            return []

    async def _load_goals(self, entity_id: UUID) -> GoalCounts:
        if self.goal_source is None:
            return GoalCounts()
        try:
            return await self.goal_source.goal_counts(entity_id)
        except SourceUnavailable as exc:
            record_source_unavailable(source=exc.source)
            logger.warning(
                "Goal source unavailable; treating as no goals",
                entity_id=str(entity_id),
                source=exc.source,
            )
            return GoalCounts()


@asynccontextmanager
async def session_scoped_snapshot_service(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncIterator[SnapshotService]:
    """
    Yield a service bound to a fresh session.

    The session commits when the block exits cleanly and rolls back otherwise,
    so a failed member never leaves a partial snapshot behind.
    """
    if session_factory is None:
        from progress_analytics.storage.database import async_session_maker

        session_factory = async_session_maker

    async with session_factory() as session:
        service = SnapshotService(
            activity_source=SqlActivitySource(session),
            snapshot_store=SqlSnapshotStore(session),
            goal_source=SqlGoalSource(session),
        )
        try:
            yield service
            await session.commit()
        except Exception:
            await session.rollback()
            raise
