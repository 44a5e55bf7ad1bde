"""
Progress snapshot value objects.

Snapshots are immutable once built. Core metrics are explicit fields; anything
else a caller wants to persist goes into ``SnapshotMetrics.extensions``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any
from uuid import UUID

from progress_analytics.core.metrics import (
    ActivityAggregate,
    DailyActivity,
    activity_score,
    completion_rate,
)
from progress_analytics.core.periods import PeriodBounds, PeriodType
from progress_analytics.core.trends import TrendDeltas


@dataclass(slots=True, frozen=True)
class GoalCounts:
    total: int = 0
    completed: int = 0


@dataclass(slots=True, frozen=True)
class SnapshotMetrics:
    """Closed metric schema of one snapshot plus an open extension map."""

    applications_total: int = 0
    applications_this_period: int = 0
    applications_by_status: dict[str, int] = field(default_factory=dict)
    interviews_scheduled: int = 0
    interviews_completed: int = 0
    interviews_this_period: int = 0
    offers_received: int = 0
    offers_this_period: int = 0
    goals_total: int = 0
    goals_completed: int = 0
    goals_completion_rate: float = 0.0
    activity_score: int = 0
    streak_days: int = 0
    daily_breakdown: list[DailyActivity] = field(default_factory=list)
    extensions: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_aggregate(
        cls,
        aggregate: ActivityAggregate,
        goals: GoalCounts | None = None,
        extensions: dict[str, Any] | None = None,
    ) -> SnapshotMetrics:
        goals = goals or GoalCounts()
        return cls(
            applications_total=aggregate.applications_total,
            applications_this_period=aggregate.applications_this_period,
            applications_by_status=dict(aggregate.applications_by_status),
            interviews_scheduled=aggregate.interviews_scheduled,
            interviews_completed=aggregate.interviews_completed,
            interviews_this_period=aggregate.interviews_this_period,
            offers_received=aggregate.offers_received,
            offers_this_period=aggregate.offers_this_period,
            goals_total=goals.total,
            goals_completed=goals.completed,
            goals_completion_rate=completion_rate(goals.completed, goals.total),
            activity_score=activity_score(
                applications=aggregate.applications_this_period,
                interviews=aggregate.interviews_this_period,
                offers=aggregate.offers_this_period,
            ),
            streak_days=aggregate.streak_days,
            daily_breakdown=list(aggregate.daily_breakdown),
            extensions=dict(extensions or {}),
        )


@dataclass(slots=True, frozen=True)
class Snapshot:
    """An immutable, dated record of derived metrics for one member and period."""

    id: UUID
    entity_id: UUID
    group_id: UUID | None
    period_type: PeriodType
    period_start: date
    period_end: date
    snapshot_date: date
    metrics: SnapshotMetrics
    trend_deltas: TrendDeltas
    generated_at: datetime

    @property
    def bounds(self) -> PeriodBounds:
        return PeriodBounds(self.period_type, self.period_start, self.period_end)
