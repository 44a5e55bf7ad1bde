"""
Metric aggregation over raw activity records.

Reduces a member's job-application history into the counts persisted on a
progress snapshot, plus conversion rates used by downstream read paths.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import Any
from uuid import UUID

from progress_analytics.core.periods import PeriodBounds
from progress_analytics.core.streaks import DEFAULT_LOOKBACK_DAYS, calculate_streak

UNKNOWN_STATUS = "unknown"

# Status sets are matched case-insensitively; labels are stored verbatim.
INTERVIEWING_STATUSES = frozenset({"interviewing", "interview"})
CLOSED_STATUSES = frozenset({"offer", "rejected"})
OFFER_STATUSES = frozenset({"offer"})
APPLIED_STATUSES = frozenset(
    {"applied", "phone screen", "interview", "interviewing", "offer", "rejected"}
)
RESPONDED_STATUSES = frozenset({"phone screen", "interview", "interviewing", "offer"})

MAX_ACTIVITY_SCORE = 100
POINTS_PER_APPLICATION = 10
POINTS_PER_INTERVIEW = 20
POINTS_PER_OFFER = 30


@dataclass(slots=True, frozen=True)
class ActivityRecord:
    """One job application as seen by the engine."""

    record_id: int
    entity_id: UUID
    status: str | None
    created_at: datetime
    updated_at: datetime

    @property
    def status_label(self) -> str:
        return self.status if self.status else UNKNOWN_STATUS

    @property
    def normalized_status(self) -> str:
        return (self.status or "").strip().lower()


@dataclass(slots=True, frozen=True)
class DailyActivity:
    day: date
    applications: int

    def to_dict(self) -> dict[str, Any]:
        return {"date": self.day.isoformat(), "applications": self.applications}


@dataclass(slots=True)
class ActivityAggregate:
    """Counts derived from one member's activity for one period."""

    applications_total: int = 0
    applications_this_period: int = 0
    applications_by_status: dict[str, int] = field(default_factory=dict)
    interviews_scheduled: int = 0
    interviews_completed: int = 0
    offers_received: int = 0
    offers_this_period: int = 0
    streak_days: int = 0
    daily_breakdown: list[DailyActivity] = field(default_factory=list)

    @property
    def interviews_this_period(self) -> int:
        return self.interviews_completed


@dataclass(slots=True, frozen=True)
class ConversionRates:
    """Funnel rates as fractions in [0, 1]."""

    applied: int
    response_rate: float
    interview_rate: float
    offer_rate: float


def activity_day(moment: datetime) -> date:
    """Calendar day of a timestamp, in UTC when the timestamp is aware."""
    if moment.tzinfo is not None:
        return moment.astimezone(UTC).date()
    return moment.date()


def safe_rate(numerator: float, denominator: float) -> float:
    """numerator / denominator, or 0.0 when the denominator is zero."""
    if denominator == 0:
        return 0.0
    return numerator / denominator


def completion_rate(completed: int, total: int) -> float:
    """Completion percentage in [0, 100]."""
    return safe_rate(completed, total) * 100


def activity_score(*, applications: int, interviews: int, offers: int) -> int:
    """Capped engagement score for one period."""
    raw = (
        applications * POINTS_PER_APPLICATION
        + interviews * POINTS_PER_INTERVIEW
        + offers * POINTS_PER_OFFER
    )
    return min(MAX_ACTIVITY_SCORE, max(0, raw))


def aggregate_activity(
    records: Sequence[ActivityRecord],
    bounds: PeriodBounds,
    *,
    as_of: date,
    lookback_days: int = DEFAULT_LOOKBACK_DAYS,
) -> ActivityAggregate:
    """
    Count lifetime and in-period activity for one member.

    Args:
        records: Full (unbounded) activity history of the member
        bounds: Period being snapshotted
        as_of: Snapshot day; the daily breakdown stops here
        lookback_days: Streak history window

    Returns:
        ActivityAggregate with status labels preserved verbatim
    """
    aggregate = ActivityAggregate(applications_total=len(records))
    status_counts: Counter[str] = Counter()
    created_per_day: Counter[date] = Counter()

    for record in records:
        created_day = activity_day(record.created_at)
        updated_day = activity_day(record.updated_at)
        status = record.normalized_status
        status_counts[record.status_label] += 1
        created_per_day[created_day] += 1

        if bounds.contains(created_day):
            aggregate.applications_this_period += 1
        if status in INTERVIEWING_STATUSES:
            aggregate.interviews_scheduled += 1
        if status in CLOSED_STATUSES and bounds.contains(updated_day):
            aggregate.interviews_completed += 1
        if status in OFFER_STATUSES:
            aggregate.offers_received += 1
            if bounds.contains(updated_day):
                aggregate.offers_this_period += 1

    aggregate.applications_by_status = dict(status_counts)
    aggregate.streak_days = calculate_streak(
        created_per_day.keys(),
        today=as_of,
        lookback_days=lookback_days,
    )
    aggregate.daily_breakdown = [
        DailyActivity(day=day, applications=created_per_day.get(day, 0))
        for day in bounds.days(until=as_of)
    ]
    return aggregate


def conversion_rates(records: Iterable[ActivityRecord]) -> ConversionRates:
    """Response, interview and offer rates over applied records."""
    applied = responded = interviewed = offered = 0
    for record in records:
        status = record.normalized_status
        if status not in APPLIED_STATUSES:
            continue
        applied += 1
        if status in RESPONDED_STATUSES:
            responded += 1
        if status in INTERVIEWING_STATUSES or status in OFFER_STATUSES:
            interviewed += 1
        if status in OFFER_STATUSES:
            offered += 1

    return ConversionRates(
        applied=applied,
        response_rate=safe_rate(responded, applied),
        interview_rate=safe_rate(interviewed, applied),
        offer_rate=safe_rate(offered, applied),
    )
