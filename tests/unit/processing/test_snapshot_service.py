from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock
from uuid import UUID, uuid4

import pytest

from progress_analytics.core.errors import ConfigurationError, SourceUnavailable
from progress_analytics.core.fingerprint import CacheSubject
from progress_analytics.core.metrics import ActivityRecord
from progress_analytics.core.periods import PeriodType
from progress_analytics.core.snapshots import GoalCounts, Snapshot
from progress_analytics.processing import snapshot_service as service_module
from progress_analytics.processing.snapshot_service import (
    SnapshotService,
    session_scoped_snapshot_service,
)
from progress_analytics.processing.sources import SqlProfileFingerprintSource
from progress_analytics.processing.versioned_cache import CacheTier, VersionedCache
from progress_analytics.storage.models import Profile

pytestmark = pytest.mark.unit

TODAY = date(2026, 10, 14)


@dataclass(slots=True)
class _FakeActivitySource:
    records: list[ActivityRecord] = field(default_factory=list)
    calls: int = 0

    async def list_activity(self, entity_id: UUID, since: datetime | None = None):
        self.calls += 1
        return [record for record in self.records if record.entity_id == entity_id]


@dataclass(slots=True)
class _InMemorySnapshotStore:
    snapshots: dict[tuple[UUID, str, date], Snapshot] = field(default_factory=dict)

    async def put(self, snapshot: Snapshot) -> UUID:
        key = (snapshot.entity_id, snapshot.period_type.value, snapshot.snapshot_date)
        self.snapshots[key] = snapshot
        return snapshot.id

    async def latest_before(self, entity_id, period_type, before_date):
        wanted = PeriodType.parse(period_type).value
        candidates = [
            snapshot
            for (owner, kind, day), snapshot in self.snapshots.items()
            if owner == entity_id and kind == wanted and day < before_date
        ]
        return max(candidates, key=lambda snapshot: snapshot.snapshot_date, default=None)


@dataclass(slots=True)
class _FakeGoalSource:
    counts: GoalCounts | None = None

    async def goal_counts(self, entity_id: UUID) -> GoalCounts:
        if self.counts is None:
            raise SourceUnavailable("mentor_goals", "relation does not exist")
        return self.counts


@dataclass(slots=True)
class _FakeRedisClient:
    values: dict[str, str] = field(default_factory=dict)

    async def get(self, key: str) -> str | None:
        return self.values.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> bool:
        self.values[key] = value
        return True

    async def delete(self, *keys: str) -> int:
        return sum(1 for key in keys if self.values.pop(key, None) is not None)


@dataclass(slots=True)
class _FakeFingerprintSource:
    fingerprint: str = "f1"

    async def current_fingerprint(self, subject: CacheSubject) -> str:
        return self.fingerprint


def _clock(day: date):
    return lambda: datetime(day.year, day.month, day.day, 6, 0, tzinfo=UTC)


@pytest.fixture
def activity(make_activity) -> _FakeActivitySource:
    eight_days_ago = TODAY - timedelta(days=8)
    return _FakeActivitySource(
        records=[
            make_activity(TODAY),
            make_activity(TODAY),
            make_activity(TODAY, "Interview"),
            make_activity(eight_days_ago),
            make_activity(eight_days_ago, "Phone Screen"),
        ]
    )


@pytest.mark.asyncio
async def test_weekly_snapshot_then_one_week_later_reports_full_drop(
    entity_id: UUID,
    activity: _FakeActivitySource,
) -> None:
    store = _InMemorySnapshotStore()
    team_id = uuid4()

    first_service = SnapshotService(activity, store, now_fn=_clock(TODAY))
    first_id = await first_service.generate_snapshot(entity_id, team_id, "weekly")
    first = store.snapshots[(entity_id, "weekly", TODAY)]

    assert first.id == first_id
    assert first.metrics.applications_this_period == 3
    assert first.metrics.applications_total == 5
    assert first.metrics.interviews_scheduled == 1
    assert first.metrics.streak_days == 1
    assert first.trend_deltas.to_dict() == {"applications": 0.0, "interviews": 0.0, "activity": 0.0}
    assert (first.period_start, first.period_end) == (date(2026, 10, 12), date(2026, 10, 18))

    next_week = TODAY + timedelta(days=7)
    second_service = SnapshotService(activity, store, now_fn=_clock(next_week))
    await second_service.generate_snapshot(entity_id, team_id, "weekly")
    second = store.snapshots[(entity_id, "weekly", next_week)]

    assert second.metrics.applications_this_period == 0
    assert second.metrics.applications_total == 5
    assert second.trend_deltas.applications == pytest.approx(-100.0)
    assert second.trend_deltas.activity == pytest.approx(-100.0)


@pytest.mark.asyncio
async def test_rerunning_same_day_replaces_snapshot_with_identical_metrics(
    entity_id: UUID,
    activity: _FakeActivitySource,
) -> None:
    store = _InMemorySnapshotStore()
    service = SnapshotService(activity, store, now_fn=_clock(TODAY))

    await service.generate_snapshot(entity_id, None, PeriodType.WEEKLY)
    first = store.snapshots[(entity_id, "weekly", TODAY)]
    await service.generate_snapshot(entity_id, None, PeriodType.WEEKLY)
    second = store.snapshots[(entity_id, "weekly", TODAY)]

    assert len(store.snapshots) == 1
    assert second.metrics == first.metrics
    assert second.trend_deltas == first.trend_deltas


@pytest.mark.asyncio
async def test_as_of_overrides_the_clock(entity_id: UUID, activity: _FakeActivitySource) -> None:
    store = _InMemorySnapshotStore()
    service = SnapshotService(activity, store, now_fn=_clock(TODAY + timedelta(days=30)))

    snapshot = await service.build_snapshot(entity_id, None, "daily", as_of=TODAY)

    assert snapshot.snapshot_date == TODAY
    assert snapshot.metrics.applications_this_period == 3
    assert [entry.applications for entry in snapshot.metrics.daily_breakdown] == [3]
    assert store.snapshots == {}


@pytest.mark.asyncio
async def test_goals_feed_completion_rate(entity_id: UUID, activity: _FakeActivitySource) -> None:
    service = SnapshotService(
        activity,
        _InMemorySnapshotStore(),
        goal_source=_FakeGoalSource(GoalCounts(total=3, completed=2)),
        now_fn=_clock(TODAY),
    )

    snapshot = await service.build_snapshot(entity_id, None, "weekly")

    assert snapshot.metrics.goals_total == 3
    assert snapshot.metrics.goals_completed == 2
    assert snapshot.metrics.goals_completion_rate == pytest.approx(66.6667, rel=1e-4)


@pytest.mark.asyncio
async def test_unavailable_goal_source_counts_as_zero(
    entity_id: UUID,
    activity: _FakeActivitySource,
) -> None:
    service = SnapshotService(
        activity,
        _InMemorySnapshotStore(),
        goal_source=_FakeGoalSource(counts=None),
        now_fn=_clock(TODAY),
    )

    snapshot = await service.build_snapshot(entity_id, None, "weekly")

    assert (snapshot.metrics.goals_total, snapshot.metrics.goals_completed) == (0, 0)
    assert snapshot.metrics.goals_completion_rate == 0.0


@pytest.mark.asyncio
async def test_unknown_period_type_fails_before_any_read(entity_id: UUID) -> None:
    activity = _FakeActivitySource()
    store = _InMemorySnapshotStore()
    service = SnapshotService(activity, store, now_fn=_clock(TODAY))

    with pytest.raises(ConfigurationError):
        await service.generate_snapshot(entity_id, None, "fortnightly")

    assert activity.calls == 0
    assert store.snapshots == {}


@dataclass(slots=True)
class _FailingSnapshotStore(_InMemorySnapshotStore):
    async def put(self, snapshot: Snapshot) -> UUID:
        raise RuntimeError("disk full")


@pytest.mark.asyncio
async def test_store_failure_propagates(entity_id: UUID, activity: _FakeActivitySource) -> None:
    service = SnapshotService(activity, _FailingSnapshotStore(), now_fn=_clock(TODAY))

    with pytest.raises(RuntimeError, match="disk full"):
        await service.generate_snapshot(entity_id, None, "weekly")


@pytest.mark.asyncio
async def test_profile_analytics_is_cached_until_fingerprint_changes(
    entity_id: UUID,
    activity: _FakeActivitySource,
) -> None:
    store = _InMemorySnapshotStore()
    service = SnapshotService(activity, store, now_fn=_clock(TODAY))
    await service.generate_snapshot(entity_id, None, "weekly")
    fingerprints = _FakeFingerprintSource()
    cache = VersionedCache(
        CacheTier.DERIVED,
        fingerprint_source=fingerprints,
        redis_prefix="test",
        redis_client=_FakeRedisClient(),
        wall_time_fn=lambda: 1_000.0,
    )

    first = await service.get_profile_analytics(entity_id, cache)
    calls_after_first = activity.calls
    second = await service.get_profile_analytics(entity_id, cache)
    fingerprints.fingerprint = "f2"
    await service.get_profile_analytics(entity_id, cache)

    assert first == second
    assert first["applications_total"] == 5
    assert first["applied"] == 5
    assert first["response_rate"] == pytest.approx(0.4)
    assert first["interview_rate"] == pytest.approx(0.2)
    assert first["latest_snapshot_date"] == TODAY.isoformat()
    assert first["trend"] == {"applications": 0.0, "interviews": 0.0, "activity": 0.0}
    assert activity.calls == calls_after_first + 1


@pytest.mark.asyncio
async def test_session_scoped_service_commits_on_success() -> None:
    session = AsyncMock()
    factory = MagicMock(return_value=_SessionContext(session))

    async with session_scoped_snapshot_service(factory) as service:
        assert isinstance(service, SnapshotService)

    session.commit.assert_awaited_once()
    session.rollback.assert_not_awaited()


@pytest.mark.asyncio
async def test_session_scoped_service_rolls_back_on_failure() -> None:
    session = AsyncMock()
    factory = MagicMock(return_value=_SessionContext(session))

    with pytest.raises(RuntimeError, match="boom"):
        async with session_scoped_snapshot_service(factory):
            raise RuntimeError("boom")

    session.rollback.assert_awaited_once()
    session.commit.assert_not_awaited()


@dataclass(slots=True)
class _SessionContext:
    session: Any

    async def __aenter__(self) -> Any:
        return self.session

    async def __aexit__(self, *exc_info: Any) -> None:
        return None


def test_service_defaults_lookback_from_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(service_module.settings, "STREAK_LOOKBACK_DAYS", 14)

    service = SnapshotService(_FakeActivitySource(), _InMemorySnapshotStore())

    assert service.lookback_days == 14


@dataclass(slots=True)
class _MissingActivitySource:
    async def list_activity(self, entity_id: UUID, since: datetime | None = None):
        raise SourceUnavailable("jobs", 'relation "jobs" does not exist')


@pytest.mark.asyncio
async def test_unavailable_activity_source_counts_as_no_activity(entity_id: UUID) -> None:
    store = _InMemorySnapshotStore()
    service = SnapshotService(_MissingActivitySource(), store, now_fn=_clock(TODAY))

    await service.generate_snapshot(entity_id, None, "weekly")
    snapshot = store.snapshots[(entity_id, "weekly", TODAY)]

    assert snapshot.metrics.applications_total == 0
    assert snapshot.metrics.applications_by_status == {}
    assert snapshot.metrics.streak_days == 0


@pytest.mark.asyncio
async def test_profile_analytics_recomputes_after_new_application(
    entity_id: UUID,
    make_activity,
    mock_db_session: AsyncMock,
) -> None:
    activity = _FakeActivitySource(records=[make_activity(TODAY)])
    service = SnapshotService(activity, _InMemorySnapshotStore(), now_fn=_clock(TODAY))
    mock_db_session.get.return_value = Profile(
        id=entity_id,
        first_name="Ada",
        last_name="Lovelace",
        email="ada@example.com",
    )

    async def _job_summary(statement):
        records = activity.records
        return SimpleNamespace(
            one=lambda: SimpleNamespace(
                jobs=len(records),
                last_updated_at=max(record.updated_at for record in records),
            )
        )

    mock_db_session.execute.side_effect = _job_summary
    cache = VersionedCache(
        CacheTier.DERIVED,
        fingerprint_source=SqlProfileFingerprintSource(mock_db_session),
        redis_prefix="test",
        redis_client=_FakeRedisClient(),
        wall_time_fn=lambda: 1_000.0,
    )

    first = await service.get_profile_analytics(entity_id, cache)
    cached = await service.get_profile_analytics(entity_id, cache)
    activity.records.append(make_activity(TODAY, "Interview"))
    refreshed = await service.get_profile_analytics(entity_id, cache)

    assert first == cached
    assert first["applications_total"] == 1
    assert refreshed["applications_total"] == 2
    assert refreshed["applications_by_status"] == {"Applied": 1, "Interview": 1}
