from __future__ import annotations

from datetime import UTC, date, datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from progress_analytics.core.errors import DuplicateSnapshot
from progress_analytics.core.metrics import DailyActivity
from progress_analytics.core.periods import PeriodType
from progress_analytics.core.snapshots import Snapshot, SnapshotMetrics
from progress_analytics.core.trends import TrendDeltas
from progress_analytics.processing.snapshot_store import (
    SqlSnapshotStore,
    row_to_snapshot,
    snapshot_to_row,
)
from progress_analytics.storage.models import ProgressSnapshot

pytestmark = pytest.mark.unit


def _snapshot(**overrides) -> Snapshot:
    values = {
        "id": uuid4(),
        "entity_id": uuid4(),
        "group_id": uuid4(),
        "period_type": PeriodType.WEEKLY,
        "period_start": date(2026, 10, 12),
        "period_end": date(2026, 10, 18),
        "snapshot_date": date(2026, 10, 13),
        "metrics": SnapshotMetrics(
            applications_total=5,
            applications_this_period=2,
            applications_by_status={"Applied": 4, "unknown": 1},
            goals_total=4,
            goals_completed=1,
            goals_completion_rate=25.0,
            activity_score=20,
            streak_days=2,
            daily_breakdown=[
                DailyActivity(day=date(2026, 10, 12), applications=1),
                DailyActivity(day=date(2026, 10, 13), applications=1),
            ],
            extensions={"source": "batch"},
        ),
        "trend_deltas": TrendDeltas(applications=-33.33, interviews=0.0, activity=12.5),
        "generated_at": datetime(2026, 10, 13, 6, 0, tzinfo=UTC),
    }
    values.update(overrides)
    return Snapshot(**values)


def test_row_mapping_preserves_snapshot() -> None:
    snapshot = _snapshot()

    row = snapshot_to_row(snapshot)

    assert row.period_type == "weekly"
    assert row.daily_breakdown == [
        {"date": "2026-10-12", "applications": 1},
        {"date": "2026-10-13", "applications": 1},
    ]
    assert row_to_snapshot(row) == snapshot


@pytest.mark.asyncio
async def test_put_replaces_existing_row_in_nested_transaction(mock_db_session: AsyncMock) -> None:
    store = SqlSnapshotStore(mock_db_session)
    snapshot = _snapshot()

    snapshot_id = await store.put(snapshot)

    assert snapshot_id == snapshot.id
    mock_db_session.begin_nested.assert_called_once()
    delete_statement = mock_db_session.execute.await_args.args[0]
    compiled = str(delete_statement)
    assert compiled.startswith("DELETE FROM progress_snapshots")
    assert "progress_snapshots.snapshot_date" in compiled
    added = mock_db_session.add.call_args.args[0]
    assert isinstance(added, ProgressSnapshot)
    assert added.id == snapshot.id
    assert added.user_id == snapshot.entity_id
    mock_db_session.flush.assert_awaited_once()


@pytest.mark.asyncio
async def test_put_returns_concurrent_winner_on_conflict(mock_db_session: AsyncMock) -> None:
    winner_id = uuid4()
    mock_db_session.flush.side_effect = IntegrityError("INSERT", {}, Exception("duplicate"))
    mock_db_session.scalar.return_value = winner_id
    store = SqlSnapshotStore(mock_db_session)

    assert await store.put(_snapshot()) == winner_id


@pytest.mark.asyncio
async def test_put_raises_when_conflict_has_no_winner(mock_db_session: AsyncMock) -> None:
    mock_db_session.flush.side_effect = IntegrityError("INSERT", {}, Exception("duplicate"))
    mock_db_session.scalar.return_value = None
    store = SqlSnapshotStore(mock_db_session)

    with pytest.raises(DuplicateSnapshot):
        await store.put(_snapshot())


@pytest.mark.asyncio
async def test_latest_before_queries_strictly_earlier_dates(mock_db_session: AsyncMock) -> None:
    snapshot = _snapshot()
    mock_db_session.scalar.return_value = snapshot_to_row(snapshot)
    store = SqlSnapshotStore(mock_db_session)

    result = await store.latest_before(snapshot.entity_id, PeriodType.WEEKLY, date(2026, 10, 20))

    assert result == snapshot
    compiled = str(mock_db_session.scalar.await_args.args[0])
    assert "progress_snapshots.snapshot_date <" in compiled
    assert "ORDER BY progress_snapshots.snapshot_date DESC" in compiled


@pytest.mark.asyncio
async def test_latest_before_returns_none_without_history(mock_db_session: AsyncMock) -> None:
    mock_db_session.scalar.return_value = None
    store = SqlSnapshotStore(mock_db_session)

    assert await store.latest_before(uuid4(), PeriodType.DAILY, date(2026, 10, 20)) is None


@pytest.mark.asyncio
async def test_get_and_list_for_entity_map_rows(mock_db_session: AsyncMock) -> None:
    newer = _snapshot(snapshot_date=date(2026, 10, 14))
    older = _snapshot(entity_id=newer.entity_id, snapshot_date=date(2026, 10, 7))
    mock_db_session.get.return_value = snapshot_to_row(newer)
    mock_db_session.scalars.return_value = SimpleNamespace(
        all=lambda: [snapshot_to_row(newer), snapshot_to_row(older)]
    )
    store = SqlSnapshotStore(mock_db_session)

    assert await store.get(newer.id) == newer
    history = await store.list_for_entity(newer.entity_id, "weekly", limit=2)

    assert [item.snapshot_date for item in history] == [date(2026, 10, 14), date(2026, 10, 7)]
