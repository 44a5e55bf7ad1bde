from __future__ import annotations

import pytest

from progress_analytics.core.snapshots import SnapshotMetrics
from progress_analytics.core.trends import TrendDeltas, compute_trend_deltas, percent_change

pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    ("current", "prior", "expected"),
    [
        (5, None, 0.0),
        (0, 0, 0.0),
        (5, 0, 100.0),
        (5, 10, -50.0),
        (15, 10, 50.0),
        (0, 3, -100.0),
    ],
)
def test_percent_change_policy(current: int, prior: int | None, expected: float) -> None:
    assert percent_change(current, prior) == pytest.approx(expected)


def test_compute_trend_deltas_without_prior_is_all_zero() -> None:
    current = SnapshotMetrics(applications_this_period=4, activity_score=40)

    assert compute_trend_deltas(current, None) == TrendDeltas()


def test_compute_trend_deltas_against_prior_metrics() -> None:
    prior = SnapshotMetrics(
        applications_this_period=4,
        interviews_this_period=0,
        activity_score=40,
    )
    current = SnapshotMetrics(
        applications_this_period=2,
        interviews_this_period=1,
        activity_score=40,
    )

    deltas = compute_trend_deltas(current, prior)

    assert deltas.applications == pytest.approx(-50.0)
    assert deltas.interviews == pytest.approx(100.0)
    assert deltas.activity == pytest.approx(0.0)


def test_trend_deltas_dict_round_trip_tolerates_missing_keys() -> None:
    deltas = TrendDeltas.from_dict({"applications": "12.5"})

    assert deltas.to_dict() == {"applications": 12.5, "interviews": 0.0, "activity": 0.0}
