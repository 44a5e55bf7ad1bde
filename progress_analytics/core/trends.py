"""
Trend deltas between a freshly computed snapshot and the one before it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from progress_analytics.core.snapshots import SnapshotMetrics


@dataclass(slots=True, frozen=True)
class TrendDeltas:
    """Signed percentage changes against the prior snapshot."""

    applications: float = 0.0
    interviews: float = 0.0
    activity: float = 0.0

    def to_dict(self) -> dict[str, float]:
        return {
            "applications": self.applications,
            "interviews": self.interviews,
            "activity": self.activity,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> TrendDeltas:
        return cls(
            applications=float(payload.get("applications", 0.0)),
            interviews=float(payload.get("interviews", 0.0)),
            activity=float(payload.get("activity", 0.0)),
        )


def percent_change(current: float, prior: float | None) -> float:
    """
    Signed percentage change from ``prior`` to ``current``.

    A missing prior reports no trend. A zero prior is a full positive swing
    when anything happened since, never an infinite one.

    Examples:
        >>> percent_change(5, None)
        0.0
        >>> percent_change(0, 0)
        0.0
        >>> percent_change(5, 0)
        100.0
        >>> percent_change(5, 10)
        -50.0
    """
    if prior is None:
        return 0.0
    if prior == 0:
        return 100.0 if current > 0 else 0.0
    return (current - prior) / prior * 100


def compute_trend_deltas(
    current: SnapshotMetrics,
    prior: SnapshotMetrics | None,
) -> TrendDeltas:
    """Deltas for the tracked metrics; all zero when there is no prior snapshot."""
    if prior is None:
        return TrendDeltas()

    return TrendDeltas(
        applications=percent_change(
            current.applications_this_period,
            prior.applications_this_period,
        ),
        interviews=percent_change(
            current.interviews_this_period,
            prior.interviews_this_period,
        ),
        activity=percent_change(current.activity_score, prior.activity_score),
    )
