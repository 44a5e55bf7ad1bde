"""
Activity streak detection over sparse activity dates.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, timedelta

DEFAULT_LOOKBACK_DAYS: int = 30


def calculate_streak(
    activity_dates: Iterable[date],
    *,
    today: date,
    lookback_days: int = DEFAULT_LOOKBACK_DAYS,
) -> int:
    """
    Length of the unbroken run of active days ending today.

    Dates are restricted to ``[today - lookback_days, today]`` and grouped
    into runs of consecutive days: with dates ranked in ascending order,
    two dates share a run iff ``date - rank`` is identical. The streak is the
    size of the run holding the most recent date, or 0 when that date is not
    ``today``.

    Args:
        activity_dates: Days with at least one activity record (duplicates allowed)
        today: Reference day
        lookback_days: Size of the history window in days

    Returns:
        Streak length in days

    Examples:
        >>> d = date(2026, 10, 17)
        >>> calculate_streak([d, d - timedelta(days=1), d - timedelta(days=3)], today=d)
        2
        >>> calculate_streak([d - timedelta(days=1)], today=d)
        0
    """
    window_start = today - timedelta(days=max(0, lookback_days))
    in_window = sorted({day for day in activity_dates if window_start <= day <= today})
    if not in_window or in_window[-1] != today:
        return 0

    run_keys = [day.toordinal() - rank for rank, day in enumerate(in_window)]
    latest_key = run_keys[-1]
    return sum(1 for key in run_keys if key == latest_key)
