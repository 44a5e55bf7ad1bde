"""
Unit tests for streak detection.
"""

from __future__ import annotations

from datetime import date, timedelta

import pytest

from progress_analytics.core.streaks import calculate_streak

pytestmark = pytest.mark.unit

TODAY = date(2026, 10, 17)


def _days_ago(*offsets: int) -> list[date]:
    return [TODAY - timedelta(days=offset) for offset in offsets]


class TestCalculateStreak:
    """Tests for calculate_streak."""

    def test_no_activity_gives_zero(self):
        assert calculate_streak([], today=TODAY) == 0

    def test_activity_today_only_gives_one(self):
        assert calculate_streak(_days_ago(0), today=TODAY) == 1

    def test_gap_breaks_the_run(self):
        """Today, yesterday, and three days ago is a two-day streak."""
        assert calculate_streak(_days_ago(0, 1, 3), today=TODAY) == 2

    def test_streak_is_zero_when_latest_activity_was_yesterday(self):
        assert calculate_streak(_days_ago(1, 2, 3), today=TODAY) == 0

    def test_duplicate_days_count_once(self):
        assert calculate_streak(_days_ago(0, 0, 0, 1, 1), today=TODAY) == 2

    def test_unordered_input_is_accepted(self):
        assert calculate_streak(_days_ago(2, 0, 1), today=TODAY) == 3

    def test_future_activity_is_ignored(self):
        assert calculate_streak(_days_ago(-1, 0, 1), today=TODAY) == 2

    def test_run_is_capped_by_lookback_window(self):
        history = _days_ago(*range(45))
        assert calculate_streak(history, today=TODAY, lookback_days=30) == 31
        assert calculate_streak(history, today=TODAY, lookback_days=7) == 8

    def test_streak_is_monotonic_in_window_size(self):
        history = _days_ago(0, 1, 2, 4, 5, 6, 7, 20)
        previous = 0
        for lookback in range(0, 40):
            current = calculate_streak(history, today=TODAY, lookback_days=lookback)
            assert current >= previous
            previous = current
        assert previous == 3
