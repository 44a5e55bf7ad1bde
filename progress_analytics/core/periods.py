"""
Period bucketing for progress snapshots.

A period is an inclusive date range (daily, weekly, monthly) over which raw
activity is aggregated. Weeks start on Monday.
"""

from __future__ import annotations

import calendar
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import date, timedelta
from enum import StrEnum

from progress_analytics.core.errors import ConfigurationError


class PeriodType(StrEnum):
    """Supported snapshot granularities."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @classmethod
    def parse(cls, value: PeriodType | str) -> PeriodType:
        if isinstance(value, PeriodType):
            return value
        normalized = str(value).strip().lower()
        try:
            return cls(normalized)
        except ValueError as exc:
            allowed = ", ".join(member.value for member in cls)
            msg = f"Invalid period_type: {value!r}. Must be one of {allowed}."
            raise ConfigurationError(msg) from exc


@dataclass(slots=True, frozen=True)
class PeriodBounds:
    """Inclusive start/end dates of one period."""

    period_type: PeriodType
    start: date
    end: date

    def __post_init__(self) -> None:
        if self.end < self.start:
            msg = f"Malformed period bounds: end {self.end} precedes start {self.start}"
            raise ConfigurationError(msg)

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    def days(self, until: date | None = None) -> Iterator[date]:
        """Yield each day in the period, optionally stopping at ``until``."""
        last = self.end if until is None else min(self.end, until)
        current = self.start
        while current <= last:
            yield current
            current += timedelta(days=1)


def period_bounds(period_type: PeriodType | str, reference_date: date) -> PeriodBounds:
    """
    Compute the inclusive bounds of the period containing ``reference_date``.

    Args:
        period_type: daily, weekly, or monthly
        reference_date: Any day inside the wanted period

    Returns:
        PeriodBounds with start <= reference_date <= end

    Raises:
        ConfigurationError: If period_type is not recognised

    Examples:
        >>> bounds = period_bounds("weekly", date(2026, 10, 17))
        >>> (bounds.start, bounds.end)
        (datetime.date(2026, 10, 12), datetime.date(2026, 10, 18))
    """
    resolved = PeriodType.parse(period_type)

    if resolved is PeriodType.DAILY:
        return PeriodBounds(resolved, reference_date, reference_date)

    if resolved is PeriodType.WEEKLY:
        start = reference_date - timedelta(days=reference_date.weekday())
        return PeriodBounds(resolved, start, start + timedelta(days=6))

    last_day = calendar.monthrange(reference_date.year, reference_date.month)[1]
    return PeriodBounds(
        resolved,
        reference_date.replace(day=1),
        reference_date.replace(day=last_day),
    )
