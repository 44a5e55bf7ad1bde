"""
Pytest configuration and shared fixtures.

This module provides:
- Mock fixtures for unit tests
- Sample activity data
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import UTC, date, datetime, time
from unittest.mock import AsyncMock, MagicMock
from uuid import UUID, uuid4

import pytest

from progress_analytics.core.metrics import ActivityRecord

# =============================================================================
# Mock Fixtures
# =============================================================================


@pytest.fixture
def mock_db_session() -> AsyncMock:
    """Create a mock database session for unit tests."""
    session = AsyncMock()
    session.add = MagicMock()
    session.delete = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.execute = AsyncMock()
    session.scalar = AsyncMock()
    session.scalars = AsyncMock()
    session.get = AsyncMock()

    @asynccontextmanager
    async def _nested_transaction() -> AsyncIterator[None]:
        yield

    session.begin_nested = MagicMock(side_effect=lambda: _nested_transaction())
    return session


# =============================================================================
# Sample Data Fixtures
# =============================================================================


@pytest.fixture
def entity_id() -> UUID:
    return uuid4()


@pytest.fixture
def make_activity(entity_id: UUID) -> Callable[..., ActivityRecord]:
    """Build activity records for ``entity_id`` created (and updated) on given days."""
    counter = {"next_id": 1}

    def _make(
        created: date,
        status: str | None = "Applied",
        updated: date | None = None,
    ) -> ActivityRecord:
        record_id = counter["next_id"]
        counter["next_id"] += 1
        created_at = datetime.combine(created, time(12, 0), tzinfo=UTC)
        updated_at = datetime.combine(updated or created, time(13, 0), tzinfo=UTC)
        return ActivityRecord(
            record_id=record_id,
            entity_id=entity_id,
            status=status,
            created_at=created_at,
            updated_at=updated_at,
        )

    return _make


# =============================================================================
# Test Markers
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers",
        "unit: Unit tests (fast, no external dependencies)",
    )
    config.addinivalue_line(
        "markers",
        "integration: Integration tests (require database/redis)",
    )
