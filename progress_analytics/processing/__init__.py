"""Snapshot generation, caching and batch orchestration."""

from progress_analytics.processing.batch_orchestrator import (
    BatchOrchestrator,
    BatchRunResult,
    EntityOutcome,
)
from progress_analytics.processing.snapshot_service import (
    SnapshotService,
    session_scoped_snapshot_service,
)
from progress_analytics.processing.snapshot_store import SnapshotStore, SqlSnapshotStore
from progress_analytics.processing.versioned_cache import (
    CacheKind,
    CacheLookup,
    CacheTier,
    VersionedCache,
)

__all__ = [
    "BatchOrchestrator",
    "BatchRunResult",
    "CacheKind",
    "CacheLookup",
    "CacheTier",
    "EntityOutcome",
    "SnapshotService",
    "SnapshotStore",
    "SqlSnapshotStore",
    "VersionedCache",
    "session_scoped_snapshot_service",
]
