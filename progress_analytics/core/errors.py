"""
Exception taxonomy for the snapshot and cache engine.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID


class ProgressAnalyticsError(Exception):
    """Base class for engine errors."""


class ConfigurationError(ProgressAnalyticsError, ValueError):
    """Raised for unknown period types, malformed bounds, or unknown cache kinds."""


class SourceUnavailable(ProgressAnalyticsError, RuntimeError):
    """Raised by a data source whose backing table does not exist in this deployment."""

    def __init__(self, source: str, detail: str | None = None) -> None:
        self.source = source
        message = f"Source '{source}' is unavailable"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class DuplicateSnapshot(ProgressAnalyticsError):
    """Raised when a snapshot key conflict cannot be resolved by replacement."""


class DerivedComputationError(ProgressAnalyticsError):
    """Raised when an on-demand derived computation fails."""

    def __init__(self, kind: str, subject_key: str) -> None:
        self.kind = kind
        self.subject_key = subject_key
        super().__init__(f"Failed to compute {kind} for subject {subject_key}")


class CacheBackendUnavailable(ProgressAnalyticsError, RuntimeError):
    """Raised when a forced cache removal cannot reach the backend."""


class LineageError(ProgressAnalyticsError):
    """Raised when a version lineage traversal is invalid."""


@dataclass(slots=True, frozen=True)
class PerEntityFailure:
    """A failed member within one batch run; recorded, never raised."""

    entity_id: UUID
    error_type: str
    error_message: str
