"""
Prometheus metrics registry and helper recorders.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge

SNAPSHOT_GENERATIONS_TOTAL = Counter(
    "snapshot_generations_total",
    "Progress snapshot generations by period type and outcome.",
    ["period_type", "outcome"],
)
BATCH_ENTITY_OUTCOMES_TOTAL = Counter(
    "batch_entity_outcomes_total",
    "Per-member batch snapshot outcomes by period type and outcome.",
    ["period_type", "outcome"],
)
BATCH_LAST_SUCCEEDED = Gauge(
    "batch_last_succeeded",
    "Succeeded member count of the most recent batch run per period type.",
    ["period_type"],
)
SOURCE_UNAVAILABLE_TOTAL = Counter(
    "source_unavailable_total",
    "Optional data sources skipped because they were unavailable.",
    ["source"],
)
DERIVED_CACHE_LOOKUPS_TOTAL = Counter(
    "derived_cache_lookups_total",
    "Versioned cache lookups by kind and result.",
    ["kind", "result"],
)
DERIVED_CACHE_WRITES_TOTAL = Counter(
    "derived_cache_writes_total",
    "Versioned cache writes by kind.",
    ["kind"],
)
DERIVED_CACHE_INVALIDATIONS_TOTAL = Counter(
    "derived_cache_invalidations_total",
    "Explicit versioned cache invalidations by kind.",
    ["kind"],
)
WORKER_ERRORS_TOTAL = Counter(
    "worker_errors_total",
    "Worker task failures by task name.",
    ["task_name"],
)


def record_snapshot_generation(*, period_type: str, outcome: str) -> None:
    SNAPSHOT_GENERATIONS_TOTAL.labels(
        period_type=period_type.strip() or "unknown",
        outcome=outcome.strip() or "unknown",
    ).inc()


def record_batch_entity_outcome(*, period_type: str, outcome: str) -> None:
    BATCH_ENTITY_OUTCOMES_TOTAL.labels(
        period_type=period_type.strip() or "unknown",
        outcome=outcome.strip() or "unknown",
    ).inc()


def record_batch_run(*, period_type: str, succeeded: int) -> None:
    BATCH_LAST_SUCCEEDED.labels(period_type=period_type).set(max(0, succeeded))


def record_source_unavailable(*, source: str) -> None:
    SOURCE_UNAVAILABLE_TOTAL.labels(source=source.strip() or "unknown").inc()


def record_derived_cache_lookup(*, kind: str, result: str) -> None:
    DERIVED_CACHE_LOOKUPS_TOTAL.labels(kind=kind, result=result).inc()


def record_derived_cache_write(*, kind: str) -> None:
    DERIVED_CACHE_WRITES_TOTAL.labels(kind=kind).inc()


def record_derived_cache_invalidation(*, kind: str) -> None:
    DERIVED_CACHE_INVALIDATIONS_TOTAL.labels(kind=kind).inc()


def record_worker_error(task_name: str) -> None:
    WORKER_ERRORS_TOTAL.labels(task_name=task_name).inc()
