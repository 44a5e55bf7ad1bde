"""
Batch snapshot generation across the active members of a team.

Each member runs in its own unit of work with a timeout. A failing member is
logged and counted but never aborts the run.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from datetime import date
from enum import StrEnum
from typing import Protocol
from uuid import UUID

import structlog

from progress_analytics.core.config import settings
from progress_analytics.core.errors import PerEntityFailure
from progress_analytics.core.observability import record_batch_entity_outcome, record_batch_run
from progress_analytics.core.periods import PeriodType
from progress_analytics.processing.snapshot_service import session_scoped_snapshot_service
from progress_analytics.processing.sources import PopulationSource

logger = structlog.get_logger(__name__)


class SnapshotGenerator(Protocol):
    async def generate_snapshot(
        self,
        entity_id: UUID,
        group_id: UUID | None,
        period_type: PeriodType | str,
        *,
        as_of: date | None = None,
    ) -> UUID: ...


GeneratorFactory = Callable[[], AbstractAsyncContextManager[SnapshotGenerator]]


class EntityOutcome(StrEnum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass(slots=True)
class BatchRunResult:
    """Summary of one batch run."""

    group_id: UUID
    period_type: PeriodType
    scanned: int = 0
    succeeded: int = 0
    snapshot_ids: dict[UUID, UUID] = field(default_factory=dict)
    failures: list[PerEntityFailure] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)


class BatchOrchestrator:
    """Fan snapshot generation out over a team with bounded concurrency."""

    def __init__(
        self,
        population: PopulationSource,
        generator_factory: GeneratorFactory | None = None,
        *,
        max_concurrency: int | None = None,
        entity_timeout_seconds: float | None = None,
    ) -> None:
        self.population = population
        self.generator_factory: GeneratorFactory = (
            generator_factory or session_scoped_snapshot_service
        )
        self.max_concurrency = max(
            1,
            settings.BATCH_MAX_CONCURRENCY if max_concurrency is None else int(max_concurrency),
        )
        self.entity_timeout_seconds = (
            settings.BATCH_ENTITY_TIMEOUT_SECONDS
            if entity_timeout_seconds is None
            else float(entity_timeout_seconds)
        )

    async def run(
        self,
        group_id: UUID,
        period_type: PeriodType | str,
        *,
        as_of: date | None = None,
    ) -> BatchRunResult:
        """
        Snapshot every active member of ``group_id``.

        Raises:
            ConfigurationError: If period_type is not recognised; nothing is read
        """
        resolved = PeriodType.parse(period_type)
        members = list(await self.population.active_members(group_id))
        result = BatchRunResult(group_id=group_id, period_type=resolved, scanned=len(members))
        logger.info(
            "Starting batch snapshot run",
            group_id=str(group_id),
            period_type=resolved.value,
            members=len(members),
            max_concurrency=self.max_concurrency,
        )

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _bounded(entity_id: UUID) -> None:
            async with semaphore:
                await self._run_entity(result, entity_id, as_of=as_of)

        await asyncio.gather(*(_bounded(entity_id) for entity_id in members))

        record_batch_run(period_type=resolved.value, succeeded=result.succeeded)
        logger.info(
            "Completed batch snapshot run",
            group_id=str(group_id),
            period_type=resolved.value,
            scanned=result.scanned,
            succeeded=result.succeeded,
            failed=result.failed,
        )
        return result

    async def run_batch(
        self,
        group_id: UUID,
        period_type: PeriodType | str,
        *,
        as_of: date | None = None,
    ) -> int:
        """Run a batch and return the number of members snapshotted successfully."""
        result = await self.run(group_id, period_type, as_of=as_of)
        return result.succeeded

    async def _run_entity(
        self,
        result: BatchRunResult,
        entity_id: UUID,
        *,
        as_of: date | None,
    ) -> None:
        period_type = result.period_type
        try:
            snapshot_id = await asyncio.wait_for(
                self._generate(entity_id, result.group_id, period_type, as_of),
                timeout=self.entity_timeout_seconds,
            )
        except TimeoutError:
            self._record_failure(
                result,
                entity_id,
                outcome=EntityOutcome.TIMED_OUT,
                error_type="TimeoutError",
                error_message=f"exceeded {self.entity_timeout_seconds:g}s",
            )
            return
        except Exception as exc:
            self._record_failure(
                result,
                entity_id,
                outcome=EntityOutcome.FAILED,
                error_type=type(exc).__name__,
                error_message=str(exc),
            )
            return

        result.succeeded += 1
        result.snapshot_ids[entity_id] = snapshot_id
        record_batch_entity_outcome(
            period_type=period_type.value,
            outcome=EntityOutcome.SUCCEEDED.value,
        )

    async def _generate(
        self,
        entity_id: UUID,
        group_id: UUID,
        period_type: PeriodType,
        as_of: date | None,
    ) -> UUID:
        async with self.generator_factory() as generator:
            return await generator.generate_snapshot(
                entity_id,
                group_id,
                period_type,
                as_of=as_of,
            )

    @staticmethod
    def _record_failure(
        result: BatchRunResult,
        entity_id: UUID,
        *,
        outcome: EntityOutcome,
        error_type: str,
        error_message: str,
    ) -> None:
        result.failures.append(
            PerEntityFailure(
                entity_id=entity_id,
                error_type=error_type,
                error_message=error_message[:500],
            )
        )
        record_batch_entity_outcome(period_type=result.period_type.value, outcome=outcome.value)
        logger.warning(
            "Snapshot generation failed for member",
            entity_id=str(entity_id),
            group_id=str(result.group_id),
            period_type=result.period_type.value,
            outcome=outcome.value,
            error_type=error_type,
            error=error_message[:500],
        )
