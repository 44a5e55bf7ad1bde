"""
Celery tasks for scheduled and on-demand progress snapshots.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable, Coroutine
from datetime import UTC, date, datetime
from typing import Any, TypeVar, cast
from uuid import UUID

import redis
import structlog
from celery import shared_task
from celery.signals import task_failure

from progress_analytics.core.config import settings
from progress_analytics.core.observability import record_worker_error
from progress_analytics.core.periods import PeriodType
from progress_analytics.processing.batch_orchestrator import BatchOrchestrator
from progress_analytics.processing.snapshot_service import session_scoped_snapshot_service
from progress_analytics.processing.sources import SqlPopulationSource
from progress_analytics.storage.database import async_session_maker

logger = structlog.get_logger(__name__)

DEAD_LETTER_KEY = "celery:dead_letter"
DEAD_LETTER_MAX_ITEMS = 1000

TaskFunc = TypeVar("TaskFunc", bound=Callable[..., Any])


def typed_shared_task(*task_args: Any, **task_kwargs: Any) -> Callable[[TaskFunc], TaskFunc]:
    """
    Typed wrapper around Celery's shared_task decorator.

    Celery decorators are untyped, which conflicts with strict mypy settings.
    """
    decorator = shared_task(*task_args, **task_kwargs)
    return cast("Callable[[TaskFunc], TaskFunc]", decorator)


def _run_async(coro: Coroutine[Any, Any, dict[str, Any]]) -> dict[str, Any]:
    return asyncio.run(coro)


def _push_dead_letter(payload: dict[str, Any]) -> None:
    client: redis.Redis[str] | None = None
    try:
        client = redis.from_url(settings.REDIS_URL, decode_responses=True)
        client.lpush(DEAD_LETTER_KEY, json.dumps(payload, default=str))
        client.ltrim(DEAD_LETTER_KEY, 0, DEAD_LETTER_MAX_ITEMS - 1)
    except Exception:
        logger.exception("Failed to push dead letter payload")
    finally:
        if client is not None:
            client.close()


def _record_worker_activity(
    *,
    task_name: str,
    status: str,
    error: str | None = None,
) -> None:
    client: redis.Redis[str] | None = None
    try:
        client = redis.from_url(settings.REDIS_URL, decode_responses=True)
        payload = {
            "task": task_name,
            "status": status,
            "timestamp": datetime.now(tz=UTC).isoformat(),
        }
        if error:
            payload["error"] = error[:500]
        client.set(
            settings.WORKER_HEARTBEAT_REDIS_KEY,
            json.dumps(payload),
            ex=max(60, settings.WORKER_HEARTBEAT_TTL_SECONDS),
        )
    except Exception:
        logger.exception("Failed to record worker heartbeat", task_name=task_name, status=status)
    finally:
        if client is not None:
            client.close()


def _run_task_with_heartbeat(
    *,
    task_name: str,
    runner: Callable[[], dict[str, Any]],
) -> dict[str, Any]:
    _record_worker_activity(task_name=task_name, status="started")
    try:
        result = runner()
    except Exception as exc:
        _record_worker_activity(task_name=task_name, status="failed", error=str(exc))
        raise
    _record_worker_activity(task_name=task_name, status="ok")
    return result


def _handle_task_failure(
    sender: Any = None,
    task_id: str | None = None,
    exception: BaseException | None = None,
    args: tuple[Any, ...] | None = None,
    kwargs: dict[str, Any] | None = None,
    **_extra: Any,
) -> None:
    request = getattr(sender, "request", None)
    current_retries = int(getattr(request, "retries", 0))

    max_retries_raw = getattr(sender, "max_retries", None)
    max_retries = max_retries_raw if isinstance(max_retries_raw, int) else None

    # Ignore intermediate failures that are still within retry budget.
    if max_retries is not None and current_retries < max_retries:
        return

    payload = {
        "task_name": getattr(sender, "name", "unknown"),
        "task_id": task_id,
        "exception_type": type(exception).__name__ if exception is not None else "unknown",
        "exception_message": str(exception) if exception is not None else "",
        "args": args or (),
        "kwargs": kwargs or {},
        "retries": current_retries,
        "failed_at": datetime.now(tz=UTC).isoformat(),
    }
    record_worker_error(task_name=str(payload["task_name"]))
    _push_dead_letter(payload)


task_failure.connect(_handle_task_failure)


def _parse_as_of(value: str | None) -> date | None:
    return date.fromisoformat(value) if value else None


async def _snapshot_team_progress_async(
    *,
    team_ids: list[str],
    period_type: PeriodType,
    as_of: date | None,
) -> dict[str, Any]:
    teams: list[dict[str, Any]] = []
    async with async_session_maker() as session:
        orchestrator = BatchOrchestrator(population=SqlPopulationSource(session))
        for team_id in team_ids:
            result = await orchestrator.run(UUID(team_id), period_type, as_of=as_of)
            teams.append(
                {
                    "team_id": team_id,
                    "scanned": result.scanned,
                    "succeeded": result.succeeded,
                    "failed": result.failed,
                }
            )

    return {
        "status": "ok",
        "task": "snapshot_team_progress",
        "period_type": period_type.value,
        "teams": teams,
        "scanned": sum(team["scanned"] for team in teams),
        "succeeded": sum(team["succeeded"] for team in teams),
        "failed": sum(team["failed"] for team in teams),
    }


async def _generate_member_snapshot_async(
    *,
    user_id: UUID,
    team_id: UUID | None,
    period_type: PeriodType,
    as_of: date | None,
) -> dict[str, Any]:
    async with session_scoped_snapshot_service() as service:
        snapshot_id = await service.generate_snapshot(user_id, team_id, period_type, as_of=as_of)
    return {
        "status": "ok",
        "task": "generate_member_snapshot",
        "user_id": str(user_id),
        "period_type": period_type.value,
        "snapshot_id": str(snapshot_id),
    }


@typed_shared_task(name="workers.snapshot_team_progress")
def snapshot_team_progress(
    team_ids: list[str] | None = None,
    period_type: str | None = None,
    as_of: str | None = None,
) -> dict[str, Any]:
    """Snapshot every active member of the configured teams."""
    resolved_period = PeriodType.parse(period_type or settings.SNAPSHOT_PERIOD_TYPE)
    resolved_teams = list(team_ids) if team_ids is not None else list(settings.SNAPSHOT_TEAM_IDS)

    def _runner() -> dict[str, Any]:
        if not resolved_teams:
            logger.info("No teams configured for progress snapshots")
            return {
                "status": "skipped",
                "task": "snapshot_team_progress",
                "period_type": resolved_period.value,
                "teams": [],
                "scanned": 0,
                "succeeded": 0,
                "failed": 0,
            }

        logger.info(
            "Starting team progress snapshot task",
            teams=len(resolved_teams),
            period_type=resolved_period.value,
        )
        result = _run_async(
            _snapshot_team_progress_async(
                team_ids=resolved_teams,
                period_type=resolved_period,
                as_of=_parse_as_of(as_of),
            )
        )
        logger.info(
            "Finished team progress snapshot task",
            scanned=result["scanned"],
            succeeded=result["succeeded"],
            failed=result["failed"],
        )
        return result

    return _run_task_with_heartbeat(
        task_name="workers.snapshot_team_progress",
        runner=_runner,
    )


@typed_shared_task(name="workers.generate_member_snapshot")
def generate_member_snapshot(
    user_id: str,
    team_id: str | None = None,
    period_type: str = "weekly",
    as_of: str | None = None,
) -> dict[str, Any]:
    """Re-run one member's snapshot on demand."""
    resolved_period = PeriodType.parse(period_type)

    def _runner() -> dict[str, Any]:
        return _run_async(
            _generate_member_snapshot_async(
                user_id=UUID(user_id),
                team_id=UUID(team_id) if team_id else None,
                period_type=resolved_period,
                as_of=_parse_as_of(as_of),
            )
        )

    return _run_task_with_heartbeat(
        task_name="workers.generate_member_snapshot",
        runner=_runner,
    )


@typed_shared_task(name="workers.ping")
def ping() -> dict[str, Any]:
    """Simple task to verify worker is up and processing jobs."""

    def _runner() -> dict[str, str]:
        return {
            "status": "ok",
            "timestamp": datetime.now(tz=UTC).isoformat(),
        }

    return _run_task_with_heartbeat(
        task_name="workers.ping",
        runner=_runner,
    )
