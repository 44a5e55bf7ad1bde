"""
Progress analytics command-line interface.
"""

from __future__ import annotations

import argparse
import asyncio
from collections.abc import Sequence
from datetime import date
from uuid import UUID

from progress_analytics.core.config import settings
from progress_analytics.core.errors import CacheBackendUnavailable
from progress_analytics.core.fingerprint import CacheSubject
from progress_analytics.core.logging_setup import configure_logging
from progress_analytics.core.periods import PeriodType
from progress_analytics.core.snapshots import Snapshot
from progress_analytics.processing.batch_orchestrator import BatchOrchestrator
from progress_analytics.processing.snapshot_service import session_scoped_snapshot_service
from progress_analytics.processing.snapshot_store import SqlSnapshotStore
from progress_analytics.processing.sources import SqlPopulationSource, SqlProfileFingerprintSource
from progress_analytics.processing.versioned_cache import CacheKind, VersionedCache
from progress_analytics.storage.database import async_session_maker


def _change_arrow(change: float) -> str:
    if change > 0:
        return "^"
    if change < 0:
        return "v"
    return "="


def _format_snapshot_line(snapshot: Snapshot) -> str:
    metrics = snapshot.metrics
    trend = snapshot.trend_deltas.applications
    return (
        f"{snapshot.snapshot_date.isoformat()} "
        f"[{snapshot.period_start.isoformat()}..{snapshot.period_end.isoformat()}] "
        f"apps={metrics.applications_this_period}/{metrics.applications_total} "
        f"interviews={metrics.interviews_this_period} "
        f"offers={metrics.offers_this_period} "
        f"score={metrics.activity_score} "
        f"streak={metrics.streak_days}d "
        f"{_change_arrow(trend)} {trend:+.1f}%"
    )


def _parse_iso_date(value: str | None) -> date | None:
    if value is None:
        return None
    normalized = value.strip()
    if not normalized:
        return None
    return date.fromisoformat(normalized)


async def _run_snapshot(
    *,
    user_id: str,
    team_id: str | None,
    period_type: str,
    as_of: str | None,
) -> int:
    async with session_scoped_snapshot_service() as service:
        snapshot_id = await service.generate_snapshot(
            UUID(user_id),
            UUID(team_id) if team_id else None,
            period_type,
            as_of=_parse_iso_date(as_of),
        )
    print(f"Stored snapshot {snapshot_id}")
    return 0


async def _run_batch(
    *,
    team_id: str,
    period_type: str,
    as_of: str | None,
    max_concurrency: int | None,
) -> int:
    async with async_session_maker() as session:
        orchestrator = BatchOrchestrator(
            population=SqlPopulationSource(session),
            max_concurrency=max_concurrency,
        )
        result = await orchestrator.run(UUID(team_id), period_type, as_of=_parse_iso_date(as_of))

    print(
        f"Team {team_id}: {result.succeeded}/{result.scanned} members snapshotted "
        f"({result.period_type.value})"
    )
    for failure in result.failures:
        print(f"  FAILED {failure.entity_id}: {failure.error_type}: {failure.error_message}")
    return 0 if not result.failures else 2


async def _run_history(*, user_id: str, period_type: str, limit: int) -> int:
    async with async_session_maker() as session:
        store = SqlSnapshotStore(session)
        snapshots = await store.list_for_entity(UUID(user_id), period_type, limit=limit)

    if not snapshots:
        print("No snapshots found.")
        return 0
    for snapshot in snapshots:
        print(_format_snapshot_line(snapshot))
    return 0


async def _run_cache_invalidate(*, subject: str, kind: str) -> int:
    resolved_kind = CacheKind.parse(kind)
    async with async_session_maker() as session:
        cache = VersionedCache(
            resolved_kind.tier,
            fingerprint_source=SqlProfileFingerprintSource(session),
        )
        try:
            removed = await cache.invalidate(CacheSubject.parse(subject), resolved_kind)
        except CacheBackendUnavailable as exc:
            print(f"Cache backend unavailable: {exc}")
            return 1
        finally:
            await cache.close()

    if removed:
        print(f"Invalidated {resolved_kind.value} for {subject}")
    else:
        print(f"No {resolved_kind.value} entry cached for {subject}")
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="progress-analytics")
    subparsers = parser.add_subparsers(dest="command")

    period_choices = [member.value for member in PeriodType]

    snapshot_parser = subparsers.add_parser(
        "snapshot",
        help="Generate (or regenerate) one member's snapshot",
    )
    snapshot_parser.add_argument("--user-id", required=True)
    snapshot_parser.add_argument("--team-id", default=None)
    snapshot_parser.add_argument(
        "--period-type",
        choices=period_choices,
        default=settings.SNAPSHOT_PERIOD_TYPE,
    )
    snapshot_parser.add_argument("--as-of", default=None, help="Snapshot date (YYYY-MM-DD)")

    batch_parser = subparsers.add_parser(
        "batch",
        help="Snapshot every active member of a team",
    )
    batch_parser.add_argument("--team-id", required=True)
    batch_parser.add_argument(
        "--period-type",
        choices=period_choices,
        default=settings.SNAPSHOT_PERIOD_TYPE,
    )
    batch_parser.add_argument("--as-of", default=None, help="Snapshot date (YYYY-MM-DD)")
    batch_parser.add_argument("--max-concurrency", type=int, default=None)

    history_parser = subparsers.add_parser(
        "history",
        help="Show a member's most recent snapshots",
    )
    history_parser.add_argument("--user-id", required=True)
    history_parser.add_argument(
        "--period-type",
        choices=period_choices,
        default=settings.SNAPSHOT_PERIOD_TYPE,
    )
    history_parser.add_argument("--limit", type=int, default=12)

    invalidate_parser = subparsers.add_parser(
        "cache-invalidate",
        help="Force removal of one cached derived artifact",
    )
    invalidate_parser.add_argument(
        "--subject",
        required=True,
        help="Member id, or member_id:related_id for composite subjects",
    )
    invalidate_parser.add_argument(
        "--kind",
        required=True,
        choices=[member.value for member in CacheKind],
    )

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_logging(component="cli")

    if args.command == "snapshot":
        return asyncio.run(
            _run_snapshot(
                user_id=args.user_id,
                team_id=args.team_id,
                period_type=args.period_type,
                as_of=args.as_of,
            )
        )
    if args.command == "batch":
        return asyncio.run(
            _run_batch(
                team_id=args.team_id,
                period_type=args.period_type,
                as_of=args.as_of,
                max_concurrency=args.max_concurrency,
            )
        )
    if args.command == "history":
        return asyncio.run(
            _run_history(
                user_id=args.user_id,
                period_type=args.period_type,
                limit=args.limit,
            )
        )
    if args.command == "cache-invalidate":
        return asyncio.run(_run_cache_invalidate(subject=args.subject, kind=args.kind))

    parser.print_help()
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
