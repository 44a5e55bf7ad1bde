"""
Celery application and periodic scheduling configuration.
"""

from __future__ import annotations

from typing import Any

from celery import Celery
from celery.schedules import crontab

from progress_analytics.core.config import settings
from progress_analytics.core.logging_setup import configure_logging


def _build_beat_schedule() -> dict[str, dict[str, Any]]:
    schedule: dict[str, dict[str, Any]] = {}

    if settings.SNAPSHOT_TEAM_IDS:
        schedule["snapshot-team-progress"] = {
            "task": "workers.snapshot_team_progress",
            "schedule": crontab(
                day_of_week=str(settings.WEEKLY_SNAPSHOT_DAY_OF_WEEK),
                hour=settings.WEEKLY_SNAPSHOT_HOUR_UTC,
                minute=settings.WEEKLY_SNAPSHOT_MINUTE_UTC,
            ),
            "kwargs": {"period_type": settings.SNAPSHOT_PERIOD_TYPE},
        }

    return schedule


celery_app = Celery("progress_analytics")
celery_app.conf.update(
    broker_url=settings.CELERY_BROKER_URL,
    result_backend=settings.CELERY_RESULT_BACKEND,
    timezone="UTC",
    enable_utc=True,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    task_track_started=True,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_default_queue="default",
    task_routes={
        "workers.snapshot_team_progress": {"queue": "processing"},
        "workers.generate_member_snapshot": {"queue": "processing"},
        "workers.ping": {"queue": "default"},
    },
    broker_connection_retry_on_startup=True,
    worker_prefetch_multiplier=1,
    beat_schedule=_build_beat_schedule(),
)

celery_app.autodiscover_tasks(["progress_analytics.workers"])
configure_logging(component="worker")
