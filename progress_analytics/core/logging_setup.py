"""
Structured logging configuration.
"""

from __future__ import annotations

import logging

import structlog

from progress_analytics.core.config import settings

SERVICE_NAME = "progress_analytics"

# SQLAlchemy logs every statement at INFO once its engine logger is enabled.
_QUIET_LOGGERS = ("sqlalchemy.engine", "asyncio")


def configure_logging(component: str | None = None) -> None:
    """
    Configure stdlib and structlog processors.

    Every event carries ``service`` and, when given, the ``component`` (for
    example ``cli`` or ``worker``) that emitted it.
    """
    level_name = settings.LOG_LEVEL.upper()
    level_value = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(
        level=level_value,
        format="%(message)s",
    )
    if not settings.SQL_ECHO:
        for logger_name in _QUIET_LOGGERS:
            logging.getLogger(logger_name).setLevel(max(level_value, logging.WARNING))

    renderer: structlog.types.Processor
    if settings.LOG_FORMAT == "console":
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            level_value,
        ),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.clear_contextvars()
    context: dict[str, str] = {"service": SERVICE_NAME, "environment": settings.ENVIRONMENT}
    if component:
        context["component"] = component
    structlog.contextvars.bind_contextvars(**context)
