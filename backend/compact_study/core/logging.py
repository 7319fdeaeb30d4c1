"""
Structured logging setup (structlog on top of stdlib logging).

Usage:
    from compact_study.core.logging import get_logger, setup_logging

    setup_logging("DEBUG")          # once, at process start
    logger = get_logger(__name__)
    logger.info("Stage completed", stage_id="math-extraction", duration_ms=120)
"""

from __future__ import annotations

import logging
import sys

import structlog

from compact_study.core.config import settings


def setup_logging(level: str | None = None, *, json_logs: bool | None = None) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        level: Log level name.  Defaults to settings.LOG_LEVEL.
        json_logs: Render JSON lines instead of the console renderer.
                   Defaults to True outside development.
    """
    level_name = (level or settings.LOG_LEVEL).upper()
    if json_logs is None:
        json_logs = settings.APP_ENV != "development"

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level_name, logging.INFO),
        force=True,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer()
    )

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if json_logs:
        processors.append(structlog.processors.format_exc_info)
    processors.append(renderer)

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound to `name`."""
    return structlog.get_logger(name)
