"""
LangSmith tracing utilities for the pipeline engine.

Processors frequently call out to LLMs, so each processor invocation can be
recorded as a LangSmith run.  When LangSmith is not configured the wrapper
is a no-op and the callable is returned untouched.

Usage:
    from compact_study.core.tracing import setup_tracing, traced

    setup_tracing()   # call once at startup

    process = traced(processor.process, name="math-content-processor.process")
    result = await process(data, config, token)
"""

from __future__ import annotations

import os
from typing import Any, Awaitable, Callable

from langsmith import traceable

from compact_study.core.config import settings
from compact_study.core.logging import get_logger

logger = get_logger(__name__)

_tracing_enabled = False


def setup_tracing() -> bool:
    """
    Configure LangSmith tracing from application settings.

    Sets the environment variables that the LangSmith SDK reads.
    Returns True if tracing was enabled, False otherwise.
    """
    global _tracing_enabled

    if not settings.LANGSMITH_TRACING or not settings.LANGSMITH_API_KEY:
        logger.info(
            "LangSmith tracing disabled",
            reason="LANGSMITH_TRACING=False or no API key",
        )
        _tracing_enabled = False
        return False

    os.environ["LANGSMITH_API_KEY"] = settings.LANGSMITH_API_KEY
    os.environ["LANGSMITH_ENDPOINT"] = settings.LANGSMITH_ENDPOINT
    os.environ["LANGSMITH_PROJECT"] = settings.LANGSMITH_PROJECT
    os.environ["LANGSMITH_TRACING"] = "true"

    logger.info("LangSmith tracing enabled", project=settings.LANGSMITH_PROJECT)
    _tracing_enabled = True
    return True


def is_tracing_enabled() -> bool:
    """Check if LangSmith tracing is active."""
    return _tracing_enabled


def traced(
    func: Callable[..., Awaitable[Any]],
    *,
    name: str,
    run_type: str = "chain",
    metadata: dict[str, Any] | None = None,
    tags: list[str] | None = None,
) -> Callable[..., Awaitable[Any]]:
    """
    Wrap an async callable with LangSmith @traceable when tracing is enabled.

    Args:
        func: The coroutine function to trace (e.g. a bound processor method).
        name: Trace name shown in LangSmith UI.
        run_type: One of "chain", "llm", "tool", "retriever".
        metadata: Static metadata attached to the trace.
        tags: Tags for filtering in LangSmith.
    """
    if not _tracing_enabled:
        return func

    try:
        return traceable(
            name=name,
            run_type=run_type,
            metadata=metadata or {},
            tags=tags or [],
        )(func)
    except Exception as exc:
        # Tracing must never break a stage; run untraced instead
        logger.warning("LangSmith tracing setup failed, continuing without", error=str(exc))
        return func
