"""
ContentProcessor: abstract base class for every unit of work a stage runs.

Concrete processors (file extraction, math/topic extraction, structure
organisation, cross-referencing) live outside the engine and plug in here.
The engine calls process() with timing, validation, timeout and recovery
handled automatically.  Processors only implement the business logic.
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Any

from compact_study.core.constants import OutputKind
from compact_study.pipeline.errors import PipelineCancelledError
from compact_study.pipeline.results import (
    ProcessingError,
    ProcessingMetrics,
    ProcessingResult,
    ProcessingWarning,
    ValidationResult,
)


class CancellationToken:
    """
    Cooperative cancellation flag shared by a pipeline run and its processors.

    The engine never pre-empts a processor.  Long-running processors should
    poll `cancelled` (or call `raise_if_cancelled()`) between units of work,
    or await `wait()` alongside their own I/O.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise PipelineCancelledError(self.reason or "cancelled")

    async def wait(self) -> None:
        await self._event.wait()


class ContentProcessor(ABC):
    """
    Base class for every processor.

    Subclasses MUST implement:
        - name (str)                registry key, e.g. "math-content-processor"
        - version (str)             reported in events and logs
        - process(data, config, token)

    Subclasses MAY implement:
        - validate(data, config)    reject input before process() runs
        - recover(error, data, config, token)  alternate path after a failure

    Processors are stateless across invocations; one instance may serve
    several stages.
    """

    name: str = "unnamed_processor"
    version: str = "0.0.0"

    @abstractmethod
    async def process(
        self,
        data: Any,
        config: dict[str, Any],
        token: CancellationToken,
    ) -> ProcessingResult:
        """
        Run the processor.  Must return a ProcessingResult.

        `data` is the full source-document list for root stages, the single
        dependency output for one dependency, or an ordered list of outputs
        for several.  Raising is equivalent to returning success=False.
        """
        ...

    async def validate(self, data: Any, config: dict[str, Any]) -> ValidationResult | None:
        """Optional pre-execution check.  Default: not validated."""
        return None

    async def recover(
        self,
        error: ProcessingError,
        data: Any,
        config: dict[str, Any],
        token: CancellationToken,
    ) -> ProcessingResult | None:
        """Optional recovery path.  Default: no recovery available."""
        return None

    @property
    def supports_validation(self) -> bool:
        return type(self).validate is not ContentProcessor.validate

    @property
    def supports_recovery(self) -> bool:
        return type(self).recover is not ContentProcessor.recover

    # ─── Helpers available to all processors ───────────

    def _success(
        self,
        data: Any,
        started: float,
        *,
        quality_score: float = 1.0,
        content_preserved: float = 1.0,
        items_processed: int = 1,
        warnings: list[ProcessingWarning] | None = None,
        output_kind: OutputKind = OutputKind.RAW,
    ) -> ProcessingResult:
        """Build a successful ProcessingResult timed from `started` (time.perf_counter())."""
        return ProcessingResult(
            success=True,
            data=data,
            warnings=warnings or [],
            metrics=ProcessingMetrics(
                processing_time=self._elapsed_ms(started),
                quality_score=quality_score,
                content_preserved=content_preserved,
                items_processed=items_processed,
            ),
            output_kind=output_kind,
        )

    def _failure(
        self,
        message: str,
        started: float,
        *,
        data: Any = None,
        recoverable: bool = True,
    ) -> ProcessingResult:
        """
        Build a failed ProcessingResult, optionally carrying partial data.

        recoverable=False marks the failure as final: the executor records the
        stage error as non-recoverable, so recover() is skipped and the
        continuation policy treats it as fatal unless partial data was kept.
        """
        return ProcessingResult(
            success=False,
            data=data,
            errors=[ProcessingError(stage=self.name, message=message, recoverable=recoverable)],
            metrics=ProcessingMetrics(processing_time=self._elapsed_ms(started)),
        )

    @staticmethod
    def _elapsed_ms(started: float) -> float:
        return (time.perf_counter() - started) * 1000

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}@{self.version}>"
