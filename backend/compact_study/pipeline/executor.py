"""
StageExecutor: drives one stage from input assembly to a terminal status.

For each stage:
    1. Assemble input from the source documents or dependency outputs
    2. Run the processor's optional validate()
    3. Race process() against the stage timeout
    4. On success: cache output, fold metrics, emit stage_completed
    5. On failure: record the error, attempt recover() when enabled,
       otherwise raise StageExecutionError to the driver
"""

from __future__ import annotations

import asyncio
import dataclasses
from datetime import datetime, timezone
from typing import Any, Awaitable, Mapping, Sequence

from compact_study.core.constants import (
    ErrorType,
    PipelineEvent,
    StageStatus,
    WarningType,
)
from compact_study.core.logging import get_logger
from compact_study.core.tracing import traced
from compact_study.pipeline.config import PipelineConfig
from compact_study.pipeline.context import ProcessingStage, SourceDocument
from compact_study.pipeline.errors import (
    DependencyNotReadyError,
    MissingDependencyError,
    StageExecutionError,
    StageTimeoutError,
    StageValidationError,
)
from compact_study.pipeline.events import EventBus
from compact_study.pipeline.metrics import MetricsTracker
from compact_study.pipeline.processor import CancellationToken
from compact_study.pipeline.results import (
    ProcessingError,
    ProcessingResult,
    ProcessingWarning,
    ValidationResult,
)

logger = get_logger(__name__)

_UNASSEMBLED = object()


class StageExecutor:
    """
    Executes stages on behalf of one pipeline run.

    Shares the run's stage table, document list, error/warning ledgers,
    metrics and event bus by reference; the driver owns all of them.
    """

    def __init__(
        self,
        *,
        config: PipelineConfig,
        stages: Mapping[str, ProcessingStage],
        documents: Sequence[SourceDocument],
        errors: list[ProcessingError],
        warnings: list[ProcessingWarning],
        metrics: MetricsTracker,
        events: EventBus,
        token: CancellationToken,
        pipeline_id: str | None = None,
    ) -> None:
        self.config = config
        self.stages = stages
        self.documents = documents
        self.errors = errors
        self.warnings = warnings
        self.metrics = metrics
        self.events = events
        self.token = token
        self.pipeline_id = pipeline_id

    async def run(self, stage: ProcessingStage) -> ProcessingStage:
        """
        Execute `stage` to a terminal status.

        Returns the stage when it completed (directly or via recovery).

        Raises:
            StageExecutionError: The stage failed and was not recovered.
        """
        log = logger.bind(
            pipeline_id=self.pipeline_id,
            stage_id=stage.id,
            stage_name=stage.name,
            processor=stage.processor.name,
        )

        stage.status = StageStatus.RUNNING
        stage.start_time = _utcnow()
        self.events.emit(PipelineEvent.STAGE_STARTED, {"stage_id": stage.id, "name": stage.name})
        log.info("Stage started", dependencies=stage.dependencies)

        data: Any = _UNASSEMBLED
        try:
            data = self.assemble_input(stage)
            await self._validate(stage, data)
            result = await self._execute(stage, data)
        except StageExecutionError as exc:
            log.warning("Stage failed", error=str(exc))
            if await self._try_recover(stage, exc, data, log):
                return stage
            raise

        self._complete(stage, result)
        log.info(
            "Stage completed",
            duration_ms=stage.duration_ms,
            quality_score=result.metrics.quality_score,
            content_preserved=result.metrics.content_preserved,
        )
        return stage

    # ─── Input assembly ───────────────────────────────

    def assemble_input(self, stage: ProcessingStage) -> Any:
        """
        Build the processor input for `stage`.

        Root stages get the whole document list.  One dependency passes its
        output through unwrapped; several pass an ordered list of outputs.
        A failed dependency that still holds output is used as degraded input.
        """
        if not stage.dependencies:
            return list(self.documents)

        outputs: list[Any] = []
        for dep_id in stage.dependencies:
            dep = self.stages.get(dep_id)
            if dep is None:
                raise MissingDependencyError(stage.id, dep_id)

            if dep.status == StageStatus.COMPLETED:
                outputs.append(dep.output)
            elif dep.status == StageStatus.FAILED and dep.has_output:
                self._note_degraded_input(stage, dep)
                outputs.append(dep.output)
            else:
                raise self._record_failure(
                    stage,
                    DependencyNotReadyError(dep_id, str(dep.status)),
                )

        return outputs[0] if len(outputs) == 1 else outputs

    def _note_degraded_input(self, stage: ProcessingStage, dep: ProcessingStage) -> None:
        logger.warning(
            "Using output from failed dependency stage",
            stage_id=stage.id,
            dependency_id=dep.id,
        )
        self.warnings.append(ProcessingWarning(
            stage=stage.id,
            type=WarningType.QUALITY_DEGRADATION,
            message=f"Using output from failed dependency stage '{dep.id}'",
            details={"dependency_id": dep.id},
        ))
        self.metrics.warning_added()

    # ─── Validation & execution ───────────────────────

    async def _validate(self, stage: ProcessingStage, data: Any) -> None:
        processor = stage.processor
        if not processor.supports_validation:
            return

        try:
            verdict = await processor.validate(data, stage.config)
        except Exception as exc:
            raise self._record_failure(
                stage,
                StageValidationError(f"Stage validation failed: {exc}"),
                error_type=ErrorType.VALIDATION,
                recoverable=False,
            ) from exc

        if verdict is not None and not isinstance(verdict, ValidationResult):
            raise self._record_failure(
                stage,
                StageValidationError(
                    f"Stage validation failed: validator returned {type(verdict).__name__}, "
                    "expected ValidationResult"
                ),
                error_type=ErrorType.VALIDATION,
                recoverable=False,
            )

        if verdict is not None and not verdict.passed:
            raise self._record_failure(
                stage,
                StageValidationError(f"Stage validation failed: {verdict.details}"),
                error_type=ErrorType.VALIDATION,
                recoverable=False,
                details={"confidence": verdict.confidence},
            )

    async def _execute(self, stage: ProcessingStage, data: Any) -> ProcessingResult:
        process = traced(
            stage.processor.process,
            name=f"{stage.processor.name}.process",
            metadata={"stage_id": stage.id, "processor_version": stage.processor.version},
        )

        try:
            result = await run_with_timeout(
                process(data, stage.config, self.token),
                self.config.timeout_seconds,
            )
        except TimeoutError as exc:
            raise self._record_failure(
                stage,
                StageTimeoutError(stage.id, self.config.timeout_ms),
            ) from exc
        except Exception as exc:
            raise self._record_failure(
                stage,
                StageExecutionError(f"Stage processing failed: {exc}"),
                details={"exception": type(exc).__name__},
            ) from exc

        if not isinstance(result, ProcessingResult):
            raise self._record_failure(
                stage,
                StageExecutionError(
                    f"Stage processing failed: processor returned {type(result).__name__}, "
                    "expected ProcessingResult"
                ),
            )

        if not result.success:
            if result.data is not None:
                # Partial output stays available to dependents and synthesis
                stage.output = result.data
                stage.output_kind = result.output_kind
            raise self._record_failure(
                stage,
                StageExecutionError(f"Stage processing failed: {result.error_message}"),
                recoverable=all(e.recoverable for e in result.errors),
                details={"processor_errors": [e.to_dict() for e in result.errors]},
            )

        return result

    # ─── Outcomes ─────────────────────────────────────

    def _complete(
        self,
        stage: ProcessingStage,
        result: ProcessingResult,
        event: PipelineEvent = PipelineEvent.STAGE_COMPLETED,
    ) -> None:
        self.metrics.record_result(result)
        self.warnings.extend(result.warnings)

        stage.output = result.data
        stage.output_kind = result.output_kind
        stage.status = StageStatus.COMPLETED
        stage.end_time = _utcnow()

        payload: dict[str, Any] = {
            "stage_id": stage.id,
            "name": stage.name,
            "metrics": dataclasses.asdict(result.metrics),
        }
        if event == PipelineEvent.STAGE_RECOVERED:
            payload["error"] = stage.last_error.to_dict() if stage.last_error else None
        self.events.emit(event, payload)

    def _record_failure(
        self,
        stage: ProcessingStage,
        exc: StageExecutionError,
        *,
        error_type: ErrorType = ErrorType.SYSTEM,
        recoverable: bool = True,
        details: dict[str, Any] | None = None,
    ) -> StageExecutionError:
        """Append the error record to the stage and the run, mark the stage failed."""
        error = ProcessingError(
            stage=stage.id,
            type=error_type,
            message=str(exc),
            recoverable=recoverable,
            details=details,
        )
        stage.errors.append(error)
        self.errors.append(error)
        stage.status = StageStatus.FAILED
        stage.end_time = _utcnow()

        exc.error = error
        exc.stage_id = stage.id
        exc.pipeline_id = self.pipeline_id
        return exc

    async def _try_recover(
        self,
        stage: ProcessingStage,
        exc: StageExecutionError,
        data: Any,
        log,
    ) -> bool:
        """Run the processor's recover() path.  Returns True if the stage was recovered."""
        processor = stage.processor
        error = exc.error
        if (
            not self.config.enable_recovery
            or not processor.supports_recovery
            or error is None
            or not error.recoverable
            or data is _UNASSEMBLED
        ):
            return False

        log.info("Attempting stage recovery")
        recover = traced(
            processor.recover,
            name=f"{processor.name}.recover",
            metadata={"stage_id": stage.id, "error_id": error.id},
        )
        try:
            result = await run_with_timeout(
                recover(error, data, stage.config, self.token),
                self.config.timeout_seconds,
            )
        except TimeoutError:
            log.warning("Recovery timed out", timeout_ms=self.config.timeout_ms)
            return False
        except Exception as recovery_exc:
            log.warning("Recovery failed", error=str(recovery_exc))
            return False

        if not isinstance(result, ProcessingResult) or not result.success:
            log.warning("Recovery unsuccessful", result_type=type(result).__name__)
            return False

        self._complete(stage, result, PipelineEvent.STAGE_RECOVERED)
        log.info("Stage recovered", duration_ms=stage.duration_ms)
        return True


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def run_with_timeout(coro: Awaitable[Any], timeout: float) -> Any:
    """
    Await `coro`, raising TimeoutError once `timeout` seconds have passed.

    Unlike asyncio.wait_for, the deadline is binding: a coroutine that
    swallows its cancellation cannot deliver a late result.  The losing
    task is cancelled and left to finish on its own.
    """
    task = asyncio.ensure_future(coro)
    try:
        done, _ = await asyncio.wait({task}, timeout=timeout)
    except asyncio.CancelledError:
        task.cancel()
        raise

    if task not in done:
        task.cancel()
        task.add_done_callback(_discard_late_result)
        raise TimeoutError(f"timed out after {timeout}s")
    return task.result()


def _discard_late_result(task: asyncio.Future) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.debug("Late failure from timed-out task ignored", error=str(task.exception()))
