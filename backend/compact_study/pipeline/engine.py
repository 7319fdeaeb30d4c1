"""
ContentProcessingPipeline: the driver that runs a DAG of stages.

Responsibilities:
    - Hold the document intake, processor registry and stage list
    - Validate configuration and order stages topologically
    - Execute each stage through the StageExecutor, sequentially
    - Apply the continuation policy after a failed stage
    - Track progress/metrics and publish lifecycle events
    - Always synthesize a best-effort AcademicDocument

A pipeline instance runs exactly once.  Build a new one for a new run.
"""

from __future__ import annotations

import asyncio
import secrets
import string
import time
import uuid
from datetime import datetime, timezone
from typing import Any

import structlog

from compact_study.core.constants import (
    DocumentCategory,
    DocumentStatus,
    ErrorSeverity,
    ErrorType,
    PipelineEvent,
    PipelinePhase,
    StageStatus,
    WarningType,
)
from compact_study.pipeline.config import PipelineConfig
from compact_study.pipeline.context import (
    PipelineMetrics,
    PipelineStatus,
    ProcessingStage,
    SourceDocument,
    SourceFile,
)
from compact_study.pipeline.document import AcademicDocument
from compact_study.pipeline.errors import (
    EmptyPipelineError,
    PipelineConfigurationError,
    PipelineStateError,
    StageExecutionError,
)
from compact_study.pipeline.events import EventBus, Listener
from compact_study.pipeline.executor import StageExecutor
from compact_study.pipeline.graph import topological_sort, validate_dependencies
from compact_study.pipeline.metrics import MetricsTracker, progress_percent
from compact_study.pipeline.output import OutputSynthesizer
from compact_study.pipeline.policy import ContinuationPolicy
from compact_study.pipeline.processor import CancellationToken, ContentProcessor
from compact_study.pipeline.registry import ProcessorRegistry
from compact_study.pipeline.results import ProcessingError, ProcessingWarning

_ID_ALPHABET = string.ascii_lowercase + string.digits


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_document_id() -> str:
    """`doc_<epoch-ms>_<9 base36 chars>`."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"doc_{int(time.time() * 1000)}_{suffix}"


class ContentProcessingPipeline:
    """
    Runs processing stages over a batch of source documents.

    Usage::

        pipeline = create_processing_pipeline(timeout_ms=60_000)
        pipeline.register_processor(FileProcessor())
        pipeline.register_processor(MathContentProcessor())
        pipeline.add_source_document(SourceFile.from_path("probability.pdf"), "probability")
        pipeline.add_stage("file-processing", "File Processing", "file-processor")
        pipeline.add_stage(
            "math-extraction", "Math Extraction", "math-content-processor",
            dependencies=["file-processing"],
        )
        pipeline.on("progress_updated", lambda e: print(e["progress"]))
        document = await pipeline.execute()
    """

    def __init__(self, config: PipelineConfig | None = None) -> None:
        self.config = config or PipelineConfig.from_settings()
        self.pipeline_id = f"pipeline_{uuid.uuid4().hex[:12]}"
        self.logger = structlog.get_logger("pipeline.engine").bind(pipeline_id=self.pipeline_id)

        self.processors = ProcessorRegistry()
        self.events = EventBus()
        self.token = CancellationToken()

        self._documents: list[SourceDocument] = []
        self._stages: list[ProcessingStage] = []
        self._stages_by_id: dict[str, ProcessingStage] = {}
        self._errors: list[ProcessingError] = []
        self._warnings: list[ProcessingWarning] = []
        self._metrics = MetricsTracker()
        self._status = PipelineStatus()
        self._output: AcademicDocument | None = None
        self._executed = False

        self._policy = ContinuationPolicy(self.config)
        self._executor = StageExecutor(
            config=self.config,
            stages=self._stages_by_id,
            documents=self._documents,
            errors=self._errors,
            warnings=self._warnings,
            metrics=self._metrics,
            events=self.events,
            token=self.token,
            pipeline_id=self.pipeline_id,
        )

    # ═══════════════════════════════════════════════════
    #  Assembly
    # ═══════════════════════════════════════════════════

    def add_source_document(
        self,
        file: SourceFile,
        category: DocumentCategory | str = DocumentCategory.GENERAL,
    ) -> str:
        """Queue a document for processing.  Returns its generated id."""
        category = DocumentCategory(category)
        document = SourceDocument(id=new_document_id(), file=file, category=category)
        self._documents.append(document)

        self.events.emit(PipelineEvent.DOCUMENT_ADDED, {
            "document_id": document.id,
            "type": str(category),
            "name": file.name,
        })
        return document.id

    def register_processor(self, processor: ContentProcessor) -> None:
        """Register a processor by name, replacing any previous one with that name."""
        previous = self.processors.register(processor)
        if previous is not None and previous is not processor:
            self.logger.info(
                "Processor replaced",
                processor=processor.name,
                old_version=previous.version,
                new_version=processor.version,
            )

        self.events.emit(PipelineEvent.PROCESSOR_REGISTERED, {
            "name": processor.name,
            "version": processor.version,
        })

    def add_stage(
        self,
        stage_id: str,
        name: str,
        processor_name: str,
        config: dict[str, Any] | None = None,
        dependencies: list[str] | None = None,
    ) -> ProcessingStage:
        """
        Add a stage bound to a registered processor.

        Dependency ids are not checked here; execute() validates them.

        Raises:
            ProcessorNotFoundError: If `processor_name` is not registered.
            PipelineConfigurationError: If `stage_id` is already used.
        """
        processor = self.processors.get(processor_name)
        if stage_id in self._stages_by_id:
            raise PipelineConfigurationError(
                f"Stage '{stage_id}' already exists",
                pipeline_id=self.pipeline_id,
                stage_id=stage_id,
            )

        stage = ProcessingStage(
            id=stage_id,
            name=name,
            processor=processor,
            config=dict(config or {}),
            dependencies=list(dependencies or []),
        )
        self._stages.append(stage)
        self._stages_by_id[stage_id] = stage

        self.events.emit(PipelineEvent.STAGE_ADDED, {
            "stage_id": stage_id,
            "name": name,
            "dependencies": list(stage.dependencies),
        })
        return stage

    def on(self, event: PipelineEvent | str, listener: Listener) -> None:
        """Subscribe to a pipeline event."""
        self.events.on(event, listener)

    # ═══════════════════════════════════════════════════
    #  Execution
    # ═══════════════════════════════════════════════════

    async def execute(self) -> AcademicDocument:
        """
        Run every stage and return the final document.

        Stage failures are contained unless the continuation policy aborts
        the run, in which case the triggering error is re-raised (a
        best-effort document is still available from get_output()).

        Raises:
            PipelineStateError: The pipeline already ran or was cancelled.
            PipelineConfigurationError: Invalid inputs, stages or dependencies.
            StageExecutionError: The continuation policy aborted the run.
        """
        if self._executed or self._status.phase != PipelinePhase.INITIALIZING:
            raise PipelineStateError(
                f"Pipeline cannot execute in phase '{self._status.phase}'",
                pipeline_id=self.pipeline_id,
            )
        self._executed = True

        self._status.phase = PipelinePhase.PROCESSING
        self._status.start_time = _utcnow()
        self._mark_documents(DocumentStatus.PENDING, DocumentStatus.PROCESSING)
        log = self.logger.bind(
            total_documents=len(self._documents),
            total_stages=len(self._stages),
        )
        log.info("Pipeline started")
        self.events.emit(PipelineEvent.PIPELINE_STARTED, {
            "pipeline_id": self.pipeline_id,
            "documents": len(self._documents),
            "stages": len(self._stages),
        })

        try:
            self._validate_pipeline()
            ordered = topological_sort(self._stages)
            await self._run_stages(ordered, log)
        except asyncio.CancelledError:
            self.cancel()
            raise
        except Exception as exc:
            self._fail(exc, log)
            raise

        if self._status.phase == PipelinePhase.CANCELLED:
            return self._finish_cancelled(log)
        return self._finish(log)

    def _validate_pipeline(self) -> None:
        if not self._documents:
            raise EmptyPipelineError("No source documents provided", pipeline_id=self.pipeline_id)
        if not self._stages:
            raise EmptyPipelineError("No processing stages defined", pipeline_id=self.pipeline_id)
        validate_dependencies(self._stages)

    async def _run_stages(self, ordered: list[ProcessingStage], log) -> None:
        total = len(ordered)
        started = time.perf_counter()

        for index, stage in enumerate(ordered):
            if self.token.cancelled:
                self._skip(ordered[index:], log)
                return

            self._status.current_stage = stage.id
            try:
                await self._executor.run(stage)
            except StageExecutionError as exc:
                self._handle_stage_error(stage, exc)

                if self.token.cancelled:
                    log.info("Stage failed after cancellation", stage_id=stage.id)
                else:
                    decision = self._policy.decide(stage, self._metrics.metrics)
                    if not decision:
                        log.error(
                            "Stage failed, pipeline stopping",
                            stage_id=stage.id,
                            reason=decision.reason,
                            error=str(exc),
                        )
                        raise
                    log.warning(
                        "Stage failed, pipeline continuing",
                        stage_id=stage.id,
                        reason=decision.reason,
                    )
            else:
                self._metrics.stage_completed()

            self._update_progress(index + 1, total, started)

    def _handle_stage_error(self, stage: ProcessingStage, exc: StageExecutionError) -> None:
        self._metrics.stage_failed()
        error = exc.error or stage.last_error

        self.events.emit(PipelineEvent.STAGE_FAILED, {
            "stage_id": stage.id,
            "name": stage.name,
            "error": error.to_dict() if error else {"message": str(exc)},
        })
        self.events.emit(PipelineEvent.STAGE_ERROR, {
            "stage_id": stage.id,
            "name": stage.name,
            "error": str(exc),
        })

    def _update_progress(self, finished: int, total: int, started: float) -> None:
        progress = progress_percent(finished, total)
        if progress < self._status.progress:
            return

        elapsed_ms = (time.perf_counter() - started) * 1000
        self._status.progress = progress
        self._status.estimated_time_remaining = elapsed_ms / finished * (total - finished)
        self.events.emit(PipelineEvent.PROGRESS_UPDATED, {
            "progress": progress,
            "stage_id": self._status.current_stage,
        })

    def _mark_documents(self, current: DocumentStatus, new: DocumentStatus) -> None:
        # Processors may already have set a terminal status on a document
        for doc in self._documents:
            if doc.processing_status == current:
                doc.processing_status = new

    def _skip(self, remaining: list[ProcessingStage], log) -> None:
        for stage in remaining:
            if stage.status == StageStatus.PENDING:
                stage.status = StageStatus.SKIPPED
        log.info("Pipeline cancelled, remaining stages skipped", skipped=len(remaining))

    # ─── Terminal transitions ─────────────────────────

    def _synthesize(self) -> AcademicDocument:
        return OutputSynthesizer(self._stages, self._documents, self._metrics.metrics).synthesize()

    def _finalize_metrics(self) -> PipelineMetrics:
        ended = self._status.end_time or _utcnow()
        return self._metrics.finalize(self._status.start_time, ended, self._documents)

    def _finish(self, log) -> AcademicDocument:
        document = self._synthesize()
        self._output = document
        self._mark_documents(DocumentStatus.PROCESSING, DocumentStatus.COMPLETED)
        self._check_preservation(log)

        self._status.phase = PipelinePhase.COMPLETED
        self._status.end_time = _utcnow()
        self._status.progress = 100
        self._status.current_stage = None
        self._status.estimated_time_remaining = 0
        metrics = self._finalize_metrics()

        log.info(
            "Pipeline finished",
            stages_completed=metrics.stages_completed,
            stages_failed=metrics.stages_failed,
            duration_ms=metrics.total_processing_time,
            preservation_score=document.metadata.preservation_score,
        )
        self.events.emit(PipelineEvent.PIPELINE_COMPLETED, {
            "pipeline_id": self.pipeline_id,
            "output": document.model_copy(deep=True),
            "metrics": metrics.to_dict(),
        })
        return document

    def _finish_cancelled(self, log) -> AcademicDocument:
        document = self._synthesize()
        self._output = document
        metrics = self._finalize_metrics()
        log.info(
            "Pipeline cancelled, returning partial output",
            stages_completed=metrics.stages_completed,
        )
        return document

    def _fail(self, exc: Exception, log) -> None:
        self._status.phase = PipelinePhase.FAILED
        self._status.end_time = _utcnow()
        self._mark_documents(DocumentStatus.PROCESSING, DocumentStatus.FAILED)

        error = ProcessingError(
            stage="pipeline",
            type=ErrorType.SYSTEM,
            severity=ErrorSeverity.CRITICAL,
            message=str(exc) or "Unknown pipeline error",
            recoverable=False,
        )
        self._errors.append(error)
        self._output = self._synthesize()
        self._finalize_metrics()

        log.error("Pipeline failed", error=str(exc), error_type=type(exc).__name__)
        self.events.emit(PipelineEvent.PIPELINE_FAILED, {
            "pipeline_id": self.pipeline_id,
            "error": error.to_dict(),
        })

    def _check_preservation(self, log) -> None:
        """preservation_threshold is advisory: record a warning, never fail."""
        metrics = self._metrics.metrics
        threshold = self.config.preservation_threshold
        if metrics.stages_completed == 0 or metrics.average_preservation_score >= threshold:
            return

        log.warning(
            "Average preservation below threshold",
            average=metrics.average_preservation_score,
            threshold=threshold,
        )
        self._warnings.append(ProcessingWarning(
            stage="pipeline",
            type=WarningType.CONTENT_LOSS,
            message=(
                f"Average preservation score {metrics.average_preservation_score:.2f} "
                f"is below threshold {threshold:.2f}"
            ),
        ))
        self._metrics.warning_added()

    # ═══════════════════════════════════════════════════
    #  Control & inspection
    # ═══════════════════════════════════════════════════

    def cancel(self) -> None:
        """
        Cancel the run cooperatively.  Idempotent and never raises.

        In-flight processor calls are not interrupted; they can observe
        `token`.  The driver stops before the next stage.
        """
        if self._status.phase in (
            PipelinePhase.CANCELLED,
            PipelinePhase.COMPLETED,
            PipelinePhase.FAILED,
        ):
            return

        self._status.phase = PipelinePhase.CANCELLED
        self._status.end_time = _utcnow()
        self.token.cancel("pipeline cancelled")
        self.logger.info("Pipeline cancel requested", current_stage=self._status.current_stage)
        self.events.emit(PipelineEvent.PIPELINE_CANCELLED, {"pipeline_id": self.pipeline_id})

    def get_status(self) -> PipelineStatus:
        return self._status.copy()

    def get_metrics(self) -> PipelineMetrics:
        return self._metrics.snapshot()

    def get_errors(self) -> list[ProcessingError]:
        return list(self._errors)

    def get_warnings(self) -> list[ProcessingWarning]:
        return list(self._warnings)

    def get_output(self) -> AcademicDocument | None:
        """The document from the last execute(), including after an abort."""
        return self._output

    def get_stage(self, stage_id: str) -> ProcessingStage | None:
        return self._stages_by_id.get(stage_id)

    @property
    def stages(self) -> tuple[ProcessingStage, ...]:
        return tuple(self._stages)

    @property
    def documents(self) -> tuple[SourceDocument, ...]:
        return tuple(self._documents)


def create_processing_pipeline(
    config: PipelineConfig | None = None,
    **overrides: Any,
) -> ContentProcessingPipeline:
    """
    Build a pipeline from `config` (or environment settings) plus overrides.

    Example::

        pipeline = create_processing_pipeline(failure_threshold=1, timeout_ms=5_000)
    """
    if config is None:
        config = PipelineConfig.from_settings(**overrides)
    elif overrides:
        config = config.merged(**overrides)
    return ContentProcessingPipeline(config)
