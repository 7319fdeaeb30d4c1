"""
Domain-specific exception hierarchy for the pipeline engine.

All pipeline exceptions inherit from PipelineError so callers can
catch broadly or narrowly as needed.  Each exception carries structured
context (stage id, pipeline id, details) for logging/debugging.

Configuration errors are always fatal and raised before any stage runs.
Stage errors are contained at the stage boundary unless the continuation
policy decides the run must stop.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from compact_study.pipeline.results import ProcessingError


class PipelineError(Exception):
    """Base exception for all pipeline errors."""

    def __init__(
        self,
        message: str,
        *,
        pipeline_id: str | None = None,
        stage_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.pipeline_id = pipeline_id
        self.stage_id = stage_id
        self.details = details or {}
        super().__init__(message)


# ─── Configuration ────────────────────────────────────


class PipelineConfigurationError(PipelineError):
    """The pipeline cannot run as assembled."""
    pass


class ProcessorNotFoundError(PipelineConfigurationError):
    """A stage names a processor that was never registered."""

    def __init__(self, processor_name: str, **kwargs) -> None:
        self.processor_name = processor_name
        super().__init__(
            f"Processor '{processor_name}' not found. Register it first.",
            **kwargs,
        )


class EmptyPipelineError(PipelineConfigurationError):
    """No source documents or no stages were provided."""
    pass


class MissingDependencyError(PipelineConfigurationError):
    """A stage depends on a stage id that does not exist."""

    def __init__(self, stage_id: str, dependency_id: str, **kwargs) -> None:
        self.dependency_id = dependency_id
        super().__init__(
            f"Stage '{stage_id}' depends on non-existent stage '{dependency_id}'",
            stage_id=stage_id,
            **kwargs,
        )


class CircularDependencyError(PipelineConfigurationError):
    """The dependency edges contain a cycle."""

    def __init__(self, stage_id: str, **kwargs) -> None:
        super().__init__(
            f"Circular dependency detected involving stage '{stage_id}'",
            stage_id=stage_id,
            **kwargs,
        )


class PipelineStateError(PipelineError):
    """execute() was called on a pipeline that already ran or was cancelled."""
    pass


class PipelineCancelledError(PipelineError):
    """Raised by a processor that observed the cancellation token."""
    pass


# ─── Stage execution ──────────────────────────────────


class StageExecutionError(PipelineError):
    """A stage failed during execution."""

    def __init__(
        self,
        message: str,
        *,
        error: ProcessingError | None = None,
        **kwargs,
    ) -> None:
        self.error = error
        super().__init__(message, **kwargs)


class StageValidationError(StageExecutionError):
    """The processor rejected the stage input before execution."""
    pass


class StageTimeoutError(StageExecutionError):
    """The stage did not finish within the configured timeout."""

    def __init__(self, stage_id: str, timeout_ms: int, **kwargs) -> None:
        self.timeout_ms = timeout_ms
        super().__init__(
            f"Stage '{stage_id}' timed out after {timeout_ms}ms",
            stage_id=stage_id,
            **kwargs,
        )


class DependencyNotReadyError(StageExecutionError):
    """A dependency stage has neither completed nor left usable output."""

    def __init__(self, dependency_id: str, status: str, **kwargs) -> None:
        self.dependency_id = dependency_id
        super().__init__(
            f"Dependency stage '{dependency_id}' not completed (status: {status})",
            **kwargs,
        )
