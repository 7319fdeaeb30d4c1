"""Shared constants and enums used across the pipeline."""

from enum import StrEnum


class PipelinePhase(StrEnum):
    """Overall phase of a pipeline run."""

    INITIALIZING = "initializing"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class StageStatus(StrEnum):
    """Status of an individual processing stage."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class DocumentStatus(StrEnum):
    """Processing status of a source document."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class DocumentCategory(StrEnum):
    """Subject category of a source document."""

    PROBABILITY = "probability"
    RELATIONS = "relations"
    GENERAL = "general"


class ErrorType(StrEnum):
    """Where in the processing chain an error originated."""

    EXTRACTION = "extraction"
    VALIDATION = "validation"
    TRANSFORMATION = "transformation"
    OUTPUT = "output"
    SYSTEM = "system"


class ErrorSeverity(StrEnum):
    """How badly an error affects the run."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class WarningType(StrEnum):
    """Categories of non-fatal processing warnings."""

    CONTENT_LOSS = "content_loss"
    QUALITY_DEGRADATION = "quality_degradation"
    FORMAT_ISSUE = "format_issue"
    PERFORMANCE = "performance"


class OutputFormat(StrEnum):
    """Renderer targets a run may request."""

    HTML = "html"
    PDF = "pdf"
    MARKDOWN = "markdown"


class OutputKind(StrEnum):
    """Variant tag carried by stage output."""

    CANONICAL = "canonical"     # already an AcademicDocument
    RAW = "raw"                 # intermediate payload, needs adaptation


class PipelineEvent(StrEnum):
    """Event names published on the pipeline event bus."""

    DOCUMENT_ADDED = "document_added"
    PROCESSOR_REGISTERED = "processor_registered"
    STAGE_ADDED = "stage_added"
    PIPELINE_STARTED = "pipeline_started"
    STAGE_STARTED = "stage_started"
    STAGE_COMPLETED = "stage_completed"
    STAGE_RECOVERED = "stage_recovered"
    STAGE_FAILED = "stage_failed"
    STAGE_ERROR = "stage_error"
    PROGRESS_UPDATED = "progress_updated"
    PIPELINE_COMPLETED = "pipeline_completed"
    PIPELINE_FAILED = "pipeline_failed"
    PIPELINE_CANCELLED = "pipeline_cancelled"
