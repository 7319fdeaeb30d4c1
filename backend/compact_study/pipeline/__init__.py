"""
Pipeline Engine: staged content-processing DAG.

This package provides the driver that runs registered processors over a
batch of source documents, in dependency order, with per-stage timeouts,
recovery, a continuation policy, lifecycle events and a best-effort
AcademicDocument as output.
"""

from compact_study.pipeline.config import DEFAULT_PIPELINE_CONFIG, PipelineConfig
from compact_study.pipeline.context import (
    PipelineMetrics,
    PipelineStatus,
    ProcessingStage,
    SourceDocument,
    SourceFile,
)
from compact_study.pipeline.document import AcademicDocument
from compact_study.pipeline.engine import ContentProcessingPipeline, create_processing_pipeline
from compact_study.pipeline.processor import CancellationToken, ContentProcessor
from compact_study.pipeline.results import (
    ProcessingError,
    ProcessingMetrics,
    ProcessingResult,
    ProcessingWarning,
    ValidationResult,
)

__all__ = [
    "AcademicDocument",
    "CancellationToken",
    "ContentProcessingPipeline",
    "ContentProcessor",
    "DEFAULT_PIPELINE_CONFIG",
    "PipelineConfig",
    "PipelineMetrics",
    "PipelineStatus",
    "ProcessingError",
    "ProcessingMetrics",
    "ProcessingResult",
    "ProcessingStage",
    "ProcessingWarning",
    "SourceDocument",
    "SourceFile",
    "ValidationResult",
    "create_processing_pipeline",
]
