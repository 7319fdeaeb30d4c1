"""
MetricsTracker: running counters and streaming averages for one run.
"""

from __future__ import annotations

from datetime import datetime
from typing import Sequence

from compact_study.core.constants import DocumentStatus
from compact_study.pipeline.context import PipelineMetrics, SourceDocument
from compact_study.pipeline.results import ProcessingResult


def streaming_mean(current: float, count: int, value: float) -> float:
    """Fold `value` into a mean of `count` samples."""
    return (current * count + value) / (count + 1)


def progress_percent(finished: int, total: int) -> int:
    """Integer percentage, rounding halves up."""
    if total <= 0:
        return 100
    return (200 * finished + total) // (2 * total)


class MetricsTracker:
    """Owns the PipelineMetrics of one run.  Only the driver writes to it."""

    def __init__(self) -> None:
        self.metrics = PipelineMetrics()

    def record_result(self, result: ProcessingResult) -> None:
        """
        Fold a successful stage result into the counters and averages.

        Must be called before the stage is counted as completed: the
        running average uses the number of stages completed so far.
        """
        m = self.metrics
        m.total_errors += len(result.errors)
        m.total_warnings += len(result.warnings)

        n = m.stages_completed
        m.average_quality_score = streaming_mean(
            m.average_quality_score, n, result.metrics.quality_score
        )
        m.average_preservation_score = streaming_mean(
            m.average_preservation_score, n, result.metrics.content_preserved
        )

    def stage_completed(self) -> None:
        self.metrics.stages_completed += 1

    def stage_failed(self) -> None:
        self.metrics.stages_failed += 1
        self.metrics.total_errors += 1

    def warning_added(self) -> None:
        self.metrics.total_warnings += 1

    def finalize(
        self,
        started_at: datetime,
        ended_at: datetime,
        documents: Sequence[SourceDocument],
    ) -> PipelineMetrics:
        """Record wall-clock time and per-document outcome counts."""
        m = self.metrics
        m.total_processing_time = int((ended_at - started_at).total_seconds() * 1000)
        m.documents_processed = sum(
            1 for doc in documents if doc.processing_status == DocumentStatus.COMPLETED
        )
        m.documents_failed = sum(
            1 for doc in documents if doc.processing_status == DocumentStatus.FAILED
        )
        return m

    def snapshot(self) -> PipelineMetrics:
        return self.metrics.copy()
