"""Unit tests for metric folding and progress arithmetic."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from compact_study.core.constants import DocumentStatus
from compact_study.pipeline import ProcessingMetrics, ProcessingResult, ProcessingWarning, SourceDocument, SourceFile
from compact_study.pipeline.metrics import MetricsTracker, progress_percent, streaming_mean


def test_streaming_mean():
    assert streaming_mean(0.0, 0, 0.6) == pytest.approx(0.6)
    assert streaming_mean(0.6, 1, 0.8) == pytest.approx(0.7)
    assert streaming_mean(0.7, 2, 1.0) == pytest.approx(0.8)


@pytest.mark.parametrize(
    ("finished", "total", "expected"),
    [(1, 3, 33), (2, 3, 67), (3, 3, 100), (1, 8, 13), (1, 2, 50), (0, 4, 0), (0, 0, 100)],
)
def test_progress_percent_rounds_half_up(finished, total, expected):
    assert progress_percent(finished, total) == expected


def test_record_result_counts_errors_and_warnings():
    tracker = MetricsTracker()
    result = ProcessingResult(
        success=True,
        warnings=[ProcessingWarning(stage="a", message="w1"), ProcessingWarning(stage="a", message="w2")],
        metrics=ProcessingMetrics(quality_score=0.9, content_preserved=0.7),
    )

    tracker.record_result(result)
    tracker.stage_completed()
    tracker.stage_failed()

    metrics = tracker.snapshot()
    assert metrics.total_warnings == 2
    assert metrics.total_errors == 1
    assert metrics.stages_completed == 1
    assert metrics.stages_failed == 1
    assert metrics.average_quality_score == pytest.approx(0.9)
    assert metrics.average_preservation_score == pytest.approx(0.7)


def test_finalize_counts_documents_and_time():
    tracker = MetricsTracker()
    docs = [
        SourceDocument(id="1", file=SourceFile("a.pdf"), processing_status=DocumentStatus.COMPLETED),
        SourceDocument(id="2", file=SourceFile("b.pdf"), processing_status=DocumentStatus.FAILED),
        SourceDocument(id="3", file=SourceFile("c.pdf"), processing_status=DocumentStatus.COMPLETED),
    ]
    started = datetime(2026, 1, 1, tzinfo=timezone.utc)

    metrics = tracker.finalize(started, started + timedelta(seconds=2), docs)

    assert metrics.total_processing_time == 2000
    assert metrics.documents_processed == 2
    assert metrics.documents_failed == 1
