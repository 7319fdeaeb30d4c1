"""Unit tests for the continuation policy and abort handling."""
from __future__ import annotations

import pytest

from compact_study.core.constants import ErrorSeverity, PipelinePhase, StageStatus
from compact_study.pipeline import (
    PipelineConfig,
    PipelineMetrics,
    ProcessingError,
    ProcessingStage,
    create_processing_pipeline,
)
from compact_study.pipeline.errors import StageExecutionError
from compact_study.pipeline.policy import ContinuationPolicy


def _failed_stage(scripted, *, output=None, recoverable=True, stage_id="s"):
    stage = ProcessingStage(id=stage_id, name=stage_id, processor=scripted(stage_id))
    stage.status = StageStatus.FAILED
    stage.output = output
    stage.errors.append(ProcessingError(stage=stage_id, message="failed", recoverable=recoverable))
    return stage


@pytest.mark.parametrize(
    ("config", "stage_kwargs", "stages_failed", "proceed"),
    [
        ({}, {"output": {"parts": []}}, 99, True),
        ({"enable_recovery": False}, {"output": {"parts": []}}, 1, True),
        ({"enable_recovery": False}, {"output": {"parts": []}}, 4, False),
        ({}, {}, 3, True),
        ({}, {}, 4, False),
        ({}, {"recoverable": False}, 1, False),
        ({"critical_stages": frozenset({"s"})}, {}, 1, False),
        ({"critical_stages": frozenset({"other"})}, {}, 1, True),
    ],
)
def test_continuation_rules(scripted, config, stage_kwargs, stages_failed, proceed):
    policy = ContinuationPolicy(PipelineConfig(**config))
    stage = _failed_stage(scripted, **stage_kwargs)

    decision = policy.decide(stage, PipelineMetrics(stages_failed=stages_failed))

    assert bool(decision) is proceed
    assert decision.reason


def test_partial_output_wins_over_non_recoverable_error(scripted):
    policy = ContinuationPolicy(PipelineConfig())
    stage = _failed_stage(scripted, output=["section"], recoverable=False)

    assert policy.decide(stage, PipelineMetrics(stages_failed=1))


async def test_threshold_one_aborts_on_second_failure(scripted, source_file):
    pipeline = create_processing_pipeline(failure_threshold=1)
    pipeline.add_source_document(source_file)
    third = scripted("c")
    for processor in (scripted("a", error=RuntimeError("first")), scripted("b", error=RuntimeError("second")), third):
        pipeline.register_processor(processor)
        pipeline.add_stage(processor.name, processor.name, processor.name)
    failed_events = []
    pipeline.on("pipeline_failed", failed_events.append)

    with pytest.raises(StageExecutionError, match="second"):
        await pipeline.execute()

    assert pipeline.get_status().phase == PipelinePhase.FAILED
    assert pipeline.get_stage("a").status == StageStatus.FAILED
    assert pipeline.get_stage("b").status == StageStatus.FAILED
    assert pipeline.get_stage("c").status == StageStatus.PENDING
    assert third.calls == []
    assert pipeline.get_metrics().stages_failed == 2

    critical = pipeline.get_errors()[-1]
    assert critical.stage == "pipeline"
    assert critical.severity == ErrorSeverity.CRITICAL
    assert len(failed_events) == 1
    assert failed_events[0]["error"]["message"] == critical.message

    # best-effort output is still produced on abort
    assert pipeline.get_output() is not None


async def test_critical_stage_failure_aborts(scripted, source_file):
    pipeline = create_processing_pipeline(critical_stages={"extract"})
    pipeline.add_source_document(source_file)
    pipeline.register_processor(scripted("extract", error=RuntimeError("unreadable pdf")))
    pipeline.add_stage("extract", "Extract", "extract")

    with pytest.raises(StageExecutionError, match="unreadable pdf"):
        await pipeline.execute()

    assert pipeline.get_status().phase == PipelinePhase.FAILED
