"""Unit tests for the standard four-stage orchestrator and its presets."""
from __future__ import annotations

import pytest

from compact_study.core.constants import PipelinePhase, StageStatus
from compact_study.pipeline import SourceFile
from compact_study.pipeline.errors import ProcessorNotFoundError, StageExecutionError
from compact_study.pipeline.orchestrator import (
    DEFAULT_STRUCTURE_CONFIG,
    STANDARD_PIPELINE_STAGES,
    STANDARD_PROCESSORS,
    CompactStudyPipelineOrchestrator,
    OrchestratorConfig,
    PipelineOrchestrator,
    ProbabilityPipelineOrchestrator,
    RelationsPipelineOrchestrator,
    create_compact_study_pipeline,
    create_pipeline_orchestrator,
    create_probability_pipeline,
    create_relations_pipeline,
    process_compact_study_documents,
)

FINAL_OUTPUT = {
    "title": "Compact Study Guide: Discrete Probability & Relations",
    "parts": [{"part_number": 1, "title": "Part I: Discrete Probability", "sections": []}],
}


@pytest.fixture
def processors(scripted):
    return [
        scripted(STANDARD_PROCESSORS["file-processing"]),
        scripted(STANDARD_PROCESSORS["math-extraction"]),
        scripted(STANDARD_PROCESSORS["structure-organization"]),
        scripted(STANDARD_PROCESSORS["cross-reference-generation"], output=FINAL_OUTPUT),
    ]


@pytest.fixture
def files():
    return [
        (SourceFile("probability.pdf", b"P(A)"), "probability"),
        (SourceFile("relations.pdf", b"R"), "relations"),
    ]


def test_standard_stages_are_chained(processors):
    orchestrator = PipelineOrchestrator(processors)
    stages = orchestrator.pipeline.stages

    assert [stage.id for stage in stages] == list(STANDARD_PIPELINE_STAGES)
    assert [stage.processor.name for stage in stages] == [
        "file-processor",
        "math-content-processor",
        "academic-structure-processor",
        "cross-reference-processor",
    ]
    assert stages[0].dependencies == []
    assert [stage.dependencies for stage in stages[1:]] == [[a.id] for a in stages[:-1]]
    assert stages[2].config == DEFAULT_STRUCTURE_CONFIG


def test_file_processing_is_critical(processors):
    config = OrchestratorConfig(processing_config={"critical_stages": {"math-extraction"}})
    orchestrator = PipelineOrchestrator(processors, config)

    assert orchestrator.pipeline.config.critical_stages == frozenset({"file-processing", "math-extraction"})


def test_error_recovery_switch(processors):
    orchestrator = PipelineOrchestrator(processors, OrchestratorConfig(enable_error_recovery=False))
    assert orchestrator.pipeline.config.enable_recovery is False


def test_missing_processor_is_rejected(processors):
    with pytest.raises(ProcessorNotFoundError):
        PipelineOrchestrator(processors[:2])


@pytest.mark.parametrize(
    ("factory", "cls", "title"),
    [
        (create_pipeline_orchestrator, PipelineOrchestrator, "Compact Study Guide"),
        (create_probability_pipeline, ProbabilityPipelineOrchestrator, "Discrete Probability Study Guide"),
        (create_relations_pipeline, RelationsPipelineOrchestrator, "Relations Study Guide"),
        (
            create_compact_study_pipeline,
            CompactStudyPipelineOrchestrator,
            "Compact Study Guide: Discrete Probability & Relations",
        ),
    ],
)
def test_factories_apply_structure_presets(processors, factory, cls, title):
    orchestrator = factory(processors)

    assert type(orchestrator) is cls
    assert orchestrator.pipeline.get_stage("structure-organization").config["title"] == title


def test_caller_structure_config_overrides_preset(processors):
    config = OrchestratorConfig(structure_config={"title": "My Notes"})
    orchestrator = ProbabilityPipelineOrchestrator(processors, config)
    structure = orchestrator.pipeline.get_stage("structure-organization").config

    assert structure["title"] == "My Notes"
    assert "Bayes' Theorem" in structure["sections"]


def test_probability_preset_adds_math_patterns(processors):
    orchestrator = ProbabilityPipelineOrchestrator(processors)
    math = orchestrator.pipeline.get_stage("math-extraction").config

    assert math["confidence_threshold"] == 0.5
    assert any("Bayes" in pattern for pattern in math["probability_patterns"])


async def test_orchestrator_runs_end_to_end(processors, files):
    orchestrator = create_compact_study_pipeline(processors)
    progress = []
    orchestrator.on("progress_updated", lambda e: progress.append(e["progress"]))
    ids = orchestrator.add_documents(files)

    document = await orchestrator.execute()

    assert len(ids) == 2
    assert document.title == FINAL_OUTPUT["title"]
    assert orchestrator.get_status().phase == PipelinePhase.COMPLETED
    assert orchestrator.get_metrics().stages_completed == 4
    assert orchestrator.get_errors() == []
    assert progress == [25, 50, 75, 100]
    assert orchestrator.get_output() is document


async def test_file_processing_failure_aborts(processors, files, scripted):
    processors[0] = scripted("file-processor", error=RuntimeError("corrupt pdf"))
    orchestrator = create_pipeline_orchestrator(processors)
    orchestrator.add_documents(files)

    with pytest.raises(StageExecutionError, match="corrupt pdf"):
        await orchestrator.execute()

    assert orchestrator.get_status().phase == PipelinePhase.FAILED
    assert orchestrator.pipeline.get_stage("math-extraction").status == StageStatus.PENDING
    assert len(orchestrator.get_output().parts) == 2


async def test_orchestrator_cancel(processors):
    orchestrator = create_pipeline_orchestrator(processors)
    orchestrator.cancel()

    assert orchestrator.get_status().phase == PipelinePhase.CANCELLED


async def test_process_compact_study_documents(processors, files):
    document = await process_compact_study_documents(files, processors)

    assert document.title == FINAL_OUTPUT["title"]
    assert document.metadata.source_files == ["probability.pdf", "relations.pdf"]
