"""Unit tests for dependency validation and topological ordering."""
from __future__ import annotations

import random

import pytest

from compact_study.core.constants import PipelinePhase
from compact_study.pipeline import ProcessingStage
from compact_study.pipeline.errors import CircularDependencyError, MissingDependencyError
from compact_study.pipeline.graph import topological_sort, validate_dependencies


def _stages(scripted, edges: dict[str, list[str]]) -> list[ProcessingStage]:
    processor = scripted("noop")
    return [
        ProcessingStage(id=stage_id, name=stage_id, processor=processor, dependencies=deps)
        for stage_id, deps in edges.items()
    ]


def _ids(stages):
    return [stage.id for stage in stages]


def test_dependencies_precede_dependents(scripted):
    stages = _stages(scripted, {
        "cross-reference": ["structure"],
        "structure": ["math", "files"],
        "math": ["files"],
        "files": [],
    })

    assert _ids(topological_sort(stages)) == ["files", "math", "structure", "cross-reference"]


def test_independent_stages_keep_insertion_order(scripted):
    stages = _stages(scripted, {"b": [], "a": [], "c": []})
    assert _ids(topological_sort(stages)) == ["b", "a", "c"]


@pytest.mark.parametrize("seed", range(20))
def test_random_dag_orders_every_edge(scripted, seed):
    rng = random.Random(seed)
    count = rng.randint(2, 15)
    names = [f"s{i}" for i in range(count)]
    edges = {
        name: rng.sample(names[:index], rng.randint(0, index))
        for index, name in enumerate(names)
    }
    insertion = list(edges.items())
    rng.shuffle(insertion)

    ordered = _ids(topological_sort(_stages(scripted, dict(insertion))))

    assert sorted(ordered) == sorted(names)
    position = {stage_id: i for i, stage_id in enumerate(ordered)}
    for stage_id, deps in edges.items():
        for dep in deps:
            assert position[dep] < position[stage_id]


def test_cycle_is_rejected(scripted):
    stages = _stages(scripted, {"a": ["c"], "b": ["a"], "c": ["b"]})

    with pytest.raises(CircularDependencyError, match="Circular dependency detected involving stage"):
        topological_sort(stages)


def test_self_dependency_is_a_cycle(scripted):
    with pytest.raises(CircularDependencyError, match="'a'"):
        topological_sort(_stages(scripted, {"a": ["a"]}))


def test_missing_dependency_is_reported(scripted):
    stages = _stages(scripted, {"a": [], "b": ["ghost"]})

    with pytest.raises(MissingDependencyError, match="Stage 'b' depends on non-existent stage 'ghost'"):
        validate_dependencies(stages)
    with pytest.raises(MissingDependencyError):
        topological_sort(stages)


async def test_missing_dependency_fails_at_execute_not_add(pipeline, scripted):
    pipeline.register_processor(scripted("p"))
    pipeline.add_stage("b", "B", "p", dependencies=["ghost"])

    with pytest.raises(MissingDependencyError):
        await pipeline.execute()

    assert pipeline.get_status().phase == PipelinePhase.FAILED
    assert pipeline.get_stage("b").status == "pending"


async def test_cycle_fails_before_any_stage_runs(pipeline, scripted):
    processor = scripted("p")
    pipeline.register_processor(processor)
    pipeline.add_stage("a", "A", "p", dependencies=["b"])
    pipeline.add_stage("b", "B", "p", dependencies=["a"])

    with pytest.raises(CircularDependencyError):
        await pipeline.execute()

    assert processor.calls == []
