"""
Dependency graph checks and topological ordering of stages.

Dependencies are validated lazily: add_stage() accepts any ids, and the
checks below run once at the start of execute(), before any stage runs.
"""

from __future__ import annotations

from typing import Sequence

from compact_study.pipeline.context import ProcessingStage
from compact_study.pipeline.errors import (
    CircularDependencyError,
    MissingDependencyError,
    PipelineConfigurationError,
)


def validate_dependencies(stages: Sequence[ProcessingStage]) -> None:
    """
    Check that every dependency id names a stage in `stages`.

    Raises:
        MissingDependencyError: On the first unresolvable dependency.
    """
    stage_ids = {stage.id for stage in stages}
    for stage in stages:
        for dep_id in stage.dependencies:
            if dep_id not in stage_ids:
                raise MissingDependencyError(stage.id, dep_id)


def topological_sort(stages: Sequence[ProcessingStage]) -> list[ProcessingStage]:
    """
    Order stages so every dependency precedes its dependents.

    Depth-first traversal in stage-list order, so the result is stable for
    a given insertion order.

    Raises:
        CircularDependencyError: Naming the stage where the cycle closed.
        MissingDependencyError: If a dependency id has no stage.
    """
    by_id = {stage.id: stage for stage in stages}
    visited: set[str] = set()
    visiting: set[str] = set()
    ordered: list[ProcessingStage] = []

    def visit(stage_id: str, parent_id: str | None = None) -> None:
        if stage_id in visiting:
            raise CircularDependencyError(stage_id)
        if stage_id in visited:
            return

        stage = by_id.get(stage_id)
        if stage is None:
            if parent_id is not None:
                raise MissingDependencyError(parent_id, stage_id)
            raise PipelineConfigurationError(f"Stage '{stage_id}' not found", stage_id=stage_id)

        visiting.add(stage_id)
        for dep_id in stage.dependencies:
            visit(dep_id, stage_id)
        visiting.discard(stage_id)

        visited.add(stage_id)
        ordered.append(stage)

    for stage in stages:
        if stage.id not in visited:
            visit(stage.id)

    return ordered
