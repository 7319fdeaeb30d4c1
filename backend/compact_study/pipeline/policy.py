"""
ContinuationPolicy: decides whether a run survives a failed stage.

Rules, first match wins (the failed stage is already counted in
stages_failed when the policy runs):

    1. recovery enabled and the stage still holds output  → continue
    2. stages_failed exceeds failure_threshold            → abort
    3. the stage's latest error is not recoverable        → abort
    4. the stage is listed in config.critical_stages      → abort
    5. otherwise                                          → continue
"""

from __future__ import annotations

from dataclasses import dataclass

from compact_study.pipeline.config import PipelineConfig
from compact_study.pipeline.context import PipelineMetrics, ProcessingStage


@dataclass(frozen=True)
class ContinuationDecision:
    proceed: bool
    reason: str

    def __bool__(self) -> bool:
        return self.proceed


class ContinuationPolicy:
    """Stateless rule chain bound to one run's config."""

    def __init__(self, config: PipelineConfig) -> None:
        self.config = config

    def decide(self, stage: ProcessingStage, metrics: PipelineMetrics) -> ContinuationDecision:
        if self.config.enable_recovery and stage.has_output:
            return ContinuationDecision(True, "stage produced partial output")

        if metrics.stages_failed > self.config.failure_threshold:
            return ContinuationDecision(
                False,
                f"failure threshold exceeded ({metrics.stages_failed} > {self.config.failure_threshold})",
            )

        last_error = stage.last_error
        if last_error is not None and not last_error.recoverable:
            return ContinuationDecision(False, "non-recoverable error")

        if stage.id in self.config.critical_stages:
            return ContinuationDecision(False, f"critical stage '{stage.id}' failed")

        return ContinuationDecision(True, "failure tolerated")
