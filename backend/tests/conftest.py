"""Pytest configuration and fixtures."""
from __future__ import annotations

import asyncio
import time
from typing import Any

import pytest

from compact_study.core.constants import DocumentCategory, OutputKind, PipelineEvent
from compact_study.pipeline import (
    ContentProcessor,
    ProcessingWarning,
    SourceFile,
    ValidationResult,
    create_processing_pipeline,
)

_DEFAULT = object()


class ScriptedProcessor(ContentProcessor):
    """Processor whose behaviour is fixed at construction time."""

    version = "test"

    def __init__(
        self,
        name: str,
        output: Any = _DEFAULT,
        *,
        fail: str | None = None,
        partial: Any = None,
        recoverable: bool = True,
        error: Exception | None = None,
        delay: float = 0.0,
        quality_score: float = 1.0,
        content_preserved: float = 1.0,
        output_kind: OutputKind = OutputKind.RAW,
        warnings: list[ProcessingWarning] | None = None,
        on_process=None,
    ) -> None:
        self.name = name
        self.output = {"produced_by": name} if output is _DEFAULT else output
        self.fail = fail
        self.partial = partial
        self.recoverable = recoverable
        self.error = error
        self.delay = delay
        self.quality_score = quality_score
        self.content_preserved = content_preserved
        self.output_kind = output_kind
        self.warnings = warnings
        self.on_process = on_process
        self.calls: list[Any] = []

    async def process(self, data, config, token):
        started = time.perf_counter()
        self.calls.append(data)
        if self.on_process is not None:
            self.on_process()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.fail is not None:
            return self._failure(self.fail, started, data=self.partial, recoverable=self.recoverable)
        return self._success(
            self.output,
            started,
            quality_score=self.quality_score,
            content_preserved=self.content_preserved,
            warnings=list(self.warnings or []),
            output_kind=self.output_kind,
        )


class RecoveringProcessor(ScriptedProcessor):
    """Fails in process(), then recover() returns `recovered` (or None)."""

    def __init__(self, name: str, *, recovered: Any = _DEFAULT, **kwargs) -> None:
        kwargs.setdefault("fail", "primary path failed")
        super().__init__(name, **kwargs)
        self.recovered = {"recovered_by": name} if recovered is _DEFAULT else recovered
        self.recover_calls: list[Any] = []

    async def recover(self, error, data, config, token):
        started = time.perf_counter()
        self.recover_calls.append((error, data))
        if self.recovered is None:
            return None
        return self._success(self.recovered, started, quality_score=0.5, content_preserved=0.5)


class ValidatingProcessor(RecoveringProcessor):
    """Rejects every input in validate(); also offers recover()."""

    def __init__(self, name: str, *, passed: bool = False, **kwargs) -> None:
        kwargs.setdefault("fail", None)
        super().__init__(name, **kwargs)
        self.passed = passed

    async def validate(self, data, config):
        return ValidationResult(passed=self.passed, details="input rejected", confidence=0.2)


@pytest.fixture
def scripted():
    return ScriptedProcessor


@pytest.fixture
def recovering():
    return RecoveringProcessor


@pytest.fixture
def validating():
    return ValidatingProcessor


@pytest.fixture
def source_file() -> SourceFile:
    return SourceFile("probability.pdf", b"P(A|B) = P(A and B) / P(B)")


@pytest.fixture
def pipeline(source_file):
    """A pipeline with one probability document and a short stage timeout."""
    p = create_processing_pipeline(timeout_ms=1_000)
    p.add_source_document(source_file, DocumentCategory.PROBABILITY)
    return p


@pytest.fixture
def events(pipeline) -> list[tuple[str, Any]]:
    """Every event the `pipeline` fixture publishes, in order."""
    recorded: list[tuple[str, Any]] = []
    for event in PipelineEvent:
        pipeline.on(event, lambda payload, name=str(event): recorded.append((name, payload)))
    return recorded


def event_names(recorded: list[tuple[str, Any]]) -> list[str]:
    return [name for name, _ in recorded]


@pytest.fixture
def names():
    return event_names
