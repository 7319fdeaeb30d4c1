#!/usr/bin/env python3
"""
Demo script: run the compact-study pipeline locally with toy processors.

Shows the happy path, a stage that recovers, and a run whose last stages
fail so the output falls back along the degradation chain.

Usage:
    cd backend
    python -m scripts.demo_pipeline
"""

import asyncio
import os
import sys
import time

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from compact_study.core.constants import OutputKind
from compact_study.pipeline import ContentProcessor, SourceFile


class ToyFileProcessor(ContentProcessor):
    name = "file-processor"
    version = "demo"

    async def process(self, data, config, token):
        started = time.perf_counter()
        extracted = []
        for doc in data:
            doc.extracted_content = doc.file.content.decode("utf-8", errors="replace")
            extracted.append({"name": doc.name, "category": str(doc.category), "text": doc.extracted_content})
        return self._success(extracted, started, items_processed=len(extracted))


class ToyMathProcessor(ContentProcessor):
    """Fails first time round, recovers with a simpler pass."""

    name = "math-content-processor"
    version = "demo"

    def __init__(self, fail: bool = False):
        self.fail = fail

    async def process(self, data, config, token):
        started = time.perf_counter()
        if self.fail:
            return self._failure("LaTeX conversion crashed", started)
        return self._success(self._extract(data), started, quality_score=0.9, content_preserved=0.95)

    async def recover(self, error, data, config, token):
        started = time.perf_counter()
        return self._success(self._extract(data), started, quality_score=0.6, content_preserved=0.7)

    @staticmethod
    def _extract(data):
        return [
            {**item, "formulas": [{"latex": line} for line in item["text"].splitlines() if "=" in line]}
            for item in data
        ]


class ToyStructureProcessor(ContentProcessor):
    name = "academic-structure-processor"
    version = "demo"

    def __init__(self, fail: bool = False):
        self.fail = fail

    async def process(self, data, config, token):
        started = time.perf_counter()
        if self.fail:
            raise RuntimeError("structure model unavailable")

        parts = []
        for number, item in enumerate(data, start=1):
            parts.append({
                "part_number": number,
                "title": config.get("part_titles", {}).get(item["category"], item["name"]),
                "sections": [{
                    "section_number": f"{number}.1",
                    "title": "Key Formulas",
                    "content": item["text"],
                    "formulas": item["formulas"],
                }],
            })
        return self._success({"title": config.get("title"), "parts": parts}, started)


class ToyCrossReferenceProcessor(ContentProcessor):
    name = "cross-reference-processor"
    version = "demo"

    async def process(self, data, config, token):
        started = time.perf_counter()
        document = {**data, "cross_references": []}
        return self._success(document, started, output_kind=OutputKind.RAW)


def _processors(*, math_fails=False, structure_fails=False):
    return [
        ToyFileProcessor(),
        ToyMathProcessor(fail=math_fails),
        ToyStructureProcessor(fail=structure_fails),
        ToyCrossReferenceProcessor(),
    ]


def _files():
    return [
        (SourceFile("probability.pdf", b"P(A|B) = P(A and B) / P(B)\nBayes' theorem"), "probability"),
        (SourceFile("relations.pdf", b"R is reflexive\nR^-1 = {(b, a) | (a, b) in R}"), "relations"),
    ]


async def run_demo(title, orchestrator):
    print("\n" + "=" * 70)
    print(f"  {title}")
    print("=" * 70)

    orchestrator.add_documents(_files())
    try:
        document = await orchestrator.execute()
    except Exception as exc:
        print(f"  Pipeline aborted: {exc}")
        document = orchestrator.get_output()
    _print_result(orchestrator, document)


def _print_result(orchestrator, document):
    status = orchestrator.get_status()
    metrics = orchestrator.get_metrics()

    print(f"\n{'─' * 50}")
    print(f"  Phase        : {status.phase}")
    print(f"  Progress     : {status.progress}%")
    print(f"  Stages       : {metrics.stages_completed} completed, {metrics.stages_failed} failed")
    print(f"  Duration     : {metrics.total_processing_time}ms")
    print(f"  Quality      : {metrics.average_quality_score:.2f}")

    print("\n  Stages:")
    for stage in orchestrator.pipeline.stages:
        icon = {"completed": "✓", "failed": "✗"}.get(str(stage.status), "⊘")
        print(f"    {icon} {stage.name} ({stage.duration_ms}ms)")

    if document is not None:
        print(f"\n  Document     : {document.title}")
        print(f"  Parts        : {[part.title for part in document.parts]}")
        print(f"  Formulas     : {document.metadata.total_formulas}")
        print(f"  Preservation : {document.metadata.preservation_score:.2f}")

    for error in orchestrator.get_errors():
        print(f"    ⚠  [{error.stage}] {error.message}")
    print(f"{'─' * 50}\n")


async def main():
    from compact_study.core.logging import setup_logging
    from compact_study.core.tracing import setup_tracing
    from compact_study.pipeline.orchestrator import (
        OrchestratorConfig,
        create_compact_study_pipeline,
    )

    setup_logging("WARNING")     # quiet logs, show formatted output only
    setup_tracing()

    print("\n╔" + "═" * 68 + "╗")
    print("║          COMPACT STUDY - PIPELINE ENGINE DEMO                     ║")
    print("╚" + "═" * 68 + "╝")

    await run_demo(
        "DEMO 1: All stages succeed",
        create_compact_study_pipeline(_processors()),
    )
    await run_demo(
        "DEMO 2: Math extraction fails, then recovers",
        create_compact_study_pipeline(_processors(math_fails=True)),
    )
    await run_demo(
        "DEMO 3: Structure stage fails, output degrades",
        create_compact_study_pipeline(
            _processors(structure_fails=True),
            OrchestratorConfig(processing_config={"failure_threshold": 5}),
        ),
    )

    print("\n✅ All demos completed.\n")


if __name__ == "__main__":
    asyncio.run(main())
