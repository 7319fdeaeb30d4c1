"""
OutputSynthesizer: turns whatever the stages produced into an AcademicDocument.

Graceful degradation chain, first success wins:
    1. Last stage (insertion order) tagged CANONICAL → use as-is
    2. Last stage with RAW output → adapt into the canonical shape
    3. Most recent COMPLETED stage with output → same as 1/2
    4. Fallback document built straight from the source documents
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Sequence

from compact_study.core.constants import DocumentCategory, OutputKind, StageStatus
from compact_study.core.logging import get_logger
from compact_study.pipeline.context import PipelineMetrics, ProcessingStage, SourceDocument
from compact_study.pipeline.document import (
    AcademicDocument,
    AcademicSection,
    DocumentMetadata,
    DocumentPart,
    TOCEntry,
)

logger = get_logger(__name__)

DEFAULT_TITLE = "Compact Study Guide"
DEFAULT_ADAPTED_PRESERVATION = 0.8
FALLBACK_PRESERVATION = 0.5

CATEGORY_PART_TITLES: dict[DocumentCategory, str] = {
    DocumentCategory.PROBABILITY: "Part I: Discrete Probability",
    DocumentCategory.RELATIONS: "Part II: Relations",
}


class OutputSynthesizer:
    """Builds the final document for one run."""

    def __init__(
        self,
        stages: Sequence[ProcessingStage],
        documents: Sequence[SourceDocument],
        metrics: PipelineMetrics,
    ) -> None:
        self.stages = stages
        self.documents = documents
        self.metrics = metrics

    def synthesize(self) -> AcademicDocument:
        final_stage = self.stages[-1] if self.stages else None

        if final_stage is not None and final_stage.has_output:
            document = self._from_stage(final_stage)
            if document is not None:
                return document

        for stage in reversed(self.stages):
            if stage is final_stage:
                continue
            if stage.status == StageStatus.COMPLETED and stage.has_output:
                document = self._from_stage(stage)
                if document is not None:
                    logger.info("Final output taken from earlier stage", stage_id=stage.id)
                    return document

        logger.warning(
            "No usable stage output, building fallback document",
            documents=len(self.documents),
        )
        return self.fallback_document()

    def _from_stage(self, stage: ProcessingStage) -> AcademicDocument | None:
        try:
            if stage.output_kind == OutputKind.CANONICAL:
                return self.as_canonical(stage.output)
            return self.adapt(stage.output)
        except (TypeError, ValueError) as exc:
            # pydantic.ValidationError is a ValueError
            logger.warning(
                "Stage output could not be turned into a document",
                stage_id=stage.id,
                output_kind=str(stage.output_kind),
                error=str(exc),
            )
            return None

    # ─── Canonical & adapted output ───────────────────

    @staticmethod
    def as_canonical(output: Any) -> AcademicDocument:
        if isinstance(output, AcademicDocument):
            return output
        return AcademicDocument.model_validate(output)

    def adapt(self, output: Any) -> AcademicDocument:
        """
        Coerce a raw stage payload into an AcademicDocument.

        Accepts a document, a mapping with `parts` and optional title /
        totals keys, or a bare list of parts.  Missing totals are summed
        over the nested parts and sections.
        """
        if isinstance(output, AcademicDocument):
            source: Mapping[str, Any] = output.model_dump()
        elif isinstance(output, Mapping):
            source = output
        elif isinstance(output, (list, tuple)):
            source = {"parts": list(output)}
        else:
            raise TypeError(f"Cannot adapt stage output of type {type(output).__name__}")

        raw_parts = source.get("parts")
        parts = [
            DocumentPart.model_validate(part)
            for part in (raw_parts if isinstance(raw_parts, (list, tuple)) else [])
        ]

        total_sections = source.get("total_sections") or sum(len(p.sections) for p in parts)
        total_formulas = source.get("total_formulas") or sum(
            len(s.formulas) for p in parts for s in p.sections
        )
        total_examples = source.get("total_examples") or sum(
            len(s.examples) for p in parts for s in p.sections
        )

        return AcademicDocument.model_validate({
            "title": source.get("title") or DEFAULT_TITLE,
            "table_of_contents": source.get("table_of_contents") or [],
            "parts": parts,
            "cross_references": source.get("cross_references") or [],
            "appendices": source.get("appendices") or [],
            "metadata": DocumentMetadata(
                source_files=self._source_files(),
                total_sections=total_sections,
                total_formulas=total_formulas,
                total_examples=total_examples,
                preservation_score=(
                    self.metrics.average_preservation_score or DEFAULT_ADAPTED_PRESERVATION
                ),
            ),
        })

    # ─── Fallback ─────────────────────────────────────

    def fallback_document(self) -> AcademicDocument:
        """One part per source document, one overview section per part."""
        parts: list[DocumentPart] = []
        for number, doc in enumerate(self.documents, start=1):
            parts.append(DocumentPart(
                part_number=number,
                title=part_title(doc, number),
                sections=[AcademicSection(
                    section_number=f"{number}.1",
                    title="Content Overview",
                    content=f"Content from {doc.file.name} ({doc.file.size} bytes)",
                )],
            ))

        return AcademicDocument(
            title=DEFAULT_TITLE,
            table_of_contents=[
                TOCEntry(level=1, title=part.title, page_anchor=f"part{part.part_number}")
                for part in parts
            ],
            parts=parts,
            metadata=DocumentMetadata(
                source_files=self._source_files(),
                total_sections=sum(len(part.sections) for part in parts),
                total_formulas=0,
                total_examples=0,
                preservation_score=FALLBACK_PRESERVATION,
            ),
        )

    def _source_files(self) -> list[str]:
        return [doc.file.name for doc in self.documents]


def part_title(doc: SourceDocument, number: int) -> str:
    """Category-based part title, falling back to a numbered file title."""
    title = CATEGORY_PART_TITLES.get(doc.category)
    if title:
        return title
    stem = doc.file.name.removesuffix(".pdf")
    return f"Part {number}: {stem}" if stem else f"Part {number}"
