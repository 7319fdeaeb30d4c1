"""
Canonical output document consumed by the rendering collaborators.

The engine never interprets formulas, examples or layout; they are carried
as opaque mappings so extractors and renderers can evolve independently.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field


class TOCEntry(BaseModel):
    """One table-of-contents line."""

    level: int = 1
    title: str
    section_number: str | None = None
    page_anchor: str = ""
    children: list[TOCEntry] = Field(default_factory=list)


class AcademicSection(BaseModel):
    """A numbered section, e.g. "1.1 Conditional Probability"."""

    section_number: str = ""
    title: str = ""
    content: str = ""
    formulas: list[dict[str, Any]] = Field(default_factory=list)
    examples: list[dict[str, Any]] = Field(default_factory=list)
    subsections: list[AcademicSection] = Field(default_factory=list)


class DocumentPart(BaseModel):
    """A top-level part grouping the sections of one subject."""

    part_number: int = 0
    title: str = ""
    sections: list[AcademicSection] = Field(default_factory=list)


class CrossReference(BaseModel):
    id: str
    type: str                   # example | formula | section | theorem | definition
    source_id: str
    target_id: str
    display_text: str = ""


class Appendix(BaseModel):
    id: str
    title: str
    content: str = ""
    type: str = "references"    # exercises | answers | references | formulas


class DocumentMetadata(BaseModel):
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    source_files: list[str] = Field(default_factory=list)
    total_sections: int = 0
    total_formulas: int = 0
    total_examples: int = 0
    preservation_score: float = Field(default=0.0, ge=0.0, le=1.0)


class AcademicDocument(BaseModel):
    """The final study-guide document."""

    title: str
    table_of_contents: list[TOCEntry] = Field(default_factory=list)
    parts: list[DocumentPart] = Field(default_factory=list)
    cross_references: list[CrossReference] = Field(default_factory=list)
    appendices: list[Appendix] = Field(default_factory=list)
    metadata: DocumentMetadata = Field(default_factory=DocumentMetadata)

    def count_sections(self) -> int:
        return sum(len(part.sections) for part in self.parts)

    def count_formulas(self) -> int:
        return sum(len(s.formulas) for part in self.parts for s in part.sections)

    def count_examples(self) -> int:
        return sum(len(s.examples) for part in self.parts for s in part.sections)
