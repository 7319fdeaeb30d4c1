"""
Mutable state records carried through a pipeline run.

SourceDocument: one input file plus its processing state.
ProcessingStage: one node of the stage DAG, with its cached output.
PipelineStatus / PipelineMetrics: run-wide progress and telemetry.

All of these are owned by a single ContentProcessingPipeline instance and
mutated only by its driver (or, for documents, by the processors that
consume them).  Event listeners receive dict snapshots, never these objects.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

from compact_study.core.constants import (
    DocumentCategory,
    DocumentStatus,
    OutputKind,
    PipelinePhase,
    StageStatus,
)
from compact_study.pipeline.results import ProcessingError

if TYPE_CHECKING:
    from compact_study.pipeline.processor import ContentProcessor


# ═══════════════════════════════════════════════════════════
#  Source documents
# ═══════════════════════════════════════════════════════════

@dataclass(frozen=True)
class SourceFile:
    """An uploaded file: original name plus raw bytes."""

    name: str
    content: bytes = b""
    media_type: str = "application/pdf"

    @property
    def size(self) -> int:
        return len(self.content)

    @classmethod
    def from_path(cls, path: str | Path, media_type: str | None = None) -> SourceFile:
        """Read a file from disk."""
        path = Path(path)
        if media_type is None:
            media_type = "application/pdf" if path.suffix.lower() == ".pdf" else "application/octet-stream"
        return cls(name=path.name, content=path.read_bytes(), media_type=media_type)


@dataclass
class SourceDocument:
    """
    One input file within the batch.

    Processors that consume a document may update processing_status,
    errors and the extracted / mathematical content slots.
    """

    id: str
    file: SourceFile
    category: DocumentCategory = DocumentCategory.GENERAL
    processing_status: DocumentStatus = DocumentStatus.PENDING
    errors: list[ProcessingError] = field(default_factory=list)
    extracted_content: Any = None
    mathematical_content: Any = None

    @property
    def name(self) -> str:
        return self.file.name

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.file.name,
            "size": self.file.size,
            "category": str(self.category),
            "processing_status": str(self.processing_status),
            "errors": [e.to_dict() for e in self.errors],
        }


# ═══════════════════════════════════════════════════════════
#  Stages
# ═══════════════════════════════════════════════════════════

@dataclass
class ProcessingStage:
    """One node of the processing DAG."""

    id: str
    name: str
    processor: ContentProcessor
    config: dict[str, Any] = field(default_factory=dict)
    dependencies: list[str] = field(default_factory=list)
    status: StageStatus = StageStatus.PENDING
    start_time: datetime | None = None
    end_time: datetime | None = None
    errors: list[ProcessingError] = field(default_factory=list)
    output: Any = None
    output_kind: OutputKind = OutputKind.RAW

    @property
    def has_output(self) -> bool:
        """True when the stage holds a non-empty output."""
        if self.output is None:
            return False
        try:
            return len(self.output) > 0
        except TypeError:
            return True

    @property
    def duration_ms(self) -> int:
        if self.start_time is None or self.end_time is None:
            return 0
        return int((self.end_time - self.start_time).total_seconds() * 1000)

    @property
    def last_error(self) -> ProcessingError | None:
        return self.errors[-1] if self.errors else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "processor": self.processor.name,
            "dependencies": list(self.dependencies),
            "status": str(self.status),
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration_ms": self.duration_ms,
            "errors": [e.to_dict() for e in self.errors],
            "has_output": self.has_output,
            "output_kind": str(self.output_kind),
        }


# ═══════════════════════════════════════════════════════════
#  Run-wide status & metrics
# ═══════════════════════════════════════════════════════════

@dataclass
class PipelineStatus:
    """Progress of one run.  Progress is an integer 0-100 and never decreases."""

    phase: PipelinePhase = PipelinePhase.INITIALIZING
    current_stage: str | None = None
    progress: int = 0
    start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    end_time: datetime | None = None
    estimated_time_remaining: float | None = None    # milliseconds

    def copy(self) -> PipelineStatus:
        return dataclasses.replace(self)


@dataclass
class PipelineMetrics:
    """Counters and running averages for one run."""

    total_processing_time: int = 0      # milliseconds
    stages_completed: int = 0
    stages_failed: int = 0
    documents_processed: int = 0
    documents_failed: int = 0
    total_errors: int = 0
    total_warnings: int = 0
    average_preservation_score: float = 0.0
    average_quality_score: float = 0.0

    def copy(self) -> PipelineMetrics:
        return dataclasses.replace(self)

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)
