"""
Result records produced by processors and by the engine.

ProcessingResult is what a processor returns for one attempt.
ProcessingError / ProcessingWarning are immutable records appended to the
stage and to the pipeline-wide ledgers.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from compact_study.core.constants import (
    ErrorSeverity,
    ErrorType,
    OutputKind,
    WarningType,
)


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ═══════════════════════════════════════════════════════════
#  Errors & warnings
# ═══════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ProcessingError:
    """One failure record.  Never mutated after creation."""

    stage: str
    message: str
    type: ErrorType = ErrorType.SYSTEM
    severity: ErrorSeverity = ErrorSeverity.HIGH
    recoverable: bool = True
    details: dict[str, Any] | None = None
    source_document: str | None = None
    id: str = field(default_factory=lambda: _new_id("error"))
    timestamp: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "stage": self.stage,
            "type": str(self.type),
            "severity": str(self.severity),
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
            "timestamp": self.timestamp.isoformat(),
            "source_document": self.source_document,
        }


@dataclass(frozen=True)
class ProcessingWarning:
    """A non-fatal issue reported by a processor."""

    stage: str
    message: str
    type: WarningType = WarningType.QUALITY_DEGRADATION
    details: dict[str, Any] | None = None
    id: str = field(default_factory=lambda: _new_id("warning"))
    timestamp: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "stage": self.stage,
            "type": str(self.type),
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


# ═══════════════════════════════════════════════════════════
#  Processor results
# ═══════════════════════════════════════════════════════════

@dataclass
class ProcessingMetrics:
    """Per-attempt telemetry reported by a processor."""

    processing_time: float = 0.0        # milliseconds
    quality_score: float = 0.0          # 0-1
    content_preserved: float = 0.0      # 0-1
    items_processed: int = 0
    memory_usage: int | None = None


@dataclass
class ProcessingResult:
    """
    Outcome of one processor invocation.

    `output_kind` tags the payload: CANONICAL means `data` already is an
    AcademicDocument (or a mapping that validates as one), RAW means it is
    an intermediate payload that output synthesis must adapt.
    """

    success: bool
    data: Any = None
    errors: list[ProcessingError] = field(default_factory=list)
    warnings: list[ProcessingWarning] = field(default_factory=list)
    metrics: ProcessingMetrics = field(default_factory=ProcessingMetrics)
    output_kind: OutputKind = OutputKind.RAW

    @property
    def error_message(self) -> str:
        """All error messages joined, for failure reporting."""
        return ", ".join(e.message for e in self.errors)


@dataclass
class ValidationResult:
    """Verdict of a processor's optional pre-execution validation."""

    passed: bool
    details: str = ""
    confidence: float = 1.0
