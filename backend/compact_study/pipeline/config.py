"""
PipelineConfig: immutable run-wide policy for one pipeline instance.

Defaults come from environment settings (compact_study.core.config);
callers override individual fields per pipeline.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from compact_study.core.config import Settings, settings as default_settings
from compact_study.core.constants import OutputFormat

# Compact two-column A4 layout.  Passed through untouched to the
# rendering collaborators; the engine never reads it.
DEFAULT_LAYOUT_CONFIG: dict[str, Any] = {
    "paper_size": "a4",
    "columns": 2,
    "typography": {
        "font_size": 10,
        "line_height": 1.2,
        "font_family": {
            "body": "Times New Roman, serif",
            "heading": "Arial, sans-serif",
            "math": "Computer Modern, serif",
            "code": "Courier New, monospace",
        },
    },
    "spacing": {
        "paragraph_spacing": 0.3,
        "list_spacing": 0.2,
        "section_spacing": 0.5,
        "heading_margins": {"top": 0.4, "bottom": 0.2},
    },
    "margins": {"top": 20, "bottom": 20, "left": 15, "right": 15, "column_gap": 10},
    "math_rendering": {
        "display_equations": {"centered": True, "numbered": True, "full_width": True},
        "inline_equations": {"preserve_inline": True, "max_height": 1.5},
    },
}


class PipelineConfig(BaseModel):
    """
    Run-wide policy.

    max_concurrent_stages is advisory only: stages always run sequentially.
    preservation_threshold is advisory only: falling below it produces a
    warning, never a failure.
    critical_stages lists stage ids whose failure always aborts the run.
    """

    model_config = ConfigDict(frozen=True)

    max_concurrent_stages: int = Field(default=3, ge=1)
    enable_recovery: bool = True
    failure_threshold: int = Field(default=3, ge=0)
    timeout_ms: int = Field(default=300_000, gt=0)
    preservation_threshold: float = Field(default=0.8, ge=0.0, le=1.0)
    output_formats: tuple[OutputFormat, ...] = (OutputFormat.HTML, OutputFormat.PDF)
    layout_config: dict[str, Any] = Field(default_factory=lambda: dict(DEFAULT_LAYOUT_CONFIG))
    critical_stages: frozenset[str] = frozenset()

    @classmethod
    def from_settings(cls, source: Settings | None = None, **overrides: Any) -> PipelineConfig:
        """Build a config from environment settings, applying explicit overrides."""
        source = source or default_settings
        values: dict[str, Any] = {
            "max_concurrent_stages": source.PIPELINE_MAX_CONCURRENT_STAGES,
            "enable_recovery": source.PIPELINE_ENABLE_RECOVERY,
            "failure_threshold": source.PIPELINE_FAILURE_THRESHOLD,
            "timeout_ms": source.PIPELINE_TIMEOUT_MS,
            "preservation_threshold": source.PIPELINE_PRESERVATION_THRESHOLD,
            "output_formats": tuple(source.PIPELINE_OUTPUT_FORMATS),
            "critical_stages": frozenset(source.PIPELINE_CRITICAL_STAGES),
        }
        values.update(overrides)
        return cls(**values)

    def merged(self, **overrides: Any) -> PipelineConfig:
        """Return a validated copy with some fields replaced."""
        return type(self)(**{**self.model_dump(), **overrides})

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000


DEFAULT_PIPELINE_CONFIG = PipelineConfig()
