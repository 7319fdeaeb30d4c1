"""
PipelineOrchestrator: the standard four-stage compact-study pipeline.

    file-processing → math-extraction → structure-organization → cross-reference-generation

Concrete processors are supplied by the caller and must be registered
under the standard names (see STANDARD_PROCESSORS).  Presets only differ
in the stage configuration they pass to those processors.
"""

from __future__ import annotations

from typing import Any, ClassVar, Iterable

from pydantic import BaseModel, ConfigDict, Field

from compact_study.core.constants import DocumentCategory, PipelineEvent
from compact_study.core.logging import get_logger
from compact_study.pipeline.config import PipelineConfig
from compact_study.pipeline.context import PipelineMetrics, PipelineStatus, SourceFile
from compact_study.pipeline.document import AcademicDocument
from compact_study.pipeline.engine import ContentProcessingPipeline, create_processing_pipeline
from compact_study.pipeline.events import Listener
from compact_study.pipeline.processor import ContentProcessor
from compact_study.pipeline.results import ProcessingError, ProcessingWarning

logger = get_logger(__name__)


class StandardStage:
    FILE_PROCESSING = "file-processing"
    MATH_EXTRACTION = "math-extraction"
    STRUCTURE_ORGANIZATION = "structure-organization"
    CROSS_REFERENCE_GENERATION = "cross-reference-generation"


STANDARD_PIPELINE_STAGES: tuple[str, ...] = (
    StandardStage.FILE_PROCESSING,
    StandardStage.MATH_EXTRACTION,
    StandardStage.STRUCTURE_ORGANIZATION,
    StandardStage.CROSS_REFERENCE_GENERATION,
)

# stage id → processor name
STANDARD_PROCESSORS: dict[str, str] = {
    StandardStage.FILE_PROCESSING: "file-processor",
    StandardStage.MATH_EXTRACTION: "math-content-processor",
    StandardStage.STRUCTURE_ORGANIZATION: "academic-structure-processor",
    StandardStage.CROSS_REFERENCE_GENERATION: "cross-reference-processor",
}

STAGE_NAMES: dict[str, str] = {
    StandardStage.FILE_PROCESSING: "File Processing",
    StandardStage.MATH_EXTRACTION: "Mathematical Content Extraction",
    StandardStage.STRUCTURE_ORGANIZATION: "Academic Structure Organization",
    StandardStage.CROSS_REFERENCE_GENERATION: "Cross-Reference Generation",
}

DEFAULT_FILE_PROCESSING_CONFIG: dict[str, Any] = {
    "enable_latex_conversion": True,
    "enable_worked_example_detection": True,
    "enable_definition_extraction": True,
    "enable_theorem_extraction": True,
    "preservation_threshold": 0.8,
    "confidence_threshold": 0.6,
    "fallback_to_ocr": True,
    "validate_extraction": True,
}

DEFAULT_MATH_EXTRACTION_CONFIG: dict[str, Any] = {
    "enable_latex_conversion": True,
    "enable_worked_example_detection": True,
    "confidence_threshold": 0.5,
    "preserve_all_formulas": True,
}

DEFAULT_STRUCTURE_CONFIG: dict[str, Any] = {
    "title": "Compact Study Guide",
    "enable_numbering": True,
    "enable_table_of_contents": True,
    "part_titles": {
        "probability": "Discrete Probability",
        "relations": "Relations",
    },
}

DEFAULT_CROSS_REFERENCE_CONFIG: dict[str, Any] = {
    "enable_cross_references": True,
    "reference_formats": {
        "example": "Ex. {number}",
        "formula": "Eq. {number}",
        "section": "Section {number}",
        "theorem": "Thm. {number}",
        "definition": "Def. {number}",
    },
}

PROBABILITY_SECTIONS = [
    "Probability Basics",
    "Complements and Unions",
    "Conditional Probability",
    "Bayes' Theorem",
    "Independence",
    "Bernoulli Trials",
    "Random Variables",
    "Expected Value & Variance",
]

RELATIONS_SECTIONS = [
    "Definitions",
    "Properties (Reflexive, Symmetric, Transitive)",
    "Combining Relations",
    "N-ary Relations",
    "SQL-style Operations",
]


class OrchestratorConfig(BaseModel):
    """
    Orchestrator options.

    `processing_config` holds PipelineConfig overrides.  The per-stage
    configs replace the standard defaults when given.
    """

    model_config = ConfigDict(frozen=True)

    processing_config: dict[str, Any] = Field(default_factory=dict)
    file_processing_config: dict[str, Any] | None = None
    math_extraction_config: dict[str, Any] | None = None
    structure_config: dict[str, Any] | None = None
    cross_reference_config: dict[str, Any] | None = None
    enable_progress_tracking: bool = True
    enable_error_recovery: bool = True


class PipelineOrchestrator:
    """
    Wires the standard stages onto a ContentProcessingPipeline.

    Usage::

        orchestrator = PipelineOrchestrator(processors)
        orchestrator.add_document(SourceFile.from_path("relations.pdf"), "relations")
        document = await orchestrator.execute()
    """

    # Preset stage configs, merged under the caller's own
    preset_structure_config: ClassVar[dict[str, Any]] = {}
    preset_math_extraction_config: ClassVar[dict[str, Any]] = {}

    def __init__(
        self,
        processors: Iterable[ContentProcessor],
        config: OrchestratorConfig | None = None,
    ) -> None:
        self.config = self._apply_presets(config or OrchestratorConfig())
        self.pipeline = self._build_pipeline(list(processors))

    def _apply_presets(self, config: OrchestratorConfig) -> OrchestratorConfig:
        updates: dict[str, Any] = {}
        if self.preset_structure_config:
            updates["structure_config"] = {
                **self.preset_structure_config,
                **(config.structure_config or {}),
            }
        if self.preset_math_extraction_config:
            updates["math_extraction_config"] = {
                **self.preset_math_extraction_config,
                **(config.math_extraction_config or {}),
            }
        return config.model_copy(update=updates) if updates else config

    def _pipeline_config(self) -> PipelineConfig:
        overrides = {"enable_recovery": self.config.enable_error_recovery}
        overrides.update(self.config.processing_config)
        critical = set(overrides.get("critical_stages", ()))
        critical.add(StandardStage.FILE_PROCESSING)
        overrides["critical_stages"] = frozenset(critical)
        return PipelineConfig.from_settings(**overrides)

    def _build_pipeline(self, processors: list[ContentProcessor]) -> ContentProcessingPipeline:
        pipeline = create_processing_pipeline(self._pipeline_config())
        for processor in processors:
            pipeline.register_processor(processor)

        stage_configs = {
            StandardStage.FILE_PROCESSING: self.config.file_processing_config
            or DEFAULT_FILE_PROCESSING_CONFIG,
            StandardStage.MATH_EXTRACTION: self.config.math_extraction_config
            or DEFAULT_MATH_EXTRACTION_CONFIG,
            StandardStage.STRUCTURE_ORGANIZATION: self.config.structure_config
            or DEFAULT_STRUCTURE_CONFIG,
            StandardStage.CROSS_REFERENCE_GENERATION: self.config.cross_reference_config
            or DEFAULT_CROSS_REFERENCE_CONFIG,
        }

        previous: str | None = None
        for stage_id in STANDARD_PIPELINE_STAGES:
            pipeline.add_stage(
                stage_id,
                STAGE_NAMES[stage_id],
                STANDARD_PROCESSORS[stage_id],
                config=dict(stage_configs[stage_id]),
                dependencies=[previous] if previous else [],
            )
            previous = stage_id

        if self.config.enable_progress_tracking:
            self._setup_progress_tracking(pipeline)
        return pipeline

    @staticmethod
    def _setup_progress_tracking(pipeline: ContentProcessingPipeline) -> None:
        log = logger.bind(pipeline_id=pipeline.pipeline_id)

        pipeline.on(PipelineEvent.PIPELINE_STARTED, lambda e: log.info(
            "Starting compact study generation", documents=e["documents"],
        ))
        pipeline.on(PipelineEvent.STAGE_STARTED, lambda e: log.info(
            "Stage starting", stage=e["name"],
        ))
        pipeline.on(PipelineEvent.STAGE_COMPLETED, lambda e: log.info(
            "Stage done", stage=e["name"], processing_time_ms=e["metrics"]["processing_time"],
        ))
        pipeline.on(PipelineEvent.STAGE_FAILED, lambda e: log.error(
            "Stage failed", stage=e["name"], error=e["error"]["message"],
        ))
        pipeline.on(PipelineEvent.STAGE_RECOVERED, lambda e: log.info(
            "Stage recovered", stage=e["name"],
        ))
        pipeline.on(PipelineEvent.PROGRESS_UPDATED, lambda e: log.info(
            "Progress", progress=e["progress"],
        ))
        pipeline.on(PipelineEvent.PIPELINE_COMPLETED, lambda e: log.info(
            "Compact study generation completed",
            preservation_score=e["output"].metadata.preservation_score,
        ))
        pipeline.on(PipelineEvent.PIPELINE_FAILED, lambda e: log.error(
            "Compact study generation failed", error=e["error"]["message"],
        ))

    # ─── Delegation ───────────────────────────────────

    def add_document(
        self,
        file: SourceFile,
        category: DocumentCategory | str = DocumentCategory.GENERAL,
    ) -> str:
        return self.pipeline.add_source_document(file, category)

    def add_documents(
        self,
        files: Iterable[tuple[SourceFile, DocumentCategory | str]],
    ) -> list[str]:
        return [self.add_document(file, category) for file, category in files]

    async def execute(self) -> AcademicDocument:
        try:
            return await self.pipeline.execute()
        except Exception:
            logger.exception("Pipeline execution failed", pipeline_id=self.pipeline.pipeline_id)
            raise

    def get_status(self) -> PipelineStatus:
        return self.pipeline.get_status()

    def get_metrics(self) -> PipelineMetrics:
        return self.pipeline.get_metrics()

    def get_errors(self) -> list[ProcessingError]:
        return self.pipeline.get_errors()

    def get_warnings(self) -> list[ProcessingWarning]:
        return self.pipeline.get_warnings()

    def get_output(self) -> AcademicDocument | None:
        return self.pipeline.get_output()

    def cancel(self) -> None:
        self.pipeline.cancel()

    def on(self, event: PipelineEvent | str, listener: Listener) -> None:
        self.pipeline.on(event, listener)


# ═══════════════════════════════════════════════════════════
#  Presets
# ═══════════════════════════════════════════════════════════

class ProbabilityPipelineOrchestrator(PipelineOrchestrator):
    preset_structure_config = {
        "title": "Discrete Probability Study Guide",
        "enable_numbering": True,
        "enable_table_of_contents": True,
        "part_titles": {"probability": "Discrete Probability"},
        "sections": PROBABILITY_SECTIONS,
    }
    preset_math_extraction_config = {
        **DEFAULT_MATH_EXTRACTION_CONFIG,
        "probability_patterns": [r"P\([^)]+\)", r"E\[[^\]]+\]", r"Var\([^)]+\)", r"(?i)\bBayes\b"],
    }


class RelationsPipelineOrchestrator(PipelineOrchestrator):
    preset_structure_config = {
        "title": "Relations Study Guide",
        "enable_numbering": True,
        "enable_table_of_contents": True,
        "part_titles": {"relations": "Relations"},
        "sections": RELATIONS_SECTIONS,
    }
    preset_math_extraction_config = {
        **DEFAULT_MATH_EXTRACTION_CONFIG,
        "relations_patterns": [
            r"\bR\s*⊆\s*[A-Z]\s*×\s*[A-Z]",
            r"(?i)\b(reflexive|symmetric|transitive|antisymmetric)\b",
            r"(?i)\b(SELECT|FROM|WHERE|JOIN)\b",
        ],
    }


class CompactStudyPipelineOrchestrator(PipelineOrchestrator):
    """Probability and relations combined into one two-part guide."""

    preset_structure_config = {
        "title": "Compact Study Guide: Discrete Probability & Relations",
        "enable_numbering": True,
        "enable_table_of_contents": True,
        "part_titles": {
            "probability": "Part I: Discrete Probability",
            "relations": "Part II: Relations",
        },
        "sections": {
            "probability": PROBABILITY_SECTIONS,
            "relations": RELATIONS_SECTIONS,
        },
    }


# ═══════════════════════════════════════════════════════════
#  Factories
# ═══════════════════════════════════════════════════════════

def create_pipeline_orchestrator(
    processors: Iterable[ContentProcessor],
    config: OrchestratorConfig | None = None,
) -> PipelineOrchestrator:
    return PipelineOrchestrator(processors, config)


def create_probability_pipeline(
    processors: Iterable[ContentProcessor],
    config: OrchestratorConfig | None = None,
) -> ProbabilityPipelineOrchestrator:
    return ProbabilityPipelineOrchestrator(processors, config)


def create_relations_pipeline(
    processors: Iterable[ContentProcessor],
    config: OrchestratorConfig | None = None,
) -> RelationsPipelineOrchestrator:
    return RelationsPipelineOrchestrator(processors, config)


def create_compact_study_pipeline(
    processors: Iterable[ContentProcessor],
    config: OrchestratorConfig | None = None,
) -> CompactStudyPipelineOrchestrator:
    return CompactStudyPipelineOrchestrator(processors, config)


async def process_compact_study_documents(
    files: Iterable[tuple[SourceFile, DocumentCategory | str]],
    processors: Iterable[ContentProcessor],
    config: OrchestratorConfig | None = None,
) -> AcademicDocument:
    """Build a combined orchestrator, add `files`, run it once."""
    orchestrator = create_compact_study_pipeline(processors, config)
    orchestrator.add_documents(files)
    return await orchestrator.execute()
