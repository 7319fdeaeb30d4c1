"""
Pydantic Settings: centralized configuration loaded from environment variables.

These are process-wide defaults only.  Every pipeline run receives its own
immutable PipelineConfig (see compact_study.pipeline.config), which is built
from these settings unless the caller passes explicit values.
"""

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── Application ───────────────────────────
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # ── Pipeline defaults ─────────────────────
    PIPELINE_MAX_CONCURRENT_STAGES: int = 3
    PIPELINE_ENABLE_RECOVERY: bool = True
    PIPELINE_FAILURE_THRESHOLD: int = 3
    PIPELINE_TIMEOUT_MS: int = 300_000          # 5 minutes per stage
    PIPELINE_PRESERVATION_THRESHOLD: float = 0.8
    PIPELINE_OUTPUT_FORMATS: list[str] = Field(default_factory=lambda: ["html", "pdf"])
    PIPELINE_CRITICAL_STAGES: list[str] = Field(default_factory=list)

    # ── LangSmith Tracing ────────────────────
    LANGSMITH_API_KEY: str = ""
    LANGSMITH_ENDPOINT: str = "https://api.smith.langchain.com"
    LANGSMITH_PROJECT: str = "compact-study-pipeline"
    LANGSMITH_TRACING: bool = False

    model_config = {"env_file": ["../.env", ".env"], "extra": "ignore"}


settings = Settings()
