"""Configuration models and YAML loader for the extraction pipeline."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator


class QualityThresholds(BaseModel):
    """Global gates applied by the quality validator."""

    confidence_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    completeness_threshold: float = Field(default=0.8, ge=0.0, le=1.0)
    quality_threshold: float = Field(default=0.75, ge=0.0, le=1.0)


class BrowserConfig(BaseModel):
    """Browser session and navigation configuration."""

    headless: bool = True
    cookies_path: str | None = None
    timeout_ms: int = Field(default=60000, ge=1000)
    max_navigation_retries: int = Field(default=3, ge=1, le=10)
    retry_delay_s: float = Field(default=2.0, ge=0.0)
    settle_delay_s: float = Field(default=5.0, ge=0.0)


class LLMConfig(BaseModel):
    """Completion service configuration."""

    provider: str = "openai"
    model: str | None = None
    timeout_s: float = Field(default=30.0, gt=0.0)
    max_prompt_chars: int = Field(default=4000, ge=500)

    @field_validator("provider")
    @classmethod
    def provider_known(cls, v: str) -> str:
        from job_extraction.llm import available_providers

        v = v.lower().strip()
        if v not in available_providers():
            msg = f"provider must be one of {available_providers()}, got '{v}'"
            raise ValueError(msg)
        return v


class PipelineConfig(BaseModel):
    """Run-level behaviour of the orchestrator."""

    stop_on_error: bool = True
    inter_job_delay_s: float = Field(default=5.0, ge=0.0)
    batch_limit: int = Field(default=10, ge=1)


class TaxonomyConfig(BaseModel):
    """Location of the domain taxonomy definitions."""

    directory: str = "config/taxonomy"


class DatabaseConfig(BaseModel):
    """Database configuration."""

    path: str = "data/jobs.db"


class Settings(BaseModel):
    """Top-level settings loaded from YAML."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    taxonomy: TaxonomyConfig = Field(default_factory=TaxonomyConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        path = Path(path)
        if not path.exists():
            msg = f"Config file not found: {path}"
            raise FileNotFoundError(msg)
        raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
        return cls.model_validate(raw)


class PipelineOptions(BaseModel):
    """Knobs for a single pipeline run.

    Built from Settings and optionally overridden per request. ``thresholds``
    left as None means "use the registry's global quality definition".
    """

    stop_on_error: bool = True
    max_navigation_retries: int = Field(default=3, ge=1, le=10)
    navigation_timeout_ms: int = Field(default=60000, ge=1000)
    thresholds: QualityThresholds | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "PipelineOptions":
        return cls(
            stop_on_error=settings.pipeline.stop_on_error,
            max_navigation_retries=settings.browser.max_navigation_retries,
            navigation_timeout_ms=settings.browser.timeout_ms,
        )
