"""Core data models: job record, per-stage outputs and the pipeline accumulator."""

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from job_extraction.core.errors import MissingDependency


class JobStatus(str, Enum):
    DISCOVERED = "discovered"
    EXTRACTED = "extracted"
    FAILED = "failed"


class JobRecord(BaseModel):
    """Identity and lifecycle anchor for a job posting."""

    model_config = ConfigDict(frozen=True)

    id: str
    url: str
    status: JobStatus = JobStatus.DISCOVERED
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class ExtractedContent(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str
    raw_text: str
    page_title: str = ""
    extracted_at: datetime = Field(default_factory=datetime.now)


class DomainClassification(BaseModel):
    model_config = ConfigDict(frozen=True)

    domain: str
    sub_domain: str
    role: str
    confidence: float = Field(ge=0.0, le=1.0)
    classified_at: datetime = Field(default_factory=datetime.now)


class ExperienceDetection(BaseModel):
    """Detected experience level and how it was obtained.

    ``method`` is ``parsed`` for a clean label, ``recovered`` when the label was
    found by containment in a messy response, ``defaulted`` when neither worked
    and the role's first declared level was used.
    """

    model_config = ConfigDict(frozen=True)

    level: str
    confidence: float = Field(ge=0.0, le=1.0)
    method: Literal["parsed", "recovered", "defaulted"] = "parsed"
    detected_at: datetime = Field(default_factory=datetime.now)


class DimensionValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: Any = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    required: bool = False
    threshold: float | None = None


class DimensionMapping(BaseModel):
    model_config = ConfigDict(frozen=True)

    dimensions: dict[str, DimensionValue]
    total: int
    required_count: int
    extracted_required_count: int
    completeness_score: float = Field(ge=0.0, le=1.0)


class QualityMetrics(BaseModel):
    """Quality gate output. Holds no timestamps so reruns compare equal."""

    model_config = ConfigDict(frozen=True)

    quality_score: float = Field(ge=0.0, le=1.0)
    completeness_score: float
    confidence_score: float
    required_dimensions_score: float
    passed: bool
    issues: list[str] = Field(default_factory=list)
    total_dimensions: int = 0
    valid_dimensions: int = 0
    required_dimensions_met: bool = False


class StageError(BaseModel):
    model_config = ConfigDict(frozen=True)

    stage: str
    message: str
    error_type: str = "ExtractionError"
    timestamp: datetime = Field(default_factory=datetime.now)


class PipelineState(BaseModel):
    """Accumulator threaded through the stages.

    Frozen: a stage returns ``state.model_copy(update=...)`` touching only its
    own field, never a delta and never an earlier stage's field.
    """

    model_config = ConfigDict(frozen=True)

    job_data: JobRecord
    extracted_content: ExtractedContent | None = None
    domain_classification: DomainClassification | None = None
    experience_detection: ExperienceDetection | None = None
    dimension_mapping: DimensionMapping | None = None
    quality_metrics: QualityMetrics | None = None
    errors: list[StageError] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def require(self, stage: str, *fields: str) -> tuple[Any, ...]:
        """Return the named stage outputs, raising MissingDependency if any is absent."""
        missing = [name for name in fields if getattr(self, name) is None]
        if missing:
            raise MissingDependency(stage, missing)
        return tuple(getattr(self, name) for name in fields)

    def with_metadata(self, **entries: Any) -> "PipelineState":
        return self.model_copy(update={"metadata": {**self.metadata, **entries}})

    def with_error(self, stage: str, exc: BaseException) -> "PipelineState":
        """Append a StageError for ``exc`` and flag the stage as failed."""
        error = StageError(stage=stage, message=str(exc), error_type=type(exc).__name__)
        metadata = {
            **self.metadata,
            f"{stage}_failed": True,
            f"{stage}_error": error.message,
            f"{stage}_timestamp": error.timestamp.isoformat(),
        }
        return self.model_copy(update={"errors": [*self.errors, error], "metadata": metadata})


class PipelineResult(BaseModel):
    """Outcome of one pipeline run. ``success`` means no stage recorded an error."""

    success: bool
    job_id: str
    workflow_id: str
    errors: list[StageError]
    final_state: PipelineState
    summary: dict[str, Any] = Field(default_factory=dict)
    started_at: datetime
    finished_at: datetime
    duration_ms: int


class BatchResult(BaseModel):
    """Summary of a sequential batch of pipeline runs."""

    total_jobs: int
    successful_jobs: int
    failed_jobs: int
    results: list[PipelineResult]
    started_at: datetime
    finished_at: datetime

    @property
    def success_rate(self) -> float:
        return self.successful_jobs / self.total_jobs if self.total_jobs else 0.0

    @property
    def duration_ms(self) -> int:
        return int((self.finished_at - self.started_at).total_seconds() * 1000)
