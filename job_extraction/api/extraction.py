"""Framework-free handler for ``POST /job-extraction``.

``handle_extraction_request`` takes the decoded JSON body and returns
``(status_code, body)`` so any HTTP layer can mount it:

  200  pipeline ran without stage errors
  400  invalid payload, or the job is not in ``discovered`` state
  404  unknown job id
  500  pipeline finished with stage errors (errors returned verbatim)
"""

import logging
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from job_extraction.core.config import PipelineOptions, QualityThresholds
from job_extraction.core.db import job_record_from_document
from job_extraction.core.errors import PipelineAborted, StorageConflict
from job_extraction.core.schemas import JobStatus, PipelineResult
from job_extraction.pipeline.orchestrator import ExtractionPipeline

logger = logging.getLogger(__name__)


class ExtractionOptions(BaseModel):
    """Per-request overrides. Omitted values keep the pipeline's defaults.

    ``confidenceThreshold`` replaces the global confidence default only. Taxonomy
    dimensions carry their own threshold, which the quality validator prefers,
    so the override applies to dimension values recorded without one.
    """

    model_config = ConfigDict(populate_by_name=True)

    max_retries: int | None = Field(default=None, ge=1, le=10, alias="maxRetries")
    timeout: int | None = Field(default=None, ge=1000)
    confidence_threshold: float | None = Field(default=None, ge=0.0, le=1.0, alias="confidenceThreshold")
    completeness_threshold: float | None = Field(default=None, ge=0.0, le=1.0, alias="completenessThreshold")
    quality_threshold: float | None = Field(default=None, ge=0.0, le=1.0, alias="qualityThreshold")
    stop_on_error: bool | None = Field(default=None, alias="stopOnError")

    def apply(self, base: PipelineOptions, thresholds: QualityThresholds) -> PipelineOptions:
        """Overlay the given values on ``base``; thresholds fall back to ``thresholds``."""
        threshold_overrides = {
            name: value
            for name, value in (
                ("confidence_threshold", self.confidence_threshold),
                ("completeness_threshold", self.completeness_threshold),
                ("quality_threshold", self.quality_threshold),
            )
            if value is not None
        }
        return PipelineOptions(
            stop_on_error=base.stop_on_error if self.stop_on_error is None else self.stop_on_error,
            max_navigation_retries=self.max_retries or base.max_navigation_retries,
            navigation_timeout_ms=self.timeout or base.navigation_timeout_ms,
            thresholds=(
                thresholds.model_copy(update=threshold_overrides)
                if threshold_overrides
                else base.thresholds
            ),
        )


class ExtractionRequest(BaseModel):
    job_id: str = Field(min_length=1, validation_alias=AliasChoices("job_id", "jobId"))
    options: ExtractionOptions = Field(default_factory=ExtractionOptions)


def _error(message: str, **extra: Any) -> dict[str, Any]:
    return {"success": False, "error": message, **extra}


async def handle_extraction_request(
    payload: Any, pipeline: ExtractionPipeline,
) -> tuple[int, dict[str, Any]]:
    """Validate the request, run the pipeline for one job and shape the response."""
    if not isinstance(payload, dict):
        return 400, _error("Request body must be a JSON object")
    try:
        request = ExtractionRequest.model_validate(payload)
    except ValidationError as e:
        return 400, _error(f"Invalid request: {e.errors(include_url=False)}")

    try:
        document = pipeline.store.get(request.job_id)
    except StorageConflict as e:
        logger.error("Failed to load job %s: %s", request.job_id, e)
        return 500, _error(str(e), errors=[])

    if document is None:
        return 404, _error(f"Job {request.job_id} not found")

    status = document.get("status")
    if status != JobStatus.DISCOVERED.value:
        return 400, _error(
            f"Job {request.job_id} has status '{status}', expected '{JobStatus.DISCOVERED.value}'"
        )

    try:
        job = job_record_from_document(document)
    except ValidationError as e:
        return 400, _error(f"Job {request.job_id} is not a valid job record: {e}")

    runner = pipeline.with_options(request.options.apply(pipeline.options, pipeline.thresholds))
    try:
        result = await runner.run(job)
    except PipelineAborted as e:
        result = runner.build_result(e.state)

    if not result.success:
        return 500, _failure_body(result)
    return 200, _success_body(result)


def _failure_body(result: PipelineResult) -> dict[str, Any]:
    return _error(
        "Pipeline completed with errors",
        job_id=result.job_id,
        workflow_id=result.workflow_id,
        errors=[e.model_dump(mode="json") for e in result.errors],
        summary=result.summary,
    )


def _success_body(result: PipelineResult) -> dict[str, Any]:
    state = result.final_state
    mapping = state.dimension_mapping
    metrics = state.quality_metrics
    return {
        "success": True,
        "job_id": result.job_id,
        "workflow_id": result.workflow_id,
        "status": state.job_data.status.value,
        "quality_metrics": metrics.model_dump(mode="json") if metrics else None,
        "job_data": state.job_data.model_dump(mode="json"),
        "extracted_dimensions": (
            {name: dim.model_dump(mode="json") for name, dim in mapping.dimensions.items()}
            if mapping else {}
        ),
        "summary": result.summary,
    }
