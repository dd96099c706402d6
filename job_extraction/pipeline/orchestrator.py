"""Orchestrator: threads the PipelineState through the stages in fixed order.

Data flow:
  1. content_extractor          URL → raw text
  2. domain_classifier          text → (domain, sub_domain, role)
  3. experience_level_detector  text + role → level
  4. dimension_mapper           text + role + level → dimensions
  5. quality_validator          dimensions → quality metrics
  6. storage                    merge-upsert, status → extracted

A stage whose inputs are missing is recorded as a MissingDependency failure
and skipped. With stop_on_error the first failure is recorded and then
PipelineAborted is raised carrying the partial state.
"""

import asyncio
import logging
import uuid
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from job_extraction.browser.content import ContentSource
from job_extraction.core.config import PipelineOptions, QualityThresholds
from job_extraction.core.db import JobStore, job_record_from_document
from job_extraction.core.errors import ExtractionError, PipelineAborted, StorageConflict
from job_extraction.core.schemas import (
    BatchResult,
    JobRecord,
    JobStatus,
    PipelineResult,
    PipelineState,
)
from job_extraction.llm.completion import CompletionService
from job_extraction.pipeline.base import Stage
from job_extraction.pipeline.classifier import DomainClassifierStage
from job_extraction.pipeline.content import ContentExtractionStage
from job_extraction.pipeline.dimensions import DimensionMapperStage
from job_extraction.pipeline.experience import ExperienceLevelStage
from job_extraction.pipeline.quality import QualityValidatorStage
from job_extraction.pipeline.storage import StorageStage
from job_extraction.pipeline.upsert import UpsertEngine
from job_extraction.taxonomy.registry import TaxonomyRegistry

logger = logging.getLogger(__name__)


class ExtractionPipeline:
    """Runs jobs through the extraction stages.

    Usage::

        pipeline = ExtractionPipeline(registry, completion, extractor, store)
        result = await pipeline.run(JobRecord(id="job-1", url="https://..."))
    """

    def __init__(
        self,
        registry: TaxonomyRegistry,
        completion: CompletionService,
        content: ContentSource,
        store: JobStore,
        options: PipelineOptions | None = None,
        *,
        max_prompt_chars: int = 4000,
        inter_job_delay_s: float = 5.0,
    ) -> None:
        self._registry = registry
        self._completion = completion
        self._content = content
        self._store = store
        self._options = options or PipelineOptions()
        self._max_prompt_chars = max_prompt_chars
        self._inter_job_delay_s = inter_job_delay_s
        self.stages: list[Stage] = self._build_stages()

    @property
    def options(self) -> PipelineOptions:
        return self._options

    @property
    def store(self) -> JobStore:
        return self._store

    @property
    def thresholds(self) -> QualityThresholds:
        """Run options win over the registry's global quality definition."""
        return self._options.thresholds or self._registry.quality

    def with_options(self, options: PipelineOptions) -> "ExtractionPipeline":
        """A pipeline sharing this one's collaborators but running with ``options``."""
        return ExtractionPipeline(
            self._registry,
            self._completion,
            self._content,
            self._store,
            options,
            max_prompt_chars=self._max_prompt_chars,
            inter_job_delay_s=self._inter_job_delay_s,
        )

    def _build_stages(self) -> list[Stage]:
        kwargs = {"max_prompt_chars": self._max_prompt_chars}
        return [
            ContentExtractionStage(self._content, self._options),
            DomainClassifierStage(self._registry, self._completion, **kwargs),
            ExperienceLevelStage(self._registry, self._completion, **kwargs),
            DimensionMapperStage(self._registry, self._completion, **kwargs),
            QualityValidatorStage(self.thresholds),
            StorageStage(UpsertEngine(self._store)),
        ]

    # ------------------------------------------------------------------
    # Single job
    # ------------------------------------------------------------------

    async def run(self, job: JobRecord) -> PipelineResult:
        """Run one job through every stage.

        Raises:
            PipelineAborted: a stage failed and stop_on_error is set.
        """
        workflow_id = str(uuid.uuid4())
        state = PipelineState(
            job_data=job,
            metadata={"workflow_id": workflow_id, "started_at": datetime.now().isoformat()},
        )
        logger.info("Starting extraction for job %s (workflow %s)", job.id, workflow_id)

        for stage in self.stages:
            state = await self._run_stage(stage, state)

        result = self.build_result(state)
        logger.info(
            "Extraction for job %s finished: %s (%d errors, %d ms)",
            job.id, "success" if result.success else "failed", len(result.errors), result.duration_ms,
        )
        return result

    async def _run_stage(self, stage: Stage, state: PipelineState) -> PipelineState:
        try:
            state.require(stage.name, *stage.requires)
            updated = await stage.run(state)
        except Exception as e:
            if isinstance(e, ExtractionError):
                logger.warning("Stage %s failed for job %s: %s", stage.name, state.job_data.id, e)
            else:
                logger.warning(
                    "Stage %s raised unexpectedly for job %s", stage.name, state.job_data.id,
                    exc_info=True,
                )
            state = state.with_error(stage.name, e)
            if self._options.stop_on_error:
                raise PipelineAborted(stage.name, state, e) from e
            return state

        logger.debug("Stage %s completed for job %s", stage.name, state.job_data.id)
        return updated.with_metadata(**{
            f"{stage.name}_completed": True,
            f"{stage.name}_timestamp": datetime.now().isoformat(),
        })

    def build_result(self, state: PipelineState) -> PipelineResult:
        """Turn a final (or aborted partial) state into a PipelineResult."""
        finished_at = datetime.now()
        started_raw = state.metadata.get("started_at")
        started_at = datetime.fromisoformat(started_raw) if started_raw else finished_at
        duration_ms = int((finished_at - started_at).total_seconds() * 1000)
        return PipelineResult(
            success=not state.has_errors,
            job_id=state.job_data.id,
            workflow_id=str(state.metadata.get("workflow_id", "")),
            errors=list(state.errors),
            final_state=state,
            summary=self.summarize(state, duration_ms),
            started_at=started_at,
            finished_at=finished_at,
            duration_ms=duration_ms,
        )

    def summarize(self, state: PipelineState, duration_ms: int = 0) -> dict[str, Any]:
        total = len(self.stages)
        completed = [s.name for s in self.stages if state.metadata.get(f"{s.name}_completed")]
        classification = state.domain_classification
        detection = state.experience_detection
        metrics = state.quality_metrics
        mapping = state.dimension_mapping
        return {
            "total_stages": total,
            "completed_stages": len(completed),
            "failed_stages": len({e.stage for e in state.errors}),
            "success_rate": len(completed) / total if total else 0.0,
            "duration_ms": duration_ms,
            "final_status": state.job_data.status.value,
            "quality_score": metrics.quality_score if metrics else None,
            "confidence_score": metrics.confidence_score if metrics else None,
            "completeness_score": mapping.completeness_score if mapping else None,
            "validation_passed": metrics.passed if metrics else False,
            "domain": classification.domain if classification else None,
            "sub_domain": classification.sub_domain if classification else None,
            "role": classification.role if classification else None,
            "experience_level": detection.level if detection else None,
            "dimensions_extracted": mapping.total if mapping else 0,
            "error_count": len(state.errors),
        }

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    async def run_batch(self, jobs: Sequence[JobRecord]) -> BatchResult:
        """Run jobs one at a time with a fixed delay between them.

        An aborted run becomes a failed PipelineResult; the batch carries on.
        """
        started_at = datetime.now()
        results: list[PipelineResult] = []

        for index, job in enumerate(jobs):
            if index > 0 and self._inter_job_delay_s > 0:
                await asyncio.sleep(self._inter_job_delay_s)
            logger.info("Batch job %d/%d: %s", index + 1, len(jobs), job.id)
            try:
                result = await self.run(job)
            except PipelineAborted as e:
                logger.warning("Job %s aborted at %s", job.id, e.stage)
                result = self.build_result(e.state)
            if not result.success:
                self.record_failure(result)
            results.append(result)

        successful = sum(1 for r in results if r.success)
        batch = BatchResult(
            total_jobs=len(results),
            successful_jobs=successful,
            failed_jobs=len(results) - successful,
            results=results,
            started_at=started_at,
            finished_at=datetime.now(),
        )
        logger.info(
            "Batch complete: %d/%d succeeded (%.0f%%)",
            batch.successful_jobs, batch.total_jobs, batch.success_rate * 100,
        )
        return batch

    def record_failure(self, result: PipelineResult) -> None:
        """Count a failed attempt on a job that is still ``discovered``.

        The update refreshes ``updated_at``, so the job sorts behind untouched
        discovered jobs on the next ``run_discovered``.
        """
        try:
            document = self._store.get(result.job_id)
            if document is None or document.get("status") != JobStatus.DISCOVERED.value:
                return
            cause = result.errors[0] if result.errors else None
            self._store.update(result.job_id, {
                "failed_attempts": int(document.get("failed_attempts", 0)) + 1,
                "last_failure": {
                    "workflow_id": result.workflow_id,
                    "stage": cause.stage if cause else None,
                    "error_type": cause.error_type if cause else None,
                    "message": cause.message if cause else None,
                    "at": result.finished_at.isoformat(),
                },
            })
        except StorageConflict as e:
            logger.warning("Could not record failed attempt for job %s: %s", result.job_id, e)

    async def run_discovered(self, limit: int = 10) -> BatchResult:
        """Run the least recently touched ``discovered`` jobs in the store."""
        documents = self._store.list_by_status(JobStatus.DISCOVERED, limit)
        logger.info("Found %d discovered jobs to process", len(documents))
        jobs = [job_record_from_document(doc) for doc in documents]
        return await self.run_batch(jobs)
