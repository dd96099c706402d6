"""Storage stage: persist the extraction and advance the job to ``extracted``."""

import logging
from datetime import datetime

from job_extraction.core.schemas import JobStatus, PipelineState
from job_extraction.pipeline.base import Stage
from job_extraction.pipeline.upsert import UpsertEngine, build_record

logger = logging.getLogger(__name__)


class StorageStage(Stage):
    requires = ("domain_classification", "experience_detection", "dimension_mapping", "quality_metrics")

    def __init__(self, engine: UpsertEngine) -> None:
        self._engine = engine

    @property
    def name(self) -> str:
        return "storage"

    async def run(self, state: PipelineState) -> PipelineState:
        state.require(self.name, *self.requires)
        now = datetime.now()
        stored = self._engine.upsert(build_record(state, now=now))

        job = state.job_data.model_copy(update={"status": JobStatus.EXTRACTED, "updated_at": now})
        logger.info("Job %s stored with status '%s'", job.id, stored.get("status"))
        return state.model_copy(update={"job_data": job})
