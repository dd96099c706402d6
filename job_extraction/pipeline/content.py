"""Content extraction stage: job URL → raw page text."""

import logging

from job_extraction.browser.content import ContentSource
from job_extraction.core.config import PipelineOptions
from job_extraction.core.errors import ExtractionFailed
from job_extraction.core.schemas import PipelineState
from job_extraction.pipeline.base import Stage

logger = logging.getLogger(__name__)


class ContentExtractionStage(Stage):
    requires = ("job_data",)

    def __init__(self, source: ContentSource, options: PipelineOptions) -> None:
        self._source = source
        self._options = options

    @property
    def name(self) -> str:
        return "content_extractor"

    async def run(self, state: PipelineState) -> PipelineState:
        job = state.job_data
        if not job.url:
            msg = f"Job '{job.id}' has no URL to extract"
            raise ExtractionFailed(msg)

        content = await self._source.extract_text(
            job.url,
            timeout_ms=self._options.navigation_timeout_ms,
            max_retries=self._options.max_navigation_retries,
        )
        logger.info("Job %s: extracted %d characters", job.id, len(content.raw_text))
        return state.model_copy(update={"extracted_content": content})
