"""Abstract base class for pipeline stages."""

import asyncio
from abc import ABC, abstractmethod

from job_extraction.core.errors import ExtractionFailed
from job_extraction.core.schemas import PipelineState
from job_extraction.llm.completion import CompletionService


class Stage(ABC):
    """One step of the extraction pipeline.

    ``requires`` names the PipelineState fields the stage reads. The
    orchestrator checks them before calling ``run`` so a stage never starts
    without its inputs.
    """

    requires: tuple[str, ...] = ()

    @property
    @abstractmethod
    def name(self) -> str:
        """Stage identifier used in errors and metadata (e.g. 'domain_classifier')."""

    @abstractmethod
    async def run(self, state: PipelineState) -> PipelineState:
        """Return a copy of ``state`` with this stage's output added."""


def truncate(text: str, limit: int) -> str:
    """Cut ``text`` to at most ``limit`` characters for a prompt."""
    return text if len(text) <= limit else text[:limit]


async def request_completion(
    completion: CompletionService, prompt: str, *, stage: str, response_format: str = "json",
) -> str:
    """Run a completion off the event loop and return its text.

    Raises ExtractionFailed when the service reports a failure.
    """
    result = await asyncio.to_thread(completion.complete, prompt, response_format=response_format)
    if not result.success or result.data is None:
        msg = f"{stage}: completion failed: {result.error or 'no data returned'}"
        raise ExtractionFailed(msg)
    return result.data
