"""Completion service: one fixed-timeout call, result-or-error, no retries."""

import logging

from pydantic import BaseModel

from job_extraction.core.config import LLMConfig
from job_extraction.llm import get_provider
from job_extraction.llm.base import LLMProvider

logger = logging.getLogger(__name__)


class CompletionResult(BaseModel):
    success: bool
    data: str | None = None
    error: str | None = None


class CompletionService:
    """Wraps an LLMProvider so callers never see SDK exceptions.

    Usage::

        service = CompletionService(get_provider("openai"), timeout_s=30)
        result = service.complete(prompt, response_format="json")
        if result.success:
            payload = result.data
    """

    def __init__(
        self,
        provider: LLMProvider,
        *,
        model: str | None = None,
        timeout_s: float = 30.0,
    ) -> None:
        self._provider = provider
        self._model = model
        self._timeout_s = timeout_s

    @classmethod
    def from_config(cls, config: LLMConfig) -> "CompletionService":
        return cls(get_provider(config.provider), model=config.model, timeout_s=config.timeout_s)

    @property
    def provider_id(self) -> str:
        return self._provider.provider_id

    def complete(
        self,
        prompt: str,
        *,
        system: str | None = None,
        response_format: str = "json",
    ) -> CompletionResult:
        """Run one completion. Provider failures come back as ``success=False``.

        A blank reply is still a successful call; the caller's parser decides
        whether it is usable.
        """
        try:
            raw = self._provider.complete(
                prompt,
                model=self._model,
                system=system,
                json_mode=response_format == "json",
                timeout=self._timeout_s,
            )
        except Exception as e:
            logger.warning(
                "Completion via %s failed: %s", self._provider.provider_id, e, exc_info=True,
            )
            return CompletionResult(success=False, error=str(e) or type(e).__name__)

        if not raw or not raw.strip():
            logger.warning("Completion via %s returned an empty response", self._provider.provider_id)
        return CompletionResult(success=True, data=raw or "")
