"""Abstract base class for LLM providers."""

from abc import ABC, abstractmethod

SYSTEM_PROMPT = (
    "You are a job posting analyst. You read the raw text of a job posting and "
    "answer with structured data only.\n\n"
    "Return ONLY a JSON object (no markdown, no explanation) with exactly the "
    "fields requested in the user message."
)


class LLMProvider(ABC):
    """Base class that every LLM provider must implement."""

    @property
    @abstractmethod
    def provider_id(self) -> str:
        """Unique identifier for this provider (e.g. 'openai')."""

    @abstractmethod
    def complete(
        self,
        prompt: str,
        model: str | None = None,
        *,
        system: str | None = None,
        json_mode: bool = False,
        timeout: float | None = None,
    ) -> str:
        """Send a prompt to the LLM and return the raw response text.

        Args:
            prompt: The user message.
            model: Override the provider's default model. None uses default.
            system: Override the system prompt. None falls back to SYSTEM_PROMPT.
            json_mode: Ask the provider for a JSON object response where supported.
            timeout: Request timeout in seconds. None uses the SDK default.

        Returns:
            Raw text response from the LLM.
        """

    @property
    @abstractmethod
    def default_model(self) -> str:
        """The default model ID used when no override is specified."""

    @property
    @abstractmethod
    def env_var(self) -> str | None:
        """Environment variable name for the API key, or None if not needed."""
