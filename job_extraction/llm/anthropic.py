"""Anthropic Claude LLM provider."""

import logging
import os

from job_extraction.llm.base import SYSTEM_PROMPT, LLMProvider

logger = logging.getLogger(__name__)

_JSON_PREFILL = "{"


class AnthropicProvider(LLMProvider):
    """LLM provider using the Anthropic Claude API.

    The Messages API has no JSON response mode. ``json_mode`` prefills the
    assistant turn with ``{`` so the reply continues a JSON object.
    """

    @property
    def provider_id(self) -> str:
        return "anthropic"

    @property
    def default_model(self) -> str:
        return "claude-sonnet-4-20250514"

    @property
    def env_var(self) -> str:
        return "ANTHROPIC_API_KEY"

    def complete(
        self,
        prompt: str,
        model: str | None = None,
        *,
        system: str | None = None,
        json_mode: bool = False,
        timeout: float | None = None,
    ) -> str:
        api_key = os.environ.get("ANTHROPIC_API_KEY")
        if not api_key:
            msg = "ANTHROPIC_API_KEY environment variable is required"
            raise ValueError(msg)

        try:
            import anthropic
        except ImportError:
            msg = (
                "anthropic is required for this provider. "
                "Install with: pip install 'job-extraction-pipeline[anthropic]'"
            )
            raise ImportError(msg) from None

        kwargs = {"api_key": api_key, "max_retries": 0}
        if timeout is not None:
            kwargs["timeout"] = timeout
        client = anthropic.Anthropic(**kwargs)
        use_model = model or self.default_model
        use_system = system if system is not None else SYSTEM_PROMPT

        messages = [{"role": "user", "content": prompt}]
        if json_mode:
            messages.append({"role": "assistant", "content": _JSON_PREFILL})

        logger.debug("Sending prompt to Anthropic API (%s)...", use_model)
        message = client.messages.create(
            model=use_model,
            max_tokens=2048,
            system=use_system,
            messages=messages,
        )

        text = message.content[0].text  # type: ignore[union-attr]
        return _JSON_PREFILL + text if json_mode else text
