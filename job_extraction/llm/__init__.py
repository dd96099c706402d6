"""LLM provider registry with lazy loading.

Usage:
    from job_extraction.llm import get_provider
    from job_extraction.llm.completion import CompletionService

    completion = CompletionService(get_provider("openai"), timeout_s=30)
    result = completion.complete(prompt)
"""

from __future__ import annotations

from job_extraction.llm.base import LLMProvider

__all__ = ["LLMProvider", "available_providers", "get_provider"]

# Lazy registry: maps provider name → (module_path, class_name)
_REGISTRY: dict[str, tuple[str, str]] = {
    "anthropic": ("job_extraction.llm.anthropic", "AnthropicProvider"),
    "openai": ("job_extraction.llm.openai", "OpenAIProvider"),
    "gemini": ("job_extraction.llm.gemini", "GeminiProvider"),
    "ollama": ("job_extraction.llm.ollama", "OllamaProvider"),
}


def get_provider(name: str) -> LLMProvider:
    """Instantiate and return an LLM provider by name.

    Args:
        name: Provider identifier (anthropic, openai, gemini, ollama).

    Returns:
        An LLMProvider instance.

    Raises:
        ValueError: If the provider name is unknown.
    """
    if name not in _REGISTRY:
        valid = ", ".join(sorted(_REGISTRY))
        msg = f"Unknown LLM provider '{name}'. Available: {valid}"
        raise ValueError(msg)

    module_path, class_name = _REGISTRY[name]

    import importlib

    module = importlib.import_module(module_path)
    cls = getattr(module, class_name)
    return cls()  # type: ignore[no-any-return]


def available_providers() -> list[str]:
    """Return sorted list of registered provider names."""
    return sorted(_REGISTRY)
