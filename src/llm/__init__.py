"""LLM provider registry with lazy loading.

Usage:
    from src.llm import get_provider

    provider = get_provider("anthropic")
    raw = await provider.complete(prompt, system=instructions)
"""

from __future__ import annotations

import importlib

from src.llm.base import LLMProvider, ProviderError

__all__ = ["LLMProvider", "ProviderError", "available_providers", "get_provider"]

# Lazy registry: maps provider name → (module_path, class_name)
_REGISTRY: dict[str, tuple[str, str]] = {
    "anthropic": ("src.llm.anthropic", "AnthropicProvider"),
    "openai": ("src.llm.openai", "OpenAIProvider"),
    "gemini": ("src.llm.gemini", "GeminiProvider"),
    "ollama": ("src.llm.ollama", "OllamaProvider"),
}


def get_provider(name: str) -> LLMProvider:
    """Instantiate the provider named in ``enrichment.provider``.

    Names are case-insensitive. Raises ValueError for an unknown name so a
    typo in settings fails before any source is fetched.
    """
    key = name.strip().lower()
    if key not in _REGISTRY:
        msg = f"Unknown LLM provider '{name}'. Available: {', '.join(available_providers())}"
        raise ValueError(msg)

    module_path, class_name = _REGISTRY[key]
    module = importlib.import_module(module_path)
    cls = getattr(module, class_name)
    return cls()  # type: ignore[no-any-return]


def available_providers() -> list[str]:
    """Return sorted list of registered provider names."""
    return sorted(_REGISTRY)
