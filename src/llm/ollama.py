"""Ollama local LLM provider (OpenAI-compatible API)."""

import logging
import os

from src.llm.base import LLMProvider
from src.llm.openai import openai_chat_completion

logger = logging.getLogger(__name__)

_OLLAMA_BASE_URL = "http://localhost:11434/v1"


class OllamaProvider(LLMProvider):
    """LLM provider using a local Ollama instance via OpenAI-compatible API."""

    @property
    def provider_id(self) -> str:
        return "ollama"

    @property
    def default_model(self) -> str:
        return "llama3"

    @property
    def env_var(self) -> None:
        return None

    async def complete(
        self,
        prompt: str,
        model: str | None = None,
        *,
        system: str | None = None,
        timeout: float = 30.0,
    ) -> str:
        use_model = model or self.default_model
        logger.debug("Sending prompt to Ollama (%s)", use_model)
        return await openai_chat_completion(
            api_key="ollama",
            model=use_model,
            prompt=prompt,
            system=system,
            timeout=timeout,
            base_url=os.environ.get("OLLAMA_BASE_URL", _OLLAMA_BASE_URL),
            label="Ollama",
        )
