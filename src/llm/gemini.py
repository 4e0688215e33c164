"""Google Gemini LLM provider (google-genai SDK)."""

import logging
import os

import httpx

from src.llm.base import LLMProvider, ProviderError

logger = logging.getLogger(__name__)


class GeminiProvider(LLMProvider):
    """LLM provider using the Google Gemini API (google-genai SDK)."""

    @property
    def provider_id(self) -> str:
        return "gemini"

    @property
    def default_model(self) -> str:
        return "gemini-2.5-flash"

    @property
    def env_var(self) -> str:
        return "GOOGLE_API_KEY"

    async def complete(
        self,
        prompt: str,
        model: str | None = None,
        *,
        system: str | None = None,
        timeout: float = 30.0,
    ) -> str:
        api_key = os.environ.get("GOOGLE_API_KEY")
        if not api_key:
            msg = "GOOGLE_API_KEY environment variable is required"
            raise ValueError(msg)

        try:
            from google import genai
            from google.genai import errors as genai_errors
            from google.genai import types as genai_types
        except ImportError:
            msg = (
                "google-genai is required for this provider. "
                "Install with: pip install 'ai-tools-daily[gemini]'"
            )
            raise ImportError(msg) from None

        use_model = model or self.default_model
        logger.debug("Sending prompt to Gemini API (%s)", use_model)
        client = genai.Client(
            api_key=api_key,
            http_options=genai_types.HttpOptions(timeout=int(timeout * 1000)),
        )
        try:
            response = await client.aio.models.generate_content(
                model=use_model,
                contents=prompt,
                config=genai_types.GenerateContentConfig(system_instruction=system),
            )
        except genai_errors.APIError as e:
            msg = f"Gemini API error: {e.code}"
            raise ProviderError(msg, status_code=e.code) from e
        except httpx.TimeoutException as e:
            msg = f"Gemini API timed out after {timeout}s"
            raise ProviderError(msg) from e
        except httpx.TransportError as e:
            msg = f"Gemini API connection failed: {e}"
            raise ProviderError(msg) from e

        return response.text or ""
