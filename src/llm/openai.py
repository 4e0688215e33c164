"""OpenAI LLM provider."""

import logging
import os

from src.llm.base import LLMProvider, ProviderError, parse_retry_after

logger = logging.getLogger(__name__)


async def openai_chat_completion(
    *,
    api_key: str,
    model: str,
    prompt: str,
    system: str | None,
    timeout: float,
    base_url: str | None = None,
    label: str = "OpenAI",
) -> str:
    """Run one chat completion and map SDK errors to ProviderError."""
    try:
        import openai
    except ImportError:
        msg = (
            "openai is required for this provider. "
            "Install with: pip install 'ai-tools-daily[openai]'"
        )
        raise ImportError(msg) from None

    client = openai.AsyncOpenAI(
        api_key=api_key, base_url=base_url, max_retries=0, timeout=timeout,
    )
    messages = []
    if system is not None:
        messages.append({"role": "system", "content": system})
    messages.append({"role": "user", "content": prompt})

    try:
        response = await client.chat.completions.create(model=model, messages=messages)
    except openai.APIStatusError as e:
        raise ProviderError(
            f"{label} API error: {e.status_code}",
            status_code=e.status_code,
            retry_after=parse_retry_after(e.response.headers),
        ) from e
    except openai.APITimeoutError as e:
        msg = f"{label} API timed out after {timeout}s"
        raise ProviderError(msg) from e
    except openai.APIConnectionError as e:
        msg = f"{label} API connection failed: {e}"
        raise ProviderError(msg) from e
    finally:
        await client.close()

    return response.choices[0].message.content or ""


class OpenAIProvider(LLMProvider):
    """LLM provider using the OpenAI API."""

    @property
    def provider_id(self) -> str:
        return "openai"

    @property
    def default_model(self) -> str:
        return "gpt-4o-mini"

    @property
    def env_var(self) -> str:
        return "OPENAI_API_KEY"

    async def complete(
        self,
        prompt: str,
        model: str | None = None,
        *,
        system: str | None = None,
        timeout: float = 30.0,
    ) -> str:
        api_key = os.environ.get("OPENAI_API_KEY")
        if not api_key:
            msg = "OPENAI_API_KEY environment variable is required"
            raise ValueError(msg)

        use_model = model or self.default_model
        logger.debug("Sending prompt to OpenAI API (%s)", use_model)
        return await openai_chat_completion(
            api_key=api_key,
            model=use_model,
            prompt=prompt,
            system=system,
            timeout=timeout,
        )
