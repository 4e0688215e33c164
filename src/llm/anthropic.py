"""Anthropic Claude LLM provider."""

import logging
import os

from src.llm.base import LLMProvider, ProviderError, parse_retry_after

logger = logging.getLogger(__name__)


class AnthropicProvider(LLMProvider):
    """LLM provider using the Anthropic Claude API."""

    @property
    def provider_id(self) -> str:
        return "anthropic"

    @property
    def default_model(self) -> str:
        return "claude-haiku-4-5-20251001"

    @property
    def env_var(self) -> str:
        return "ANTHROPIC_API_KEY"

    async def complete(
        self,
        prompt: str,
        model: str | None = None,
        *,
        system: str | None = None,
        timeout: float = 30.0,
    ) -> str:
        api_key = os.environ.get("ANTHROPIC_API_KEY")
        if not api_key:
            msg = "ANTHROPIC_API_KEY environment variable is required"
            raise ValueError(msg)

        import anthropic

        # Retries are owned by the classifier, not the SDK.
        client = anthropic.AsyncAnthropic(api_key=api_key, max_retries=0, timeout=timeout)
        use_model = model or self.default_model

        logger.debug("Sending prompt to Anthropic API (%s)", use_model)
        kwargs = {"system": system} if system is not None else {}
        try:
            message = await client.messages.create(
                model=use_model,
                max_tokens=512,
                messages=[{"role": "user", "content": prompt}],
                **kwargs,
            )
        except anthropic.APIStatusError as e:
            raise ProviderError(
                f"Anthropic API error: {e.status_code}",
                status_code=e.status_code,
                retry_after=parse_retry_after(e.response.headers),
            ) from e
        except anthropic.APITimeoutError as e:
            msg = f"Anthropic API timed out after {timeout}s"
            raise ProviderError(msg) from e
        except anthropic.APIConnectionError as e:
            msg = f"Anthropic API connection failed: {e}"
            raise ProviderError(msg) from e
        finally:
            await client.close()

        if not message.content:
            return ""
        return getattr(message.content[0], "text", "") or ""
