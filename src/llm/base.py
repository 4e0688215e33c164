"""Abstract base class for LLM providers and shared error handling."""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime


class ProviderError(Exception):
    """A failed completion call, classified by HTTP status.

    status_code is None for timeouts and connection failures.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retry_after = retry_after

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == 429

    @property
    def is_transient(self) -> bool:
        """True for 429, 5xx, timeouts, and connection errors."""
        if self.status_code is None:
            return True
        return self.status_code == 429 or self.status_code >= 500


def parse_retry_after(headers: Mapping[str, str] | None) -> float | None:
    """Read a Retry-After header given in seconds or as an HTTP date."""
    if not headers:
        return None
    value = headers.get("retry-after") or headers.get("Retry-After")
    if not value:
        return None
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


class LLMProvider(ABC):
    """Base class that every LLM provider must implement."""

    @property
    @abstractmethod
    def provider_id(self) -> str:
        """Unique identifier for this provider (e.g. 'anthropic')."""

    @abstractmethod
    async def complete(
        self,
        prompt: str,
        model: str | None = None,
        *,
        system: str | None = None,
        timeout: float = 30.0,
    ) -> str:
        """Send one prompt to the LLM and return raw response text.

        Args:
            prompt: The user message.
            model: Override the provider's default model. None uses default.
            system: Optional system instruction.
            timeout: Upper bound in seconds for the whole call.

        Returns:
            Raw text response from the LLM (expected to contain JSON).

        Raises:
            ProviderError: On any HTTP, timeout, or connection failure.
            ValueError: If the API key is missing.
        """

    @property
    @abstractmethod
    def default_model(self) -> str:
        """The default model ID used when no override is specified."""

    @property
    @abstractmethod
    def env_var(self) -> str | None:
        """Environment variable name for the API key, or None if not needed."""
