"""Abstract base class for source adapters and the parse-strategy runner.

Source pages are not a stable contract, so every adapter lists its ways of
reading a response as an ordered tuple of named strategies. The first
strategy that yields candidates wins; a strategy that raises or finds
nothing hands over to the next one. When all of them come up empty the
adapter returns [], never an exception.
"""

import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping, Sequence
from typing import Any

import httpx

from src.core.schemas import Candidate

logger = logging.getLogger(__name__)

ParseStrategy = Callable[[str], list[Candidate]]

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml",
    "Accept-Language": "en-US,en;q=0.9",
}

_TAG_RE = re.compile(r"<[^>]+>")


class SourceError(Exception):
    """A whole-source fetch failure (bad status, timeout, transport error)."""


class SourceAdapter(ABC):
    """Base class that every source adapter must implement."""

    @property
    @abstractmethod
    def source_id(self) -> str:
        """Unique identifier for this source (e.g. 'producthunt')."""

    @abstractmethod
    async def fetch(self) -> list[Candidate]:
        """Fetch new candidates. Raises on whole-source failure."""


async def fetch_text(
    client: httpx.AsyncClient,
    url: str,
    *,
    label: str,
    headers: Mapping[str, str] | None = None,
) -> str:
    """GET a page and return its body, raising SourceError on any failure.

    Timeouts are not retried; the source simply contributes nothing this run.
    """
    try:
        response = await client.get(url, headers=dict(headers or BROWSER_HEADERS))
    except httpx.HTTPError as e:
        msg = f"{label}: request failed: {e!r}"
        raise SourceError(msg) from e
    if response.status_code != 200:
        msg = f"{label}: {response.status_code} {response.reason_phrase}"
        raise SourceError(msg)
    return response.text


def run_strategies(
    document: str,
    strategies: Sequence[tuple[str, ParseStrategy]],
    *,
    source: str,
) -> list[Candidate]:
    """Apply strategies in order, returning the first non-empty result."""
    for name, strategy in strategies:
        try:
            found = strategy(document)
        except Exception:
            logger.debug("[%s] strategy '%s' raised, trying next", source, name, exc_info=True)
            continue
        if found:
            logger.debug("[%s] strategy '%s' yielded %d candidates", source, name, len(found))
            return found
    logger.info("[%s] no strategy matched the response", source)
    return []


def first_field(obj: Mapping[str, Any], aliases: tuple[str, ...]) -> Any:
    """Return the first truthy value among the alias keys, or None."""
    for key in aliases:
        value = obj.get(key)
        if value:
            return value
    return None


def strip_tags(text: str) -> str:
    """Remove markup and collapse whitespace."""
    return " ".join(_TAG_RE.sub(" ", text).split())


def absolutize(url: str, base: str) -> str:
    """Prefix site-relative URLs with the site origin."""
    if url.startswith("http"):
        return url
    return f"{base.rstrip('/')}/{url.lstrip('/')}"


def text_field(value: Any) -> str | None:
    """Non-empty string content of a JSON field, else None."""
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None
