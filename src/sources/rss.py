"""RSS/Atom adapter: AI-tool launch posts from news feeds.

Feeds are fetched concurrently and isolated from one another: a feed that
times out or fails to parse is logged and skipped, the rest still count.
"""

import asyncio
import logging
import re
import time
from calendar import timegm
from datetime import datetime, timedelta, timezone
from typing import Any

import feedparser
import httpx

from src.core.config import FeedConfig, RssConfig
from src.core.schemas import Candidate
from src.sources.base import SourceAdapter, fetch_text, strip_tags

logger = logging.getLogger(__name__)

AI_TOOL_KEYWORDS = re.compile(
    r"\b(ai\s+tool|ai\s+app|ai\s+platform|ai-powered|gpt|llm|chatbot|generative ai"
    r"|machine learning tool|ai assistant|text.to.image|text.to.video|ai\s+writing"
    r"|ai\s+coding|copilot|ai\s+agent)\b",
    re.IGNORECASE,
)

FEED_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; AIToolsDaily/1.0)",
    "Accept": "application/rss+xml, application/atom+xml, application/xml, text/xml",
}

MAX_NAME_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 500


class RssAdapter(SourceAdapter):
    """Unions every configured feed into a single source."""

    def __init__(self, client: httpx.AsyncClient, config: RssConfig) -> None:
        self._client = client
        self._config = config

    @property
    def source_id(self) -> str:
        return "rss"

    async def fetch(self) -> list[Candidate]:
        results = await asyncio.gather(
            *(self._fetch_feed(feed) for feed in self._config.feeds),
            return_exceptions=True,
        )
        tools: list[Candidate] = []
        for feed, result in zip(self._config.feeds, results):
            if isinstance(result, BaseException):
                logger.warning("[rss] feed '%s' failed: %r", feed.name, result)
                continue
            tools.extend(result)
        logger.info("[rss] %d AI-related items from %d feeds", len(tools), len(self._config.feeds))
        return tools[: self._config.max_items]

    async def _fetch_feed(self, feed: FeedConfig) -> list[Candidate]:
        text = await fetch_text(self._client, feed.url, label=f"RSS {feed.name}", headers=FEED_HEADERS)
        cutoff = datetime.now(timezone.utc) - timedelta(hours=self._config.max_age_hours)
        return parse_feed(text, feed.name, cutoff)


def parse_feed(text: str, feed_name: str, cutoff: datetime) -> list[Candidate]:
    """Turn a feed document into candidates, dropping stale and off-topic items."""
    parsed = feedparser.parse(text)
    if parsed.bozo and not parsed.entries:
        logger.debug("[rss] '%s' is not a parsable feed: %r", feed_name, parsed.get("bozo_exception"))
        return []

    tools: list[Candidate] = []
    for entry in parsed.entries:
        title = (entry.get("title") or "").strip()
        link = (entry.get("link") or "").strip()
        if not title or not link:
            continue

        published = _entry_datetime(entry)
        # Undated items are kept.
        if published is not None and published < cutoff:
            continue

        raw_description = entry.get("summary") or entry.get("description") or ""
        if not AI_TOOL_KEYWORDS.search(f"{title} {raw_description}"):
            continue

        description = strip_tags(raw_description)[:MAX_DESCRIPTION_LENGTH]
        tools.append(Candidate(
            name=title[:MAX_NAME_LENGTH],
            url=link,
            description=description or None,
            source="rss",
            source_url=link,
            metadata={
                "feed_name": feed_name,
                "pub_date": published.isoformat() if published else None,
            },
        ))
    return tools


def _entry_datetime(entry: Any) -> datetime | None:
    struct: time.struct_time | None = entry.get("published_parsed") or entry.get("updated_parsed")
    if struct is None:
        return None
    return datetime.fromtimestamp(timegm(struct), tz=timezone.utc)
