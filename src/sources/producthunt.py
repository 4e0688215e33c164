"""Product Hunt adapter: GraphQL API, AI-related launches from the last day."""

import logging
import os
import re
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx

from src.core.config import ProductHuntConfig
from src.core.schemas import Candidate
from src.sources.base import SourceAdapter, SourceError

logger = logging.getLogger(__name__)

AI_TOPICS = frozenset({
    "artificial-intelligence", "machine-learning", "ai", "generative-ai",
    "chatgpt", "llm", "natural-language-processing", "computer-vision",
    "ai-tools", "deep-learning", "text-to-image", "text-to-video",
    "ai-assistants", "ai-chatbots", "ai-writing", "ai-coding",
})

AI_KEYWORDS = re.compile(
    r"\b(ai|artificial intelligence|gpt|llm|machine learning|neural|deep learning"
    r"|generative|copilot|chatbot|automation)\b",
    re.IGNORECASE,
)

_QUERY = """
query ($first: Int!, $postedAfter: DateTime!) {
  posts(order: NEWEST, first: $first, postedAfter: $postedAfter) {
    edges {
      node {
        name
        tagline
        url
        website
        thumbnail { url }
        topics { edges { node { name slug } } }
        votesCount
      }
    }
  }
}
"""


class ProductHuntAdapter(SourceAdapter):
    """Fetches recent Product Hunt posts and keeps the AI-related ones."""

    def __init__(self, client: httpx.AsyncClient, config: ProductHuntConfig) -> None:
        self._client = client
        self._config = config

    @property
    def source_id(self) -> str:
        return "producthunt"

    async def fetch(self) -> list[Candidate]:
        token = os.environ.get(self._config.token_env, "")
        if not token:
            logger.warning("[producthunt] %s not set, skipping", self._config.token_env)
            return []

        posted_after = datetime.now(timezone.utc) - timedelta(hours=self._config.lookback_hours)
        try:
            response = await self._client.post(
                self._config.url,
                json={
                    "query": _QUERY,
                    "variables": {
                        "first": self._config.page_size,
                        "postedAfter": posted_after.isoformat(),
                    },
                },
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as e:
            msg = f"Product Hunt request failed: {e!r}"
            raise SourceError(msg) from e
        if response.status_code != 200:
            msg = f"Product Hunt API: {response.status_code} {response.reason_phrase}"
            raise SourceError(msg)

        try:
            payload = response.json()
        except ValueError:
            logger.warning("[producthunt] response body is not JSON")
            return []
        edges = _extract_edges(payload)
        tools: list[Candidate] = []
        for node in edges:
            if not _is_ai_related(node):
                continue
            candidate = _to_candidate(node)
            if candidate is not None:
                tools.append(candidate)
        logger.info(
            "[producthunt] %d posts, %d AI-related", len(edges), len(tools),
        )
        return tools[: self._config.max_items]


def _extract_edges(payload: Any) -> list[dict[str, Any]]:
    """Return post nodes, or [] if the response shape is unexpected."""
    try:
        edges = payload["data"]["posts"]["edges"]
    except (KeyError, TypeError):
        logger.warning("[producthunt] unexpected response shape")
        return []
    if not isinstance(edges, list):
        return []
    return [e["node"] for e in edges if isinstance(e, dict) and isinstance(e.get("node"), dict)]


def _topic_edges(node: dict[str, Any]) -> list[dict[str, Any]]:
    topics = (node.get("topics") or {}).get("edges") or []
    return [t.get("node") or {} for t in topics if isinstance(t, dict)]


def _is_ai_related(node: dict[str, Any]) -> bool:
    slugs = {t.get("slug") for t in _topic_edges(node)}
    if slugs & AI_TOPICS:
        return True
    text = f"{node.get('name') or ''} {node.get('tagline') or ''}"
    return bool(AI_KEYWORDS.search(text))


def _to_candidate(node: dict[str, Any]) -> Candidate | None:
    name = node.get("name")
    url = node.get("website") or node.get("url")
    if not name or not url:
        return None
    return Candidate(
        name=name,
        url=url,
        description=node.get("tagline") or None,
        logo_url=(node.get("thumbnail") or {}).get("url") or None,
        source="producthunt",
        source_url=node.get("url"),
        metadata={
            "votes": node.get("votesCount"),
            "categories": [t.get("name") for t in _topic_edges(node) if t.get("name")],
        },
    )
