"""Slug generation, batch insert of enriched tools, and manual registration."""

import logging
import re
import sqlite3
import time

from src.core.config import PersistenceConfig
from src.core.db import insert_tool
from src.core.schemas import (
    VALID_CATEGORY_SLUGS,
    VALID_PRICING_TYPES,
    Candidate,
    EnrichedCandidate,
)

logger = logging.getLogger(__name__)

_SLUG_INVALID = re.compile(r"[^a-z0-9가-힣]+")
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def slugify(name: str, max_length: int = 80) -> str:
    """Lower-case, collapse non Latin/Hangul runs to '-', trim, truncate."""
    slug = _SLUG_INVALID.sub("-", name.lower()).strip("-")
    return slug[:max_length].rstrip("-") or "tool"


def to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


class SlugFactory:
    """Issues slugs with a strictly increasing time-derived suffix.

    The suffix is the current time in microseconds, bumped by one whenever the
    clock has not advanced, so two slugs from the same factory never collide
    even for identical names.
    """

    def __init__(self, max_length: int = 80) -> None:
        self._max_length = max_length
        self._last = 0

    def _next_token(self) -> str:
        now_us = time.time_ns() // 1000
        self._last = max(now_us, self._last + 1)
        return to_base36(self._last)

    def __call__(self, name: str) -> str:
        return f"{slugify(name, self._max_length)}-{self._next_token()}"


class SaveResult:
    """Row IDs of confirmed inserts plus per-tool failures."""

    def __init__(self, saved_ids: list[int], errors: dict[str, str]) -> None:
        self.saved_ids = saved_ids
        self.errors = errors


def save_tools(
    conn: sqlite3.Connection,
    enriched: list[EnrichedCandidate],
    config: PersistenceConfig,
    slug_factory: SlugFactory | None = None,
) -> SaveResult:
    """Insert each tool on its own; one failure never aborts the batch."""
    make_slug = slug_factory or SlugFactory(config.slug_max_length)
    saved_ids: list[int] = []
    errors: dict[str, str] = {}

    for item in enriched:
        name = item.candidate.name
        try:
            tool_id = insert_tool(
                conn, item, make_slug(name), published=config.publish_on_insert,
            )
        except sqlite3.Error as e:
            logger.warning("Failed to save '%s': %s", name, e)
            errors[name] = str(e)
            continue
        saved_ids.append(tool_id)

    logger.info("Saved %d/%d tools", len(saved_ids), len(enriched))
    return SaveResult(saved_ids, errors)


def add_manual_tool(
    conn: sqlite3.Connection,
    config: PersistenceConfig,
    *,
    name: str,
    url: str,
    summary: str | None = None,
    description: str | None = None,
    category: str | None = None,
    tags: list[str] | None = None,
    pricing: str | None = None,
    pricing_detail: str | None = None,
    score: float | None = None,
    logo_url: str | None = None,
    slug_factory: SlugFactory | None = None,
) -> int:
    """Register one tool by hand, bypassing sources and classification.

    Missing fields get the same defaults a fallback classification would.
    Raises ValueError on a missing name/url or an unknown category or
    pricing type; sqlite3.Error propagates.
    """
    name, url = name.strip(), url.strip()
    if not name or not url:
        msg = "name and url are required"
        raise ValueError(msg)
    category = category or "other"
    if category not in VALID_CATEGORY_SLUGS:
        msg = f"Unknown category '{category}'"
        raise ValueError(msg)
    pricing = pricing or "free"
    if pricing not in VALID_PRICING_TYPES:
        msg = f"Unknown pricing type '{pricing}'"
        raise ValueError(msg)

    enriched = EnrichedCandidate(
        candidate=Candidate(
            name=name,
            url=url,
            description=description or None,
            logo_url=logo_url or None,
            source="manual",
        ),
        summary=summary or f"{name} - new AI tool",
        category_slug=category,
        tags=(tags or [])[:5],
        pricing_type=pricing,  # type: ignore[arg-type]
        pricing_detail=pricing_detail or None,
        score=round(min(5.0, max(1.0, score)), 1) if score else 3.0,
    )
    make_slug = slug_factory or SlugFactory(config.slug_max_length)
    tool_id = insert_tool(conn, enriched, make_slug(name), published=True)
    logger.info("Manually added '%s' (id %d)", name, tool_id)
    return tool_id
