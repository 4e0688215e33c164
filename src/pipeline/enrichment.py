"""LLM-assisted classification of accepted candidates.

Every candidate comes out enriched: when the provider keeps failing, a
deterministic fallback built from the candidate's own fields is used and
the error is recorded under the candidate's name. The output count always
equals the input count.
"""

import asyncio
import json
import logging
import re
from typing import Any

from src.core.config import EnrichmentConfig
from src.core.schemas import (
    VALID_CATEGORY_SLUGS,
    VALID_PRICING_TYPES,
    Candidate,
    EnrichedCandidate,
)
from src.llm import get_provider
from src.llm.base import LLMProvider, ProviderError

logger = logging.getLogger(__name__)

DEFAULT_SCORE = 3.0
FALLBACK_TAGS = ["ai", "new"]
MAX_TAGS = 5
MIN_SUMMARY_LENGTH = 10


class ResponseParseError(ValueError):
    """The provider answered but no usable JSON object could be read."""


_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)
_BARE_JSON = re.compile(r"\{.*\}", re.DOTALL)


def _system_prompt(language: str) -> str:
    return (
        "You are an editor for a daily digest of newly launched AI tools.\n\n"
        "Given one tool, classify it and write a short summary for readers.\n\n"
        f"Category slug, exactly one of: {', '.join(VALID_CATEGORY_SLUGS)}\n"
        f"Pricing type, exactly one of: {', '.join(VALID_PRICING_TYPES)}\n"
        "Score from 1.0 to 5.0 for how useful and novel the tool looks:\n"
        "  5: category-defining, broadly useful\n"
        "  4: clearly useful with a distinct angle\n"
        "  3: solid but ordinary\n"
        "  2: narrow or thin\n"
        "  1: unclear or not really an AI tool\n\n"
        f"Write the summary in {language}, 1-2 sentences.\n"
        "Give up to 5 short lowercase tags.\n\n"
        "Return ONLY a JSON object (no explanation):\n"
        '{"summary": "<text>", "category_slug": "<slug>", "tags": ["<tag>"], '
        '"pricing_type": "<type>", "pricing_detail": "<text or null>", "score": <number>}'
    )


def _build_user_prompt(candidate: Candidate) -> str:
    """Assemble the per-tool prompt from the candidate's fields."""
    lines = [
        "AI TOOL",
        f"Name: {candidate.name}",
        f"URL: {candidate.url}",
        f"Source: {candidate.source}",
    ]
    if candidate.description:
        lines.append(f"Description: {candidate.description[:500]}")

    meta = candidate.metadata
    if meta.get("votes") is not None:
        lines.append(f"Votes: {meta['votes']}")
    categories = meta.get("categories")
    if isinstance(categories, list) and categories:
        lines.append(f"Categories: {', '.join(str(c) for c in categories)}")
    elif isinstance(categories, str) and categories:
        lines.append(f"Categories: {categories}")
    if meta.get("pricing"):
        lines.append(f"Pricing: {meta['pricing']}")
    return "\n".join(lines) + "\n"


def _extract_json(raw_text: str) -> dict[str, Any]:
    """Pull the JSON object out of a fenced or bare response.

    Raises ResponseParseError when no object can be parsed.
    """
    match = _FENCED_JSON.search(raw_text) or _BARE_JSON.search(raw_text)
    if match is None:
        msg = "No JSON object in classification response"
        raise ResponseParseError(msg)
    snippet = match.group(1) if match.re is _FENCED_JSON else match.group(0)
    try:
        data = json.loads(snippet)
    except json.JSONDecodeError as e:
        msg = f"Failed to parse classification response as JSON: {e}"
        raise ResponseParseError(msg) from e
    if not isinstance(data, dict):
        msg = "Classification response is not a JSON object"
        raise ResponseParseError(msg)
    return data


def _coerce_score(value: Any) -> float:
    try:
        score = float(value)
    except (TypeError, ValueError):
        return DEFAULT_SCORE
    if score != score:  # NaN
        return DEFAULT_SCORE
    return round(max(1.0, min(5.0, score)), 1)


def validate_classification(candidate: Candidate, data: dict[str, Any]) -> EnrichedCandidate:
    """Repair an untrusted classification into a valid EnrichedCandidate."""
    category = data.get("category_slug")
    if category not in VALID_CATEGORY_SLUGS:
        category = "other"

    pricing = data.get("pricing_type")
    if pricing not in VALID_PRICING_TYPES:
        pricing = "free"

    raw_tags = data.get("tags")
    tags: list[str] = []
    if isinstance(raw_tags, list):
        tags = [t for t in raw_tags if isinstance(t, str)][:MAX_TAGS]

    summary = data.get("summary")
    if not isinstance(summary, str) or len(summary) <= MIN_SUMMARY_LENGTH:
        summary = candidate.description or f"{candidate.name} - AI tool"

    detail = data.get("pricing_detail")
    return EnrichedCandidate(
        candidate=candidate,
        summary=summary,
        category_slug=category,
        tags=tags,
        pricing_type=pricing,
        pricing_detail=detail if isinstance(detail, str) and detail else None,
        score=_coerce_score(data.get("score")),
    )


def build_fallback(candidate: Candidate) -> EnrichedCandidate:
    """Deterministic enrichment from the candidate alone, no external call."""
    if candidate.description:
        summary = f"{candidate.name}: {candidate.description[:100]}"
    else:
        summary = f"{candidate.name} - newly launched AI tool."
    return EnrichedCandidate(
        candidate=candidate,
        summary=summary,
        category_slug="other",
        tags=list(FALLBACK_TAGS),
        pricing_type="free",
        score=DEFAULT_SCORE,
    )


async def classify_candidate(
    candidate: Candidate,
    provider: LLMProvider,
    config: EnrichmentConfig,
) -> tuple[EnrichedCandidate, str | None]:
    """Classify one candidate with bounded retries.

    Returns the enriched candidate and, when the fallback was used, the last
    error message. Never raises.
    """
    system = _system_prompt(config.summary_language)
    prompt = _build_user_prompt(candidate)
    attempts = config.max_retries + 1
    last_error: str | None = None
    skip_backoff = False

    for attempt in range(1, attempts + 1):
        if attempt > 1 and not skip_backoff:
            await asyncio.sleep(config.retry_base_delay * (attempt - 1))
        skip_backoff = False
        try:
            raw = await provider.complete(
                prompt, model=config.model, system=system, timeout=config.timeout_seconds,
            )
            return validate_classification(candidate, _extract_json(raw)), None
        except ProviderError as e:
            last_error = str(e)
            if e.is_rate_limited:
                delay = e.retry_after if e.retry_after is not None else config.rate_limit_delay
                logger.info(
                    "Rate limited classifying '%s', waiting %.1fs (attempt %d/%d)",
                    candidate.name, delay, attempt, attempts,
                )
                if attempt < attempts:
                    await asyncio.sleep(delay)
                    skip_backoff = True
                continue
            if not e.is_transient:
                logger.warning(
                    "Classification of '%s' failed permanently (%s), using fallback",
                    candidate.name, e.status_code,
                )
                break
            logger.info(
                "Transient error classifying '%s' (attempt %d/%d): %s",
                candidate.name, attempt, attempts, e,
            )
        except ResponseParseError as e:
            last_error = str(e)
            logger.info(
                "Unparsable classification for '%s' (attempt %d/%d): %s",
                candidate.name, attempt, attempts, e,
            )
        except Exception as e:
            last_error = repr(e)
            logger.warning(
                "Unexpected error classifying '%s', using fallback",
                candidate.name, exc_info=True,
            )
            break

    logger.warning("Using fallback enrichment for '%s'", candidate.name)
    return build_fallback(candidate), last_error or "classification failed"


class EnrichmentResult:
    """Enriched candidates in input order plus per-candidate errors."""

    def __init__(self, enriched: list[EnrichedCandidate], errors: dict[str, str]) -> None:
        self.enriched = enriched
        self.errors = errors


async def enrich_candidates(
    candidates: list[Candidate],
    config: EnrichmentConfig,
    provider: LLMProvider | None = None,
) -> EnrichmentResult:
    """Classify candidates in concurrent groups with a cooldown between groups."""
    if not candidates:
        return EnrichmentResult([], {})
    if provider is None:
        provider = get_provider(config.provider)

    enriched: list[EnrichedCandidate] = []
    errors: dict[str, str] = {}
    size = config.batch_size

    for start in range(0, len(candidates), size):
        if start > 0 and config.batch_delay > 0:
            await asyncio.sleep(config.batch_delay)
        group = candidates[start:start + size]
        results = await asyncio.gather(
            *(classify_candidate(c, provider, config) for c in group),
        )
        for candidate, (item, error) in zip(group, results):
            enriched.append(item)
            if error is not None:
                errors[candidate.name] = error

    logger.info(
        "Enrichment: %d classified, %d fell back", len(enriched), len(errors),
    )
    return EnrichmentResult(enriched, errors)
