"""Duplicate detection against recent history and the in-flight batch.

Policy, first match wins:
  1. normalized URL already in the history window  -> url duplicate
  2. normalized URL seen earlier in this batch      -> batch duplicate
  3. name similarity >= threshold vs history        -> name duplicate
  4. name similarity >= threshold vs earlier batch  -> batch duplicate

The history window is bounded (most recent N tools), so a tool that fell
out of the window can be collected again.
"""

import logging
import re
from collections.abc import Iterable
from urllib.parse import parse_qsl, urlencode, urlsplit

from src.core.schemas import Candidate, DedupBreakdown, DedupResult

logger = logging.getLogger(__name__)

# (name, url) of a previously stored tool.
HistoryEntry = tuple[str, str]

TRACKING_PARAMS = frozenset({
    "utm_source", "utm_medium", "utm_campaign", "utm_content", "utm_term",
    "ref", "source", "via", "from",
})

_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)
_NAME_SEPARATORS = re.compile(r"[.\-_]")
_STOP_WORDS = re.compile(r"\b(ai|app|tool|io|co|the|by)\b", re.ASCII)
_NON_WORD = re.compile(r"[^a-z0-9가-힣\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_url(url: str) -> str:
    """Reduce a URL to ``host+path[?query]`` for comparison.

    Idempotent: a normalized value normalizes to itself.
    """
    raw = url.strip()
    candidate = raw if _SCHEME_RE.match(raw) else f"http://{raw}"
    try:
        parts = urlsplit(candidate)
        host = (parts.hostname or "").lower()
    except ValueError:
        return _fallback_normalize(raw)
    if not host:
        return _fallback_normalize(raw)

    while host.startswith("www."):
        host = host[4:]
    path = parts.path.rstrip("/").lower()
    query_pairs = [
        (k, v)
        for k, v in parse_qsl(parts.query, keep_blank_values=True)
        if k.lower() not in TRACKING_PARAMS
    ]
    query = urlencode(query_pairs)
    return f"{host}{path}?{query}" if query else f"{host}{path}"


def _fallback_normalize(url: str) -> str:
    value = _SCHEME_RE.sub("", url.strip())
    while value.lower().startswith("www."):
        value = value[4:]
    return value.rstrip("/").lower()


def normalize_name(name: str) -> str:
    value = _NAME_SEPARATORS.sub(" ", name.lower())
    value = _STOP_WORDS.sub("", value)
    value = _NON_WORD.sub("", value)
    return _WHITESPACE.sub(" ", value).strip()


def levenshtein(a: str, b: str) -> int:
    """Edit distance with two rolling rows."""
    if a == b:
        return 0
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (ca != cb),
            ))
        previous = current
    return previous[-1]


def name_similarity(a: str, b: str) -> float:
    """Similarity in [0, 1] between two already-normalized names."""
    if a == b:
        return 1.0
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1.0 - levenshtein(a, b) / longest


def _matches_any(name: str, others: Iterable[str], threshold: float) -> bool:
    # Names that normalize to "" (e.g. "AI Tool") carry no signal. They never
    # match, although name_similarity("", "") is 1.0.
    if not name:
        return False
    return any(other and name_similarity(name, other) >= threshold for other in others)


def deduplicate(
    candidates: list[Candidate],
    history: Iterable[HistoryEntry],
    threshold: float = 0.85,
) -> DedupResult:
    """Split candidates into accepted ones and counted duplicates."""
    history_urls: set[str] = set()
    history_names: list[str] = []
    for name, url in history:
        history_urls.add(normalize_url(url))
        normalized = normalize_name(name)
        if normalized:
            history_names.append(normalized)

    seen_urls: set[str] = set()
    seen_names: list[str] = []
    breakdown = DedupBreakdown()
    accepted: list[Candidate] = []

    for c in candidates:
        url_key = normalize_url(c.url)
        name_key = normalize_name(c.name)

        if url_key in history_urls:
            breakdown.url_duplicates += 1
            logger.debug("Dedup: '%s' url already stored", c.name)
            continue
        if url_key in seen_urls:
            breakdown.batch_duplicates += 1
            logger.debug("Dedup: '%s' url repeated in batch", c.name)
            continue
        if _matches_any(name_key, history_names, threshold):
            breakdown.name_duplicates += 1
            logger.debug("Dedup: '%s' name similar to a stored tool", c.name)
            continue
        if _matches_any(name_key, seen_names, threshold):
            breakdown.batch_duplicates += 1
            logger.debug("Dedup: '%s' name similar to a batch item", c.name)
            continue

        seen_urls.add(url_key)
        if name_key:
            seen_names.append(name_key)
        accepted.append(c)

    logger.info(
        "Dedup: %d in, %d accepted, %d duplicates (url=%d name=%d batch=%d)",
        len(candidates), len(accepted), breakdown.total,
        breakdown.url_duplicates, breakdown.name_duplicates, breakdown.batch_duplicates,
    )
    return DedupResult(accepted=accepted, duplicate_count=breakdown.total, breakdown=breakdown)
