"""Core data models for the AI tools collector."""

from datetime import date, datetime
from typing import Any, Literal, get_args

from pydantic import BaseModel, ConfigDict, Field

SourceName = Literal["producthunt", "theresanaiforthat", "futurepedia", "rss", "manual"]
PricingType = Literal["free", "freemium", "paid", "contact"]
RunStatus = Literal["running", "success", "partial", "failed"]

SOURCE_NAMES: tuple[str, ...] = get_args(SourceName)

VALID_CATEGORY_SLUGS: tuple[str, ...] = (
    "image-generation",
    "text-generation",
    "coding",
    "video-generation",
    "audio",
    "document",
    "marketing",
    "data-analysis",
    "design",
    "productivity",
    "search-research",
    "chatbot",
    "education",
    "other",
)

VALID_PRICING_TYPES: tuple[str, ...] = ("free", "freemium", "paid", "contact")


class Candidate(BaseModel):
    """A not-yet-validated tool discovered by a source adapter.

    Frozen: enrichment wraps it in EnrichedCandidate instead of mutating it.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    url: str
    description: str | None = None
    logo_url: str | None = None
    source: SourceName
    source_url: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class EnrichedCandidate(BaseModel):
    """A Candidate paired with its classification result."""

    model_config = ConfigDict(frozen=True)

    candidate: Candidate
    summary: str
    category_slug: str = "other"
    tags: list[str] = Field(default_factory=list, max_length=5)
    pricing_type: PricingType = "free"
    pricing_detail: str | None = None
    score: float = Field(default=3.0, ge=1.0, le=5.0)


class DedupBreakdown(BaseModel):
    """Per-rule duplicate counters."""

    url_duplicates: int = 0
    name_duplicates: int = 0
    batch_duplicates: int = 0

    @property
    def total(self) -> int:
        return self.url_duplicates + self.name_duplicates + self.batch_duplicates


class DedupResult(BaseModel):
    """Output of one deduplication pass."""

    accepted: list[Candidate]
    duplicate_count: int
    breakdown: DedupBreakdown


class DailyDigest(BaseModel):
    """One digest row per calendar date."""

    digest_date: date
    title: str
    summary: str
    featured_tool_id: int
    tool_ids: list[int]
    tool_count: int
    is_published: bool = True


class PushSubscription(BaseModel):
    """A browser push subscription as stored."""

    id: int
    endpoint: str
    p256dh: str
    auth: str
    is_active: bool = True


class NotificationOverride(BaseModel):
    """Optional operator-supplied replacement for the push payload fields."""

    title: str | None = None
    body: str | None = None
    url: str | None = None

    def is_empty(self) -> bool:
        return not (self.title or self.body or self.url)


class PushSummary(BaseModel):
    """Counters for one dispatch pass."""

    sent: int = 0
    failed: int = 0
    expired: int = 0
    total: int = 0


class RunRecord(BaseModel):
    """Audit row for one pipeline execution."""

    id: int
    source: str
    status: RunStatus
    tools_found: int = 0
    tools_saved: int = 0
    details: dict[str, Any] | None = None
    started_at: datetime
    completed_at: datetime | None = None
