"""Configuration models and YAML loader for the AI tools collector."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator


class SourceConfig(BaseModel):
    """Settings shared by every source adapter."""

    enabled: bool = True
    url: str = ""
    max_items: int = Field(default=30, ge=1, le=200)


class ProductHuntConfig(SourceConfig):
    """Product Hunt GraphQL source."""

    url: str = "https://api.producthunt.com/v2/api/graphql"
    token_env: str = "PRODUCTHUNT_TOKEN"
    lookback_hours: int = Field(default=24, ge=1)
    page_size: int = Field(default=50, ge=1, le=100)


class TheresAnAIConfig(SourceConfig):
    """There's An AI For That listing page."""

    url: str = "https://theresanaiforthat.com/new/"


class FuturepediaConfig(SourceConfig):
    """Futurepedia listing page."""

    url: str = "https://www.futurepedia.io/ai-tools?sort=new"


class FeedConfig(BaseModel):
    """A single RSS/Atom feed."""

    name: str
    url: str


def _default_feeds() -> list[FeedConfig]:
    return [
        FeedConfig(name="MarkTechPost", url="https://www.marktechpost.com/feed/"),
        FeedConfig(name="AI News", url="https://www.artificialintelligence-news.com/feed/"),
        FeedConfig(
            name="TechCrunch AI",
            url="https://techcrunch.com/category/artificial-intelligence/feed/",
        ),
    ]


class RssConfig(SourceConfig):
    """Syndication feeds, unioned into one source."""

    feeds: list[FeedConfig] = Field(default_factory=_default_feeds)
    max_age_hours: int = Field(default=48, ge=1)


class SourcesConfig(BaseModel):
    """All source adapters plus shared HTTP settings."""

    timeout_seconds: float = Field(default=20.0, gt=0)
    producthunt: ProductHuntConfig = Field(default_factory=ProductHuntConfig)
    theresanaiforthat: TheresAnAIConfig = Field(default_factory=TheresAnAIConfig)
    futurepedia: FuturepediaConfig = Field(default_factory=FuturepediaConfig)
    rss: RssConfig = Field(default_factory=RssConfig)


class DedupConfig(BaseModel):
    """Duplicate detection tuning."""

    history_window: int = Field(default=500, ge=1)
    name_similarity_threshold: float = Field(default=0.85, gt=0.0, le=1.0)


class EnrichmentConfig(BaseModel):
    """Classification call, retry policy, and batching."""

    provider: str = "anthropic"
    model: str | None = None
    summary_language: str = "Korean"
    max_retries: int = Field(default=2, ge=0, le=10)
    retry_base_delay: float = Field(default=1.5, ge=0.0)
    rate_limit_delay: float = Field(default=3.0, ge=0.0)
    timeout_seconds: float = Field(default=30.0, gt=0)
    batch_size: int = Field(default=5, ge=1)
    batch_delay: float = Field(default=0.3, ge=0.0)


class PersistenceConfig(BaseModel):
    """Tool insert behavior."""

    slug_max_length: int = Field(default=80, ge=8)
    publish_on_insert: bool = True


class DigestConfig(BaseModel):
    """Daily digest text templates.

    Templates are rendered with ``count`` and ``featured`` placeholders.
    """

    title_template: str = "Today's AI tools: {count} picks"
    summary_template: str = "{count} new AI tools discovered. Today's pick: {featured}"


class PushConfig(BaseModel):
    """Web Push delivery settings. Keys come from the environment."""

    enabled: bool = True
    private_key_env: str = "VAPID_PRIVATE_KEY"
    public_key_env: str = "VAPID_PUBLIC_KEY"
    subject: str = "mailto:admin@ai-tools-daily.com"
    token_ttl_hours: int = Field(default=12, ge=1, le=24)
    ttl_seconds: int = Field(default=86400, ge=0)
    urgency: str = "normal"
    batch_size: int = Field(default=10, ge=1)
    timeout_seconds: float = Field(default=10.0, gt=0)
    encrypt_payload: bool = True
    default_title: str = "AI Tools Daily"
    default_body: str = "{count} new AI tools arrived today!"
    default_url: str = "/"

    @field_validator("subject")
    @classmethod
    def subject_is_contact(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith(("mailto:", "https://")):
            msg = "subject must be a mailto: or https:// contact"
            raise ValueError(msg)
        return v

    @field_validator("urgency")
    @classmethod
    def urgency_allowed(cls, v: str) -> str:
        allowed = {"very-low", "low", "normal", "high"}
        if v not in allowed:
            msg = f"urgency must be one of {sorted(allowed)}, got '{v}'"
            raise ValueError(msg)
        return v


class RevalidateConfig(BaseModel):
    """Cache invalidation hook on the content site (skipped when url is empty)."""

    url: str = ""
    token_env: str = "REVALIDATE_SECRET"
    max_attempts: int = Field(default=2, ge=1, le=5)
    timeout_seconds: float = Field(default=10.0, gt=0)


class DatabaseConfig(BaseModel):
    """Database configuration."""

    path: str = "data/ai_tools.db"


class Settings(BaseModel):
    """Top-level settings loaded from YAML."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    sources: SourcesConfig = Field(default_factory=SourcesConfig)
    dedup: DedupConfig = Field(default_factory=DedupConfig)
    enrichment: EnrichmentConfig = Field(default_factory=EnrichmentConfig)
    persistence: PersistenceConfig = Field(default_factory=PersistenceConfig)
    digest: DigestConfig = Field(default_factory=DigestConfig)
    push: PushConfig = Field(default_factory=PushConfig)
    revalidate: RevalidateConfig = Field(default_factory=RevalidateConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        path = Path(path)
        if not path.exists():
            msg = f"Config file not found: {path}"
            raise FileNotFoundError(msg)
        raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
        return cls.model_validate(raw)
