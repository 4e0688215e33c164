"""Build the enabled source adapters from settings."""

import httpx

from src.core.config import SourcesConfig
from src.sources.base import SourceAdapter
from src.sources.futurepedia import FuturepediaAdapter
from src.sources.producthunt import ProductHuntAdapter
from src.sources.rss import RssAdapter
from src.sources.theresanaiforthat import TheresAnAIAdapter


def build_adapters(config: SourcesConfig, client: httpx.AsyncClient) -> list[SourceAdapter]:
    """Return adapters for every enabled source, sharing one HTTP client."""
    adapters: list[SourceAdapter] = []
    if config.producthunt.enabled:
        adapters.append(ProductHuntAdapter(client, config.producthunt))
    if config.theresanaiforthat.enabled:
        adapters.append(TheresAnAIAdapter(client, config.theresanaiforthat))
    if config.futurepedia.enabled:
        adapters.append(FuturepediaAdapter(client, config.futurepedia))
    if config.rss.enabled:
        adapters.append(RssAdapter(client, config.rss))
    return adapters
