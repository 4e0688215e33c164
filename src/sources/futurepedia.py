"""Futurepedia adapter: Next.js page data first, tool links as fallback."""

import json
import logging
import re
from typing import Any

import httpx
from bs4 import BeautifulSoup

from src.core.config import FuturepediaConfig
from src.core.schemas import Candidate
from src.sources.base import (
    SourceAdapter,
    absolutize,
    fetch_text,
    first_field,
    run_strategies,
    text_field,
)

logger = logging.getLogger(__name__)

FUTUREPEDIA_BASE = "https://www.futurepedia.io"

# Where the tool list has lived inside pageProps, newest layout first.
_LIST_PATHS: tuple[tuple[str, ...], ...] = (
    ("tools",),
    ("initialTools",),
    ("aiTools",),
    ("data", "tools"),
)

NAME_FIELDS = ("toolName", "name", "title")
URL_FIELDS = ("toolUrl", "websiteUrl", "url", "link")
DESCRIPTION_FIELDS = ("toolShortDescription", "shortDescription", "description")
LOGO_FIELDS = ("toolImage", "logo", "image", "favicon")
CATEGORY_FIELDS = ("toolCategories", "categories")
PRICING_FIELDS = ("pricing", "pricingModel")

_NAME_CLASS = re.compile(r"name|title")


class FuturepediaAdapter(SourceAdapter):
    """Parses the Futurepedia newest-tools page."""

    def __init__(self, client: httpx.AsyncClient, config: FuturepediaConfig) -> None:
        self._client = client
        self._config = config

    @property
    def source_id(self) -> str:
        return "futurepedia"

    async def fetch(self) -> list[Candidate]:
        html = await fetch_text(self._client, self._config.url, label="Futurepedia")
        tools = parse_listing(html, self._config.max_items)
        logger.info("[futurepedia] parsed %d tools", len(tools))
        return tools[: self._config.max_items]


def parse_listing(html: str, max_items: int = 30) -> list[Candidate]:
    return run_strategies(
        html,
        (
            ("next-data", lambda doc: _parse_next_data(doc, max_items)),
            ("tool-links", _parse_tool_links),
        ),
        source="futurepedia",
    )


def _find_tool_list(page_props: dict[str, Any]) -> list[Any]:
    for path in _LIST_PATHS:
        node: Any = page_props
        for key in path:
            node = node.get(key) if isinstance(node, dict) else None
        if isinstance(node, list) and node:
            return node
    return []


def _source_url(item: dict[str, Any]) -> str | None:
    if item.get("futurepediaUrl"):
        return absolutize(str(item["futurepediaUrl"]), FUTUREPEDIA_BASE)
    if item.get("slug"):
        return f"{FUTUREPEDIA_BASE}/tool/{item['slug']}"
    return None


def _parse_next_data(html: str, max_items: int) -> list[Candidate]:
    soup = BeautifulSoup(html, "html.parser")
    script = soup.find("script", id="__NEXT_DATA__")
    if script is None or not script.string:
        return []
    data = json.loads(script.string)
    page_props = (data.get("props") or {}).get("pageProps") or {}
    if not isinstance(page_props, dict):
        return []

    tools: list[Candidate] = []
    for item in _find_tool_list(page_props)[:max_items]:
        if not isinstance(item, dict):
            continue
        name = first_field(item, NAME_FIELDS)
        url = first_field(item, URL_FIELDS)
        if not isinstance(name, str) or not isinstance(url, str):
            continue
        logo = first_field(item, LOGO_FIELDS)
        tools.append(Candidate(
            name=name.strip(),
            url=url,
            description=text_field(first_field(item, DESCRIPTION_FIELDS)),
            logo_url=logo if isinstance(logo, str) else None,
            source="futurepedia",
            source_url=_source_url(item),
            metadata={
                "categories": first_field(item, CATEGORY_FIELDS) or [],
                "pricing": first_field(item, PRICING_FIELDS),
            },
        ))
    return tools


def _parse_tool_links(html: str) -> list[Candidate]:
    soup = BeautifulSoup(html, "html.parser")
    seen: set[str] = set()
    tools: list[Candidate] = []
    for link in soup.select('a[href^="/tool/"]'):
        href = link.get("href", "")
        if href in seen:
            continue
        seen.add(href)

        name_el = link.find(["h2", "h3", "h4", "span", "div"], class_=_NAME_CLASS)
        if name_el is None:
            name_el = link.find(["h2", "h3", "h4"])
        name = name_el.get_text(" ", strip=True) if name_el is not None else ""
        if len(name) < 2:
            continue

        desc_el = link.find("p")
        img_el = link.find("img")
        full_url = absolutize(href, FUTUREPEDIA_BASE)
        tools.append(Candidate(
            name=name,
            url=full_url,
            description=desc_el.get_text(" ", strip=True) if desc_el is not None else None,
            logo_url=img_el.get("src") if img_el is not None else None,
            source="futurepedia",
            source_url=full_url,
        ))
    return tools
