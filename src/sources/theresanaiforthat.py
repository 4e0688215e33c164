"""There's An AI For That adapter: newest-tools listing page."""

import json
import logging

import httpx
from bs4 import BeautifulSoup

from src.core.config import TheresAnAIConfig
from src.core.schemas import Candidate
from src.sources.base import (
    SourceAdapter,
    absolutize,
    fetch_text,
    run_strategies,
    text_field,
)

logger = logging.getLogger(__name__)

TAAFT_BASE = "https://theresanaiforthat.com"

_NAME_TAGS = ["h2", "h3", "h4", "strong"]


class TheresAnAIAdapter(SourceAdapter):
    """Parses the TAAFT 'new' page via JSON-LD, falling back to tool links."""

    def __init__(self, client: httpx.AsyncClient, config: TheresAnAIConfig) -> None:
        self._client = client
        self._config = config

    @property
    def source_id(self) -> str:
        return "theresanaiforthat"

    async def fetch(self) -> list[Candidate]:
        html = await fetch_text(self._client, self._config.url, label="TAAFT")
        tools = parse_listing(html)
        logger.info("[theresanaiforthat] parsed %d tools", len(tools))
        return tools[: self._config.max_items]


def parse_listing(html: str) -> list[Candidate]:
    return run_strategies(
        html,
        (("json-ld", _parse_json_ld), ("tool-links", _parse_tool_links)),
        source="theresanaiforthat",
    )


def _parse_json_ld(html: str) -> list[Candidate]:
    soup = BeautifulSoup(html, "html.parser")
    tools: list[Candidate] = []
    for script in soup.find_all("script", type="application/ld+json"):
        try:
            data = json.loads(script.string or "")
        except ValueError:
            continue
        blocks = data if isinstance(data, list) else [data]
        for block in blocks:
            if not isinstance(block, dict) or block.get("@type") != "ItemList":
                continue
            elements = block.get("itemListElement")
            if not isinstance(elements, list):
                continue
            for element in elements:
                if not isinstance(element, dict):
                    continue
                thing = element.get("item") if isinstance(element.get("item"), dict) else element
                name, url = thing.get("name"), thing.get("url")
                if not isinstance(name, str) or not isinstance(url, str) or not name or not url:
                    continue
                full_url = absolutize(url, TAAFT_BASE)
                image = thing.get("image")
                tools.append(Candidate(
                    name=name.strip(),
                    url=full_url,
                    description=text_field(thing.get("description")),
                    logo_url=image if isinstance(image, str) and image else None,
                    source="theresanaiforthat",
                    source_url=full_url,
                ))
    return tools


def _parse_tool_links(html: str) -> list[Candidate]:
    soup = BeautifulSoup(html, "html.parser")
    seen: set[str] = set()
    tools: list[Candidate] = []
    for link in soup.select('a[href^="/ai/"]'):
        href = link.get("href", "")
        if href in seen:
            continue
        seen.add(href)

        name_el = link.find(_NAME_TAGS)
        if name_el is not None:
            name = name_el.get_text(" ", strip=True)
        else:
            lines = [ln.strip() for ln in link.get_text("\n").splitlines() if ln.strip()]
            name = lines[0] if lines else ""
        if len(name) < 2 or len(name) > 100:
            continue

        desc_el = link.find("p")
        img_el = link.find("img")
        full_url = absolutize(href, TAAFT_BASE)
        tools.append(Candidate(
            name=name,
            url=full_url,
            description=desc_el.get_text(" ", strip=True) if desc_el is not None else None,
            logo_url=img_el.get("src") if img_el is not None else None,
            source="theresanaiforthat",
            source_url=full_url,
        ))
    return tools
