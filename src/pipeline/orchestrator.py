"""Orchestrator: wires sources, dedup, enrichment, persistence, and digest.

Data flow:
  1. Open run record (running)
  2. All source adapters concurrently -> raw candidates
  3. Dedup against recent history and the batch
  4. Enrichment (never raises, falls back per candidate)
  5. DB insert, one tool at a time
  6. Daily digest
  7. Post-conditions: site revalidation, push notification
  8. Close run record (success | partial | failed)

Stage errors are collected under prefixed keys (source_, save_, post_,
"enrichment" for a skipped classifier, and the candidate name for a
fallback) and end up in the run record's details.
The run record is only ever closed here.
"""

import asyncio
import logging
import os
import sqlite3
import time
from typing import Any

import httpx

from src.core.config import Settings
from src.core.db import create_run, finish_run, get_recent_tools
from src.core.schemas import Candidate, EnrichedCandidate, NotificationOverride, PushSummary
from src.llm import get_provider
from src.llm.base import LLMProvider
from src.pipeline.dedup import deduplicate
from src.pipeline.digest import build_daily_digest
from src.pipeline.enrichment import enrich_candidates
from src.pipeline.persistence import save_tools
from src.pipeline.post_conditions import revalidate_site
from src.push.dispatcher import send_daily_push
from src.sources.base import SourceAdapter
from src.sources.registry import build_adapters

logger = logging.getLogger(__name__)

RUN_SOURCE = "collect-ai-tools"


class CollectionResult:
    """Summary of one collection run."""

    def __init__(self, run_id: int) -> None:
        self.run_id = run_id
        self.status = "running"
        self.tools_found = 0
        self.tools_saved = 0
        self.duplicates = 0
        self.source_stats: dict[str, int] = {}
        self.errors: dict[str, str] = {}
        self.enriched: list[EnrichedCandidate] = []
        self.push_summary: PushSummary | None = None
        self.duration_ms = 0
        self.fatal: str | None = None

    @property
    def ok(self) -> bool:
        return self.status in ("success", "partial")


async def collect_from_sources(
    adapters: list[SourceAdapter],
) -> tuple[list[Candidate], dict[str, int], dict[str, str]]:
    """Run every adapter concurrently; one failing never cancels the others."""
    results = await asyncio.gather(*(a.fetch() for a in adapters), return_exceptions=True)
    raw: list[Candidate] = []
    stats: dict[str, int] = {}
    errors: dict[str, str] = {}
    for adapter, result in zip(adapters, results):
        name = adapter.source_id
        if isinstance(result, BaseException):
            errors[f"source_{name}"] = str(result) or type(result).__name__
            stats[name] = 0
            logger.warning("Source '%s' failed: %s", name, result)
            continue
        raw.extend(result)
        stats[name] = len(result)
        logger.info("Source '%s': %d candidates", name, len(result))
    return raw, stats, errors


def _provider_ready(provider: LLMProvider) -> bool:
    env_var = provider.env_var
    return env_var is None or bool(os.environ.get(env_var))


async def _run_post_conditions(
    settings: Settings,
    conn: sqlite3.Connection,
    client: httpx.AsyncClient,
    result: CollectionResult,
    *,
    push: bool,
    override: NotificationOverride | None,
) -> None:
    """Each step is isolated; a failure is recorded, never raised."""
    try:
        await revalidate_site(client, settings.revalidate)
    except Exception as e:
        logger.warning("Site revalidation failed: %s", e)
        result.errors["post_revalidate"] = str(e)

    has_override = override is not None and not override.is_empty()
    if not push or not (result.tools_saved > 0 or has_override):
        return
    try:
        result.push_summary = await send_daily_push(conn, client, settings.push, override)
    except Exception as e:
        logger.warning("Push dispatch failed: %s", e, exc_info=True)
        result.errors["post_push"] = str(e)


async def run_collection(
    settings: Settings,
    conn: sqlite3.Connection,
    client: httpx.AsyncClient,
    *,
    adapters: list[SourceAdapter] | None = None,
    provider: LLMProvider | None = None,
    dry_run: bool = False,
    push: bool = True,
    override: NotificationOverride | None = None,
) -> CollectionResult:
    """Execute one full collection run.

    Never raises: an unexpected exception marks the run failed and is
    reported through the returned CollectionResult.
    """
    started = time.monotonic()
    result = CollectionResult(create_run(conn, RUN_SOURCE))
    dedup_details: dict[str, int] = {}

    try:
        if adapters is None:
            adapters = build_adapters(settings.sources, client)
        raw, result.source_stats, source_errors = await collect_from_sources(adapters)
        result.errors.update(source_errors)
        result.tools_found = len(raw)
        logger.info("Collected %d raw candidates", len(raw))

        recent = get_recent_tools(conn, settings.dedup.history_window)
        history = [(row["name"], row["url"]) for row in recent]
        dedup = deduplicate(raw, history, settings.dedup.name_similarity_threshold)
        result.duplicates = dedup.duplicate_count
        dedup_details = dedup.breakdown.model_dump()

        if provider is None:
            provider = get_provider(settings.enrichment.provider)
        if dedup.accepted and not _provider_ready(provider):
            logger.warning("%s not set, skipping enrichment", provider.env_var)
            result.errors["enrichment"] = (
                f"{provider.env_var} not set, {len(dedup.accepted)} candidates skipped"
            )
        elif dedup.accepted:
            enrichment = await enrich_candidates(dedup.accepted, settings.enrichment, provider)
            result.enriched = enrichment.enriched
            result.errors.update(enrichment.errors)

        if dry_run:
            logger.info("Dry run: %d tools would be saved", len(result.enriched))
        else:
            saved = save_tools(conn, result.enriched, settings.persistence)
            result.tools_saved = len(saved.saved_ids)
            result.errors.update({f"save_{name}": err for name, err in saved.errors.items()})

            build_daily_digest(conn, settings.digest)
            await _run_post_conditions(
                settings, conn, client, result, push=push, override=override,
            )

        result.status = "partial" if result.errors else "success"
        result.duration_ms = int((time.monotonic() - started) * 1000)
        finish_run(
            conn,
            result.run_id,
            result.status,
            tools_found=result.tools_found,
            tools_saved=result.tools_saved,
            details=_details(result, dedup_details),
        )
    except Exception as e:
        logger.exception("Collection run %d failed", result.run_id)
        result.status = "failed"
        result.fatal = str(e) or type(e).__name__
        result.duration_ms = int((time.monotonic() - started) * 1000)
        finish_run(
            conn,
            result.run_id,
            "failed",
            tools_found=result.tools_found,
            tools_saved=result.tools_saved,
            details={
                "fatal": result.fatal,
                "errors": result.errors,
                "duration_ms": result.duration_ms,
            },
        )

    logger.info(
        "Run %d %s: %d found, %d saved, %d duplicates, %d errors (%d ms)",
        result.run_id, result.status, result.tools_found, result.tools_saved,
        result.duplicates, len(result.errors), result.duration_ms,
    )
    return result


def _details(result: CollectionResult, dedup_details: dict[str, int]) -> dict[str, Any]:
    details: dict[str, Any] = {
        "duplicates": result.duplicates,
        "dedup_details": dedup_details,
        "source_stats": result.source_stats,
        "errors": result.errors or None,
        "duration_ms": result.duration_ms,
    }
    if result.push_summary is not None:
        details["push"] = result.push_summary.model_dump()
    return details
