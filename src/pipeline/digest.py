"""Daily digest: feature the day's best tool and upsert the digest row."""

import logging
import sqlite3
from datetime import date, datetime, time

from src.core.config import DigestConfig
from src.core.db import get_published_tools_since, set_featured, upsert_daily_digest
from src.core.schemas import DailyDigest

logger = logging.getLogger(__name__)


def build_daily_digest(
    conn: sqlite3.Connection,
    config: DigestConfig,
    today: date | None = None,
) -> DailyDigest | None:
    """Build (or rebuild) the digest for `today`.

    Returns None without touching the store when nothing was published
    since local midnight. Re-running on the same day overwrites the row.
    """
    day = today or date.today()
    tools = get_published_tools_since(conn, datetime.combine(day, time.min))
    if not tools:
        logger.info("No tools published on %s, skipping digest", day)
        return None

    featured = tools[0]
    set_featured(conn, featured["id"])

    count = len(tools)
    digest = DailyDigest(
        digest_date=day,
        title=config.title_template.format(count=count, featured=featured["name"]),
        summary=config.summary_template.format(count=count, featured=featured["name"]),
        featured_tool_id=featured["id"],
        tool_ids=[row["id"] for row in tools],
        tool_count=count,
    )
    upsert_daily_digest(conn, digest)
    logger.info("Digest for %s: %d tools, featured '%s'", day, count, featured["name"])
    return digest
