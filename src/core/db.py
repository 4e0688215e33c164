"""SQLite data-access layer for tools, digests, push subscriptions, and run logs.

Every function takes an explicit connection and commits its own write; no
write spans more than one table.
"""

import json
import sqlite3
from datetime import date, datetime
from pathlib import Path
from typing import Any

from src.core.schemas import (
    VALID_CATEGORY_SLUGS,
    DailyDigest,
    EnrichedCandidate,
    PushSubscription,
    RunRecord,
)

_CATEGORIES_TABLE = """
CREATE TABLE IF NOT EXISTS categories (
    id      INTEGER PRIMARY KEY AUTOINCREMENT,
    slug    TEXT NOT NULL UNIQUE,
    name    TEXT NOT NULL
);
"""

_TOOLS_TABLE = """
CREATE TABLE IF NOT EXISTS tools (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    name            TEXT    NOT NULL,
    slug            TEXT    NOT NULL UNIQUE,
    summary         TEXT    NOT NULL,
    description     TEXT,
    url             TEXT    NOT NULL,
    logo_url        TEXT,
    category_id     INTEGER REFERENCES categories(id),
    category_slug   TEXT    NOT NULL DEFAULT 'other',
    tags            TEXT    NOT NULL DEFAULT '[]',
    pricing_type    TEXT    NOT NULL DEFAULT 'free',
    pricing_detail  TEXT,
    score           REAL    NOT NULL DEFAULT 3.0,
    source          TEXT    NOT NULL,
    source_url      TEXT,
    launched_at     TEXT,
    is_published    INTEGER NOT NULL DEFAULT 1,
    is_featured     INTEGER NOT NULL DEFAULT 0,
    created_at      TEXT    NOT NULL,
    updated_at      TEXT    NOT NULL
);
"""

_DAILY_DIGESTS_TABLE = """
CREATE TABLE IF NOT EXISTS daily_digests (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    digest_date       TEXT    NOT NULL UNIQUE,
    title             TEXT    NOT NULL,
    summary           TEXT    NOT NULL,
    featured_tool_id  INTEGER REFERENCES tools(id),
    tool_ids          TEXT    NOT NULL DEFAULT '[]',
    tool_count        INTEGER NOT NULL DEFAULT 0,
    is_published      INTEGER NOT NULL DEFAULT 1,
    updated_at        TEXT    NOT NULL
);
"""

_PUSH_SUBSCRIPTIONS_TABLE = """
CREATE TABLE IF NOT EXISTS push_subscriptions (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    endpoint    TEXT    NOT NULL UNIQUE,
    p256dh      TEXT    NOT NULL,
    auth        TEXT    NOT NULL,
    is_active   INTEGER NOT NULL DEFAULT 1,
    created_at  TEXT    NOT NULL
);
"""

_AGENT_RUNS_TABLE = """
CREATE TABLE IF NOT EXISTS agent_runs (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    source        TEXT    NOT NULL,
    status        TEXT    NOT NULL,
    tools_found   INTEGER NOT NULL DEFAULT 0,
    tools_saved   INTEGER NOT NULL DEFAULT 0,
    details       TEXT,
    started_at    TEXT    NOT NULL,
    completed_at  TEXT
);
"""


def init_db(path: str | Path) -> sqlite3.Connection:
    """Create the database and tables, returning a connection.

    Also seeds the fixed category list so slug lookups always resolve.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute(_CATEGORIES_TABLE)
    conn.execute(_TOOLS_TABLE)
    conn.execute(_DAILY_DIGESTS_TABLE)
    conn.execute(_PUSH_SUBSCRIPTIONS_TABLE)
    conn.execute(_AGENT_RUNS_TABLE)
    conn.executemany(
        "INSERT OR IGNORE INTO categories (slug, name) VALUES (?, ?)",
        [(slug, slug.replace("-", " ").title()) for slug in VALID_CATEGORY_SLUGS],
    )
    conn.commit()
    return conn


# --- tools ---


def get_recent_tools(conn: sqlite3.Connection, limit: int = 500) -> list[sqlite3.Row]:
    """Return (name, url) of the most recently created tools, newest first."""
    return conn.execute(
        "SELECT name, url FROM tools ORDER BY created_at DESC, id DESC LIMIT ?",
        (limit,),
    ).fetchall()


def list_tools(
    conn: sqlite3.Connection,
    limit: int = 20,
    source: str | None = None,
) -> list[sqlite3.Row]:
    """Newest tools for operator listing, optionally from one source. Limit capped at 100."""
    limit = max(1, min(limit, 100))
    if source:
        return conn.execute(
            """
            SELECT id, name, slug, url, source, score, is_published, created_at
            FROM tools WHERE source = ? ORDER BY created_at DESC, id DESC LIMIT ?
            """,
            (source, limit),
        ).fetchall()
    return conn.execute(
        """
        SELECT id, name, slug, url, source, score, is_published, created_at
        FROM tools ORDER BY created_at DESC, id DESC LIMIT ?
        """,
        (limit,),
    ).fetchall()


def get_category_id(conn: sqlite3.Connection, slug: str) -> int | None:
    row = conn.execute("SELECT id FROM categories WHERE slug = ?", (slug,)).fetchone()
    return row["id"] if row is not None else None


def insert_tool(
    conn: sqlite3.Connection,
    enriched: EnrichedCandidate,
    slug: str,
    *,
    published: bool = True,
    now: datetime | None = None,
) -> int:
    """Insert one enriched tool and return its row ID.

    Raises sqlite3.Error on failure (e.g. slug collision); the caller decides
    whether that aborts anything.
    """
    c = enriched.candidate
    ts = (now or datetime.now()).isoformat()
    cursor = conn.execute(
        """
        INSERT INTO tools
            (name, slug, summary, description, url, logo_url, category_id,
             category_slug, tags, pricing_type, pricing_detail, score, source,
             source_url, launched_at, is_published, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            c.name,
            slug,
            enriched.summary,
            c.description,
            c.url,
            c.logo_url,
            get_category_id(conn, enriched.category_slug),
            enriched.category_slug,
            json.dumps(enriched.tags, ensure_ascii=False),
            enriched.pricing_type,
            enriched.pricing_detail,
            enriched.score,
            c.source,
            c.source_url,
            ts[:10],
            int(published),
            ts,
            ts,
        ),
    )
    conn.commit()
    return cursor.lastrowid or 0


def get_published_tools_since(
    conn: sqlite3.Connection,
    since: datetime,
) -> list[sqlite3.Row]:
    """Published tools created at or after `since`, highest score first."""
    return conn.execute(
        """
        SELECT id, name, score FROM tools
        WHERE created_at >= ? AND is_published = 1
        ORDER BY score DESC, id ASC
        """,
        (since.isoformat(),),
    ).fetchall()


def count_tools_since(conn: sqlite3.Connection, since: datetime) -> int:
    row = conn.execute(
        "SELECT COUNT(*) FROM tools WHERE created_at >= ?", (since.isoformat(),)
    ).fetchone()
    return int(row[0])


def count_published_tools(conn: sqlite3.Connection) -> int:
    row = conn.execute("SELECT COUNT(*) FROM tools WHERE is_published = 1").fetchone()
    return int(row[0])


def set_featured(conn: sqlite3.Connection, tool_id: int) -> None:
    conn.execute(
        "UPDATE tools SET is_featured = 1, updated_at = ? WHERE id = ?",
        (datetime.now().isoformat(), tool_id),
    )
    conn.commit()


# --- daily digests ---


def upsert_daily_digest(conn: sqlite3.Connection, digest: DailyDigest) -> None:
    """Insert the digest for its date, or overwrite the existing one."""
    conn.execute(
        """
        INSERT INTO daily_digests
            (digest_date, title, summary, featured_tool_id, tool_ids,
             tool_count, is_published, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(digest_date)
        DO UPDATE SET
            title = excluded.title,
            summary = excluded.summary,
            featured_tool_id = excluded.featured_tool_id,
            tool_ids = excluded.tool_ids,
            tool_count = excluded.tool_count,
            is_published = excluded.is_published,
            updated_at = excluded.updated_at
        """,
        (
            digest.digest_date.isoformat(),
            digest.title,
            digest.summary,
            digest.featured_tool_id,
            json.dumps(digest.tool_ids),
            digest.tool_count,
            int(digest.is_published),
            datetime.now().isoformat(),
        ),
    )
    conn.commit()


def get_daily_digest(conn: sqlite3.Connection, digest_date: date) -> DailyDigest | None:
    row = conn.execute(
        "SELECT * FROM daily_digests WHERE digest_date = ?",
        (digest_date.isoformat(),),
    ).fetchone()
    if row is None:
        return None
    return DailyDigest(
        digest_date=date.fromisoformat(row["digest_date"]),
        title=row["title"],
        summary=row["summary"],
        featured_tool_id=row["featured_tool_id"],
        tool_ids=json.loads(row["tool_ids"]),
        tool_count=row["tool_count"],
        is_published=bool(row["is_published"]),
    )


# --- push subscriptions ---


def upsert_subscription(
    conn: sqlite3.Connection,
    endpoint: str,
    p256dh: str,
    auth: str,
) -> None:
    """Store a subscription; an existing endpoint gets new keys and is reactivated."""
    conn.execute(
        """
        INSERT INTO push_subscriptions (endpoint, p256dh, auth, is_active, created_at)
        VALUES (?, ?, ?, 1, ?)
        ON CONFLICT(endpoint)
        DO UPDATE SET p256dh = excluded.p256dh, auth = excluded.auth, is_active = 1
        """,
        (endpoint, p256dh, auth, datetime.now().isoformat()),
    )
    conn.commit()


def deactivate_subscription_by_endpoint(conn: sqlite3.Connection, endpoint: str) -> bool:
    """Return True if a subscription with that endpoint existed."""
    cursor = conn.execute(
        "UPDATE push_subscriptions SET is_active = 0 WHERE endpoint = ?", (endpoint,)
    )
    conn.commit()
    return cursor.rowcount > 0


def deactivate_subscriptions(conn: sqlite3.Connection, ids: list[int]) -> None:
    """Deactivate many subscriptions in one statement. Rows are never deleted."""
    if not ids:
        return
    placeholders = ", ".join("?" for _ in ids)
    conn.execute(
        f"UPDATE push_subscriptions SET is_active = 0 WHERE id IN ({placeholders})",  # noqa: S608
        ids,
    )
    conn.commit()


def get_active_subscriptions(conn: sqlite3.Connection) -> list[PushSubscription]:
    rows = conn.execute(
        "SELECT id, endpoint, p256dh, auth, is_active FROM push_subscriptions "
        "WHERE is_active = 1 ORDER BY id"
    ).fetchall()
    return [
        PushSubscription(
            id=r["id"],
            endpoint=r["endpoint"],
            p256dh=r["p256dh"],
            auth=r["auth"],
            is_active=bool(r["is_active"]),
        )
        for r in rows
    ]


def count_active_subscriptions(conn: sqlite3.Connection) -> int:
    row = conn.execute(
        "SELECT COUNT(*) FROM push_subscriptions WHERE is_active = 1"
    ).fetchone()
    return int(row[0])


# --- agent runs ---


def create_run(conn: sqlite3.Connection, source: str) -> int:
    """Open a run record in 'running' state. Returns the row ID."""
    cursor = conn.execute(
        "INSERT INTO agent_runs (source, status, started_at) VALUES (?, 'running', ?)",
        (source, datetime.now().isoformat()),
    )
    conn.commit()
    return cursor.lastrowid or 0


def finish_run(
    conn: sqlite3.Connection,
    run_id: int,
    status: str,
    *,
    tools_found: int = 0,
    tools_saved: int = 0,
    details: dict[str, Any] | None = None,
) -> None:
    """Move a run to its terminal status."""
    conn.execute(
        """
        UPDATE agent_runs
        SET status = ?, tools_found = ?, tools_saved = ?, details = ?, completed_at = ?
        WHERE id = ?
        """,
        (
            status,
            tools_found,
            tools_saved,
            json.dumps(details, ensure_ascii=False, default=str) if details is not None else None,
            datetime.now().isoformat(),
            run_id,
        ),
    )
    conn.commit()


def insert_run_log(
    conn: sqlite3.Connection,
    source: str,
    status: str,
    *,
    tools_found: int = 0,
    tools_saved: int = 0,
    details: dict[str, Any] | None = None,
) -> int:
    """Append an already-completed log row (used by stand-alone stages)."""
    now = datetime.now().isoformat()
    cursor = conn.execute(
        """
        INSERT INTO agent_runs
            (source, status, tools_found, tools_saved, details, started_at, completed_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        (
            source,
            status,
            tools_found,
            tools_saved,
            json.dumps(details, ensure_ascii=False, default=str) if details is not None else None,
            now,
            now,
        ),
    )
    conn.commit()
    return cursor.lastrowid or 0


def _row_to_run(row: sqlite3.Row) -> RunRecord:
    return RunRecord(
        id=row["id"],
        source=row["source"],
        status=row["status"],
        tools_found=row["tools_found"],
        tools_saved=row["tools_saved"],
        details=json.loads(row["details"]) if row["details"] else None,
        started_at=datetime.fromisoformat(row["started_at"]),
        completed_at=(
            datetime.fromisoformat(row["completed_at"]) if row["completed_at"] else None
        ),
    )


def get_run(conn: sqlite3.Connection, run_id: int) -> RunRecord | None:
    row = conn.execute("SELECT * FROM agent_runs WHERE id = ?", (run_id,)).fetchone()
    return _row_to_run(row) if row is not None else None


def get_recent_runs(conn: sqlite3.Connection, limit: int = 5) -> list[RunRecord]:
    rows = conn.execute(
        "SELECT * FROM agent_runs ORDER BY started_at DESC, id DESC LIMIT ?", (limit,)
    ).fetchall()
    return [_row_to_run(r) for r in rows]
