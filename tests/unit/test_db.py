"""Tests for the database layer: tools, digests, subscriptions, run log."""

import sqlite3
from datetime import date, datetime, timedelta

import pytest

from src.core.db import (
    count_active_subscriptions,
    count_published_tools,
    count_tools_since,
    create_run,
    deactivate_subscription_by_endpoint,
    deactivate_subscriptions,
    finish_run,
    get_active_subscriptions,
    get_category_id,
    get_daily_digest,
    get_published_tools_since,
    get_recent_runs,
    get_recent_tools,
    get_run,
    init_db,
    insert_run_log,
    insert_tool,
    list_tools,
    set_featured,
    upsert_daily_digest,
    upsert_subscription,
)
from src.core.schemas import Candidate, DailyDigest, EnrichedCandidate


def _enriched(name: str = "Tool", score: float = 3.0, **kw: object) -> EnrichedCandidate:
    candidate = Candidate(
        name=name,
        url=f"https://{name.lower().replace(' ', '')}.example.com",
        description=f"{name} does things",
        source="producthunt",
    )
    defaults: dict[str, object] = {
        "candidate": candidate,
        "summary": f"{name} summary text",
        "category_slug": "coding",
        "tags": ["ai", "dev"],
        "score": score,
    }
    defaults.update(kw)
    return EnrichedCandidate(**defaults)  # type: ignore[arg-type]


@pytest.fixture()
def db(tmp_path):  # type: ignore[no-untyped-def]
    """Provide a fresh SQLite connection per test."""
    return init_db(tmp_path / "test.db")


class TestInitDb:
    def test_creates_tables(self, db) -> None:  # type: ignore[no-untyped-def]
        tables = {
            row[0]
            for row in db.execute(
                "SELECT name FROM sqlite_master WHERE type='table'"
            ).fetchall()
        }
        assert {"categories", "tools", "daily_digests", "push_subscriptions", "agent_runs"} <= tables

    def test_seeds_categories(self, db) -> None:  # type: ignore[no-untyped-def]
        count = db.execute("SELECT COUNT(*) FROM categories").fetchone()[0]
        assert count == 14
        assert get_category_id(db, "coding") is not None
        assert get_category_id(db, "nope") is None

    def test_idempotent(self, tmp_path) -> None:  # type: ignore[no-untyped-def]
        """Calling init_db twice on the same path doesn't error or reseed."""
        p = tmp_path / "double.db"
        init_db(p).close()
        conn = init_db(p)
        assert conn.execute("SELECT COUNT(*) FROM categories").fetchone()[0] == 14
        conn.close()


class TestTools:
    def test_insert_returns_id(self, db) -> None:  # type: ignore[no-untyped-def]
        tool_id = insert_tool(db, _enriched("Alpha"), "alpha-1")
        row = db.execute("SELECT * FROM tools WHERE id = ?", (tool_id,)).fetchone()
        assert row["name"] == "Alpha"
        assert row["slug"] == "alpha-1"
        assert row["category_id"] == get_category_id(db, "coding")
        assert row["tags"] == '["ai", "dev"]'
        assert row["is_published"] == 1

    def test_slug_collision_raises(self, db) -> None:  # type: ignore[no-untyped-def]
        insert_tool(db, _enriched("Alpha"), "same")
        with pytest.raises(sqlite3.Error):
            insert_tool(db, _enriched("Beta"), "same")

    def test_unpublished(self, db) -> None:  # type: ignore[no-untyped-def]
        insert_tool(db, _enriched("Alpha"), "alpha", published=False)
        assert count_published_tools(db) == 0

    def test_recent_tools_newest_first(self, db) -> None:  # type: ignore[no-untyped-def]
        base = datetime(2026, 1, 1, 9, 0)
        insert_tool(db, _enriched("Old"), "old", now=base)
        insert_tool(db, _enriched("New"), "new", now=base + timedelta(hours=1))
        rows = get_recent_tools(db, limit=1)
        assert [(r["name"], r["url"]) for r in rows] == [("New", "https://new.example.com")]

    def test_list_tools_filters_by_source(self, db) -> None:  # type: ignore[no-untyped-def]
        base = datetime(2026, 1, 1, 9, 0)
        insert_tool(db, _enriched("Scraped"), "scraped", now=base)
        manual = _enriched("Manual").model_copy(update={
            "candidate": Candidate(name="Manual", url="https://manual.example.com", source="manual"),
        })
        insert_tool(db, manual, "manual", now=base + timedelta(hours=1))

        assert [r["name"] for r in list_tools(db)] == ["Manual", "Scraped"]
        assert [r["name"] for r in list_tools(db, source="manual")] == ["Manual"]
        assert [r["name"] for r in list_tools(db, limit=1)] == ["Manual"]
        assert list_tools(db, source="rss") == []

    def test_published_since_ordered_by_score(self, db) -> None:  # type: ignore[no-untyped-def]
        today = datetime(2026, 3, 4, 10, 0)
        insert_tool(db, _enriched("Yesterday", 5.0), "y", now=today - timedelta(days=1))
        insert_tool(db, _enriched("Mid", 3.5), "m", now=today)
        insert_tool(db, _enriched("Top", 4.8), "t", now=today)
        insert_tool(db, _enriched("Hidden", 5.0), "h", published=False, now=today)
        rows = get_published_tools_since(db, datetime(2026, 3, 4))
        assert [r["name"] for r in rows] == ["Top", "Mid"]

    def test_count_since(self, db) -> None:  # type: ignore[no-untyped-def]
        now = datetime(2026, 3, 4, 10, 0)
        insert_tool(db, _enriched("A"), "a", now=now)
        insert_tool(db, _enriched("B"), "b", now=now - timedelta(days=2))
        assert count_tools_since(db, datetime(2026, 3, 4)) == 1

    def test_set_featured(self, db) -> None:  # type: ignore[no-untyped-def]
        tool_id = insert_tool(db, _enriched("A"), "a")
        set_featured(db, tool_id)
        row = db.execute("SELECT is_featured FROM tools WHERE id = ?", (tool_id,)).fetchone()
        assert row[0] == 1


class TestDailyDigest:
    def _digest(self, **kw: object) -> DailyDigest:
        defaults: dict[str, object] = {
            "digest_date": date(2026, 3, 4),
            "title": "Title",
            "summary": "Summary",
            "featured_tool_id": 1,
            "tool_ids": [1, 2],
            "tool_count": 2,
        }
        defaults.update(kw)
        return DailyDigest(**defaults)  # type: ignore[arg-type]

    def test_roundtrip(self, db) -> None:  # type: ignore[no-untyped-def]
        upsert_daily_digest(db, self._digest())
        stored = get_daily_digest(db, date(2026, 3, 4))
        assert stored is not None
        assert stored.tool_ids == [1, 2]
        assert stored.is_published is True

    def test_upsert_overwrites_same_date(self, db) -> None:  # type: ignore[no-untyped-def]
        upsert_daily_digest(db, self._digest())
        upsert_daily_digest(db, self._digest(title="Second", tool_ids=[3], tool_count=1))
        count = db.execute("SELECT COUNT(*) FROM daily_digests").fetchone()[0]
        assert count == 1
        stored = get_daily_digest(db, date(2026, 3, 4))
        assert stored is not None
        assert stored.title == "Second"
        assert stored.tool_count == 1

    def test_missing_date(self, db) -> None:  # type: ignore[no-untyped-def]
        assert get_daily_digest(db, date(2020, 1, 1)) is None


class TestSubscriptions:
    def test_upsert_and_list(self, db) -> None:  # type: ignore[no-untyped-def]
        upsert_subscription(db, "https://push.example/1", "key1", "auth1")
        upsert_subscription(db, "https://push.example/2", "key2", "auth2")
        subs = get_active_subscriptions(db)
        assert [s.endpoint for s in subs] == ["https://push.example/1", "https://push.example/2"]
        assert count_active_subscriptions(db) == 2

    def test_resubscribe_reactivates(self, db) -> None:  # type: ignore[no-untyped-def]
        upsert_subscription(db, "https://push.example/1", "key1", "auth1")
        deactivate_subscription_by_endpoint(db, "https://push.example/1")
        upsert_subscription(db, "https://push.example/1", "key9", "auth9")
        subs = get_active_subscriptions(db)
        assert len(subs) == 1
        assert subs[0].p256dh == "key9"

    def test_deactivate_by_endpoint(self, db) -> None:  # type: ignore[no-untyped-def]
        upsert_subscription(db, "https://push.example/1", "k", "a")
        assert deactivate_subscription_by_endpoint(db, "https://push.example/1") is True
        assert deactivate_subscription_by_endpoint(db, "https://push.example/none") is False
        assert count_active_subscriptions(db) == 0

    def test_batch_deactivate_keeps_rows(self, db) -> None:  # type: ignore[no-untyped-def]
        for i in range(3):
            upsert_subscription(db, f"https://push.example/{i}", "k", "a")
        ids = [s.id for s in get_active_subscriptions(db)]
        deactivate_subscriptions(db, ids[:2])
        assert [s.id for s in get_active_subscriptions(db)] == [ids[2]]
        assert db.execute("SELECT COUNT(*) FROM push_subscriptions").fetchone()[0] == 3

    def test_batch_deactivate_empty_noop(self, db) -> None:  # type: ignore[no-untyped-def]
        deactivate_subscriptions(db, [])


class TestRuns:
    def test_create_then_finish(self, db) -> None:  # type: ignore[no-untyped-def]
        run_id = create_run(db, "collect-ai-tools")
        run = get_run(db, run_id)
        assert run is not None
        assert run.status == "running"
        assert run.completed_at is None

        finish_run(db, run_id, "partial", tools_found=5, tools_saved=3, details={"errors": {"x": "y"}})
        run = get_run(db, run_id)
        assert run is not None
        assert run.status == "partial"
        assert run.tools_found == 5
        assert run.tools_saved == 3
        assert run.details == {"errors": {"x": "y"}}
        assert run.completed_at is not None

    def test_insert_run_log_is_complete(self, db) -> None:  # type: ignore[no-untyped-def]
        run_id = insert_run_log(db, "send-push", "success", tools_found=2, details={"sent": 2})
        run = get_run(db, run_id)
        assert run is not None
        assert run.source == "send-push"
        assert run.completed_at is not None

    def test_recent_runs_limit(self, db) -> None:  # type: ignore[no-untyped-def]
        for _ in range(7):
            create_run(db, "collect-ai-tools")
        runs = get_recent_runs(db)
        assert len(runs) == 5
        assert runs[0].id > runs[-1].id

    def test_missing_run(self, db) -> None:  # type: ignore[no-untyped-def]
        assert get_run(db, 999) is None
