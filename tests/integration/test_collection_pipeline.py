"""Integration test: full collection run with mock sources and a scripted LLM."""

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from src.core.config import EnrichmentConfig, PushConfig, Settings
from src.core.db import get_daily_digest, get_run, init_db, insert_tool
from src.core.schemas import Candidate, EnrichedCandidate, NotificationOverride, PushSummary
from src.llm.base import LLMProvider, ProviderError
from src.pipeline.orchestrator import RUN_SOURCE, run_collection
from src.sources.base import SourceAdapter, SourceError

# ---------------------------------------------------------------------------
# Mocks
# ---------------------------------------------------------------------------


class MockSource(SourceAdapter):
    """Returns pre-configured candidates, or raises the given error."""

    def __init__(self, source_id: str, result: list[Candidate] | Exception) -> None:
        self._source_id = source_id
        self._result = result

    @property
    def source_id(self) -> str:
        return self._source_id

    async def fetch(self) -> list[Candidate]:
        if isinstance(self._result, Exception):
            raise self._result
        return list(self._result)


class MockProvider(LLMProvider):
    """Classifies everything as coding; names containing 'Broken' get a 400."""

    def __init__(self, env_var: str | None = None) -> None:
        self._env_var = env_var
        self.prompts: list[str] = []

    @property
    def provider_id(self) -> str:
        return "mock"

    @property
    def default_model(self) -> str:
        return "mock-1"

    @property
    def env_var(self) -> str | None:
        return self._env_var

    async def complete(self, prompt, model=None, *, system=None, timeout=30.0) -> str:  # type: ignore[no-untyped-def]
        self.prompts.append(prompt)
        if "Broken" in prompt:
            msg = "mock: 400 invalid request"
            raise ProviderError(msg, status_code=400)
        return json.dumps({
            "summary": "A tool that helps developers ship faster.",
            "category_slug": "coding",
            "tags": ["dev"],
            "pricing_type": "freemium",
            "score": 4.0,
        })


def _candidate(name: str, url: str | None = None, source: str = "producthunt") -> Candidate:
    return Candidate(
        name=name,
        url=url or f"https://{name.lower().replace(' ', '')}.ai",
        description=f"{name} does things",
        source=source,  # type: ignore[arg-type]
    )


def _settings() -> Settings:
    return Settings(
        enrichment=EnrichmentConfig(
            max_retries=1, retry_base_delay=0.0, rate_limit_delay=0.0, batch_delay=0.0,
        ),
        push=PushConfig(enabled=False),
    )


def _no_network(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"unexpected request to {request.url}")


@pytest.fixture()
def db(tmp_path):  # type: ignore[no-untyped-def]
    return init_db(tmp_path / "test.db")


@pytest.fixture()
async def client():  # type: ignore[no-untyped-def]
    async with httpx.AsyncClient(transport=httpx.MockTransport(_no_network)) as c:
        yield c


def _tool_names(db) -> list[str]:  # type: ignore[no-untyped-def]
    return [r[0] for r in db.execute("SELECT name FROM tools ORDER BY id").fetchall()]


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestCollectionPipeline:
    async def test_clean_run_is_success(self, db, client) -> None:  # type: ignore[no-untyped-def]
        adapters = [
            MockSource("producthunt", [_candidate("CodePilot"), _candidate("DraftGen")]),
            MockSource("rss", [_candidate("CodePilot", source="rss")]),
        ]
        result = await run_collection(
            _settings(), db, client, adapters=adapters, provider=MockProvider(),
        )

        assert result.status == "success"
        assert result.ok
        assert result.tools_found == 3
        assert result.tools_saved == 2
        assert result.duplicates == 1
        assert result.source_stats == {"producthunt": 2, "rss": 1}
        assert _tool_names(db) == ["CodePilot", "DraftGen"]

        run = get_run(db, result.run_id)
        assert run is not None
        assert run.source == RUN_SOURCE
        assert run.status == "success"
        assert run.completed_at is not None
        assert run.details is not None
        assert run.details["errors"] is None
        assert run.details["dedup_details"] == {
            "url_duplicates": 0, "name_duplicates": 0, "batch_duplicates": 1,
        }

        digest = get_daily_digest(db, run.started_at.date())
        assert digest is not None
        assert digest.tool_count == 2

    async def test_fallback_classification_is_partial(self, db, client) -> None:  # type: ignore[no-untyped-def]
        adapters = [MockSource("futurepedia", [_candidate("Good Tool"), _candidate("Broken Tool")])]
        result = await run_collection(
            _settings(), db, client, adapters=adapters, provider=MockProvider(),
        )

        assert result.status == "partial"
        assert result.tools_saved == 2
        assert list(result.errors) == ["Broken Tool"]
        row = db.execute(
            "SELECT score, summary FROM tools WHERE name = ?", ("Broken Tool",)
        ).fetchone()
        assert row[0] == 3.0
        assert row[1] == "Broken Tool: Broken Tool does things"
        run = get_run(db, result.run_id)
        assert run is not None
        assert run.status == "partial"
        assert "Broken Tool" in run.details["errors"]  # type: ignore[index]

    async def test_failing_source_isolated(self, db, client) -> None:  # type: ignore[no-untyped-def]
        adapters = [
            MockSource("theresanaiforthat", SourceError("theresanaiforthat: 403 Forbidden")),
            MockSource("producthunt", [_candidate("Survivor")]),
        ]
        result = await run_collection(
            _settings(), db, client, adapters=adapters, provider=MockProvider(),
        )

        assert result.status == "partial"
        assert result.errors == {"source_theresanaiforthat": "theresanaiforthat: 403 Forbidden"}
        assert result.source_stats == {"theresanaiforthat": 0, "producthunt": 1}
        assert _tool_names(db) == ["Survivor"]

    async def test_history_duplicates_skipped(self, db, client) -> None:  # type: ignore[no-untyped-def]
        existing = EnrichedCandidate(
            candidate=_candidate("OldTool", "https://oldtool.ai"), summary="Already here",
        )
        insert_tool(db, existing, "oldtool-1")
        adapters = [MockSource("rss", [_candidate("Old Tool", "https://www.oldtool.ai/?ref=ph")])]
        result = await run_collection(
            _settings(), db, client, adapters=adapters, provider=MockProvider(),
        )

        assert result.tools_saved == 0
        assert result.duplicates == 1
        assert get_run(db, result.run_id).details["dedup_details"]["url_duplicates"] == 1  # type: ignore[union-attr]

    async def test_dry_run_saves_nothing(self, db, client) -> None:  # type: ignore[no-untyped-def]
        provider = MockProvider()
        adapters = [MockSource("producthunt", [_candidate("A Tool"), _candidate("B Tool")])]
        with patch("src.pipeline.orchestrator.send_daily_push", new_callable=AsyncMock) as push:
            result = await run_collection(
                _settings(), db, client, adapters=adapters, provider=provider, dry_run=True,
            )

        assert result.status == "success"
        assert len(result.enriched) == 2
        assert len(provider.prompts) == 2
        assert result.tools_saved == 0
        assert _tool_names(db) == []
        assert db.execute("SELECT COUNT(*) FROM daily_digests").fetchone()[0] == 0
        push.assert_not_awaited()
        assert get_run(db, result.run_id).status == "success"  # type: ignore[union-attr]

    async def test_missing_api_key_skips_enrichment(self, db, client) -> None:  # type: ignore[no-untyped-def]
        provider = MockProvider(env_var="MOCK_LLM_KEY")
        adapters = [MockSource("producthunt", [_candidate("Keyless")])]
        with patch.dict("os.environ", {}, clear=True):
            result = await run_collection(
                _settings(), db, client, adapters=adapters, provider=provider,
            )

        assert provider.prompts == []
        assert result.tools_saved == 0
        assert result.status == "partial"
        assert result.errors == {"enrichment": "MOCK_LLM_KEY not set, 1 candidates skipped"}
        run = get_run(db, result.run_id)
        assert run is not None
        assert run.status == "partial"
        assert run.details["errors"] == result.errors  # type: ignore[index]

    async def test_unexpected_error_marks_failed(self, db, client) -> None:  # type: ignore[no-untyped-def]
        adapters = [MockSource("producthunt", [_candidate("Anything")])]
        with patch("src.pipeline.orchestrator.deduplicate", side_effect=RuntimeError("boom")):
            result = await run_collection(
                _settings(), db, client, adapters=adapters, provider=MockProvider(),
            )

        assert result.status == "failed"
        assert not result.ok
        assert result.fatal == "boom"
        run = get_run(db, result.run_id)
        assert run is not None
        assert run.status == "failed"
        assert run.completed_at is not None
        assert run.tools_found == 1
        assert run.details is not None
        assert run.details["fatal"] == "boom"


class TestPostConditions:
    async def test_push_after_saving(self, db, client) -> None:  # type: ignore[no-untyped-def]
        summary = PushSummary(sent=3, total=3)
        adapters = [MockSource("producthunt", [_candidate("Pushed")])]
        with patch(
            "src.pipeline.orchestrator.send_daily_push",
            new_callable=AsyncMock,
            return_value=summary,
        ) as push:
            result = await run_collection(
                _settings(), db, client, adapters=adapters, provider=MockProvider(),
            )

        push.assert_awaited_once()
        assert result.push_summary == summary
        assert get_run(db, result.run_id).details["push"]["sent"] == 3  # type: ignore[union-attr]

    async def test_no_push_when_nothing_saved(self, db, client) -> None:  # type: ignore[no-untyped-def]
        with patch("src.pipeline.orchestrator.send_daily_push", new_callable=AsyncMock) as push:
            await run_collection(
                _settings(), db, client, adapters=[MockSource("rss", [])], provider=MockProvider(),
            )
        push.assert_not_awaited()

    async def test_override_forces_push(self, db, client) -> None:  # type: ignore[no-untyped-def]
        override = NotificationOverride(title="Weekly roundup")
        with patch("src.pipeline.orchestrator.send_daily_push", new_callable=AsyncMock) as push:
            await run_collection(
                _settings(), db, client,
                adapters=[MockSource("rss", [])], provider=MockProvider(), override=override,
            )
        push.assert_awaited_once()
        assert push.call_args.args[3] == override

    async def test_push_failure_recorded(self, db, client) -> None:  # type: ignore[no-untyped-def]
        adapters = [MockSource("producthunt", [_candidate("Pushed")])]
        with patch(
            "src.pipeline.orchestrator.send_daily_push",
            new_callable=AsyncMock,
            side_effect=RuntimeError("push service down"),
        ):
            result = await run_collection(
                _settings(), db, client, adapters=adapters, provider=MockProvider(),
            )

        assert result.status == "partial"
        assert result.errors == {"post_push": "push service down"}
        assert result.tools_saved == 1

    async def test_revalidate_failure_recorded(self, db) -> None:  # type: ignore[no-untyped-def]
        settings = _settings()
        settings.revalidate.url = "https://ai-tools.example/api/revalidate"
        transport = httpx.MockTransport(lambda request: httpx.Response(503))
        async with httpx.AsyncClient(transport=transport) as client:
            result = await run_collection(
                settings, db, client,
                adapters=[MockSource("rss", [_candidate("Any")])], provider=MockProvider(),
            )

        assert result.status == "partial"
        assert "post_revalidate" in result.errors
        assert result.tools_saved == 1
