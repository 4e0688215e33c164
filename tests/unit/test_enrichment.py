"""Tests for classification parsing, validation, retries, and batching."""

from unittest.mock import AsyncMock, patch

import pytest

from src.core.config import EnrichmentConfig
from src.core.schemas import Candidate
from src.llm.base import LLMProvider, ProviderError
from src.pipeline.enrichment import (
    _build_user_prompt,
    _extract_json,
    build_fallback,
    classify_candidate,
    enrich_candidates,
    validate_classification,
)

GOOD_RESPONSE = (
    '{"summary": "An assistant that writes code reviews.", "category_slug": "coding", '
    '"tags": ["code", "review"], "pricing_type": "freemium", '
    '"pricing_detail": "Free tier, $10/mo pro", "score": 4.2}'
)


def _candidate(name: str = "ReviewBot", description: str | None = "Reviews pull requests") -> Candidate:
    return Candidate(
        name=name,
        url=f"https://{name.lower()}.dev",
        description=description,
        source="producthunt",
        metadata={"votes": 120, "categories": ["Developer Tools", "AI"]},
    )


class ScriptedProvider(LLMProvider):
    """Returns or raises the scripted outcomes in order."""

    def __init__(self, outcomes: list[object]) -> None:
        self.outcomes = list(outcomes)
        self.calls = 0

    @property
    def provider_id(self) -> str:
        return "scripted"

    @property
    def default_model(self) -> str:
        return "scripted-1"

    @property
    def env_var(self) -> None:
        return None

    async def complete(self, prompt, model=None, *, system=None, timeout=30.0) -> str:  # type: ignore[no-untyped-def]
        self.calls += 1
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return str(outcome)


@pytest.fixture()
def sleep():  # type: ignore[no-untyped-def]
    with patch("src.pipeline.enrichment.asyncio.sleep", new_callable=AsyncMock) as mock:
        yield mock


class TestExtractJson:
    def test_bare(self) -> None:
        assert _extract_json('{"score": 3}') == {"score": 3}

    def test_fenced(self) -> None:
        raw = 'Here you go:\n```json\n{"score": 4, "tags": ["a"]}\n```\nThanks'
        assert _extract_json(raw) == {"score": 4, "tags": ["a"]}

    def test_surrounding_prose(self) -> None:
        assert _extract_json('Result: {"a": {"b": 1}} done') == {"a": {"b": 1}}

    def test_no_object(self) -> None:
        with pytest.raises(ValueError, match="No JSON object"):
            _extract_json("I cannot help with that")

    def test_broken_json(self) -> None:
        with pytest.raises(ValueError, match="Failed to parse"):
            _extract_json("{score: 3,}")


class TestValidateClassification:
    @pytest.mark.parametrize(("raw", "expected"), [
        (7.8, 5.0), (0.2, 1.0), (3.46, 3.5), ("4.04", 4.0), ("high", 3.0), (None, 3.0),
    ])
    def test_score_clamped_and_rounded(self, raw: object, expected: float) -> None:
        e = validate_classification(_candidate(), {"score": raw})
        assert e.score == expected

    def test_unknown_category_coerced(self) -> None:
        assert validate_classification(_candidate(), {"category_slug": "robots"}).category_slug == "other"

    def test_unknown_pricing_coerced(self) -> None:
        assert validate_classification(_candidate(), {"pricing_type": "cheap"}).pricing_type == "free"

    def test_tags_filtered_and_truncated(self) -> None:
        e = validate_classification(_candidate(), {"tags": ["a", 1, "b", None, "c", "d", "e", "f"]})
        assert e.tags == ["a", "b", "c", "d", "e"]

    def test_tags_not_a_list(self) -> None:
        assert validate_classification(_candidate(), {"tags": "a,b"}).tags == []

    def test_short_summary_replaced_by_description(self) -> None:
        e = validate_classification(_candidate(), {"summary": "Too short"})
        assert e.summary == "Reviews pull requests"

    def test_short_summary_without_description(self) -> None:
        e = validate_classification(_candidate(description=None), {"summary": 42})
        assert e.summary == "ReviewBot - AI tool"

    def test_good_response(self) -> None:
        e = validate_classification(_candidate(), _extract_json(GOOD_RESPONSE))
        assert e.category_slug == "coding"
        assert e.pricing_type == "freemium"
        assert e.pricing_detail == "Free tier, $10/mo pro"
        assert e.score == 4.2


class TestFallback:
    def test_with_description(self) -> None:
        e = build_fallback(_candidate(description="x" * 300))
        assert e.summary == "ReviewBot: " + "x" * 100
        assert e.category_slug == "other"
        assert e.pricing_type == "free"
        assert e.score == 3.0
        assert e.tags == ["ai", "new"]

    def test_without_description(self) -> None:
        assert build_fallback(_candidate(description=None)).summary == (
            "ReviewBot - newly launched AI tool."
        )


class TestPrompt:
    def test_includes_metadata(self) -> None:
        prompt = _build_user_prompt(_candidate(description="d" * 800))
        assert "Name: ReviewBot" in prompt
        assert "Votes: 120" in prompt
        assert "Categories: Developer Tools, AI" in prompt
        assert "d" * 500 in prompt
        assert "d" * 501 not in prompt


class TestClassifyCandidate:
    async def test_success_first_try(self, sleep: AsyncMock) -> None:
        provider = ScriptedProvider([GOOD_RESPONSE])
        enriched, error = await classify_candidate(_candidate(), provider, EnrichmentConfig())
        assert error is None
        assert enriched.category_slug == "coding"
        assert provider.calls == 1
        sleep.assert_not_awaited()

    async def test_404_falls_back_immediately(self, sleep: AsyncMock) -> None:
        provider = ScriptedProvider([ProviderError("not found", status_code=404)])
        enriched, error = await classify_candidate(_candidate(), provider, EnrichmentConfig())
        assert provider.calls == 1
        sleep.assert_not_awaited()
        assert error == "not found"
        assert enriched.category_slug == "other"
        assert enriched.pricing_type == "free"
        assert enriched.score == 3.0
        assert enriched.summary == "ReviewBot: Reviews pull requests"

    async def test_5xx_retries_with_linear_backoff(self, sleep: AsyncMock) -> None:
        provider = ScriptedProvider([ProviderError("boom", status_code=503)])
        enriched, error = await classify_candidate(_candidate(), provider, EnrichmentConfig())
        assert provider.calls == 3
        assert [c.args[0] for c in sleep.await_args_list] == [1.5, 3.0]
        assert enriched.category_slug == "other"
        assert error == "boom"

    async def test_5xx_then_success(self, sleep: AsyncMock) -> None:
        provider = ScriptedProvider([ProviderError("boom", status_code=500), GOOD_RESPONSE])
        enriched, error = await classify_candidate(_candidate(), provider, EnrichmentConfig())
        assert error is None
        assert enriched.score == 4.2
        assert provider.calls == 2

    async def test_429_honors_retry_after(self, sleep: AsyncMock) -> None:
        provider = ScriptedProvider([
            ProviderError("slow down", status_code=429, retry_after=7.0),
            GOOD_RESPONSE,
        ])
        enriched, error = await classify_candidate(_candidate(), provider, EnrichmentConfig())
        assert error is None
        assert [c.args[0] for c in sleep.await_args_list] == [7.0]
        assert enriched.category_slug == "coding"

    async def test_429_default_delay_and_no_backoff(self, sleep: AsyncMock) -> None:
        provider = ScriptedProvider([
            ProviderError("slow down", status_code=429),
            ProviderError("boom", status_code=502),
            GOOD_RESPONSE,
        ])
        _, error = await classify_candidate(_candidate(), provider, EnrichmentConfig())
        assert error is None
        # 429 waits the default, then the 502 backs off base * 2.
        assert [c.args[0] for c in sleep.await_args_list] == [3.0, 3.0]

    async def test_timeout_is_transient(self, sleep: AsyncMock) -> None:
        provider = ScriptedProvider([ProviderError("timed out"), GOOD_RESPONSE])
        _, error = await classify_candidate(_candidate(), provider, EnrichmentConfig())
        assert error is None
        assert provider.calls == 2

    async def test_unparsable_response_retried(self, sleep: AsyncMock) -> None:
        provider = ScriptedProvider(["no json here", GOOD_RESPONSE])
        enriched, error = await classify_candidate(_candidate(), provider, EnrichmentConfig())
        assert error is None
        assert enriched.category_slug == "coding"

    async def test_unexpected_error_stops(self, sleep: AsyncMock) -> None:
        provider = ScriptedProvider([RuntimeError("bug")])
        enriched, error = await classify_candidate(_candidate(), provider, EnrichmentConfig())
        assert provider.calls == 1
        assert error is not None
        assert "bug" in error
        assert enriched.tags == ["ai", "new"]

    async def test_max_retries_configurable(self, sleep: AsyncMock) -> None:
        provider = ScriptedProvider([ProviderError("boom", status_code=500)])
        await classify_candidate(_candidate(), provider, EnrichmentConfig(max_retries=0))
        assert provider.calls == 1


class TestEnrichCandidates:
    async def test_empty_input(self) -> None:
        result = await enrich_candidates([], EnrichmentConfig(), ScriptedProvider([GOOD_RESPONSE]))
        assert result.enriched == []
        assert result.errors == {}

    async def test_count_preserved_and_errors_keyed_by_name(self, sleep: AsyncMock) -> None:
        candidates = [_candidate(f"Tool{i}") for i in range(7)]

        class PerNameProvider(ScriptedProvider):
            async def complete(self, prompt, model=None, *, system=None, timeout=30.0) -> str:  # type: ignore[no-untyped-def]
                self.calls += 1
                if "Name: Tool3" in prompt:
                    raise ProviderError("bad request", status_code=400)
                return GOOD_RESPONSE

        result = await enrich_candidates(candidates, EnrichmentConfig(), PerNameProvider([]))
        assert len(result.enriched) == 7
        assert [e.candidate.name for e in result.enriched] == [c.name for c in candidates]
        assert result.errors == {"Tool3": "bad request"}
        assert result.enriched[3].category_slug == "other"

    async def test_cooldown_between_groups(self, sleep: AsyncMock) -> None:
        candidates = [_candidate(f"Tool{i}") for i in range(11)]
        await enrich_candidates(candidates, EnrichmentConfig(), ScriptedProvider([GOOD_RESPONSE]))
        # 11 items in groups of 5 -> 3 groups -> 2 cooldowns.
        assert [c.args[0] for c in sleep.await_args_list] == [0.3, 0.3]

    async def test_provider_resolved_from_config(self, sleep: AsyncMock) -> None:
        provider = ScriptedProvider([GOOD_RESPONSE])
        with patch("src.pipeline.enrichment.get_provider", return_value=provider) as get:
            result = await enrich_candidates([_candidate()], EnrichmentConfig(provider="ollama"))
        get.assert_called_once_with("ollama")
        assert result.errors == {}
