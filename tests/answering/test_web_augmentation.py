"""Tests for the web augmentation adapter."""

import pytest

from answering.composer.prompts import WEB_SEARCH_SYSTEM_PROMPT
from answering.errors import UpstreamError
from answering.llm.retry import web_search_retrying
from answering.middleware.rate_limiter import SlidingWindowRateLimiter
from answering.models import WebSource
from answering.tools.web_augmentation import WebAugmentationAdapter, score_confidence
from tests.fakes import ProviderError, web_response

SOURCES = [{"url": f"https://news.example.com/{i}", "title": f"Article {i}"} for i in range(4)]


@pytest.fixture
def adapter(provider, clock):
    return WebAugmentationAdapter(
        provider,
        rate_limiter=SlidingWindowRateLimiter(clock=clock, sleep=clock.sleep),
        retry_policy=web_search_retrying(sleep=clock.sleep),
    )


class TestConfidence:
    def test_source_contribution_is_capped(self):
        sources = [WebSource(title="t", url=f"https://x/{i}") for i in range(5)]
        assert score_confidence("short", sources) == pytest.approx(0.6)

    def test_length_bonuses(self):
        one = [WebSource(title="t", url="https://x")]
        assert score_confidence("a" * 150, one) == pytest.approx(0.2)
        assert score_confidence("a" * 250, one) == pytest.approx(0.3)
        assert score_confidence("a" * 600, one) == pytest.approx(0.4)

    def test_not_found_language_clamps_down(self):
        sources = [WebSource(title="t", url=f"https://x/{i}") for i in range(3)]
        answer = "I could not find any recent announcements. " * 20
        assert score_confidence(answer, sources) == pytest.approx(0.3)

    def test_no_sources_short_answer(self):
        assert score_confidence("", []) == 0.0


@pytest.mark.asyncio
async def test_search_returns_answer_sources_and_confidence(adapter, provider):
    provider.script("web_search", web_response("x" * 600, SOURCES[:3]))

    result = await adapter.search("What changed in 2025?")

    assert result.answer == "x" * 600
    assert [s.url for s in result.sources] == [s["url"] for s in SOURCES[:3]]
    assert result.confidence == pytest.approx(0.8)

    call = provider.calls_of("web_search")[0]
    assert call["system_instruction"] == WEB_SEARCH_SYSTEM_PROMPT
    assert call["model"] == "gemini-2.0-flash"
    assert call["contents"][-1].text == "What changed in 2025?"


@pytest.mark.asyncio
async def test_custom_system_instruction_is_used(adapter, provider):
    provider.script("web_search", web_response("answer", []))

    await adapter.search("q", system_instruction="Answer briefly.")

    assert provider.calls_of("web_search")[0]["system_instruction"] == "Answer briefly."


@pytest.mark.asyncio
async def test_transient_errors_are_retried(adapter, provider, clock):
    provider.script(
        "web_search",
        ProviderError("Service temporarily unavailable"),
        ProviderError("quota", code=429),
        web_response("final answer", SOURCES[:1]),
    )

    result = await adapter.search("q")

    assert result.answer == "final answer"
    assert len(provider.calls_of("web_search")) == 3


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts(adapter, provider):
    provider.script("web_search", ProviderError("upstream timeout"))

    with pytest.raises(UpstreamError) as exc_info:
        await adapter.search("q")

    assert exc_info.value.transient is True
    assert isinstance(exc_info.value.__cause__, ProviderError)
    assert len(provider.calls_of("web_search")) == 3


@pytest.mark.asyncio
async def test_non_transient_error_fails_immediately(adapter, provider):
    provider.script("web_search", ProviderError("API key invalid", code=403))

    with pytest.raises(UpstreamError) as exc_info:
        await adapter.search("q")

    assert exc_info.value.status_code == 403
    assert exc_info.value.transient is False
    assert len(provider.calls_of("web_search")) == 1


@pytest.mark.asyncio
async def test_calls_are_spaced_by_rate_limiter(adapter, provider, clock):
    provider.script("web_search", web_response("answer", []))

    await adapter.search("first")
    await adapter.search("second")

    assert clock.sleeps == [1.0]
