"""Tests for the upstream context cache mirror."""

import asyncio
from datetime import datetime, timezone

import pytest

from libs.caching.context_cache import ContextCache, estimate_tokens, min_tokens_for

LARGE_PROMPT = "You are a helpful onboarding assistant. " * 200  # ~2000 tokens


def test_estimate_tokens_latin_text():
    assert estimate_tokens("a" * 400) == 100
    assert estimate_tokens("abc") == 1


def test_estimate_tokens_dense_script_counts_more():
    text = "新入社員" * 100
    assert estimate_tokens(text) == 200


def test_min_tokens_per_model():
    assert min_tokens_for("gemini-2.5-pro") == 4096
    assert min_tokens_for("models/gemini-1.5-flash") == 32768
    assert min_tokens_for("some-future-model") == 1024


@pytest.mark.asyncio
async def test_small_content_is_not_cached(provider, clock):
    cache = ContextCache(provider, clock=clock)

    assert await cache.get_or_create("owner-1", "short prompt", "gemini-2.0-flash") is None
    assert provider.cache_create_calls == []


@pytest.mark.asyncio
async def test_repeated_calls_reuse_handle_until_expiry(provider, clock):
    cache = ContextCache(provider, ttl_seconds=3600, clock=clock)

    first = await cache.get_or_create("owner-1", LARGE_PROMPT, "gemini-2.0-flash")
    second = await cache.get_or_create("owner-1", LARGE_PROMPT, "gemini-2.0-flash")

    assert first is not None
    assert first == second
    assert len(provider.cache_create_calls) == 1
    assert provider.cache_create_calls[0]["ttl_seconds"] == 3600

    clock.advance(3600)
    third = await cache.get_or_create("owner-1", LARGE_PROMPT, "gemini-2.0-flash")
    assert third != first
    assert len(provider.cache_create_calls) == 2


@pytest.mark.asyncio
async def test_changed_content_creates_new_cache(provider, clock):
    cache = ContextCache(provider, clock=clock)

    first = await cache.get_or_create("owner-1", LARGE_PROMPT, "gemini-2.0-flash")
    second = await cache.get_or_create("owner-1", LARGE_PROMPT + " Be concise.", "gemini-2.0-flash")

    assert first != second
    assert len(provider.cache_create_calls) == 2


@pytest.mark.asyncio
async def test_concurrent_requests_create_once(provider, clock):
    cache = ContextCache(provider, clock=clock)

    handles = await asyncio.gather(
        *(cache.get_or_create("owner-1", LARGE_PROMPT, "gemini-2.0-flash") for _ in range(5))
    )

    assert len(set(handles)) == 1
    assert len(provider.cache_create_calls) == 1


@pytest.mark.asyncio
async def test_provider_expiry_is_mirrored(provider, clock):
    clock.now = datetime(2025, 1, 1, tzinfo=timezone.utc).timestamp()
    provider.cache_expire_time = datetime(2025, 1, 1, 0, 10, tzinfo=timezone.utc)
    cache = ContextCache(provider, ttl_seconds=3600, clock=clock)

    await cache.get_or_create("owner-1", LARGE_PROMPT, "gemini-2.0-flash")
    clock.advance(600)
    await cache.get_or_create("owner-1", LARGE_PROMPT, "gemini-2.0-flash")

    assert len(provider.cache_create_calls) == 2


@pytest.mark.asyncio
async def test_creation_failure_returns_none(provider, clock):
    provider.cache_create_error = RuntimeError("quota exceeded")
    cache = ContextCache(provider, clock=clock)

    assert await cache.get_or_create("owner-1", LARGE_PROMPT, "gemini-2.0-flash") is None
    assert cache.stats()["entries"] == 0


@pytest.mark.asyncio
async def test_invalidate_owner_deletes_upstream(provider, clock):
    cache = ContextCache(provider, clock=clock)
    handle = await cache.get_or_create("owner-1", LARGE_PROMPT, "gemini-2.0-flash")
    await cache.get_or_create("owner-2", LARGE_PROMPT, "gemini-2.0-flash")

    removed = await cache.invalidate_owner("owner-1")

    assert removed == 1
    assert provider.deleted_caches == [handle]
    assert cache.stats() == {"entries": 1, "owners": 1}


@pytest.mark.asyncio
async def test_sweep_drops_expired_records(provider, clock):
    cache = ContextCache(provider, ttl_seconds=100, clock=clock)
    await cache.get_or_create("owner-1", LARGE_PROMPT, "gemini-2.0-flash")

    clock.advance(101)
    assert cache.sweep() == 1
    assert cache.stats() == {"entries": 0, "owners": 0}
