"""Tests for retry classification and backoff policies."""

import asyncio

import httpx
import pytest

from answering.errors import UpstreamError
from answering.llm.retry import (
    as_upstream_error,
    document_retrieval_retrying,
    is_retryable_status,
    is_transient_web_error,
    status_code_of,
)
from tests.fakes import ProviderError


def test_status_code_of_provider_and_http_errors():
    request = httpx.Request("POST", "https://example.com")
    response = httpx.Response(503, request=request)
    http_error = httpx.HTTPStatusError("unavailable", request=request, response=response)

    assert status_code_of(ProviderError("x", code=429)) == 429
    assert status_code_of(http_error) == 503
    assert status_code_of(RuntimeError("x")) is None


def test_retryable_status_requires_known_code():
    codes = {429, 500, 503}
    assert is_retryable_status(ProviderError("x", code=500), codes)
    assert not is_retryable_status(ProviderError("x", code=400), codes)
    assert not is_retryable_status(RuntimeError("no status"), codes)


@pytest.mark.parametrize(
    "error",
    [
        ProviderError("Rate limit exceeded"),
        ProviderError("Request timeout"),
        ProviderError("got 503 from backend"),
        ProviderError("quota", code=429),
        asyncio.TimeoutError(),
        httpx.ConnectTimeout("slow"),
    ],
)
def test_transient_web_errors(error):
    assert is_transient_web_error(error)


def test_non_transient_web_error():
    assert not is_transient_web_error(ProviderError("permission denied", code=403))


@pytest.mark.asyncio
async def test_backoff_delays_are_doubling_and_capped():
    sleeps = []

    async def record(seconds):
        sleeps.append(seconds)

    attempts = 0

    async def always_unavailable():
        nonlocal attempts
        attempts += 1
        raise ProviderError("unavailable", code=503)

    policy = document_retrieval_retrying(max_retries=5, base_delay=1.0, max_delay=10.0, sleep=record)

    with pytest.raises(ProviderError):
        await policy(always_unavailable)

    assert attempts == 6
    assert sleeps == [1.0, 2.0, 4.0, 8.0, 10.0]
    assert all(later >= earlier for earlier, later in zip(sleeps, sleeps[1:]))


def test_as_upstream_error_keeps_status_and_transience():
    error = as_upstream_error(ProviderError("quota", code=429), "Web search")

    assert isinstance(error, UpstreamError)
    assert error.status_code == 429
    assert error.transient is True
    assert "Web search failed" in str(error)

    permanent = as_upstream_error(ProviderError("bad request", code=400), "Document retrieval")
    assert permanent.status_code == 400
    assert permanent.transient is False
