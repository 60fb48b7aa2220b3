"""Tests for stage timeout budgets."""

import asyncio

import pytest

from answering.errors import StageTimeoutError
from answering.timeouts import with_timeout


@pytest.mark.asyncio
async def test_returns_result_within_budget():
    async def fast():
        return "done"

    assert await with_timeout(fast(), 1.0, "document_retrieval") == "done"


@pytest.mark.asyncio
async def test_raises_stage_timeout_and_cancels_call():
    cancelled = asyncio.Event()

    async def slow():
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.set()
            raise

    with pytest.raises(StageTimeoutError) as exc_info:
        await with_timeout(slow(), 0.05, "web_augmentation")

    assert exc_info.value.stage == "web_augmentation"
    assert exc_info.value.seconds == 0.05
    assert cancelled.is_set()


@pytest.mark.asyncio
async def test_underlying_errors_propagate_unchanged():
    async def broken():
        raise ValueError("bad payload")

    with pytest.raises(ValueError, match="bad payload"):
        await with_timeout(broken(), 1.0, "general_fallback")
