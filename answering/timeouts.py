"""Timeout budgets for calls to slow upstream services."""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

import structlog

from answering.errors import StageTimeoutError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


async def with_timeout(awaitable: Awaitable[T], seconds: float, stage: str) -> T:
    """Race ``awaitable`` against a timer of ``seconds``.

    Whichever finishes first wins. When the timer wins the pending call is
    cancelled locally (the upstream request may still complete server-side)
    and :class:`StageTimeoutError` is raised.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError as e:
        logger.warning("Stage timed out", stage=stage, timeout_s=seconds)
        raise StageTimeoutError(stage, seconds) from e
