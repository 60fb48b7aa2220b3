"""Retry policies for provider calls (tenacity)."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Collection, Optional

import httpx
import structlog
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt, wait_exponential

from answering.errors import UpstreamError

logger = structlog.get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]

# Lower-cased fragments of error messages that mark a web search failure as transient
TRANSIENT_SIGNATURES = ("rate limit", "timeout", "503", "429", "temporarily")
TRANSIENT_WEB_STATUS_CODES = frozenset({429, 503})


def status_code_of(exc: BaseException) -> Optional[int]:
    """HTTP-ish status code carried by a provider or transport exception."""
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    for attr in ("code", "status_code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def is_retryable_status(exc: BaseException, codes: Collection[int]) -> bool:
    code = status_code_of(exc)
    return code is not None and code in codes


def is_transient_web_error(exc: BaseException) -> bool:
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException, httpx.TransportError)):
        return True
    if status_code_of(exc) in TRANSIENT_WEB_STATUS_CODES:
        return True
    message = str(exc).lower()
    return any(signature in message for signature in TRANSIENT_SIGNATURES)


def as_upstream_error(exc: BaseException, operation: str) -> UpstreamError:
    """Structured failure for a provider call that retrying did not rescue."""
    return UpstreamError(
        f"{operation} failed: {exc}",
        status_code=status_code_of(exc),
        transient=is_transient_web_error(exc),
    )


def _log_before_sleep(operation: str) -> Callable[[RetryCallState], None]:
    def log(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "Retrying provider call",
            operation=operation,
            attempt=retry_state.attempt_number,
            delay_s=retry_state.next_action.sleep if retry_state.next_action else None,
            status_code=status_code_of(exc) if exc else None,
            error=str(exc) if exc else None,
        )

    return log


def document_retrieval_retrying(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 10.0,
    retryable_status_codes: Collection[int] = (429, 500, 503),
    sleep: Sleep = asyncio.sleep,
) -> AsyncRetrying:
    """``max_retries + 1`` attempts, delays base * 2**n capped at ``max_delay``.

    Only errors carrying one of ``retryable_status_codes`` are retried;
    anything else (including errors with no status) is raised immediately.
    """
    codes = frozenset(retryable_status_codes)
    return AsyncRetrying(
        stop=stop_after_attempt(max_retries + 1),
        wait=wait_exponential(multiplier=base_delay, max=max_delay),
        retry=retry_if_exception(lambda e: is_retryable_status(e, codes)),
        before_sleep=_log_before_sleep("document_retrieval"),
        sleep=sleep,
        reraise=True,
    )


def web_search_retrying(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 10.0,
    sleep: Sleep = asyncio.sleep,
) -> AsyncRetrying:
    return AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=base_delay, max=max_delay),
        retry=retry_if_exception(is_transient_web_error),
        before_sleep=_log_before_sleep("web_search"),
        sleep=sleep,
        reraise=True,
    )
