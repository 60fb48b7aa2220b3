"""
Local mirror of provider-side context caches.

A large reusable prompt prefix (the per-user system prompt) can be stored on
the provider and referenced by handle instead of being resent with every
request. This module decides when that is worthwhile, creates the upstream
cache once per owner and content hash, and remembers the handle until the
provider's expiry.
"""

from __future__ import annotations

import hashlib
import math
import re
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Protocol

import cachetools
import structlog

from libs.caching.keyed_mutex import KeyedMutex
from libs.caching.sweeper import PeriodicSweeper

logger = structlog.get_logger(__name__)

# Minimum prompt size (tokens) the provider accepts for explicit caching
MIN_CACHE_TOKENS: Dict[str, int] = {
    "gemini-2.5-flash": 1024,
    "gemini-2.5-pro": 4096,
    "gemini-2.0-flash": 1024,
    "gemini-1.5-flash": 32768,
    "gemini-1.5-pro": 32768,
}
DEFAULT_MIN_CACHE_TOKENS = 1024

_DENSE_SCRIPT = re.compile(r"[\u3000-\u9fff\uac00-\ud7af]")


def estimate_tokens(text: str) -> int:
    """Rough token count: ~2 chars/token for CJK/Hangul text, ~4 otherwise."""
    chars_per_token = 2 if _DENSE_SCRIPT.search(text) else 4
    return math.ceil(len(text) / chars_per_token)


def min_tokens_for(model: str) -> int:
    return MIN_CACHE_TOKENS.get(model.removeprefix("models/"), DEFAULT_MIN_CACHE_TOKENS)


def content_hash(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()[:16]


class CachedContextHandle(Protocol):
    name: str
    expire_time: Optional[datetime]
    token_count: Optional[int]


class ContextCacheBackend(Protocol):
    async def create_cached_context(
        self, *, model: str, system_instruction: str, display_name: str, ttl_seconds: int
    ) -> CachedContextHandle: ...

    async def delete_cached_context(self, name: str) -> None: ...


@dataclass(frozen=True)
class UpstreamCacheRecord:
    """Provider cache handle. Replaced, never mutated."""

    name: str
    owner_id: str
    content_hash: str
    model: str
    expires_at: float
    token_count: Optional[int] = None


def _record_expiry(key: str, record: UpstreamCacheRecord, now: float) -> float:
    return record.expires_at


class ContextCache:
    """Owner/content keyed registry of upstream cached contexts."""

    def __init__(
        self,
        backend: ContextCacheBackend,
        ttl_seconds: int = 3600,
        sweep_interval: float = 600.0,
        clock: Callable[[], float] = time.time,
        maxsize: int = 1_000,
    ):
        self._backend = backend
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        # Each record expires when the provider said it would
        self._records: cachetools.TLRUCache = cachetools.TLRUCache(maxsize=maxsize, ttu=_record_expiry, timer=clock)
        self._mutex = KeyedMutex()
        self._sweeper = PeriodicSweeper("context_cache", sweep_interval, self.sweep)

    @staticmethod
    def lookup_key(owner_id: str, digest: str) -> str:
        return f"system_prompt:{owner_id}:{digest}"

    async def get_or_create(self, owner_id: str, content: str, model: str) -> Optional[str]:
        """Return a cached-context handle for ``content`` or None.

        None means "send the content inline": the content is too small to be
        cached for ``model``, or the provider refused to create the cache.
        """
        estimated = estimate_tokens(content)
        minimum = min_tokens_for(model)
        if estimated < minimum:
            logger.debug(
                "Content below context cache minimum",
                owner_id=owner_id,
                model=model,
                estimated_tokens=estimated,
                min_tokens=minimum,
            )
            return None

        digest = content_hash(content)
        key = self.lookup_key(owner_id, digest)

        record = self._records.get(key)
        if record is not None:
            logger.debug("Context cache hit", owner_id=owner_id, cache_name=record.name)
            return record.name

        async with self._mutex.hold(key):
            record = self._records.get(key)
            if record is not None:
                return record.name

            try:
                handle = await self._backend.create_cached_context(
                    model=model,
                    system_instruction=content,
                    display_name=f"system-prompt-{owner_id}-{digest[:8]}",
                    ttl_seconds=self.ttl_seconds,
                )
            except Exception as e:
                logger.warning("Context cache creation failed", owner_id=owner_id, model=model, error=str(e))
                return None

            now = self._clock()
            expires_at = handle.expire_time.timestamp() if handle.expire_time else now + self.ttl_seconds
            record = UpstreamCacheRecord(
                name=handle.name,
                owner_id=owner_id,
                content_hash=digest,
                model=model,
                expires_at=expires_at,
                token_count=handle.token_count,
            )
            self._records[key] = record
            logger.info(
                "Context cache created",
                owner_id=owner_id,
                cache_name=record.name,
                token_count=record.token_count,
                ttl_s=round(expires_at - now),
            )
            return record.name

    async def invalidate_owner(self, owner_id: str) -> int:
        """Drop every record of ``owner_id`` locally and on the provider."""
        keys = [key for key, record in self._records.items() if record.owner_id == owner_id]
        for key in keys:
            record = self._records.pop(key, None)
            if record is None:
                continue
            try:
                await self._backend.delete_cached_context(record.name)
            except Exception as e:
                # Upstream entry will expire on its own
                logger.warning("Context cache delete failed", cache_name=record.name, error=str(e))
        if keys:
            logger.info("Context caches invalidated", owner_id=owner_id, count=len(keys))
        return len(keys)

    def sweep(self) -> int:
        return len(self._records.expire())

    def stats(self) -> Dict[str, Any]:
        return {
            "entries": self._records.currsize,
            "owners": len({record.owner_id for record in self._records.values()}),
        }

    def start(self) -> None:
        self._sweeper.start()

    async def stop(self) -> None:
        await self._sweeper.stop()
