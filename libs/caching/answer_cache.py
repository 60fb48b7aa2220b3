"""
Single-flight TTL cache for generated system prompts, conversation histories
and web enhancements.

Each namespace is a :class:`TTLCache` over ``cachetools.TTLCache`` with its
own TTL. Concurrent misses for the same key are collapsed into one generator
call: the first caller runs the generator while holding the key's mutex, the
others wait on the mutex and then find the fresh entry when they re-check.
"""

from __future__ import annotations

import time
from typing import Any, Awaitable, Callable, Dict, Generic, Hashable, List, Optional, TypeVar

import cachetools
import structlog

from libs.caching.keyed_mutex import KeyedMutex
from libs.caching.sweeper import PeriodicSweeper

logger = structlog.get_logger(__name__)

T = TypeVar("T")

Clock = Callable[[], float]

DEFAULT_MAXSIZE = 10_000


class TTLCache(Generic[T]):
    """One cache namespace with a fixed TTL."""

    def __init__(self, name: str, ttl: float, clock: Clock = time.monotonic, maxsize: int = DEFAULT_MAXSIZE):
        self.name = name
        self.ttl = ttl
        self._store: cachetools.TTLCache = cachetools.TTLCache(maxsize=maxsize, ttl=ttl, timer=clock)
        self._mutex = KeyedMutex()

    def peek(self, key: Hashable) -> Optional[T]:
        return self._store.get(key)

    def set(self, key: Hashable, value: T) -> None:
        self._store[key] = value

    async def get_or_create(self, key: Hashable, generator: Callable[[], Awaitable[T]]) -> T:
        """Return the live value for ``key`` or generate it exactly once.

        Generator errors propagate to every caller that ran it and nothing is
        cached, so the next caller retries.
        """
        if key in self._store:
            logger.debug("Cache hit", cache=self.name, key=str(key))
            return self._store[key]

        async with self._mutex.hold(key):
            if key in self._store:
                logger.debug("Cache hit after wait", cache=self.name, key=str(key))
                return self._store[key]

            logger.info("Cache miss, generating", cache=self.name, key=str(key))
            value = await generator()
            self._store[key] = value
            return value

    def invalidate(self, key: Hashable) -> bool:
        removed = key in self._store
        self._store.pop(key, None)
        if removed:
            logger.info("Cache entry invalidated", cache=self.name, key=str(key))
        return removed

    async def append(self, key: Hashable, item: Any) -> bool:
        """Append ``item`` to a live list entry and slide its expiry forward.

        Re-assigning the key restarts its TTL. Returns False when there is no
        live entry; the caller decides whether to load the list first.
        """
        async with self._mutex.hold(key):
            if key not in self._store:
                return False
            self._store[key] = list(self._store[key]) + [item]
            return True

    def sweep(self) -> int:
        expired = self._store.expire()
        if expired:
            logger.debug("Expired cache entries dropped", cache=self.name, count=len(expired))
        return len(expired)

    def stats(self) -> Dict[str, int]:
        return {"entries": self._store.currsize, "maxsize": int(self._store.maxsize)}

    def __len__(self) -> int:
        return len(self._store)



class AnswerCache:
    """
    Process-wide cache service injected into the answering pipeline.

    Usage:
        cache = AnswerCache(system_prompt_ttl=3600, conversation_ttl=1800)
        prompt = await cache.get_or_create_system_prompt(owner_id, build_prompt)
        history = await cache.get_or_create_conversation(conversation_id, load_history)
        await cache.append_to_conversation(conversation_id, message)
    """

    def __init__(
        self,
        system_prompt_ttl: float = 3600.0,
        conversation_ttl: float = 1800.0,
        enhancement_ttl: float = 600.0,
        sweep_interval: float = 300.0,
        clock: Clock = time.monotonic,
        maxsize: int = DEFAULT_MAXSIZE,
    ):
        self.system_prompts: TTLCache[str] = TTLCache("system_prompt", system_prompt_ttl, clock, maxsize)
        self.conversations: TTLCache[List[Any]] = TTLCache("conversation", conversation_ttl, clock, maxsize)
        self.enhancements: TTLCache[Any] = TTLCache("web_enhancement", enhancement_ttl, clock, maxsize)
        self._sweeper = PeriodicSweeper("answer_cache", sweep_interval, self.sweep)

    @classmethod
    def from_settings(cls, settings, clock: Clock = time.monotonic) -> "AnswerCache":
        return cls(
            system_prompt_ttl=settings.system_prompt_ttl,
            conversation_ttl=settings.conversation_ttl,
            enhancement_ttl=settings.enhancement_ttl,
            sweep_interval=settings.cache_sweep_interval,
            clock=clock,
            maxsize=settings.cache_max_entries,
        )

    async def get_or_create_system_prompt(self, owner_id: str, generator: Callable[[], Awaitable[str]]) -> str:
        return await self.system_prompts.get_or_create(owner_id, generator)

    def invalidate_system_prompt(self, owner_id: str) -> bool:
        return self.system_prompts.invalidate(owner_id)

    async def get_or_create_conversation(
        self, conversation_id: str, loader: Callable[[], Awaitable[List[Any]]]
    ) -> List[Any]:
        history = await self.conversations.get_or_create(conversation_id, loader)
        return list(history)

    async def append_to_conversation(self, conversation_id: str, message: Any) -> bool:
        appended = await self.conversations.append(conversation_id, message)
        if not appended:
            logger.debug("No live history to append to", conversation_id=conversation_id)
        return appended

    async def get_or_create_enhancement(self, key: str, generator: Callable[[], Awaitable[Any]]) -> Any:
        return await self.enhancements.get_or_create(key, generator)

    def sweep(self) -> int:
        return self.system_prompts.sweep() + self.conversations.sweep() + self.enhancements.sweep()

    def stats(self) -> Dict[str, Dict[str, int]]:
        return {
            "system_prompt": self.system_prompts.stats(),
            "conversation": self.conversations.stats(),
            "web_enhancement": self.enhancements.stats(),
        }

    def start(self) -> None:
        self._sweeper.start()

    async def stop(self) -> None:
        await self._sweeper.stop()
