"""Per-key asyncio mutex."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Hashable


class _Slot:
    __slots__ = ("lock", "holders")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.holders = 0


class KeyedMutex:
    """Serializes work per key while leaving other keys unblocked.

    Usage:
        mutex = KeyedMutex()
        async with mutex.hold("conversation:42"):
            ...

    The slot for a key is dropped once nobody holds or waits on it, so the
    map only grows with the number of keys in flight.
    """

    def __init__(self) -> None:
        self._slots: Dict[Hashable, _Slot] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        slot = self._slots.get(key)
        if slot is None:
            slot = self._slots[key] = _Slot()
        slot.holders += 1
        try:
            async with slot.lock:
                yield
        finally:
            slot.holders -= 1
            if slot.holders == 0 and self._slots.get(key) is slot:
                del self._slots[key]

    def is_locked(self, key: Hashable) -> bool:
        slot = self._slots.get(key)
        return slot is not None and slot.lock.locked()

    def __len__(self) -> int:
        return len(self._slots)
