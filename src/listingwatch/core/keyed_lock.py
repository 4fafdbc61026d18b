"""Per-key mutual exclusion for asyncio code."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Generic, Hashable, TypeVar

Key = TypeVar("Key", bound=Hashable)


class KeyedLock(Generic[Key]):
    """One asyncio.Lock per key, created on demand.

    Unrelated keys never wait on each other. A key's lock is dropped as soon
    as nobody holds or waits for it, so idle clients cost nothing.
    """

    def __init__(self) -> None:
        self._locks: Dict[Key, asyncio.Lock] = {}
        self._users: Dict[Key, int] = {}

    @asynccontextmanager
    async def hold(self, key: Key) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)
