"""
KeyValueStore - Shared state backend for the cache and circuit breakers.

Both the response cache and the breaker records live behind this interface
so that tests (and single-process deployments) can use the in-memory store
while a networked backend can be plugged in later without touching callers.

Writes are evictable by default. Breaker records are written with
``evictable=False`` so cache pressure can never reset an open circuit; they
still expire with their TTL.
"""

import asyncio
import copy
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable

from loguru import logger

Clock = Callable[[], float]


class KeyValueStore(ABC):
    """Async key/value store with per-key TTL."""

    @abstractmethod
    async def get(self, key: str) -> Any | None: ...

    @abstractmethod
    async def set(
        self, key: str, value: Any, ttl: float | None = None, evictable: bool = True
    ) -> None: ...

    @abstractmethod
    async def delete(self, key: str) -> bool: ...

    @abstractmethod
    async def delete_prefix(self, prefix: str) -> int: ...

    async def update(
        self,
        key: str,
        fn: Callable[[Any | None], Any],
        ttl: float | None = None,
        evictable: bool = True,
    ) -> Any:
        """
        Read-modify-write a key.

        The default is a plain get/set (last write wins); backends with an
        atomic primitive override it.
        """
        value = fn(await self.get(key))
        await self.set(key, value, ttl, evictable)
        return value


@dataclass
class _StoredValue:
    value: Any
    expires_at: float | None
    evictable: bool = True


class InMemoryStore(KeyValueStore):
    """
    Process-local store with TTL and LRU-style eviction.

    Values are deep-copied on the way in and out so callers never share
    mutable state with the store. Only evictable entries count towards
    ``max_size``.
    """

    def __init__(self, max_size: int = 1000, clock: Clock | None = None):
        self._data: dict[str, _StoredValue] = {}
        self._max_size = max_size
        self._clock = clock or time.time
        self._lock = asyncio.Lock()

    def _expired(self, item: _StoredValue) -> bool:
        return item.expires_at is not None and self._clock() >= item.expires_at

    def _evictable_count(self) -> int:
        return sum(1 for item in self._data.values() if item.evictable)

    def _read(self, key: str) -> Any | None:
        item = self._data.get(key)
        if item is None:
            return None
        if self._expired(item):
            del self._data[key]
            return None
        return copy.deepcopy(item.value)

    def _write(self, key: str, value: Any, ttl: float | None, evictable: bool) -> None:
        if evictable and key not in self._data and self._evictable_count() >= self._max_size:
            self._evict()
        expires_at = self._clock() + ttl if ttl is not None else None
        self._data[key] = _StoredValue(copy.deepcopy(value), expires_at, evictable)

    def _evict(self) -> None:
        # Drop expired entries first, then the evictable entry closest to expiry
        expired = [k for k, v in self._data.items() if self._expired(v)]
        for key in expired:
            del self._data[key]
        candidates = [k for k, v in self._data.items() if v.evictable]
        if len(candidates) < self._max_size or not candidates:
            return
        oldest_key = min(
            candidates,
            key=lambda k: self._data[k].expires_at or float("inf"),
        )
        del self._data[oldest_key]
        logger.debug(f"[InMemoryStore] EVICT: {oldest_key[:50]}")

    async def get(self, key: str) -> Any | None:
        async with self._lock:
            return self._read(key)

    async def set(
        self, key: str, value: Any, ttl: float | None = None, evictable: bool = True
    ) -> None:
        async with self._lock:
            self._write(key, value, ttl, evictable)

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._data.pop(key, None) is not None

    async def delete_prefix(self, prefix: str) -> int:
        async with self._lock:
            keys = [k for k in self._data if k.startswith(prefix)]
            for key in keys:
                del self._data[key]
            return len(keys)

    async def update(
        self,
        key: str,
        fn: Callable[[Any | None], Any],
        ttl: float | None = None,
        evictable: bool = True,
    ) -> Any:
        async with self._lock:
            value = fn(self._read(key))
            self._write(key, value, ttl, evictable)
            return copy.deepcopy(value)

    def __len__(self) -> int:
        return len(self._data)
