"""
Nihonto Search — Facet Cache

Short-lived, in-process cache for facet results keyed by the full predicate
signature. Purely an optimization: NullCache disables it with no change in
results.

Entries are last-write-wins. A key always identifies one exact filter
combination, so a cached value never mixes counts from two signatures.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable, Hashable
from typing import Any, Generic, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class TTLCache(Generic[T]):
    """
    TTL cache with an injectable clock.

    Usage:
        cache = TTLCache(ttl_seconds=300)
        facets = await cache.get_or_compute(key, lambda: aggregate(...))
    """

    def __init__(
        self,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        max_entries: int = 1024,
    ):
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
        self._ttl = ttl_seconds
        self._clock = clock
        self._max_entries = max_entries
        self._entries: dict[Hashable, tuple[float, T]] = {}

    def get(self, key: Hashable) -> T | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: Hashable, value: T) -> None:
        if len(self._entries) >= self._max_entries:
            self._sweep()
        if len(self._entries) >= self._max_entries:
            # Still full: drop the oldest insertion
            self._entries.pop(next(iter(self._entries)))
        self._entries[key] = (self._clock() + self._ttl, value)

    async def get_or_compute(self, key: Hashable, compute: Callable[[], Awaitable[T]]) -> T:
        cached = self.get(key)
        if cached is not None:
            logger.debug("facet_cache_hit", source="cache")
            return cached
        value = await compute()
        self.set(key, value)
        return value

    def clear(self) -> None:
        self._entries.clear()

    def _sweep(self) -> None:
        now = self._clock()
        expired = [key for key, (expires_at, _) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]

    def __len__(self) -> int:
        return len(self._entries)


class NullCache(Generic[T]):
    """Cache that never stores anything."""

    def get(self, key: Hashable) -> Any:
        return None

    def set(self, key: Hashable, value: T) -> None:
        return None

    async def get_or_compute(self, key: Hashable, compute: Callable[[], Awaitable[T]]) -> T:
        return await compute()

    def clear(self) -> None:
        return None

    def __len__(self) -> int:
        return 0
