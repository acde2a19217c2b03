"""TTL key/value cache with bounded key count and periodic sweeping."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import OrderedDict
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CacheEntry:
    key: str
    value: Any
    inserted_at: float
    expires_at: float | None


class TTLCache:
    """Insertion-ordered TTL cache.

    Overflow past `max_keys` discards the oldest insertions first. `sweep()`
    drops expired entries and, when a `soft_cap` is configured and exceeded,
    evicts in bulk down to the `keep_recent` newest entries so a sweep costs
    one pass regardless of how far over the cap the cache has grown.

    A `ttl` of 0 stores an entry that never expires.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float = 3600.0,
        max_keys: int = 1000,
        soft_cap: int | None = None,
        keep_recent: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if soft_cap is not None and keep_recent is not None and keep_recent > soft_cap:
            raise ValueError("keep_recent must not exceed soft_cap")
        self.ttl_seconds = ttl_seconds
        self.max_keys = max_keys
        self.soft_cap = soft_cap
        self.keep_recent = keep_recent if keep_recent is not None else soft_cap
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._hits = 0
        self._misses = 0

    def get(self, key: str, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return default
        if self._expired(entry, self._clock()):
            del self._entries[key]
            self._misses += 1
            return default
        self._hits += 1
        return entry.value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        now = self._clock()
        ttl = self.ttl_seconds if ttl is None else ttl
        self._entries.pop(key, None)
        self._entries[key] = CacheEntry(
            key=key,
            value=value,
            inserted_at=now,
            expires_at=None if ttl <= 0 else now + ttl,
        )
        while len(self._entries) > self.max_keys:
            self._entries.popitem(last=False)

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def flush_all(self) -> None:
        self._entries.clear()
        self._hits = 0
        self._misses = 0

    def keys(self) -> list[str]:
        now = self._clock()
        return [key for key, entry in self._entries.items() if not self._expired(entry, now)]

    def __contains__(self, key: object) -> bool:
        entry = self._entries.get(key)  # type: ignore[arg-type]
        return entry is not None and not self._expired(entry, self._clock())

    def __len__(self) -> int:
        return len(self._entries)

    def sweep(self) -> int:
        """Remove expired entries, then bulk-evict beyond the soft cap."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if self._expired(entry, now)]
        for key in expired:
            del self._entries[key]
        removed = len(expired)

        if self.soft_cap is not None and len(self._entries) > self.soft_cap:
            keep = self.keep_recent or 0
            overflow = len(self._entries) - keep
            for key in list(self._entries)[:overflow]:
                del self._entries[key]
            removed += overflow
        return removed

    def stats(self) -> dict[str, int]:
        return {"keys": len(self._entries), "hits": self._hits, "misses": self._misses}

    @staticmethod
    def _expired(entry: CacheEntry, now: float) -> bool:
        return entry.expires_at is not None and now >= entry.expires_at


class CacheSweeper:
    """Runs `sweep()` on a set of caches on a fixed interval."""

    def __init__(self, caches: Iterable[TTLCache], interval_seconds: float = 600.0) -> None:
        self._caches = list(caches)
        self._interval = interval_seconds
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def sweep_once(self) -> int:
        removed = sum(cache.sweep() for cache in self._caches)
        logger.debug(
            "Cache sweep removed %d entries; sizes=%s",
            removed,
            [len(cache) for cache in self._caches],
        )
        return removed

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            self.sweep_once()
