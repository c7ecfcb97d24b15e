"""
Search result cache with in-flight de-duplication.

Two structures cooperate:

- ``_entries``: normalized key -> CacheEntry, served while younger than the TTL
  and bounded to ``max_entries`` (oldest insertion evicted first).
- ``_inflight``: normalized key -> asyncio.Task for the one upstream call
  currently computing that key. The slot is claimed before the first await
  and released by the task itself when it settles, success or failure, so
  concurrent callers for the same key share a single upstream call and a
  failure is never replayed from cache.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence

from driveconnector.core.config import CacheConfig

logger = logging.getLogger("DriveConnector.cache")

SearchFn = Callable[[str, int], Awaitable[Sequence[Any]]]


def normalize_query(query: str) -> str:
    return query.strip().casefold()


def search_cache_key(query: str, limit: int) -> str:
    return f"search:{normalize_query(query)}:{limit}"


def _consume_exception(task: asyncio.Task) -> None:
    # Marks the exception retrieved when every awaiting caller has gone away.
    if not task.cancelled():
        task.exception()


@dataclass(frozen=True)
class CacheEntry:
    key: str
    results: tuple
    stored_at: float


class QueryCache:
    def __init__(
        self,
        search_fn: SearchFn,
        *,
        ttl_seconds: float = 300.0,
        max_entries: int = 256,
        now_fn: Callable[[], float] = time.monotonic,
    ) -> None:
        self._search_fn = search_fn
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._now_fn = now_fn
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._inflight: Dict[str, asyncio.Task] = {}
        self.hits = 0
        self.misses = 0
        self.joins = 0

    @classmethod
    def from_config(cls, search_fn: SearchFn, config: CacheConfig, **kwargs) -> "QueryCache":
        return cls(search_fn, ttl_seconds=config.ttl_seconds, max_entries=config.max_entries, **kwargs)

    @property
    def inflight_count(self) -> int:
        return len(self._inflight)

    def __len__(self) -> int:
        return len(self._entries)

    def lookup(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._now_fn() - entry.stored_at >= self._ttl:
            del self._entries[key]
            return None
        return entry

    def _store(self, key: str, results: Sequence[Any]) -> None:
        self._entries.pop(key, None)
        self._entries[key] = CacheEntry(key=key, results=tuple(results), stored_at=self._now_fn())
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()

    async def search(self, query: str, limit: int) -> list:
        """Return search results for ``query``, from cache, a shared in-flight call, or upstream."""
        key = search_cache_key(query, limit)
        return await self.get_or_load(key, lambda: self._search_fn(query, limit))

    async def get_or_load(self, key: str, loader: Callable[[], Awaitable[Sequence[Any]]]) -> list:
        entry = self.lookup(key)
        if entry is not None:
            self.hits += 1
            logger.debug("Cache hit for %s", key)
            return list(entry.results)

        pending = self._inflight.get(key)
        if pending is not None:
            self.joins += 1
            logger.debug("Joining in-flight query for %s", key)
            return list(await asyncio.shield(pending))

        self.misses += 1
        task = asyncio.ensure_future(self._load(key, loader))
        self._inflight[key] = task
        task.add_done_callback(_consume_exception)
        # Shielded: a caller that goes away does not cancel the shared upstream call.
        return list(await asyncio.shield(task))

    async def _load(self, key: str, loader: Callable[[], Awaitable[Sequence[Any]]]) -> tuple:
        try:
            results = tuple(await loader())
            self._store(key, results)
            return results
        finally:
            self._inflight.pop(key, None)
