"""In-memory query cache shared across editors and list views.

Entries are keyed by tuples (``("car", 42)``, ``("my-cars",)``). Operations
that take a key prefix match every entry whose key starts with it, so
``invalidate(("car",))`` reaches every single-listing entry.

Fetches are de-duplicated per key and tracked so optimistic mutations can
cancel a refetch before it overwrites their tentative state.
"""

from __future__ import annotations

import asyncio
import copy
import math
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any

import structlog

from autolist.errors import QueryCancelledError

logger = structlog.get_logger()

QueryKey = tuple[Any, ...]

FOREVER = math.inf


@dataclass
class CacheEntry:
    data: Any
    updated_at: float
    stale: bool = False


def _matches(key: QueryKey, prefix: QueryKey) -> bool:
    return key[: len(prefix)] == prefix


class QueryCache:
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[QueryKey, CacheEntry] = {}
        self._inflight: dict[QueryKey, asyncio.Task[Any]] = {}

    # --- Plain access ---

    def get(self, key: QueryKey) -> Any | None:
        entry = self._entries.get(key)
        return entry.data if entry is not None else None

    def has(self, key: QueryKey) -> bool:
        return key in self._entries

    def set(self, key: QueryKey, data: Any) -> None:
        self._entries[key] = CacheEntry(data=data, updated_at=self._clock())

    def remove(self, key: QueryKey) -> None:
        self._entries.pop(key, None)

    def keys_matching(self, prefix: QueryKey) -> list[QueryKey]:
        return [key for key in self._entries if _matches(key, prefix)]

    def is_stale(self, key: QueryKey, stale_time: float = 0.0) -> bool:
        entry = self._entries.get(key)
        if entry is None or entry.stale:
            return True
        return self._clock() - entry.updated_at >= stale_time

    # --- Snapshots ---

    def snapshot(self, keys: Iterable[QueryKey]) -> dict[QueryKey, CacheEntry | None]:
        """Deep-copy the current entries (None for absent keys)."""
        return {key: copy.deepcopy(self._entries.get(key)) for key in keys}

    def restore(self, snapshot: dict[QueryKey, CacheEntry | None]) -> None:
        """Put entries back exactly as they were when the snapshot was taken."""
        for key, entry in snapshot.items():
            if entry is None:
                self._entries.pop(key, None)
            else:
                self._entries[key] = entry

    # --- Invalidation & cancellation ---

    def invalidate(self, prefix: QueryKey) -> list[QueryKey]:
        """Mark matching entries stale; the next fetch goes to the server."""
        keys = self.keys_matching(prefix)
        for key in keys:
            self._entries[key].stale = True
        logger.debug("query_cache_invalidated", prefix=prefix, count=len(keys))
        return keys

    async def cancel(self, prefix: QueryKey) -> int:
        """Cancel in-flight fetches under ``prefix``; their results are dropped."""
        tasks = [task for key, task in self._inflight.items() if _matches(key, prefix)]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.debug("query_cache_cancelled", prefix=prefix, count=len(tasks))
        return len(tasks)

    # --- Fetch ---

    async def fetch(
        self,
        key: QueryKey,
        fetcher: Callable[[], Awaitable[Any]],
        *,
        stale_time: float = 0.0,
    ) -> Any:
        """Return cached data if fresh, else run ``fetcher`` once per key.

        Concurrent callers for the same key share one request. If the
        request is cancelled via ``cancel`` the callers get
        ``QueryCancelledError``; cancelling a caller never cancels the
        shared request.
        """
        if not self.is_stale(key, stale_time):
            return self._entries[key].data

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.create_task(self._run(key, fetcher))
            self._inflight[key] = task
            task.add_done_callback(lambda done, key=key: self._forget(key, done))

        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if task.cancelled() and (current is None or not current.cancelling()):
                raise QueryCancelledError(key) from None
            raise

    async def _run(self, key: QueryKey, fetcher: Callable[[], Awaitable[Any]]) -> Any:
        data = await fetcher()
        self.set(key, data)
        return data

    def _forget(self, key: QueryKey, task: asyncio.Task[Any]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
