"""In-process query store with subscriber fan-out and idle eviction.

The store is passive: it never fetches and never decides staleness. It
holds one CacheEntry per canonical key, notifies subscribers synchronously
on every write, and evicts entries that have had no subscribers for their
cache_time.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from livequery.duration import parse_duration, to_seconds
from livequery.keys import canonical_key
from livequery.types import CacheEntry, Duration, QueryKey, Subscriber

T = TypeVar("T")

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class QueryStore:
    """Process-wide mapping from canonical query key to CacheEntry."""

    def __init__(
        self,
        *,
        default_cache_time: Duration = "5m",
        clock: Callable[[], int] | None = None,
        coalesce: bool = False,
    ) -> None:
        self._entries: dict[str, CacheEntry[Any]] = {}
        self._default_cache_time = parse_duration(default_cache_time)
        self._clock = clock or _now_ms
        self._coalesce = coalesce
        self._in_flight: dict[str, asyncio.Future[Any]] = {}

    @property
    def coalesce(self) -> bool:
        return self._coalesce

    def now(self) -> int:
        """Current time in milliseconds, from the store's clock."""
        return self._clock()

    def get(self, key: QueryKey) -> CacheEntry[Any] | None:
        """Get the entry for a key, if any."""
        return self._entries.get(canonical_key(key))

    def has(self, key: QueryKey) -> bool:
        """Whether the key currently holds data."""
        entry = self._entries.get(canonical_key(key))
        return entry is not None and entry.has_data

    def set(self, key: QueryKey, data: Any, now: int | None = None) -> None:
        """Write data for a key and notify every subscriber of that key."""
        k = canonical_key(key)
        entry = self._entries.get(k)
        if entry is None:
            entry = CacheEntry()
            self._entries[k] = entry

        entry.data = data
        entry.timestamp = self.now() if now is None else now
        entry.has_data = True

        if entry.subscribers:
            self._notify(k, entry)
        else:
            entry.idle_since = entry.timestamp
            self._schedule_eviction(k, entry)

    def subscribe(
        self,
        key: QueryKey,
        callback: Subscriber,
        *,
        cache_time: int | None = None,
    ) -> Callable[[], None]:
        """
        Register a callback for writes to a key.

        Returns a function that removes the callback. When the last
        subscriber leaves, the entry is evicted after cache_time ms unless
        a new subscriber arrives first.
        """
        k = canonical_key(key)
        entry = self._entries.get(k)
        if entry is None:
            entry = CacheEntry()
            self._entries[k] = entry

        self._cancel_eviction(entry)
        if cache_time is not None:
            entry.cache_time = cache_time
        entry.subscribers.add(callback)
        entry.idle_since = None

        def unsubscribe() -> None:
            current = self._entries.get(k)
            if current is None or callback not in current.subscribers:
                return
            current.subscribers.discard(callback)
            if current.subscribers:
                return
            if current.has_data:
                current.idle_since = self.now()
                self._schedule_eviction(k, current)
            else:
                del self._entries[k]

        return unsubscribe

    def delete(self, key: QueryKey) -> None:
        """
        Remove the data held for a key.

        Subscriptions belong to live bindings rather than to the data, so a
        key with subscribers keeps an empty entry that the next write fills.
        """
        k = canonical_key(key)
        self._in_flight.pop(k, None)
        entry = self._entries.pop(k, None)
        if entry is None:
            return
        self._cancel_eviction(entry)
        if entry.subscribers:
            self._entries[k] = CacheEntry(
                subscribers=entry.subscribers,
                cache_time=entry.cache_time,
            )

    def clear(self) -> None:
        """Delete every key."""
        for k in list(self._entries):
            self.delete(k)

    def keys(self) -> list[str]:
        """Canonical keys currently holding data."""
        return [k for k, entry in self._entries.items() if entry.has_data]

    def __contains__(self, key: QueryKey) -> bool:
        return self.has(key)

    def __len__(self) -> int:
        return len(self.keys())

    def evict_idle(self, now: int | None = None) -> list[str]:
        """Evict every unsubscribed entry idle for at least its cache_time."""
        now = self.now() if now is None else now
        evicted = []
        for k, entry in list(self._entries.items()):
            if entry.subscribers or not entry.has_data:
                continue
            idle_since = entry.idle_since if entry.idle_since is not None else now
            if now - idle_since >= self._cache_time_of(entry):
                self._cancel_eviction(entry)
                del self._entries[k]
                evicted.append(k)
        if evicted:
            logger.debug("Evicted %d idle entries", len(evicted))
        return evicted

    def close(self) -> None:
        """Cancel pending eviction timers."""
        for entry in self._entries.values():
            self._cancel_eviction(entry)

    async def run_fetch(self, key: str, fetch: Callable[[], Awaitable[T]]) -> T:
        """Run a fetch, sharing one in-flight call per key when coalescing."""
        if not self._coalesce:
            return await fetch()

        existing = self._in_flight.get(key)
        if existing is not None:
            logger.debug("Joining in-flight fetch for %s", key)
            result: T = await asyncio.shield(existing)
            return result

        future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        self._in_flight[key] = future
        try:
            result = await fetch()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            future.exception()  # mark retrieved; joiners re-raise it themselves
            raise
        else:
            future.set_result(result)
            return result
        finally:
            # delete() may already have replaced or dropped this registration
            if self._in_flight.get(key) is future:
                del self._in_flight[key]

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    def _notify(self, key: str, entry: CacheEntry[Any]) -> None:
        data = entry.data
        for callback in list(entry.subscribers):
            try:
                callback(data)
            except Exception:
                logger.exception("Subscriber for %s failed", key)

    def _cache_time_of(self, entry: CacheEntry[Any]) -> int:
        if entry.cache_time is not None:
            return entry.cache_time
        return self._default_cache_time

    def _schedule_eviction(self, key: str, entry: CacheEntry[Any]) -> None:
        self._cancel_eviction(entry)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Outside a loop idle entries wait for evict_idle()
            return
        entry.eviction_timer = loop.call_later(
            to_seconds(self._cache_time_of(entry)), self._evict, key, entry
        )

    def _cancel_eviction(self, entry: CacheEntry[Any]) -> None:
        if entry.eviction_timer is not None:
            entry.eviction_timer.cancel()
            entry.eviction_timer = None

    def _evict(self, key: str, entry: CacheEntry[Any]) -> None:
        entry.eviction_timer = None
        if self._entries.get(key) is not entry or entry.subscribers:
            return
        del self._entries[key]
        logger.debug("Cleaning up cache for %s", key)


__all__ = ["QueryStore"]
