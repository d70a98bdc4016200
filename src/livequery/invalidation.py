"""Invalidation API - free functions that act on a store directly.

These work independently of any live Query, so mutation callbacks (or any
other event) can keep the cache consistent after a write.
"""

import logging
from typing import Any

from livequery.keys import canonical_key
from livequery.store import QueryStore
from livequery.types import QueryKey

logger = logging.getLogger(__name__)


def invalidate_query(store: QueryStore, key: QueryKey) -> None:
    """Drop the data for a key so the next read or refetch misses."""
    k = canonical_key(key)
    store.delete(k)
    logger.info("Cache invalidated for %s", k)


def set_query_data(store: QueryStore, key: QueryKey, data: Any) -> None:
    """Write data for a key without fetching; live queries see it at once."""
    k = canonical_key(key)
    store.set(k, data)
    logger.debug("Cache data set for %s", k)


def get_query_data(store: QueryStore, key: QueryKey) -> Any | None:
    """Read the data held for a key, or None."""
    entry = store.get(key)
    if entry is None or not entry.has_data:
        return None
    return entry.data


def clear_query_cache(store: QueryStore) -> None:
    """Drop the data for every key."""
    store.clear()
    logger.info("All cache cleared")


__all__ = [
    "clear_query_cache",
    "get_query_data",
    "invalidate_query",
    "set_query_data",
]
