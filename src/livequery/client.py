"""QueryClient - one store, one focus source, shared query defaults."""

from __future__ import annotations

import weakref
from collections.abc import Awaitable, Callable
from dataclasses import replace
from typing import Any, TypeVar

from livequery.invalidation import (
    clear_query_cache,
    get_query_data,
    invalidate_query,
    set_query_data,
)
from livequery.mutation import Mutation
from livequery.query import Query
from livequery.scheduler import FocusManager
from livequery.store import QueryStore
from livequery.types import Duration, QueryKey, QueryOptions

T = TypeVar("T")
TData = TypeVar("TData")
TVars = TypeVar("TVars")


class QueryClient:
    """Owns the store and creates query and mutation bindings over it."""

    def __init__(
        self,
        *,
        store: QueryStore | None = None,
        focus_manager: FocusManager | None = None,
        default_options: QueryOptions[Any] | None = None,
    ) -> None:
        self._default_options = default_options or QueryOptions()
        self._store = store or QueryStore(
            default_cache_time=self._default_options.cache_time
        )
        self._focus_manager = focus_manager or FocusManager()
        self._queries: weakref.WeakSet[Query[Any]] = weakref.WeakSet()

    @property
    def store(self) -> QueryStore:
        return self._store

    @property
    def focus_manager(self) -> FocusManager:
        return self._focus_manager

    @property
    def default_options(self) -> QueryOptions[Any]:
        return self._default_options

    def query(
        self,
        key: QueryKey,
        fetch: Callable[[], Awaitable[T]],
        **options: Any,
    ) -> Query[T]:
        """Create and start a query binding. Call from a running loop."""
        query: Query[T] = Query(
            self._store,
            key,
            fetch,
            self._default_options,
            focus_manager=self._focus_manager,
            **options,
        )
        self._queries.add(query)
        return query.start()

    def mutation(
        self,
        fn: Callable[[TVars], Awaitable[TData]],
        **options: Any,
    ) -> Mutation[TData, TVars]:
        """Create a mutation binding."""
        return Mutation(fn, **options)

    def invalidate_query(self, key: QueryKey) -> None:
        invalidate_query(self._store, key)

    def set_query_data(self, key: QueryKey, data: Any) -> None:
        set_query_data(self._store, key, data)

    def get_query_data(self, key: QueryKey) -> Any | None:
        return get_query_data(self._store, key)

    def clear_query_cache(self) -> None:
        clear_query_cache(self._store)

    def close(self) -> None:
        """Close every live query and cancel pending evictions."""
        for query in list(self._queries):
            query.close()
        self._store.close()


def create_client(
    *,
    stale_time: Duration = 0,
    cache_time: Duration = "5m",
    retry: int = 3,
    retry_delay: Duration = 1000,
    refetch_on_window_focus: bool = False,
    clock: Callable[[], int] | None = None,
    coalesce: bool = False,
) -> QueryClient:
    """Create a QueryClient.

    Args:
        stale_time: Default age below which cached data is served as-is
        cache_time: Default idle window before unsubscribed entries are evicted
        retry: Default number of retries after a failed fetch
        retry_delay: Default base delay; attempt n waits retry_delay * n
        refetch_on_window_focus: Default for focus-triggered refetches
        clock: Millisecond clock for staleness (default: wall clock)
        coalesce: Share one in-flight fetch per key across queries

    Returns:
        QueryClient with its own store and focus manager
    """
    defaults = replace(
        QueryOptions(),
        stale_time=stale_time,
        cache_time=cache_time,
        retry=retry,
        retry_delay=retry_delay,
        refetch_on_window_focus=refetch_on_window_focus,
    )
    store = QueryStore(default_cache_time=cache_time, clock=clock, coalesce=coalesce)
    return QueryClient(store=store, default_options=defaults)


__all__ = ["QueryClient", "create_client"]
