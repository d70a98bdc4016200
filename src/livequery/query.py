"""Query - one live read binding over the QueryStore.

A Query serves cached data while it is fresh, fetches on miss or
staleness, retries failures with linear backoff, and mirrors every write
made to its key by anyone else.

Usage:
    store = QueryStore()

    async def fetch_projects() -> list[dict]:
        return await api.get("/projects")

    async with Query(store, "projects", fetch_projects, stale_time="5m") as q:
        await q.wait()
        print(q.data)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import replace
from types import TracebackType
from typing import Any, Generic, TypeVar

from livequery.callbacks import invoke
from livequery.duration import parse_duration, to_seconds
from livequery.errors import QueryClosedError
from livequery.keys import canonical_key
from livequery.scheduler import FocusManager, IntervalTimer
from livequery.store import QueryStore
from livequery.types import QueryKey, QueryOptions

T = TypeVar("T")

logger = logging.getLogger(__name__)


def _release(waiter: asyncio.Future[None]) -> None:
    if not waiter.done():
        waiter.set_result(None)


class Query(Generic[T]):
    """A query binding: local state mirror plus fetch/retry orchestration."""

    def __init__(
        self,
        store: QueryStore,
        key: QueryKey,
        fetch: Callable[[], Awaitable[T]],
        options: QueryOptions[T] | None = None,
        *,
        focus_manager: FocusManager | None = None,
        **overrides: Any,
    ) -> None:
        options = options or QueryOptions()
        if overrides:
            options = replace(options, **overrides)

        self._store = store
        self._key = canonical_key(key)
        self._fetch = fetch
        self._options = options
        self._focus_manager = focus_manager

        self._stale_time = parse_duration(options.stale_time)
        self._cache_time = parse_duration(options.cache_time)
        self._retry_delay = parse_duration(options.retry_delay)
        self._refetch_interval = (
            parse_duration(options.refetch_interval)
            if options.refetch_interval is not None
            else 0
        )

        self._data: T | None = None
        self._has_data = False
        self._error: BaseException | None = None
        self._is_loading = True
        self._is_fetching = False
        self._retry_count = 0

        self._started = False
        self._closed = False
        self._unsubscribe: Callable[[], None] | None = None
        self._unsubscribe_focus: Callable[[], None] | None = None
        self._interval: IntervalTimer | None = None
        self._retry_timer: asyncio.TimerHandle | None = None
        self._retry_waiter: asyncio.Future[None] | None = None
        self._task: asyncio.Task[None] | None = None

    # -------------------------------------------------------------------------
    # Consumer API
    # -------------------------------------------------------------------------

    @property
    def key(self) -> str:
        """Canonical key this binding reads."""
        return self._key

    @property
    def options(self) -> QueryOptions[T]:
        return self._options

    @property
    def data(self) -> T | None:
        return self._data

    @property
    def error(self) -> BaseException | None:
        return self._error

    @property
    def is_loading(self) -> bool:
        """True until this binding has data or its first fetch has failed."""
        return self._is_loading

    @property
    def is_fetching(self) -> bool:
        """True while an attempt sequence (including retries) is running."""
        return self._is_fetching

    @property
    def is_error(self) -> bool:
        return self._error is not None

    @property
    def is_success(self) -> bool:
        return self._has_data and self._error is None

    @property
    def is_stale(self) -> bool:
        entry = self._store.get(self._key)
        return entry is None or not entry.is_fresh(self._store.now(), self._stale_time)

    @property
    def data_updated_at(self) -> int | None:
        """Timestamp (ms) of the last write to this key, if it holds data."""
        entry = self._store.get(self._key)
        if entry is None or not entry.has_data:
            return None
        return entry.timestamp

    @property
    def failure_count(self) -> int:
        """Retries used by the current attempt sequence."""
        return self._retry_count

    @property
    def closed(self) -> bool:
        return self._closed

    async def refetch(self) -> None:
        """Fetch now, regardless of staleness. No-op for a disabled query.

        A refetch requested while an attempt sequence is already running
        waits for that sequence instead of starting a second one.
        """
        self._ensure_open()
        task = self._trigger(force=True)
        if task is not None:
            await asyncio.shield(task)

    async def invalidate(self) -> None:
        """Drop the cached data for this key, then refetch."""
        self._ensure_open()
        self._store.delete(self._key)
        logger.info("Cache invalidated for %s", self._key)
        await self.refetch()

    async def wait(self) -> None:
        """Wait for the in-flight attempt sequence, if any."""
        task = self._task
        if task is not None and not task.done():
            await asyncio.shield(task)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> Query[T]:
        """Attach to the store and arm the configured triggers.

        Must be called from a running event loop.
        """
        self._ensure_open()
        if self._started:
            return self
        self._started = True

        self._unsubscribe = self._store.subscribe(
            self._key, self._on_store_update, cache_time=self._cache_time
        )
        entry = self._store.get(self._key)
        if entry is not None and entry.has_data:
            self._adopt(entry.data)

        if not self._options.enabled:
            return self

        if self._options.refetch_on_mount:
            self._trigger(force=False)

        if self._refetch_interval > 0:
            self._interval = IntervalTimer(self._refetch_interval, self._on_interval)
            self._interval.start()

        if self._options.refetch_on_window_focus and self._focus_manager is not None:
            self._unsubscribe_focus = self._focus_manager.subscribe(self._on_focus)

        return self

    def close(self) -> None:
        """Detach from the store and disarm every timer this binding owns.

        A fetch already in flight is not cancelled; its result is discarded.
        """
        if self._closed:
            return
        self._closed = True

        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._unsubscribe_focus is not None:
            self._unsubscribe_focus()
            self._unsubscribe_focus = None
        if self._interval is not None:
            self._interval.cancel()
            self._interval = None
        if self._retry_timer is not None:
            self._retry_timer.cancel()
            self._retry_timer = None
        if self._retry_waiter is not None and not self._retry_waiter.done():
            self._retry_waiter.cancel()

    async def __aenter__(self) -> Query[T]:
        return self.start()

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    def _ensure_open(self) -> None:
        if self._closed:
            raise QueryClosedError(self._key)

    def _adopt(self, data: T) -> None:
        self._data = data
        self._has_data = True
        self._is_loading = False

    def _on_store_update(self, data: T) -> None:
        if self._closed:
            return
        self._adopt(data)

    def _on_interval(self) -> None:
        if not self._closed:
            self._trigger(force=False)

    def _on_focus(self) -> None:
        if not self._closed:
            logger.debug("Window focused, refetching %s", self._key)
            self._trigger(force=False)

    def _trigger(self, *, force: bool) -> asyncio.Task[None] | None:
        """Start an attempt sequence unless disabled, running or fresh."""
        if not self._options.enabled:
            logger.debug("Query %s is disabled, not fetching", self._key)
            return None
        if self._task is not None and not self._task.done():
            return self._task

        if not force:
            entry = self._store.get(self._key)
            if entry is not None and entry.is_fresh(self._store.now(), self._stale_time):
                logger.debug("Using cached data for %s", self._key)
                self._adopt(entry.data)
                self._is_fetching = False
                return None

        self._retry_count = 0
        self._is_fetching = True
        self._task = asyncio.get_running_loop().create_task(self._run_attempts())
        return self._task

    async def _run_attempts(self) -> None:
        logger.debug("Fetching data for %s", self._key)
        try:
            while True:
                try:
                    result = await self._store.run_fetch(self._key, self._fetch)
                except Exception as e:
                    if self._closed:
                        logger.debug("Discarding failed fetch for closed %s", self._key)
                        return
                    if self._retry_count < self._options.retry:
                        self._retry_count += 1
                        delay = self._retry_delay * self._retry_count
                        logger.debug(
                            "Fetch for %s failed (%r), retrying (%d/%d) in %dms",
                            self._key,
                            e,
                            self._retry_count,
                            self._options.retry,
                            delay,
                        )
                        if not await self._wait_retry(delay):
                            return
                        continue
                    await self._fail(e)
                    return

                if self._closed:
                    logger.debug("Discarding fetch result for closed %s", self._key)
                    return
                await self._succeed(result)
                return
        finally:
            self._is_fetching = False

    async def _wait_retry(self, delay: int) -> bool:
        """Sleep on a timer this binding owns. False if closed meanwhile."""
        loop = asyncio.get_running_loop()
        waiter: asyncio.Future[None] = loop.create_future()
        self._retry_waiter = waiter
        self._retry_timer = loop.call_later(to_seconds(delay), _release, waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if self._closed and waiter.cancelled():
                return False
            raise
        finally:
            if self._retry_timer is not None:
                self._retry_timer.cancel()
            self._retry_timer = None
            self._retry_waiter = None
        return not self._closed

    async def _succeed(self, result: T) -> None:
        # set() notifies this binding too; the local writes below make the
        # state explicit regardless of subscription.
        self._store.set(self._key, result)
        self._adopt(result)
        self._error = None
        self._retry_count = 0
        logger.debug("Data fetched successfully: %s", self._key)
        await self._run_callback(self._options.on_success, result)

    async def _fail(self, error: Exception) -> None:
        self._error = error
        self._is_loading = False
        logger.warning(
            "Fetch for %s failed after %d attempts: %r",
            self._key,
            self._retry_count + 1,
            error,
        )
        await self._run_callback(self._options.on_error, error)

    async def _run_callback(self, callback: Callable[..., Any] | None, arg: Any) -> None:
        try:
            await invoke(callback, arg)
        except Exception:
            logger.exception("Callback for %s failed", self._key)


__all__ = ["Query"]
