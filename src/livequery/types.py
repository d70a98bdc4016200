"""Core types for the livequery cache."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

T = TypeVar("T")
TData = TypeVar("TData")
TVars = TypeVar("TVars")

# "projects" or ["projects", "42"]
QueryKey = str | Sequence[str]

# Duration type alias
Duration = str | int  # "30s", "5m", "2h", "1d" or milliseconds

# Store subscribers receive the newly written data
Subscriber = Callable[[Any], None]

# Callbacks may be plain functions or coroutine functions
MaybeAwaitable = Awaitable[None] | None


@dataclass(eq=False, slots=True)
class CacheEntry(Generic[T]):
    """A cached value with metadata, owned by the QueryStore."""

    data: T | None = None
    timestamp: int = 0  # Unix timestamp ms of the last write
    has_data: bool = False
    subscribers: set[Subscriber] = field(default_factory=set)
    cache_time: int | None = None  # Idle window before eviction
    idle_since: int | None = None  # When the last subscriber left (ms)
    eviction_timer: asyncio.TimerHandle | None = None

    def age(self, now: int) -> int:
        """Milliseconds since the last write."""
        return now - self.timestamp

    def is_fresh(self, now: int, stale_time: int) -> bool:
        """Whether the data is younger than stale_time."""
        return self.has_data and self.age(now) < stale_time


@dataclass(frozen=True, slots=True)
class QueryOptions(Generic[T]):
    """Configuration for a query binding."""

    enabled: bool = True
    stale_time: Duration = 0
    cache_time: Duration = "5m"
    retry: int = 3
    retry_delay: Duration = 1000
    refetch_on_mount: bool = True
    refetch_on_window_focus: bool = False
    refetch_interval: Duration | None = None
    on_success: Callable[[T], MaybeAwaitable] | None = None
    on_error: Callable[[BaseException], MaybeAwaitable] | None = None

    def __post_init__(self) -> None:
        if self.retry < 0:
            raise ValueError("retry must be >= 0")


@dataclass(frozen=True, slots=True)
class MutationOptions(Generic[TData, TVars]):
    """Callbacks for a mutation binding."""

    on_success: Callable[[TData, TVars], MaybeAwaitable] | None = None
    on_error: Callable[[BaseException, TVars], MaybeAwaitable] | None = None
    on_settled: (
        Callable[[TData | None, BaseException | None, TVars], MaybeAwaitable] | None
    ) = None
