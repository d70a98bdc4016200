"""Shared pytest fixtures."""

import asyncio
from collections.abc import Awaitable, Callable

import pytest

from livequery import FocusManager, QueryStore


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = 1_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock() -> FakeClock:
    """Create a fake clock starting at a fixed time."""
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> QueryStore:
    """Create a fresh QueryStore driven by the fake clock."""
    return QueryStore(clock=clock)


@pytest.fixture
def focus_manager() -> FocusManager:
    """Create a fresh FocusManager."""
    return FocusManager()


@pytest.fixture
def eventually() -> Callable[..., Awaitable[None]]:
    """Poll a condition on the event loop until it holds or times out."""

    async def wait_for(condition: Callable[[], bool], timeout: float = 1.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not condition():
            if loop.time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(0.005)

    return wait_for
