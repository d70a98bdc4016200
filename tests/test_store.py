"""Tests for QueryStore."""

import asyncio
import logging

import pytest

from livequery import QueryStore


class TestGetSet:
    """Tests for reads and writes."""

    def test_get_missing_returns_none(self, store: QueryStore) -> None:
        assert store.get("missing") is None
        assert not store.has("missing")

    def test_set_creates_entry(self, store: QueryStore, clock) -> None:
        store.set("projects", [1, 2])
        entry = store.get("projects")
        assert entry is not None
        assert entry.data == [1, 2]
        assert entry.timestamp == clock.now
        assert store.has("projects")

    def test_set_overwrites_data_and_timestamp(self, store: QueryStore, clock) -> None:
        store.set("projects", "old")
        clock.advance(500)
        store.set("projects", "new")
        entry = store.get("projects")
        assert entry is not None
        assert entry.data == "new"
        assert entry.timestamp == clock.now

    def test_explicit_timestamp(self, store: QueryStore) -> None:
        store.set("k", 1, now=42)
        entry = store.get("k")
        assert entry is not None
        assert entry.timestamp == 42

    def test_none_is_valid_data(self, store: QueryStore) -> None:
        store.set("k", None)
        assert store.has("k")

    def test_one_entry_per_canonical_key(self, store: QueryStore) -> None:
        """Both key shapes address a single entry."""
        store.set(["user", "1"], "a")
        store.set("user-1", "b")
        store.subscribe(("user", "1"), lambda data: None)
        assert store.keys() == ["user-1"]
        assert len(store) == 1
        assert store.get(["user", "1"]) is store.get("user-1")


class TestSubscribe:
    """Tests for subscriber fan-out."""

    def test_subscribers_receive_new_data(self, store: QueryStore) -> None:
        seen_a: list[int] = []
        seen_b: list[int] = []
        store.subscribe("k", seen_a.append)
        store.subscribe("k", seen_b.append)

        store.set("k", 1)
        store.set("k", 2)

        assert seen_a == [1, 2]
        assert seen_b == [1, 2]

    def test_subscribe_creates_shell_without_data(self, store: QueryStore) -> None:
        store.subscribe("k", lambda data: None)
        entry = store.get("k")
        assert entry is not None
        assert not entry.has_data
        assert not store.has("k")

    def test_unsubscribe_stops_notifications(self, store: QueryStore) -> None:
        seen: list[int] = []
        unsubscribe = store.subscribe("k", seen.append)
        store.set("k", 1)
        unsubscribe()
        store.set("k", 2)
        assert seen == [1]

    def test_unsubscribe_twice_is_harmless(self, store: QueryStore) -> None:
        unsubscribe = store.subscribe("k", lambda data: None)
        unsubscribe()
        unsubscribe()

    def test_unsubscribe_drops_empty_shell(self, store: QueryStore) -> None:
        unsubscribe = store.subscribe("k", lambda data: None)
        unsubscribe()
        assert store.get("k") is None

    def test_failing_subscriber_does_not_block_others(
        self, store: QueryStore, caplog: pytest.LogCaptureFixture
    ) -> None:
        seen: list[int] = []

        def broken(data: int) -> None:
            raise RuntimeError("boom")

        store.subscribe("k", broken)
        store.subscribe("k", seen.append)

        with caplog.at_level(logging.ERROR, logger="livequery.store"):
            store.set("k", 1)

        assert seen == [1]
        assert "Subscriber for k failed" in caplog.text


class TestDelete:
    """Tests for delete and clear."""

    def test_delete_removes_data(self, store: QueryStore) -> None:
        store.set("k", 1)
        store.delete("k")
        assert store.get("k") is None

    def test_delete_missing_is_noop(self, store: QueryStore) -> None:
        store.delete("missing")

    def test_delete_keeps_live_subscribers(self, store: QueryStore) -> None:
        seen: list[int] = []
        store.subscribe("k", seen.append)
        store.set("k", 1)

        store.delete("k")
        assert not store.has("k")

        store.set("k", 2)
        assert seen == [1, 2]

    def test_clear_removes_everything(self, store: QueryStore) -> None:
        store.set("a", 1)
        store.set("b", 2)
        store.clear()
        assert store.keys() == []
        assert store.get("a") is None


class TestEviction:
    """Tests for idle eviction."""

    def test_evict_idle_respects_cache_time(self, clock) -> None:
        store = QueryStore(clock=clock, default_cache_time=1000)
        store.set("k", 1)

        clock.advance(999)
        assert store.evict_idle() == []
        assert store.has("k")

        clock.advance(1)
        assert store.evict_idle() == ["k"]
        assert not store.has("k")

    def test_evict_idle_skips_subscribed_entries(self, clock) -> None:
        store = QueryStore(clock=clock, default_cache_time=10)
        store.set("k", 1)
        store.subscribe("k", lambda data: None)
        clock.advance(10_000)
        assert store.evict_idle() == []

    def test_subscriber_cache_time_overrides_default(self, clock) -> None:
        store = QueryStore(clock=clock, default_cache_time="1h")
        unsubscribe = store.subscribe("k", lambda data: None, cache_time=100)
        store.set("k", 1)
        unsubscribe()
        clock.advance(100)
        assert store.evict_idle() == ["k"]

    def test_idle_window_starts_when_last_subscriber_leaves(self, clock) -> None:
        """Old data is not evicted the moment its last subscriber detaches."""
        store = QueryStore(clock=clock)
        unsubscribe = store.subscribe("k", lambda data: None, cache_time=1000)
        store.set("k", 1)

        clock.advance(5000)
        unsubscribe()
        assert store.evict_idle() == []

        clock.advance(999)
        assert store.evict_idle() == []

        clock.advance(1)
        assert store.evict_idle() == ["k"]

    def test_resubscribe_resets_idle_window(self, clock) -> None:
        store = QueryStore(clock=clock, default_cache_time=1000)
        store.set("k", 1)
        clock.advance(800)
        unsubscribe = store.subscribe("k", lambda data: None)
        clock.advance(800)
        unsubscribe()
        clock.advance(500)
        assert store.evict_idle() == []

    async def test_unsubscribed_entry_evicted_after_cache_time(self) -> None:
        store = QueryStore()
        unsubscribe = store.subscribe("k", lambda data: None, cache_time=20)
        store.set("k", 1)
        unsubscribe()

        assert store.has("k")
        await asyncio.sleep(0.1)
        assert not store.has("k")

    async def test_resubscribe_cancels_eviction(self) -> None:
        store = QueryStore()
        unsubscribe = store.subscribe("k", lambda data: None, cache_time=20)
        store.set("k", 1)
        unsubscribe()
        store.subscribe("k", lambda data: None)

        await asyncio.sleep(0.1)
        assert store.has("k")

    async def test_close_cancels_pending_evictions(self) -> None:
        store = QueryStore(default_cache_time=20)
        store.set("k", 1)
        store.close()
        await asyncio.sleep(0.1)
        assert store.has("k")


class TestRunFetch:
    """Tests for optional request coalescing."""

    async def test_without_coalescing_each_call_fetches(self, store: QueryStore) -> None:
        calls = 0

        async def fetch() -> int:
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return calls

        await asyncio.gather(store.run_fetch("k", fetch), store.run_fetch("k", fetch))
        assert calls == 2

    async def test_coalescing_shares_one_fetch(self) -> None:
        store = QueryStore(coalesce=True)
        calls = 0

        async def fetch() -> dict:
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return {"v": 1}

        results = await asyncio.gather(*(store.run_fetch("k", fetch) for _ in range(5)))
        assert calls == 1
        assert all(r == {"v": 1} for r in results)

    async def test_delete_detaches_in_flight_fetch(self) -> None:
        """Callers after a delete start their own fetch; earlier ones keep theirs."""
        store = QueryStore(coalesce=True)
        release = asyncio.Event()
        calls = 0

        async def fetch() -> int:
            nonlocal calls
            calls += 1
            call = calls
            await release.wait()
            return call

        first = asyncio.create_task(store.run_fetch("k", fetch))
        joiner = asyncio.create_task(store.run_fetch("k", fetch))
        await asyncio.sleep(0)

        store.delete("k")
        later = asyncio.create_task(store.run_fetch("k", fetch))
        await asyncio.sleep(0)

        release.set()
        assert await asyncio.gather(first, joiner, later) == [1, 1, 2]
        assert calls == 2

    async def test_coalesced_failure_reaches_every_caller(self) -> None:
        store = QueryStore(coalesce=True)

        async def fetch() -> int:
            await asyncio.sleep(0.01)
            raise RuntimeError("down")

        results = await asyncio.gather(
            store.run_fetch("k", fetch),
            store.run_fetch("k", fetch),
            return_exceptions=True,
        )
        assert all(isinstance(r, RuntimeError) for r in results)
