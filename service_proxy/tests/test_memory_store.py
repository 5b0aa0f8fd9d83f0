"""
Unit tests for the in-process key-value store.
"""

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_proxy.app.caching.memory_store import InMemoryStore


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class TestInMemoryStore:
    """Test cases for InMemoryStore."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def store(self, clock):
        return InMemoryStore(clock=clock)

    @pytest.mark.asyncio
    async def test_get_missing_key(self, store):
        assert await store.get("st:get:/systems:") is None

    @pytest.mark.asyncio
    async def test_setex_then_get(self, store):
        await store.setex("key", 60, '{"data": 1}')

        assert await store.get("key") == '{"data": 1}'

    @pytest.mark.asyncio
    async def test_value_live_until_expiry(self, store, clock):
        await store.setex("key", 60, "value")

        clock.advance(60)

        # Exactly at the expiry instant the entry is still served
        assert await store.get("key") == "value"

    @pytest.mark.asyncio
    async def test_expired_entry_is_evicted_on_read(self, store, clock):
        """Test that reading past expiry returns None and removes the entry."""
        await store.setex("key", 60, "value")
        clock.advance(60.5)

        assert "key" in store
        assert await store.get("key") is None
        assert "key" not in store
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_no_background_eviction(self, store, clock):
        await store.setex("key", 1, "value")
        clock.advance(3600)

        # Nothing has read the key yet
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_setex_overwrites_value_and_expiry(self, store, clock):
        await store.setex("key", 10, "old")
        clock.advance(5)
        await store.setex("key", 10, "new")
        clock.advance(8)

        assert await store.get("key") == "new"

    @pytest.mark.asyncio
    async def test_delete_and_close(self, store):
        await store.setex("a", 10, "1")
        await store.setex("b", 10, "2")

        await store.delete("a")
        await store.delete("missing")
        assert await store.get("a") is None
        assert len(store) == 1

        await store.close()
        assert len(store) == 0
