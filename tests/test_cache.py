"""Tests for the TTL cache and in-flight request coalescing."""

import asyncio

import pytest

from nft_portfolio.utils.cache import InFlightRequests, TTLCache
from tests.conftest import FakeClock


def test_ttl_cache_returns_fresh_entries(clock: FakeClock) -> None:
    cache: TTLCache[dict] = TTLCache(ttl=300.0, clock=clock)
    cache.set("0xabc:1", {"price": 1.2})

    clock.advance(299)
    assert cache.get("0xabc:1") == {"price": 1.2}
    assert cache.hits == 1


def test_ttl_cache_drops_expired_entries(clock: FakeClock) -> None:
    cache: TTLCache[int] = TTLCache(ttl=300.0, clock=clock)
    cache.set("k", 1)

    clock.advance(300)
    assert cache.get("k") is None
    assert len(cache) == 0
    assert cache.misses == 1


def test_delete_prefix_only_touches_matching_keys(clock: FakeClock) -> None:
    cache: TTLCache[int] = TTLCache(ttl=60.0, clock=clock)
    cache.set("0xwallet-all|all-20", 1)
    cache.set("0xwallet-opensea|all-20", 2)
    cache.set("0xother-all|all-20", 3)

    assert cache.delete_prefix("0xwallet-") == 2
    assert "0xother-all|all-20" in cache
    assert len(cache) == 1


def test_prune_keeps_most_recent(clock: FakeClock) -> None:
    cache: TTLCache[int] = TTLCache(ttl=3600.0, clock=clock)
    for i in range(6):
        cache.set(f"k{i}", i)
        clock.advance(1)

    assert cache.prune(max_entries=10, keep=3) == 0
    assert cache.prune(max_entries=5, keep=3) == 3
    assert sorted(key for key, _ in cache.items()) == ["k3", "k4", "k5"]


def test_snapshot_and_restore_skip_expired(clock: FakeClock) -> None:
    cache: TTLCache[int] = TTLCache(ttl=100.0, clock=clock)
    cache.set("old", 1)
    clock.advance(60)
    cache.set("new", 2)
    snapshot = cache.snapshot()
    assert set(snapshot) == {"old", "new"}

    clock.advance(50)
    restored: TTLCache[int] = TTLCache(ttl=100.0, clock=clock)
    assert restored.restore(snapshot) == 1
    assert restored.get("new") == 2
    assert restored.get("old") is None


@pytest.mark.asyncio
async def test_inflight_coalesces_concurrent_calls() -> None:
    inflight = InFlightRequests(linger=0)
    calls = 0
    release = asyncio.Event()

    async def fetch() -> str:
        nonlocal calls
        calls += 1
        await release.wait()
        return "result"

    first = asyncio.create_task(inflight.run("batch", fetch))
    await asyncio.sleep(0)
    second = asyncio.create_task(inflight.run("batch", fetch))
    await asyncio.sleep(0)
    release.set()

    assert await asyncio.gather(first, second) == ["result", "result"]
    assert calls == 1
    assert "batch" not in inflight


@pytest.mark.asyncio
async def test_inflight_shares_failures_and_forgets_them() -> None:
    inflight = InFlightRequests(linger=0)

    async def boom() -> None:
        raise ValueError("upstream down")

    with pytest.raises(ValueError, match="upstream down"):
        await inflight.run("batch", boom)

    assert len(inflight) == 0


@pytest.mark.asyncio
async def test_inflight_lingers_after_completion() -> None:
    inflight = InFlightRequests(linger=0.05)
    calls = 0

    async def fetch() -> int:
        nonlocal calls
        calls += 1
        return calls

    assert await inflight.run("k", fetch) == 1
    assert await inflight.run("k", fetch) == 1
    assert calls == 1

    await asyncio.sleep(0.1)
    assert await inflight.run("k", fetch) == 2
