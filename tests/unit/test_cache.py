import asyncio

import pytest

from chat_orchestrator.cache import CacheSweeper, TTLCache


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_entries_expire_after_ttl() -> None:
    clock = FakeClock()
    cache = TTLCache(ttl_seconds=10, clock=clock)
    cache.set("answer", 42)

    clock.now = 9.9
    assert cache.get("answer") == 42
    assert "answer" in cache

    clock.now = 10.0
    assert cache.get("answer") is None
    assert "answer" not in cache
    assert cache.stats() == {"keys": 0, "hits": 1, "misses": 1}


def test_zero_ttl_never_expires() -> None:
    clock = FakeClock()
    cache = TTLCache(ttl_seconds=5, clock=clock)
    cache.set("pinned", "value", ttl=0)

    clock.now = 1e9
    assert cache.get("pinned") == "value"


def test_overflow_discards_oldest_insertion() -> None:
    cache = TTLCache(max_keys=2, clock=FakeClock())
    cache.set("a", 1)
    cache.set("b", 2)
    cache.set("a", 3)  # re-insert moves "a" to the newest position
    cache.set("c", 4)

    assert cache.keys() == ["a", "c"]
    assert cache.get("a") == 3


def test_sweep_drops_expired_then_bulk_evicts_to_keep_recent() -> None:
    clock = FakeClock()
    cache = TTLCache(ttl_seconds=0, max_keys=100, soft_cap=10, keep_recent=8, clock=clock)
    cache.set("short-lived", "x", ttl=1)
    for index in range(15):
        cache.set(f"k{index}", index)

    clock.now = 2.0
    removed = cache.sweep()

    assert removed == 1 + (15 - 8)
    assert cache.keys() == [f"k{index}" for index in range(7, 15)]


def test_sweep_below_soft_cap_keeps_everything() -> None:
    cache = TTLCache(ttl_seconds=0, soft_cap=10, keep_recent=8, clock=FakeClock())
    for index in range(10):
        cache.set(f"k{index}", index)

    assert cache.sweep() == 0
    assert len(cache) == 10


def test_keep_recent_cannot_exceed_soft_cap() -> None:
    with pytest.raises(ValueError):
        TTLCache(soft_cap=5, keep_recent=6)


def test_delete_and_flush() -> None:
    cache = TTLCache(clock=FakeClock())
    cache.set("a", 1)
    cache.set("b", 2)

    assert cache.delete("a") is True
    assert cache.delete("a") is False
    cache.flush_all()
    assert len(cache) == 0


def test_sweeper_runs_periodically_until_stopped() -> None:
    async def scenario() -> tuple[int, bool, bool]:
        cache = TTLCache(ttl_seconds=0.001)
        cache.set("stale", 1)
        sweeper = CacheSweeper([cache], interval_seconds=0.01)
        sweeper.start()
        was_running = sweeper.running
        await asyncio.sleep(0.1)
        await sweeper.stop()
        return len(cache), was_running, sweeper.running

    size, was_running, still_running = asyncio.run(scenario())

    assert size == 0
    assert was_running is True
    assert still_running is False
