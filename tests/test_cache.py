from __future__ import annotations

from staff_deal_tracker.cache import ResponseCache


class Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_hit_within_ttl_skips_recompute():
    clock = Clock()
    cache = ResponseCache(ttl_seconds=300, clock=clock)
    calls = []

    def compute():
        calls.append(1)
        return {"n": len(calls)}

    first = cache.get_or_compute("dashboard", compute)
    clock.now = 299
    second = cache.get_or_compute("dashboard", compute)
    assert first is second
    assert len(calls) == 1


def test_entry_expires_after_ttl():
    clock = Clock()
    cache = ResponseCache(ttl_seconds=300, clock=clock)
    cache.set("dashboard", "old")
    clock.now = 300
    assert cache.get("dashboard") is None
    assert cache.get_or_compute("dashboard", lambda: "new") == "new"


def test_clear_drops_every_key():
    cache = ResponseCache(ttl_seconds=300, clock=Clock())
    cache.set("dashboard", 1)
    cache.set("source:xiaohongshu", 2)
    cache.clear()
    assert len(cache) == 0
    calls = []
    cache.get_or_compute("dashboard", lambda: calls.append(1) or "fresh")
    assert calls == [1]


def test_size_is_bounded_and_expired_entries_do_not_count():
    clock = Clock()
    cache = ResponseCache(ttl_seconds=10, max_entries=2, clock=clock)
    cache.set("dashboard", 1)
    cache.set("source:weibo", 2)
    cache.set("source:douyin", 3)
    assert len(cache) == 2
    assert cache.get("source:douyin") == 3

    clock.now = 10
    assert len(cache) == 0
