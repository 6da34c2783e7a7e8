"""Tests for the expiring suppression map."""

import pytest

from erpwatch.detection.suppression import ExpiringKeyMap


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_entries_expire_after_ttl():
    clock = FakeClock()
    cache = ExpiringKeyMap(max_entries=10, ttl_seconds=60, clock=clock)
    cache.set("a", "ALERT_1")

    clock.now = 59.9
    assert cache.get("a") == "ALERT_1"
    clock.now = 60.0
    assert cache.get("a") is None
    assert len(cache) == 0


def test_oldest_entry_evicted_when_full():
    cache = ExpiringKeyMap(max_entries=2, ttl_seconds=600, clock=FakeClock())
    cache.set("a", 1)
    cache.set("b", 2)
    cache.set("a", 3)
    cache.set("c", 4)

    assert "b" not in cache
    assert cache.get("a") == 3
    assert cache.get("c") == 4


def test_purge_expired_and_discard():
    clock = FakeClock()
    cache = ExpiringKeyMap(max_entries=10, ttl_seconds=10, clock=clock)
    cache.set("a", 1)
    clock.now = 5
    cache.set("b", 2)
    clock.now = 12

    assert cache.purge_expired() == 1
    cache.discard("b")
    cache.discard("missing")
    assert len(cache) == 0


def test_invalid_bounds():
    with pytest.raises(ValueError):
        ExpiringKeyMap(max_entries=0)
    with pytest.raises(ValueError):
        ExpiringKeyMap(ttl_seconds=-1)
