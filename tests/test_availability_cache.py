from datetime import date, datetime

from chore_rotation.core.availability_cache import AvailabilityCache
from chore_rotation.models.availability import CalendarEvent

DAY = date(2025, 3, 12)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def _event(event_id="e1"):
    return CalendarEvent(
        id=event_id,
        title="Dentist",
        startTime=datetime(2025, 3, 12, 15),
        endTime=datetime(2025, 3, 12, 16),
        type="personal",
    )


def test_miss_then_hit():
    cache = AvailabilityCache(ttl_seconds=60, clock=FakeClock())
    assert cache.get("alice", DAY) is None

    cache.set("alice", DAY, [_event()])
    cached = cache.get("alice", DAY)
    assert [e.id for e in cached] == ["e1"]
    assert cache.get("alice", date(2025, 3, 13)) is None
    assert cache.get("bob", DAY) is None


def test_entries_expire_after_ttl():
    clock = FakeClock()
    cache = AvailabilityCache(ttl_seconds=15 * 60, clock=clock)
    cache.set("alice", DAY, [_event()])

    clock.now = 15 * 60 - 1
    assert cache.get("alice", DAY) is not None

    clock.now = 15 * 60
    assert cache.get("alice", DAY) is None
    assert len(cache) == 0


def test_full_cache_purges_expired_before_evicting():
    clock = FakeClock()
    cache = AvailabilityCache(ttl_seconds=10, max_entries=2, clock=clock)
    cache.set("alice", DAY, [])
    clock.now = 5
    cache.set("bob", DAY, [])

    clock.now = 11  # alice expired, bob still live
    cache.set("cara", DAY, [])
    assert cache.get("bob", DAY) == []
    assert cache.get("cara", DAY) == []


def test_full_cache_evicts_entry_closest_to_expiry():
    clock = FakeClock()
    cache = AvailabilityCache(ttl_seconds=10, max_entries=2, clock=clock)
    cache.set("alice", DAY, [])
    clock.now = 1
    cache.set("bob", DAY, [])
    clock.now = 2
    cache.set("cara", DAY, [])

    assert cache.get("alice", DAY) is None
    assert len(cache) == 2


def test_stats_and_clear():
    cache = AvailabilityCache(clock=FakeClock())
    cache.set("alice", DAY, [_event()])
    assert cache.stats() == {"size": 1, "entries": ["alice-2025-03-12"]}

    cache.clear()
    assert cache.stats()["size"] == 0
