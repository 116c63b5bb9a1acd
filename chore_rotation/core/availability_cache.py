import time
from datetime import date
from typing import Callable, Dict, List, Optional, Tuple

from chore_rotation.config import CALENDAR_CACHE_TTL_MINUTES, CALENDAR_CACHE_MAX_ENTRIES
from chore_rotation.models.availability import CalendarEvent

CacheKey = Tuple[str, date]


class AvailabilityCache:
    """
    (member, date) -> calendar events with a fixed TTL.

    Entries expire `ttl_seconds` after they were written. When the cache is
    full, expired entries are purged first and then the entry closest to
    expiry is evicted. Writes for the same key are idempotent for a given
    date, so concurrent writers need no lock: last writer wins.
    """

    def __init__(
        self,
        ttl_seconds: float = CALENDAR_CACHE_TTL_MINUTES * 60,
        max_entries: int = CALENDAR_CACHE_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: Dict[CacheKey, Tuple[List[CalendarEvent], float]] = {}

    def get(self, member_id: str, day: date) -> Optional[List[CalendarEvent]]:
        key = (member_id, day)
        entry = self._entries.get(key)
        if entry is None:
            return None
        events, expiry = entry
        if self._clock() >= expiry:
            self._entries.pop(key, None)
            return None
        return list(events)

    def set(self, member_id: str, day: date, events: List[CalendarEvent]) -> None:
        if (member_id, day) not in self._entries and len(self._entries) >= self.max_entries:
            self.purge_expired()
            if len(self._entries) >= self.max_entries:
                oldest = min(self._entries, key=lambda k: self._entries[k][1])
                self._entries.pop(oldest, None)
        self._entries[(member_id, day)] = (list(events), self._clock() + self.ttl_seconds)

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [k for k, (_, expiry) in self._entries.items() if now >= expiry]
        for k in expired:
            self._entries.pop(k, None)
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> Dict[str, object]:
        return {
            "size": len(self._entries),
            "entries": [f"{mid}-{day.isoformat()}" for mid, day in self._entries],
        }

    def __len__(self) -> int:
        return len(self._entries)
