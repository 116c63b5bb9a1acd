from datetime import date, datetime, time
from typing import Dict, List, Protocol, Iterable, Optional

from chore_rotation.models.availability import CalendarEvent


class CalendarProvider(Protocol):
    """Source of a member's calendar events for one day."""

    async def get_events(self, member_id: str, day: date) -> List[CalendarEvent]: ...


def _at(day: date, hour: int, minute: int = 0, tzinfo=None) -> datetime:
    return datetime.combine(day, time(hour, minute), tzinfo=tzinfo)


class StubCalendarProvider:
    """
    Deterministic stand-in used until a real calendar integration exists:
    weekdays carry work 09:00-17:00 with a commute hour on either side,
    weekends are free. Same member and day always give the same events.
    Hours are UTC unless `tzinfo` places them in a local zone; either way
    CalendarEvent stores them as naive UTC.
    """

    def __init__(self, tzinfo=None):
        self.tzinfo = tzinfo

    async def get_events(self, member_id: str, day: date) -> List[CalendarEvent]:
        if day.weekday() >= 5:
            return []
        tz = self.tzinfo
        stamp = day.isoformat()
        return [
            CalendarEvent(id=f"commute-am-{member_id}-{stamp}", title="Commute to work",
                          startTime=_at(day, 8, tzinfo=tz), endTime=_at(day, 9, tzinfo=tz), type="travel"),
            CalendarEvent(id=f"work-{member_id}-{stamp}", title="Work",
                          startTime=_at(day, 9, tzinfo=tz), endTime=_at(day, 17, tzinfo=tz), type="work"),
            CalendarEvent(id=f"commute-pm-{member_id}-{stamp}", title="Commute from work",
                          startTime=_at(day, 17, tzinfo=tz), endTime=_at(day, 18, tzinfo=tz), type="travel"),
        ]


class InMemoryCalendarProvider:
    """Serves pre-loaded events per member, filtered to the requested day."""

    def __init__(self, events: Optional[Dict[str, Iterable[CalendarEvent]]] = None):
        self.events: Dict[str, List[CalendarEvent]] = {mid: list(evs) for mid, evs in (events or {}).items()}
        self.calls = 0

    async def get_events(self, member_id: str, day: date) -> List[CalendarEvent]:
        self.calls += 1
        return [
            e for e in self.events.get(member_id, [])
            if e.startTime.date() <= day <= e.endTime.date()
        ]
