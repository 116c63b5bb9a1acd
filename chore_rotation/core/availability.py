import asyncio
import logging
from datetime import datetime, timedelta, date
from typing import Dict, List, Optional, Iterable

from chore_rotation.config import AVAILABILITY_TIMEOUT_SECONDS
from chore_rotation.core.availability_cache import AvailabilityCache
from chore_rotation.core.calendar_provider import CalendarProvider
from chore_rotation.core.defaults import default_availability
from chore_rotation.core.stores import MemberDirectory
from chore_rotation.models.availability import (
    AvailabilityResult,
    CalendarEvent,
    GroupTimeResult,
    ScheduleConflict,
)
from chore_rotation.models.member import MemberRotationPreferences
from chore_rotation.models.timestamps import to_utc_naive

logger = logging.getLogger(__name__)

# ------------------------------------------------------
# CONFIG CONSTANTS (event-type rules)
# ------------------------------------------------------
EVENT_SEVERITY = {"work": "critical", "travel": "high", "family": "medium", "personal": "low"}
OVERLAP_PENALTY = {"critical": 50, "high": 30}   # everything else costs 15
DEFAULT_OVERLAP_PENALTY = 15
BUFFER_MINUTES = {"work": 30, "travel": 15, "family": 10}  # everything else needs 5
DEFAULT_BUFFER_MINUTES = 5
BUFFER_PENALTY = 10

PREFERRED_WINDOW_BONUS = 15
UNAVAILABLE_PENALTY = 25
ENERGY_ADJUSTMENT = 10

SUGGESTION_FIRST_HOUR = 6
SUGGESTION_LAST_HOUR = 22
MAX_SUGGESTIONS = 3
NEXT_DAY_SUGGESTION_HOUR = 9


def _overlaps(start1: datetime, end1: datetime, start2: datetime, end2: datetime) -> bool:
    return start1 < end2 and end1 > start2


def _day_of_week(moment: datetime) -> int:
    """0 = Sunday ... 6 = Saturday, the convention of stored preferences."""
    return (moment.weekday() + 1) % 7


def _on_hour(moment: datetime, hour: int) -> datetime:
    return moment.replace(hour=hour, minute=0, second=0, microsecond=0)


class AvailabilityOracle:
    """
    Scores how well a member can take on a chore at a given time.

    Calendar events come from the injected provider through the injected
    cache. Every failure, provider errors included, is converted into the
    default availability result: callers never see an exception.
    """

    def __init__(
        self,
        calendar_provider: CalendarProvider,
        cache: Optional[AvailabilityCache] = None,
        member_directory: Optional[MemberDirectory] = None,
        timeout_seconds: float = AVAILABILITY_TIMEOUT_SECONDS,
    ):
        self.calendar_provider = calendar_provider
        self.cache = cache if cache is not None else AvailabilityCache()
        self.member_directory = member_directory
        self.timeout_seconds = timeout_seconds

    # --- 1. Single member ---
    async def check_member_availability(
        self,
        member_id: str,
        target: datetime,
        duration_minutes: int,
        preferences: Optional[MemberRotationPreferences] = None,
    ) -> AvailabilityResult:
        try:
            target = to_utc_naive(target)
            events = await self._get_events(member_id, target.date())
            if preferences is None:
                preferences = await self._lookup_preferences(member_id)
            return self._analyze(events, preferences or MemberRotationPreferences(), target, duration_minutes)
        except Exception as e:
            logger.warning("[AVAILABILITY] Check failed for member %s at %s: %s", member_id, target, e)
            return default_availability()

    async def _lookup_preferences(self, member_id: str) -> Optional[MemberRotationPreferences]:
        """Stored preferences from the member directory; a failed lookup scores without them."""
        if self.member_directory is None:
            return None
        try:
            member = await self.member_directory.get_member(member_id)
        except Exception as e:
            logger.warning("[AVAILABILITY] Preferences of member %s unavailable: %s", member_id, e)
            return None
        return member.rotationPreferences if member else None

    async def _get_events(self, member_id: str, day: date) -> List[CalendarEvent]:
        cached = self.cache.get(member_id, day)
        if cached is not None:
            return cached
        events = await self.calendar_provider.get_events(member_id, day)
        self.cache.set(member_id, day, events)
        return events

    def _analyze(
        self,
        events: List[CalendarEvent],
        prefs: MemberRotationPreferences,
        target: datetime,
        duration_minutes: int,
    ) -> AvailabilityResult:
        conflicts: List[ScheduleConflict] = []
        score = 100.0
        end = target + timedelta(minutes=duration_minutes)

        for event in events:
            # Direct calendar conflicts
            if _overlaps(target, end, event.startTime, event.endTime):
                severity = EVENT_SEVERITY.get(event.type, "medium")
                conflicts.append(ScheduleConflict(
                    type="calendar",
                    severity=severity,
                    description=(
                        f"Conflicts with {event.title} "
                        f"({event.startTime:%H:%M} - {event.endTime:%H:%M})"
                    ),
                    suggestedResolution="Move the chore to one of the suggested times.",
                    canOverride=event.type != "work",
                ))
                score -= OVERLAP_PENALTY.get(severity, DEFAULT_OVERLAP_PENALTY)

            # Buffer time around the event
            buffer = timedelta(minutes=BUFFER_MINUTES.get(event.type, DEFAULT_BUFFER_MINUTES))
            if (_overlaps(target, end, event.startTime - buffer, event.startTime)
                    or _overlaps(target, end, event.endTime, event.endTime + buffer)):
                conflicts.append(ScheduleConflict(
                    type="calendar",
                    severity="medium",
                    description=f"Too close to {event.title} - insufficient buffer time",
                    canOverride=True,
                ))
                score -= BUFFER_PENALTY

        hour = target.hour
        dow = _day_of_week(target)

        in_preferred = (
            any(r.contains(hour, dow) for r in prefs.preferredTimeRanges)
            or dow in prefs.preferredDaysOfWeek
        )
        if in_preferred:
            score += PREFERRED_WINDOW_BONUS

        if any(p.covers(target.date(), dow) for p in prefs.unavailabilityPeriods):
            conflicts.append(ScheduleConflict(
                type="preference",
                severity="medium",
                description="Time falls in member's unavailable period",
                canOverride=True,
            ))
            score -= UNAVAILABLE_PENALTY

        energy = next((p for p in prefs.energyPatterns if p.timeRange.contains(hour, dow)), None)
        if energy is not None:
            if energy.energyLevel == "high":
                score += ENERGY_ADJUSTMENT
            elif energy.energyLevel == "low":
                score -= ENERGY_ADJUSTMENT

        score = max(0.0, min(100.0, score))
        suggested = self._suggest_times(target, events, duration_minutes)

        reasoning = f"Availability score: {score:.0f}"
        if conflicts:
            reasoning += f", {len(conflicts)} conflict(s) detected"
        if in_preferred:
            reasoning += ", in preferred time window"
        if energy is not None:
            reasoning += f", {energy.energyLevel} energy period"

        return AvailabilityResult(score=score, conflicts=conflicts, suggestedTimes=suggested, reasoning=reasoning)

    def _suggest_times(self, target: datetime, events: List[CalendarEvent], duration_minutes: int) -> List[datetime]:
        suggestions: List[datetime] = []
        duration = timedelta(minutes=duration_minutes)
        for hour in range(SUGGESTION_FIRST_HOUR, SUGGESTION_LAST_HOUR + 1):
            start = _on_hour(target, hour)
            if not any(_overlaps(start, start + duration, e.startTime, e.endTime) for e in events):
                suggestions.append(start)
                if len(suggestions) >= MAX_SUGGESTIONS:
                    break

        if not suggestions:
            suggestions.append(_on_hour(target + timedelta(days=1), NEXT_DAY_SUGGESTION_HOUR))
        return suggestions

    # --- 2. Batch and group queries ---
    async def check_multiple_member_availability(
        self,
        member_ids: Iterable[str],
        target: datetime,
        duration_minutes: int,
        preferences: Optional[Dict[str, MemberRotationPreferences]] = None,
    ) -> Dict[str, AvailabilityResult]:
        """One concurrent lookup per member; a slow or failed lookup degrades to the default."""
        preferences = preferences or {}

        async def _one(member_id: str):
            try:
                result = await asyncio.wait_for(
                    self.check_member_availability(member_id, target, duration_minutes, preferences.get(member_id)),
                    timeout=self.timeout_seconds,
                )
            except asyncio.TimeoutError:
                logger.warning("[AVAILABILITY] Lookup for member %s timed out after %.1fs", member_id, self.timeout_seconds)
                result = default_availability("Calendar check timed out - assuming moderate availability")
            return member_id, result

        unique_ids = list(dict.fromkeys(member_ids))
        pairs = await asyncio.gather(*(_one(mid) for mid in unique_ids))
        return dict(pairs)

    async def find_optimal_group_time(
        self,
        member_ids: Iterable[str],
        target: datetime,
        duration_minutes: int,
        flexibility_hours: int = 6,
        preferences: Optional[Dict[str, MemberRotationPreferences]] = None,
    ) -> GroupTimeResult:
        member_ids = list(member_ids)
        target = to_utc_naive(target)
        best_time = target
        best_score = -1.0
        best_availability: Dict[str, AvailabilityResult] = {}

        for offset in range(-flexibility_hours, flexibility_hours + 1):
            candidate = target + timedelta(hours=offset)
            availability = await self.check_multiple_member_availability(
                member_ids, candidate, duration_minutes, preferences
            )
            scores = [a.score for a in availability.values()]
            group_score = sum(scores) / len(scores) if scores else 0.0
            if group_score > best_score:
                best_score = group_score
                best_time = candidate
                best_availability = availability

        best_score = max(0.0, best_score)
        return GroupTimeResult(
            optimalTime=best_time,
            memberAvailability=best_availability,
            groupScore=round(best_score, 2),
            reasoning=f"Found optimal time with {best_score:.1f}% group availability",
        )

    # --- 3. Cache maintenance ---
    def clear_cache(self) -> None:
        self.cache.clear()

    def get_cache_stats(self) -> Dict[str, object]:
        return self.cache.stats()
