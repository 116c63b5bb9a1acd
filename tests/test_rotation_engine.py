import asyncio
import random
from collections import Counter
from datetime import datetime, timedelta

import pytest
from pydantic import ValidationError

from conftest import FAMILY_ID, NOW, chore, member
from chore_rotation.core.availability import AvailabilityOracle
from chore_rotation.core.calendar_provider import InMemoryCalendarProvider
from chore_rotation.core.errors import DataLoaderError
from chore_rotation.core.fairness_engine import FairnessEngine
from chore_rotation.core.rotation_engine import (
    NO_ELIGIBLE_MEMBERS,
    NO_SUITABLE_ASSIGNMENT,
    RotationEngine,
    advance_rotation_index,
)
from chore_rotation.core.stores import InMemoryFamilyStore
from chore_rotation.models.availability import CalendarEvent
from chore_rotation.models.chore import CompletionRecord
from chore_rotation.models.rotation import (
    FamilyRotationSettings,
    RotationContext,
    RotationResult,
    RotationStrategy,
)

DUE = datetime(2025, 3, 12, 10, 0)


def _work_day(member_id):
    return CalendarEvent(
        id=f"work-{member_id}",
        title="Work",
        startTime=datetime(2025, 3, 12, 9),
        endTime=datetime(2025, 3, 12, 17),
        type="work",
    )


def _context(members, **kwargs):
    return RotationContext(familyId=FAMILY_ID, availableMembers=members, **kwargs)


def _run(engine, target, family, context):
    return asyncio.run(engine.determine_next_assignee(target, family, context))


class BrokenStore:
    async def get_open_chores(self, family_id):
        raise DataLoaderError("backend unreachable")

    async def get_completion_records(self, family_id, days):
        return []


def test_no_members_fails(engine, family):
    result = _run(engine, chore("dishes", dueDate=DUE), family, _context([]))

    assert result.success is False
    assert result.errorMessage == NO_ELIGIBLE_MEMBERS
    assert result.assignedMemberId is None


def test_inactive_and_disallowed_members_are_filtered(engine, family):
    family_members = [member("alice", active=False), member("bob"), member("cara")]
    target = chore("dishes", dueDate=DUE, rotationConfig={"eligibleMembers": ["alice", "cara"]})
    result = _run(engine, target, family, _context(family_members))

    assert result.success is True
    assert result.assignedMemberId == "cara"


def test_avoided_member_only_used_when_urgent(engine, family):
    only = [member("alice")]
    normal = chore("dishes", dueDate=DUE, rotationConfig={"avoidMembers": ["alice"]})
    urgent = chore("dishes", dueDate=DUE, rotationConfig={"avoidMembers": ["alice"], "priorityLevel": "urgent"})

    assert _run(engine, normal, family, _context(only)).errorMessage == NO_ELIGIBLE_MEMBERS
    assert _run(engine, urgent, family, _context(only)).assignedMemberId == "alice"
    assert _run(engine, normal, family, _context(only, emergencyMode=True)).assignedMemberId == "alice"


def test_required_skills_filter_members(engine, family):
    family_members = [member("alice"), member("bob", skillCertifications=["ladder"])]
    target = chore("gutters", dueDate=DUE, rotationConfig={"requiredSkills": ["ladder"], "strategy": "skill_based"})
    result = _run(engine, target, family, _context(family_members))

    assert result.assignedMemberId == "bob"
    assert result.strategy is RotationStrategy.SKILL_BASED
    assert result.fairnessScore == 90


def test_round_robin_result_carries_next_index(engine, family, members):
    result = _run(engine, chore("dishes", dueDate=DUE), family, _context(members, currentAssignee="alice"))

    assert result.assignedMemberId == "bob"
    assert result.assignedMemberName == "Bob"
    assert result.nextRotationIndex == 2


def test_unknown_strategy_reports_round_robin(engine, family, members):
    target = chore("dishes", dueDate=DUE, rotationConfig={"strategy": "coin_flip"})
    result = _run(engine, target, family, _context(members))

    assert result.success is True
    assert result.strategy is RotationStrategy.ROUND_ROBIN


def test_ten_chores_spread_evenly(engine, family, members):
    counts = Counter()
    for i in range(10):
        result = _run(engine, chore(f"chore-{i}", dueDate=DUE), family, _context(members))
        assert result.success
        counts[result.assignedMemberId] += 1
        family = family.model_copy(update={
            "nextFamilyChoreAssigneeIndex": advance_rotation_index(family, result.assignedMemberId)
        })

    assert set(counts) == {"alice", "bob", "cara"}
    assert max(counts.values()) - min(counts.values()) <= 1


@pytest.mark.parametrize("strategy", ["round_robin", "calendar_aware"])
def test_intelligent_scheduling_off_never_reads_calendar(store, fairness, family, members, strategy):
    calendar = InMemoryCalendarProvider({m.memberId: [_work_day(m.memberId)] for m in members})
    engine = RotationEngine(fairness, AvailabilityOracle(calendar), store, clock=lambda: NOW)
    settings = FamilyRotationSettings(enableIntelligentScheduling=False)

    target = chore("dishes", dueDate=DUE, rotationConfig={"strategy": strategy})
    result = _run(engine, target, family, _context(members, familySettings=settings))

    assert result.success is True
    assert calendar.calls == 0
    assert not [c for c in result.conflictsDetected if c.type == "calendar"]


def test_blocking_conflict_promotes_alternative(store, fairness, family, members):
    calendar = InMemoryCalendarProvider({"alice": [_work_day("alice")]})
    engine = RotationEngine(fairness, AvailabilityOracle(calendar), store, clock=lambda: NOW)

    result = _run(engine, chore("dishes", dueDate=DUE), family, _context(members))

    assert result.success is True
    assert result.candidateMemberId == "alice"
    assert result.assignedMemberId in {"bob", "cara"}
    assert len(result.alternativeAssignments) == 2
    assert all(a.acceptable for a in result.alternativeAssignments)
    assert result.recommendedAction


def test_blocking_conflict_without_fallback_needs_override(store, fairness, family, members):
    calendar = InMemoryCalendarProvider({"alice": [_work_day("alice")]})
    engine = RotationEngine(fairness, AvailabilityOracle(calendar), store, clock=lambda: NOW)
    settings = FamilyRotationSettings(emergencyFallbackEnabled=False)

    result = _run(engine, chore("dishes", dueDate=DUE), family, _context(members, familySettings=settings))

    assert result.success is False
    assert "manual override required" in result.errorMessage
    assert result.candidateMemberId == "alice"
    assert result.alternativeAssignments[0].acceptable is True


def test_everyone_blocked_reports_candidate(store, fairness, family, members):
    calendar = InMemoryCalendarProvider({m.memberId: [_work_day(m.memberId)] for m in members})
    engine = RotationEngine(fairness, AvailabilityOracle(calendar), store, clock=lambda: NOW)

    result = _run(engine, chore("dishes", dueDate=DUE), family, _context(members))

    assert result.success is False
    assert result.errorMessage == NO_SUITABLE_ASSIGNMENT
    assert result.candidateMemberId == "alice"
    assert any(c.severity == "critical" for c in result.conflictsDetected)
    assert not any(a.acceptable for a in result.alternativeAssignments)


def test_daily_limit_adds_overridable_capacity_conflict(oracle, family):
    family_members = [member("alice", maxChoresPerDay=1), member("bob")]
    already = chore("laundry", dueDate=DUE + timedelta(hours=3), assignedTo="alice")
    store = InMemoryFamilyStore(members={FAMILY_ID: family_members}, chores={FAMILY_ID: [already]})
    engine = RotationEngine(FairnessEngine(store, store, clock=lambda: NOW), oracle, store, clock=lambda: NOW)

    result = _run(engine, chore("dishes", dueDate=DUE), family, _context(family_members))

    assert result.success is True
    assert result.assignedMemberId == "alice"
    capacity = [c for c in result.conflictsDetected if c.type == "capacity"]
    assert len(capacity) == 1
    assert capacity[0].severity == "high"
    assert capacity[0].canOverride is True


def test_store_failure_becomes_error_result(oracle, family, members):
    broken = BrokenStore()
    engine = RotationEngine(FairnessEngine(broken, broken, clock=lambda: NOW), oracle, broken, rng=random.Random(1))

    result = _run(engine, chore("dishes", dueDate=DUE), family, _context(members))

    assert result.success is False
    assert result.errorMessage.startswith("Rotation engine error:")
    assert "backend unreachable" in result.errorMessage


def test_advance_rotation_index(family):
    assert advance_rotation_index(family, "alice") == 1
    assert advance_rotation_index(family, "cara") == 0
    assert advance_rotation_index(family, "stranger") == family.nextFamilyChoreAssigneeIndex


def test_rotation_result_outcome_is_validated():
    with pytest.raises(ValidationError):
        RotationResult(success=True, strategy=RotationStrategy.ROUND_ROBIN)
    with pytest.raises(ValidationError):
        RotationResult(success=False, strategy=RotationStrategy.ROUND_ROBIN, assignedMemberId="alice",
                       errorMessage="nope")


class CountingOracle(AvailabilityOracle):
    def __init__(self, provider):
        super().__init__(provider)
        self.checked = Counter()

    async def check_member_availability(self, member_id, target, duration_minutes, preferences=None):
        self.checked[member_id] += 1
        return await super().check_member_availability(member_id, target, duration_minutes, preferences)


def test_backend_timestamps_with_utc_suffix_rotate_on_default_clock(oracle, family, members):
    record = CompletionRecord(choreId="old", userId="alice", completedAt="2025-03-10T18:00:00Z", pointsEarned=5)
    store = InMemoryFamilyStore(members={FAMILY_ID: members}, completions={FAMILY_ID: [record]})
    engine = RotationEngine(FairnessEngine(store, store), oracle, store)

    target = chore("dishes", dueDate="2025-03-12T10:00:00Z")
    result = _run(engine, target, family, _context(members))

    assert target.dueDate == DUE
    assert result.success is True
    assert result.assignedMemberId == "alice"


def test_offset_due_date_meets_calendar_in_utc(store, fairness, family, members):
    calendar = InMemoryCalendarProvider({"alice": [_work_day("alice")]})
    engine = RotationEngine(fairness, AvailabilityOracle(calendar), store, clock=lambda: NOW)

    target = chore("dishes", dueDate="2025-03-12T12:00:00+02:00")
    result = _run(engine, target, family, _context(members))

    assert result.success is True
    assert result.candidateMemberId == "alice"
    assert result.assignedMemberId in {"bob", "cara"}


def test_weekly_limit_counts_completed_and_open_chores(oracle, family):
    family_members = [member("alice", maxChoresPerWeek=2)]
    store = InMemoryFamilyStore(
        members={FAMILY_ID: family_members},
        chores={FAMILY_ID: [chore("laundry", assignedTo="alice")]},
        completions={FAMILY_ID: [
            CompletionRecord(choreId="old", userId="alice", completedAt=NOW - timedelta(days=1), pointsEarned=5)
        ]},
    )
    engine = RotationEngine(FairnessEngine(store, store, clock=lambda: NOW), oracle, store, clock=lambda: NOW)

    result = _run(engine, chore("dishes", dueDate=DUE), family, _context(family_members))

    assert result.success is True
    assert [c.description for c in result.conflictsDetected] == ["Member has reached weekly chore limit"]


def test_calendar_aware_pick_is_checked_once(store, fairness, family, members):
    calendar = InMemoryCalendarProvider({
        "alice": [CalendarEvent(id="gym", title="Gym", startTime=datetime(2025, 3, 12, 10),
                                endTime=datetime(2025, 3, 12, 11), type="personal")],
        "bob": [_work_day("bob")],
        "cara": [_work_day("cara")],
    })
    oracle = CountingOracle(calendar)
    engine = RotationEngine(fairness, oracle, store, clock=lambda: NOW)

    target = chore("dishes", dueDate=DUE, rotationConfig={"strategy": "calendar_aware"})
    result = _run(engine, target, family, _context(members))

    assert result.assignedMemberId == "alice"
    assert [c.severity for c in result.conflictsDetected] == ["low"]
    assert oracle.checked == Counter({"alice": 1, "bob": 1, "cara": 1})


def test_partial_skill_match_is_not_eligible_through_engine(engine, family):
    family_members = [member("alice", skillCertifications=["mower"]), member("bob")]
    target = chore("lawn", dueDate=DUE, rotationConfig={"requiredSkills": ["mower", "trimmer"], "strategy": "skill_based"})

    result = _run(engine, target, family, _context(family_members))

    assert result.success is False
    assert result.errorMessage == NO_ELIGIBLE_MEMBERS
