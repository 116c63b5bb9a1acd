from typing import Optional

from chore_rotation.models.availability import AvailabilityResult, ScheduleConflict
from chore_rotation.models.fairness import MemberWorkload
from chore_rotation.models.member import Member

# ------------------------------------------------------
# DEFAULTS shared by the fairness engine, the strategies and the oracle
# ------------------------------------------------------
DEFAULT_MAX_CHORES_PER_WEEK = 10      # Weekly allowance when a member set none
DEFAULT_COMPLETION_MINUTES = 30.0     # Average completion time absent history
DEFAULT_CHORE_DURATION_MINUTES = 30   # Chore duration when the chore has none
NEUTRAL_PREFERENCE_RESPECT = 0.8      # Preference respect rate without preference data
NEUTRAL_COMPLETION_RATE = 1.0         # Completion rate with nothing completed or assigned
NEW_MEMBER_FAIRNESS = 100.0           # Fairness score of a member without a workload row
DEFAULT_AVAILABILITY_SCORE = 70.0     # Score returned when the calendar can't be read

FAIRNESS_THRESHOLD = 75.0             # Minimum acceptable family equity score
WORKLOAD_VARIANCE_THRESHOLD = 25.0    # Maximum acceptable weekly-points stddev
INDIVIDUAL_FAIRNESS_FLOOR = FAIRNESS_THRESHOLD - 10


def max_chores_per_week(member: Member) -> int:
    prefs = member.rotationPreferences
    if prefs and prefs.maxChoresPerWeek:
        return prefs.maxChoresPerWeek
    return DEFAULT_MAX_CHORES_PER_WEEK


def default_workload(member_id: str, member_name: Optional[str] = None) -> MemberWorkload:
    """Workload of a member with no history and no open chores."""
    return MemberWorkload(
        memberId=member_id,
        memberName=member_name,
        completionRate=NEUTRAL_COMPLETION_RATE,
        averageCompletionTimeMinutes=DEFAULT_COMPLETION_MINUTES,
        fairnessScore=NEW_MEMBER_FAIRNESS,
        capacityUtilization=0.0,
        preferenceRespectRate=NEUTRAL_PREFERENCE_RESPECT,
    )


def default_availability(reason: str = "Calendar check failed - assuming moderate availability") -> AvailabilityResult:
    """Non-fatal availability used whenever a calendar lookup fails or times out."""
    return AvailabilityResult(
        score=DEFAULT_AVAILABILITY_SCORE,
        conflicts=[
            ScheduleConflict(
                type="availability",
                severity="low",
                description="Calendar unavailable - using default availability",
                canOverride=True,
            )
        ],
        suggestedTimes=[],
        reasoning=reason,
    )
