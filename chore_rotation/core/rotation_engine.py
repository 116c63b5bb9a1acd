import asyncio
import logging
import random
from datetime import date, datetime
from typing import Callable, Dict, List, Optional

from chore_rotation.core.availability import AvailabilityOracle
from chore_rotation.core.fairness_engine import FairnessEngine
from chore_rotation.core.stores import ChoreStore
from chore_rotation.core.strategies import ScoringContext, get_strategy, resolve_strategy_id
from chore_rotation.models.availability import ScheduleConflict
from chore_rotation.models.chore import Chore
from chore_rotation.models.fairness import MemberWorkload
from chore_rotation.models.member import Member
from chore_rotation.models.rotation import (
    AlternativeAssignment,
    Family,
    FamilyRotationSettings,
    RotationContext,
    RotationResult,
    RotationStrategy,
)
from chore_rotation.models.timestamps import utc_now

logger = logging.getLogger(__name__)

NO_ELIGIBLE_MEMBERS = "No eligible members available"
NO_SUITABLE_ASSIGNMENT = "No suitable assignment found due to scheduling conflicts"


def has_blocking_conflicts(conflicts: List[ScheduleConflict]) -> bool:
    return any(c.blocks_assignment for c in conflicts)


def advance_rotation_index(family: Family, member_id: str) -> int:
    """Index the family should store after `member_id` took a rotation turn."""
    order = family.memberRotationOrder
    if member_id in order:
        return (order.index(member_id) + 1) % len(order)
    return family.nextFamilyChoreAssigneeIndex


def filter_eligible_members(
    members: List[Member],
    chore: Chore,
    workloads: Dict[str, MemberWorkload],
    emergency_mode: bool = False,
) -> List[Member]:
    """
    Members allowed to take the chore at all. Required skills are a hard
    filter here, so the skill-based strategy's partial-match credit only
    applies when it is called directly; through the engine a chore nobody
    fully qualifies for ends in "No eligible members available".
    """
    config = chore.rotationConfig
    allow_avoided = emergency_mode or config.priorityLevel == "urgent"

    eligible = []
    for member in members:
        if not member.isActive:
            continue

        workload = workloads.get(member.memberId)
        if workload and workload.capacityUtilization >= 1.0:
            continue

        if config.requiredSkills:
            skills = set(member.preferences.skillCertifications)
            if not all(s in skills for s in config.requiredSkills):
                continue

        if config.eligibleMembers is not None and member.memberId not in config.eligibleMembers:
            continue

        if member.memberId in config.avoidMembers and not allow_avoided:
            continue

        eligible.append(member)
    return eligible


class RotationEngine:
    """
    Decides who takes a chore next. Never raises: store failures, strategy
    errors and scheduling dead-ends all come back as a RotationResult.
    """

    def __init__(
        self,
        fairness_engine: FairnessEngine,
        oracle: AvailabilityOracle,
        chore_store: ChoreStore,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.fairness_engine = fairness_engine
        self.oracle = oracle
        self.chore_store = chore_store
        self.rng = rng or random.Random()
        self.clock = clock

    async def determine_next_assignee(
        self,
        chore: Chore,
        family: Family,
        context: RotationContext,
        pending: Optional[Dict[str, List[Chore]]] = None,
    ) -> RotationResult:
        """
        `pending` maps member ids to chores handed out earlier in the same
        batch; they count towards workloads and daily limits.
        """
        settings = context.familySettings or family.rotationSettings
        strategy_id = resolve_strategy_id(chore.rotationConfig.strategy, settings.defaultStrategy)
        try:
            return await self._determine(chore, family, context, settings, strategy_id, pending or {})
        except Exception as e:
            logger.error("[ROTATION] Failed to rotate chore %s: %s", chore.choreId, e, exc_info=True)
            return self._failure(strategy_id, f"Rotation engine error: {e}")

    async def _determine(
        self,
        chore: Chore,
        family: Family,
        context: RotationContext,
        settings: FamilyRotationSettings,
        strategy_id: RotationStrategy,
        pending: Dict[str, List[Chore]],
    ) -> RotationResult:
        family_id = context.familyId or family.familyId
        members = context.availableMembers

        workloads = await self.fairness_engine.calculate_member_workloads(family_id, members)
        if pending:
            workloads = self.fairness_engine.project_assignments(members, workloads, pending)
        by_id = {w.memberId: w for w in workloads}

        eligible = filter_eligible_members(members, chore, by_id, context.emergencyMode)
        if not eligible:
            logger.info("[ROTATION] Chore %s: no eligible members among %d", chore.choreId, len(members))
            return self._failure(strategy_id, NO_ELIGIBLE_MEMBERS)

        ctx = ScoringContext(
            chore=chore,
            family=family,
            settings=settings,
            workloads=by_id,
            rng=self.rng,
            oracle=self.oracle if settings.enableIntelligentScheduling else None,
            current_assignee=context.currentAssignee,
            target_time=chore.dueDate or self.clock(),
            pending=pending,
        )

        pick = await get_strategy(strategy_id).select(eligible, chore, ctx)
        candidate = next(m for m in eligible if m.memberId == pick.memberId)
        open_chores = list(await self.chore_store.get_open_chores(family_id)) + [
            c.model_copy(update={"assignedTo": member_id})
            for member_id, chores in pending.items() for c in chores
        ]
        conflicts = await self.detect_conflicts(candidate, ctx, open_chores, pick.conflicts)

        if not has_blocking_conflicts(conflicts):
            logger.info(
                "[ROTATION] Chore %s -> %s via %s (fairness %.1f)",
                chore.choreId, candidate.memberId, strategy_id.value, pick.fairnessScore,
            )
            return RotationResult(
                success=True,
                assignedMemberId=candidate.memberId,
                assignedMemberName=candidate.name,
                strategy=strategy_id,
                fairnessScore=pick.fairnessScore,
                conflictsDetected=conflicts,
                nextRotationIndex=pick.nextRotationIndex,
            )

        # --- Conflict escalation ---
        others = [m for m in eligible if m.memberId != candidate.memberId]
        alternatives = await self.find_alternative_assignments(others, ctx, open_chores)
        acceptable = [a for a in alternatives if a.acceptable]
        logger.info(
            "[ROTATION] Chore %s: %s has blocking conflicts, %d of %d alternatives acceptable",
            chore.choreId, candidate.memberId, len(acceptable), len(alternatives),
        )

        if acceptable and settings.emergencyFallbackEnabled:
            best = acceptable[0]
            return RotationResult(
                success=True,
                assignedMemberId=best.memberId,
                assignedMemberName=best.memberName,
                strategy=strategy_id,
                fairnessScore=best.fairnessScore,
                conflictsDetected=best.conflicts,
                alternativeAssignments=alternatives,
                candidateMemberId=candidate.memberId,
                nextRotationIndex=(
                    advance_rotation_index(family, best.memberId)
                    if strategy_id is RotationStrategy.ROUND_ROBIN else None
                ),
                recommendedAction=(
                    f"Assigned to {best.memberName or best.memberId} instead of "
                    f"{candidate.display_name} because of scheduling conflicts"
                ),
            )

        if acceptable:
            message = f"Scheduling conflicts for {candidate.display_name}; manual override required"
            action = "Pick one of the acceptable alternatives or override the conflicts"
        else:
            message = NO_SUITABLE_ASSIGNMENT
            action = "Resolve the conflicts or reschedule the chore"

        return self._failure(
            strategy_id,
            message,
            conflictsDetected=conflicts,
            alternativeAssignments=alternatives,
            candidateMemberId=candidate.memberId,
            recommendedAction=action,
        )

    async def detect_conflicts(
        self,
        member: Member,
        ctx: ScoringContext,
        open_chores: List[Chore],
        availability_conflicts: Optional[List[ScheduleConflict]] = None,
    ) -> List[ScheduleConflict]:
        """
        Calendar conflicts (unless the strategy already supplied them in
        `availability_conflicts`) plus daily and weekly capacity conflicts.
        """
        conflicts: List[ScheduleConflict] = []

        if ctx.oracle is not None:
            if availability_conflicts is None:
                availability = await ctx.oracle.check_member_availability(
                    member.memberId, ctx.target_time, ctx.duration_minutes, member.preferences
                )
                availability_conflicts = availability.conflicts
            conflicts.extend(availability_conflicts)

        prefs = member.rotationPreferences
        if prefs is None:
            return conflicts

        if prefs.maxChoresPerDay:
            due_today = self._daily_chore_count(member.memberId, ctx.target_time.date(), open_chores, ctx.chore.choreId)
            if due_today >= prefs.maxChoresPerDay:
                conflicts.append(ScheduleConflict(
                    type="capacity",
                    severity="high",
                    description="Member has reached daily chore limit",
                    suggestedResolution="Move the chore to another day",
                    canOverride=True,
                ))

        if prefs.maxChoresPerWeek:
            workload = ctx.workload(member)
            # Projected batch chores sit in both counts; take them once
            projected = len(ctx.pending.get(member.memberId, []))
            if workload.weeklyChores + workload.currentChores - projected >= prefs.maxChoresPerWeek:
                conflicts.append(ScheduleConflict(
                    type="capacity",
                    severity="high",
                    description="Member has reached weekly chore limit",
                    canOverride=True,
                ))

        return conflicts

    @staticmethod
    def _daily_chore_count(member_id: str, day: date, open_chores: List[Chore], exclude_chore_id: str) -> int:
        return sum(
            1 for c in open_chores
            if c.assignedTo == member_id
            and c.choreId != exclude_chore_id
            and c.dueDate is not None
            and c.dueDate.date() == day
        )

    async def find_alternative_assignments(
        self,
        members: List[Member],
        ctx: ScoringContext,
        open_chores: List[Chore],
    ) -> List[AlternativeAssignment]:
        """Every other eligible member, acceptable ones first, then by fairness."""
        conflict_lists = await asyncio.gather(*(self.detect_conflicts(m, ctx, open_chores) for m in members))

        alternatives = []
        for member, conflicts in zip(members, conflict_lists):
            acceptable = not has_blocking_conflicts(conflicts)
            fairness = ctx.workload(member).fairnessScore
            alternatives.append(AlternativeAssignment(
                memberId=member.memberId,
                memberName=member.name,
                fairnessScore=fairness,
                conflicts=conflicts,
                recommendationReason=(
                    f"No blocking conflicts, fairness score {fairness:g}" if acceptable
                    else f"Has {sum(c.blocks_assignment for c in conflicts)} blocking conflict(s)"
                ),
                acceptable=acceptable,
            ))

        alternatives.sort(key=lambda a: (not a.acceptable, -a.fairnessScore))
        return alternatives

    @staticmethod
    def _failure(strategy: RotationStrategy, message: str, **extra) -> RotationResult:
        return RotationResult(success=False, strategy=strategy, fairnessScore=0.0, errorMessage=message, **extra)
