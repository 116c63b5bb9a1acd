import logging
import random
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from chore_rotation.core.availability import AvailabilityOracle
from chore_rotation.core.defaults import DEFAULT_CHORE_DURATION_MINUTES, default_workload
from chore_rotation.models.availability import ScheduleConflict
from chore_rotation.models.chore import Chore
from chore_rotation.models.fairness import MemberWorkload
from chore_rotation.models.member import Member
from chore_rotation.models.rotation import Family, FamilyRotationSettings, RotationStrategy
from chore_rotation.models.timestamps import utc_now

logger = logging.getLogger(__name__)

# ------------------------------------------------------
# CONFIG CONSTANTS (fairness reported per strategy)
# ------------------------------------------------------
ROUND_ROBIN_FAIRNESS = 85
ROUND_ROBIN_FALLBACK_FAIRNESS = 70
SKILL_FULL_MATCH_FAIRNESS = 90
SKILL_PARTIAL_MATCH_FAIRNESS = 70
CALENDAR_AWARE_FAIRNESS = 80
RANDOM_FAIR_FAIRNESS = 85

# Workload balance composite
W_CAPACITY_HEADROOM = 0.4
W_FAIRNESS = 0.4
W_COMPLETION = 0.2

# Random fair draw
RANDOM_FAIR_MIN_WEIGHT = 0.1
RANDOM_FAIR_BASE_WEIGHT = 0.2

# Preference components
PREFERENCE_NEUTRAL = 0.5
PREFERRED_TYPE_BONUS = 0.3
PREFERRED_DIFFICULTY_BONUS = 0.2
DISLIKED_TYPE_PENALTY = 0.4
PREFERRED_MEMBER_BONUS = 0.4
AVOIDED_MEMBER_PENALTY = 0.5


class ScoredCandidate(BaseModel):
    """One member scored by one strategy, on a 0-100 scale."""
    memberId: str
    score: float
    fairnessScore: float
    conflicts: Optional[List[ScheduleConflict]] = Field(
        None, description="Availability conflicts; None when the strategy did not read the calendar."
    )
    reasoning: str = ""
    nextRotationIndex: Optional[int] = None


class ScoringContext:
    """
    Everything a strategy may read while scoring. `oracle` is None when
    intelligent scheduling is switched off, which keeps the calendar out of
    every strategy. `pending` holds chores already handed out earlier in the
    same batch, keyed by member id.
    """

    def __init__(
        self,
        chore: Chore,
        family: Family,
        settings: FamilyRotationSettings,
        workloads: Dict[str, MemberWorkload],
        rng: random.Random,
        oracle: Optional[AvailabilityOracle] = None,
        current_assignee: Optional[str] = None,
        target_time: Optional[datetime] = None,
        pending: Optional[Dict[str, List[Chore]]] = None,
    ):
        self.chore = chore
        self.family = family
        self.settings = settings
        self.workloads = workloads
        self.rng = rng
        self.oracle = oracle
        self.current_assignee = current_assignee if current_assignee is not None else chore.assignedTo
        self.target_time = target_time or chore.dueDate or utc_now()
        self.duration_minutes = chore.estimatedDurationMinutes or DEFAULT_CHORE_DURATION_MINUTES
        self.pending = pending or {}

    def workload(self, member: Member) -> MemberWorkload:
        return self.workloads.get(member.memberId) or default_workload(member.memberId, member.name)


class Strategy:
    """
    Base class of the rotation strategies. Subclasses implement `score`;
    `select` picks the highest score, the earliest member winning ties.
    """
    strategy_id: RotationStrategy

    async def score(self, member: Member, chore: Chore, ctx: ScoringContext) -> ScoredCandidate:
        raise NotImplementedError

    async def score_all(self, members: List[Member], chore: Chore, ctx: ScoringContext) -> List[ScoredCandidate]:
        return [await self.score(m, chore, ctx) for m in members]

    async def select(self, members: List[Member], chore: Chore, ctx: ScoringContext) -> ScoredCandidate:
        scored = await self.score_all(members, chore, ctx)
        return max(scored, key=lambda c: c.score)


STRATEGY_REGISTRY: Dict[RotationStrategy, Strategy] = {}


def register(strategy_id: RotationStrategy):
    """Class decorator adding a strategy instance to the registry."""
    def decorator(cls):
        cls.strategy_id = strategy_id
        STRATEGY_REGISTRY[strategy_id] = cls()
        return cls
    return decorator


def get_strategy(strategy_id: RotationStrategy) -> Strategy:
    return STRATEGY_REGISTRY[strategy_id]


def resolve_strategy_id(requested: Optional[str], default: RotationStrategy) -> RotationStrategy:
    """Maps a stored strategy name onto a registered strategy, round robin for unknown names."""
    if not requested:
        return default
    try:
        strategy_id = RotationStrategy(requested)
    except ValueError:
        logger.warning("[ROTATION] Unknown strategy %r, falling back to round robin", requested)
        return RotationStrategy.ROUND_ROBIN
    if strategy_id not in STRATEGY_REGISTRY:
        logger.warning("[ROTATION] Strategy %s is not registered, falling back to round robin", strategy_id.value)
        return RotationStrategy.ROUND_ROBIN
    return strategy_id


# ------------------------------------------------------
# STRATEGIES
# ------------------------------------------------------

@register(RotationStrategy.ROUND_ROBIN)
class RoundRobinStrategy(Strategy):
    """Walks the family rotation order from the stored index."""

    @staticmethod
    def _order(members: List[Member], ctx: ScoringContext) -> List[str]:
        return list(ctx.family.memberRotationOrder) or [m.memberId for m in members]

    async def score(self, member: Member, chore: Chore, ctx: ScoringContext) -> ScoredCandidate:
        return self._score_in_order(member, self._order([member], ctx), ctx)

    async def score_all(self, members: List[Member], chore: Chore, ctx: ScoringContext) -> List[ScoredCandidate]:
        order = self._order(members, ctx)
        return [self._score_in_order(m, order, ctx) for m in members]

    @staticmethod
    def _score_in_order(member: Member, order: List[str], ctx: ScoringContext) -> ScoredCandidate:
        if member.memberId not in order:
            return ScoredCandidate(memberId=member.memberId, score=0.0, fairnessScore=ROUND_ROBIN_FALLBACK_FAIRNESS,
                                   reasoning="Not in the rotation order")
        n = len(order)
        start = ctx.family.nextFamilyChoreAssigneeIndex % n
        distance = (order.index(member.memberId) - start) % n
        return ScoredCandidate(
            memberId=member.memberId,
            score=100.0 * (1 - distance / n),
            fairnessScore=ROUND_ROBIN_FAIRNESS,
            reasoning=f"{distance} place(s) from the front of the rotation",
        )

    async def select(self, members: List[Member], chore: Chore, ctx: ScoringContext) -> ScoredCandidate:
        eligible = {m.memberId for m in members}
        order = self._order(members, ctx)
        n = len(order)
        start = ctx.family.nextFamilyChoreAssigneeIndex % n if n else 0

        for step in range(n):
            index = (start + step) % n
            member_id = order[index]
            if member_id in eligible and member_id != ctx.current_assignee:
                return ScoredCandidate(
                    memberId=member_id,
                    score=100.0 * (1 - step / n),
                    fairnessScore=ROUND_ROBIN_FAIRNESS,
                    reasoning="Next in rotation order",
                    nextRotationIndex=(index + 1) % n,
                )

        fallback = members[0]
        return ScoredCandidate(
            memberId=fallback.memberId,
            score=0.0,
            fairnessScore=ROUND_ROBIN_FALLBACK_FAIRNESS,
            reasoning="No other member available in rotation order, using first eligible member",
            nextRotationIndex=(order.index(fallback.memberId) + 1) % n if fallback.memberId in order else None,
        )


@register(RotationStrategy.WORKLOAD_BALANCE)
class WorkloadBalanceStrategy(Strategy):

    async def score(self, member: Member, chore: Chore, ctx: ScoringContext) -> ScoredCandidate:
        w = ctx.workload(member)
        composite = (
            (1 - w.capacityUtilization) * 100 * W_CAPACITY_HEADROOM
            + w.fairnessScore * W_FAIRNESS
            + w.completionRate * 100 * W_COMPLETION
        )
        return ScoredCandidate(
            memberId=member.memberId,
            score=round(composite, 2),
            fairnessScore=w.fairnessScore,
            reasoning=f"Capacity used {w.capacityUtilization:.0%}, fairness {w.fairnessScore:g}",
        )


@register(RotationStrategy.SKILL_BASED)
class SkillBasedStrategy(Strategy):
    """Full skill matches win; without one, partial credit decides."""

    async def score(self, member: Member, chore: Chore, ctx: ScoringContext) -> ScoredCandidate:
        required = chore.rotationConfig.requiredSkills
        if not required:
            return await STRATEGY_REGISTRY[RotationStrategy.WORKLOAD_BALANCE].score(member, chore, ctx)

        skills = set(member.preferences.skillCertifications)
        matched = [s for s in required if s in skills]
        full = len(matched) == len(required)
        return ScoredCandidate(
            memberId=member.memberId,
            score=100.0 * len(matched) / len(required),
            fairnessScore=SKILL_FULL_MATCH_FAIRNESS if full else SKILL_PARTIAL_MATCH_FAIRNESS,
            reasoning=f"Holds {len(matched)} of {len(required)} required skills",
        )

    async def select(self, members: List[Member], chore: Chore, ctx: ScoringContext) -> ScoredCandidate:
        if not chore.rotationConfig.requiredSkills:
            return await STRATEGY_REGISTRY[RotationStrategy.WORKLOAD_BALANCE].select(members, chore, ctx)
        scored = await self.score_all(members, chore, ctx)
        full_matches = [c for c in scored if c.fairnessScore == SKILL_FULL_MATCH_FAIRNESS]
        return max(full_matches or scored, key=lambda c: c.score)


@register(RotationStrategy.CALENDAR_AWARE)
class CalendarAwareStrategy(Strategy):
    """Highest availability at the chore's due time wins."""

    async def score(self, member: Member, chore: Chore, ctx: ScoringContext) -> ScoredCandidate:
        return (await self.score_all([member], chore, ctx))[0]

    async def score_all(self, members: List[Member], chore: Chore, ctx: ScoringContext) -> List[ScoredCandidate]:
        if ctx.oracle is None:
            # Calendar is off for this family
            return await STRATEGY_REGISTRY[RotationStrategy.WORKLOAD_BALANCE].score_all(members, chore, ctx)

        availability = await ctx.oracle.check_multiple_member_availability(
            [m.memberId for m in members],
            ctx.target_time,
            ctx.duration_minutes,
            {m.memberId: m.preferences for m in members},
        )
        return [
            ScoredCandidate(
                memberId=m.memberId,
                score=availability[m.memberId].score,
                fairnessScore=CALENDAR_AWARE_FAIRNESS,
                conflicts=availability[m.memberId].conflicts,
                reasoning=availability[m.memberId].reasoning,
            )
            for m in members
        ]


@register(RotationStrategy.RANDOM_FAIR)
class RandomFairStrategy(Strategy):
    """Weighted draw favouring members with lower fairness scores."""

    @staticmethod
    def _weight(workload: MemberWorkload) -> float:
        return max(RANDOM_FAIR_MIN_WEIGHT, (100 - workload.fairnessScore) / 100 + RANDOM_FAIR_BASE_WEIGHT)

    async def score(self, member: Member, chore: Chore, ctx: ScoringContext) -> ScoredCandidate:
        weight = self._weight(ctx.workload(member))
        max_weight = 1 + RANDOM_FAIR_BASE_WEIGHT
        return ScoredCandidate(
            memberId=member.memberId,
            score=round(weight / max_weight * 100, 2),
            fairnessScore=RANDOM_FAIR_FAIRNESS,
            reasoning=f"Draw weight {weight:.2f}",
        )

    async def select(self, members: List[Member], chore: Chore, ctx: ScoringContext) -> ScoredCandidate:
        weights = [self._weight(ctx.workload(m)) for m in members]
        winner = ctx.rng.choices(members, weights=weights, k=1)[0]
        return ScoredCandidate(
            memberId=winner.memberId,
            score=round(weights[members.index(winner)] / sum(weights) * 100, 2),
            fairnessScore=RANDOM_FAIR_FAIRNESS,
            reasoning="Weighted random draw",
        )


@register(RotationStrategy.PREFERENCE_BASED)
class PreferenceBasedStrategy(Strategy):
    """
    Balances stated preferences against fairness. Members who dislike the
    chore's type only win when every eligible member dislikes it.
    """

    @staticmethod
    def _dislikes(member: Member, chore: Chore) -> bool:
        return chore.type in member.preferences.dislikedChoreTypes

    async def score(self, member: Member, chore: Chore, ctx: ScoringContext) -> ScoredCandidate:
        prefs = member.preferences
        config = chore.rotationConfig

        component = PREFERENCE_NEUTRAL
        if chore.type in prefs.preferredChoreTypes:
            component += PREFERRED_TYPE_BONUS
        if chore.difficulty in prefs.preferredDifficulties:
            component += PREFERRED_DIFFICULTY_BONUS
        if self._dislikes(member, chore):
            component -= DISLIKED_TYPE_PENALTY
        if member.memberId in config.preferredMembers:
            component += PREFERRED_MEMBER_BONUS
        if member.memberId in config.avoidMembers:
            component -= AVOIDED_MEMBER_PENALTY
        component = max(0.0, min(1.0, component))

        fairness_factor = ctx.workload(member).fairnessScore / 100
        pw = ctx.settings.preferenceWeight
        fw = ctx.settings.fairnessWeight
        final = component * pw + fairness_factor * fw
        normalised = final / (pw + fw) * 100 if pw + fw > 0 else component * 100

        return ScoredCandidate(
            memberId=member.memberId,
            score=round(normalised, 2),
            fairnessScore=round(fairness_factor * 100, 2),
            reasoning=f"Preference {component:.2f}, fairness {fairness_factor:.2f}",
        )

    async def select(self, members: List[Member], chore: Chore, ctx: ScoringContext) -> ScoredCandidate:
        pool = [m for m in members if not self._dislikes(m, chore)] or members
        scored = await self.score_all(pool, chore, ctx)
        return max(scored, key=lambda c: c.score)


@register(RotationStrategy.MIXED_STRATEGY)
class MixedStrategy(Strategy):
    """Weighted mean of the enabled strategies' scores."""

    @staticmethod
    def _components(ctx: ScoringContext) -> Dict[RotationStrategy, float]:
        components = {}
        for name, config in ctx.settings.strategyConfigs.items():
            if not config.enabled or config.weight <= 0:
                continue
            try:
                strategy_id = RotationStrategy(name)
            except ValueError:
                logger.warning("[ROTATION] Ignoring unknown strategy %r in mixed strategy weights", name)
                continue
            if strategy_id is RotationStrategy.MIXED_STRATEGY:
                continue
            components[strategy_id] = config.weight
        return components

    async def score_all(self, members: List[Member], chore: Chore, ctx: ScoringContext) -> List[ScoredCandidate]:
        components = self._components(ctx)
        if not components:
            return await STRATEGY_REGISTRY[RotationStrategy.ROUND_ROBIN].score_all(members, chore, ctx)

        totals = {m.memberId: 0.0 for m in members}
        total_weight = sum(components.values())
        for strategy_id, weight in components.items():
            for candidate in await STRATEGY_REGISTRY[strategy_id].score_all(members, chore, ctx):
                totals[candidate.memberId] += candidate.score * weight

        return [
            ScoredCandidate(
                memberId=m.memberId,
                score=round(totals[m.memberId] / total_weight, 2),
                fairnessScore=round(totals[m.memberId] / total_weight, 2),
                reasoning=f"Weighted score over {len(components)} strategies",
            )
            for m in members
        ]

    async def score(self, member: Member, chore: Chore, ctx: ScoringContext) -> ScoredCandidate:
        return (await self.score_all([member], chore, ctx))[0]

    async def select(self, members: List[Member], chore: Chore, ctx: ScoringContext) -> ScoredCandidate:
        if not self._components(ctx):
            return await STRATEGY_REGISTRY[RotationStrategy.ROUND_ROBIN].select(members, chore, ctx)
        scored = await self.score_all(members, chore, ctx)
        return max(scored, key=lambda c: c.score)
