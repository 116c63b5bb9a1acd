import logging
import statistics
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Iterable

from chore_rotation.config import HISTORY_WINDOW_DAYS
from chore_rotation.core.defaults import (
    DEFAULT_COMPLETION_MINUTES,
    FAIRNESS_THRESHOLD,
    INDIVIDUAL_FAIRNESS_FLOOR,
    NEUTRAL_COMPLETION_RATE,
    NEUTRAL_PREFERENCE_RESPECT,
    WORKLOAD_VARIANCE_THRESHOLD,
    max_chores_per_week,
)
from chore_rotation.core.stores import ChoreStore, CompletionHistoryStore
from chore_rotation.models.chore import Chore, CompletionRecord
from chore_rotation.models.fairness import (
    AssignmentPrediction,
    FairnessSnapshot,
    FairnessTrend,
    FamilyFairnessMetrics,
    MemberWorkload,
)
from chore_rotation.models.member import Member
from chore_rotation.models.timestamps import utc_now

logger = logging.getLogger(__name__)

# ------------------------------------------------------
# CONFIG CONSTANTS (tune these weights for behaviour)
# ------------------------------------------------------
W_POINTS_SHARE = 0.4
W_CHORES_SHARE = 0.4
W_COMPLETION = 0.2
SHARE_DEVIATION_PENALTY = 200   # fairness lost per unit of share deviation

CAPACITY_WARNING = 0.9
LOW_COMPLETION_RATE = 0.7
LOW_PREFERENCE_RESPECT = 0.5
TREND_THRESHOLD = 5.0
HIGH_VOLATILITY = 15.0

NO_REBALANCING_NEEDED = "No rebalancing needed - family workload is well distributed"


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _preference_respect_rate(member: Member, assigned: List[Chore]) -> float:
    """
    Walks the member's open chores: +1 for a preferred type, -0.5 for a
    disliked one (a full check each), +0.5 for a preferred difficulty (half
    a check). Neutral without preference data.
    """
    prefs = member.rotationPreferences
    if prefs is None or not prefs.has_preference_data() or not assigned:
        return NEUTRAL_PREFERENCE_RESPECT

    respect = 0.0
    checks = 0.0
    for chore in assigned:
        if chore.type in prefs.preferredChoreTypes:
            respect += 1
        elif chore.type in prefs.dislikedChoreTypes:
            respect -= 0.5
        checks += 1

        if chore.difficulty in prefs.preferredDifficulties:
            respect += 0.5
        checks += 0.5

    return _clamp(respect / checks + 0.5, 0.0, 1.0) if checks else NEUTRAL_PREFERENCE_RESPECT


class FairnessEngine:
    """
    Computes per-member workloads and family equity metrics.

    Stateless apart from its injected stores: every call re-reads open chores
    and the trailing completion history, so results are snapshots valid only
    for the instant they were computed.
    """

    def __init__(
        self,
        chore_store: ChoreStore,
        history_store: CompletionHistoryStore,
        history_window_days: int = HISTORY_WINDOW_DAYS,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.chore_store = chore_store
        self.history_store = history_store
        self.history_window_days = history_window_days
        self.clock = clock

    # --- 1. Member workloads ---
    async def calculate_member_workloads(self, family_id: str, members: List[Member]) -> List[MemberWorkload]:
        open_chores = await self.chore_store.get_open_chores(family_id)
        records = await self.history_store.get_completion_records(family_id, self.history_window_days)
        workloads = self.build_workloads(members, open_chores, records)
        logger.debug(
            "[FAIRNESS] Family %s: %d workloads from %d open chores and %d completion records",
            family_id, len(workloads), len(open_chores), len(records),
        )
        return workloads

    def build_workloads(
        self,
        members: List[Member],
        open_chores: Iterable[Chore],
        records: Iterable[CompletionRecord],
    ) -> List[MemberWorkload]:
        now = self.clock()
        window_start = now - timedelta(days=self.history_window_days)
        week_start = now - timedelta(days=7)
        open_chores = list(open_chores)
        records = [r for r in records if window_start <= r.completedAt <= now]

        rows: Dict[str, dict] = {}
        for member in members:
            assigned = [c for c in open_chores if c.assignedTo == member.memberId]
            member_records = [r for r in records if r.memberId == member.memberId]
            weekly = [r for r in member_records if r.completedAt >= week_start]
            times = [r.completionTimeMinutes for r in member_records if r.completionTimeMinutes]

            distribution = {"easy": 0, "medium": 0, "hard": 0}
            for chore in assigned:
                distribution[chore.difficulty] = distribution.get(chore.difficulty, 0) + 1

            rows[member.memberId] = {
                "currentPoints": sum(c.points for c in assigned),
                "currentChores": len(assigned),
                "weeklyPoints": sum(r.pointsEarned for r in weekly),
                "weeklyChores": len(weekly),
                "completedChores": len(member_records),
                "difficultyDistribution": distribution,
                "averageCompletionTimeMinutes": sum(times) / len(times) if times else DEFAULT_COMPLETION_MINUTES,
                "preferenceRespectRate": _preference_respect_rate(member, assigned),
            }

        return self._score_rows(members, rows)

    def _score_rows(self, members: List[Member], rows: Dict[str, dict]) -> List[MemberWorkload]:
        """Turns raw per-member counts into bounded workload snapshots."""
        member_count = len(members)
        if member_count == 0:
            return []

        expected_share = 1.0 / member_count
        family_points = sum(r["weeklyPoints"] for r in rows.values())
        family_chores = sum(r["weeklyChores"] for r in rows.values())

        workloads = []
        for member in members:
            row = rows[member.memberId]
            completed = row["completedChores"]
            denominator = completed + row["currentChores"]
            completion_rate = completed / denominator if denominator > 0 else NEUTRAL_COMPLETION_RATE

            points_share = row["weeklyPoints"] / family_points if family_points > 0 else expected_share
            chores_share = row["weeklyChores"] / family_chores if family_chores > 0 else expected_share
            points_fairness = max(0.0, 100 - abs(points_share - expected_share) * SHARE_DEVIATION_PENALTY)
            chores_fairness = max(0.0, 100 - abs(chores_share - expected_share) * SHARE_DEVIATION_PENALTY)
            fairness = (
                points_fairness * W_POINTS_SHARE
                + chores_fairness * W_CHORES_SHARE
                + completion_rate * 100 * W_COMPLETION
            )

            capacity = min(1.0, row["weeklyChores"] / max(1, max_chores_per_week(member)))

            workloads.append(MemberWorkload(
                memberId=member.memberId,
                memberName=member.name,
                currentPoints=row["currentPoints"],
                currentChores=row["currentChores"],
                weeklyPoints=row["weeklyPoints"],
                weeklyChores=row["weeklyChores"],
                completedChores=completed,
                difficultyDistribution=row["difficultyDistribution"],
                completionRate=_clamp(completion_rate, 0.0, 1.0),
                averageCompletionTimeMinutes=row["averageCompletionTimeMinutes"],
                fairnessScore=round(_clamp(fairness, 0.0, 100.0), 2),
                capacityUtilization=_clamp(capacity, 0.0, 1.0),
                preferenceRespectRate=row["preferenceRespectRate"],
            ))
        return workloads

    def project_assignments(
        self,
        members: List[Member],
        workloads: List[MemberWorkload],
        assignments: Dict[str, List[Chore]],
    ) -> List[MemberWorkload]:
        """Workloads recomputed as if each member also took on (and did this week) the given chores."""
        by_id = {w.memberId: w for w in workloads}
        rows: Dict[str, dict] = {}
        for member in members:
            workload = by_id.get(member.memberId)
            row = workload.model_dump() if workload else {
                "currentPoints": 0.0, "currentChores": 0, "weeklyPoints": 0.0, "weeklyChores": 0,
                "completedChores": 0, "difficultyDistribution": {"easy": 0, "medium": 0, "hard": 0},
                "averageCompletionTimeMinutes": DEFAULT_COMPLETION_MINUTES,
                "preferenceRespectRate": NEUTRAL_PREFERENCE_RESPECT,
            }
            row["difficultyDistribution"] = dict(row["difficultyDistribution"])
            for chore in assignments.get(member.memberId, []):
                row["currentPoints"] += chore.points
                row["currentChores"] += 1
                row["weeklyPoints"] += chore.points
                row["weeklyChores"] += 1
                row["difficultyDistribution"][chore.difficulty] = row["difficultyDistribution"].get(chore.difficulty, 0) + 1
            rows[member.memberId] = row
        return self._score_rows(members, rows)

    # --- 2. Family metrics ---
    async def calculate_family_fairness(self, family_id: str, workloads: List[MemberWorkload]) -> FamilyFairnessMetrics:
        metrics = self.family_fairness(workloads)
        if metrics.rebalancingNeeded:
            logger.info(
                "[FAIRNESS] Family %s needs rebalancing (equity=%.1f, variance=%.1f)",
                family_id, metrics.equityScore, metrics.workloadVariance,
            )
        return metrics

    def family_fairness(self, workloads: List[MemberWorkload]) -> FamilyFairnessMetrics:
        if not workloads:
            return FamilyFairnessMetrics(
                lastCalculatedAt=self.clock(),
                memberWorkloads=[],
                equityScore=100.0,
                rebalancingNeeded=False,
                workloadVariance=0.0,
                fairnessThreshold=FAIRNESS_THRESHOLD,
            )

        scores = [w.fairnessScore for w in workloads]
        equity = statistics.fmean(scores)
        variance = statistics.pstdev([w.weeklyPoints for w in workloads])

        rebalancing_needed = (
            equity < FAIRNESS_THRESHOLD
            or variance > WORKLOAD_VARIANCE_THRESHOLD
            or any(s < INDIVIDUAL_FAIRNESS_FLOOR for s in scores)
        )

        return FamilyFairnessMetrics(
            lastCalculatedAt=self.clock(),
            memberWorkloads=list(workloads),
            equityScore=round(equity, 2),
            rebalancingNeeded=rebalancing_needed,
            workloadVariance=round(variance, 2),
            fairnessThreshold=FAIRNESS_THRESHOLD,
        )

    def generate_rebalancing_recommendations(self, metrics: FamilyFairnessMetrics) -> List[str]:
        if not metrics.rebalancingNeeded:
            return [NO_REBALANCING_NEEDED]

        recommendations: List[str] = []
        workloads = metrics.memberWorkloads

        def name(w: MemberWorkload) -> str:
            return w.memberName or w.memberId

        if len(workloads) >= 2:
            by_points = sorted(workloads, key=lambda w: w.weeklyPoints)
            least, most = by_points[0], by_points[-1]
            if most.weeklyPoints > least.weeklyPoints:
                recommendations.append(
                    f"Consider redistributing some chores from {name(most)} "
                    f"({most.weeklyPoints:g} pts) to {name(least)} ({least.weeklyPoints:g} pts)"
                )

        at_capacity = [w for w in workloads if w.capacityUtilization > CAPACITY_WARNING]
        if at_capacity:
            recommendations.append(
                f"Members at capacity: {', '.join(name(w) for w in at_capacity)}. "
                f"Consider increasing their limits or redistributing their workload."
            )

        low_completion = [w for w in workloads if w.completionRate < LOW_COMPLETION_RATE]
        if low_completion:
            recommendations.append(
                f"Low completion rates: {', '.join(name(w) for w in low_completion)}. "
                f"Consider adjusting their assignments or providing additional support."
            )

        low_preference = [w for w in workloads if w.preferenceRespectRate < LOW_PREFERENCE_RESPECT]
        if low_preference:
            recommendations.append(
                f"Preferences not well respected for: {', '.join(name(w) for w in low_preference)}. "
                f"Consider using preference-based rotation strategy."
            )

        return recommendations

    # --- 3. History and prediction ---
    def create_fairness_snapshot(self, metrics: FamilyFairnessMetrics, rebalancing_actions: Optional[List[str]] = None) -> FairnessSnapshot:
        return FairnessSnapshot(
            date=self.clock(),
            equityScore=metrics.equityScore,
            memberWorkloads=list(metrics.memberWorkloads),
            rebalancingActions=list(rebalancing_actions or []),
        )

    def analyze_fairness_trends(self, snapshots: List[FairnessSnapshot]) -> FairnessTrend:
        """Compares the first and second half of a time-ordered snapshot series."""
        if len(snapshots) < 2:
            return FairnessTrend(
                trend="stable",
                averageEquity=snapshots[0].equityScore if snapshots else 100.0,
                volatility=0.0,
                recommendations=["Need more data to analyze trends"],
            )

        scores = [s.equityScore for s in snapshots]
        average = statistics.fmean(scores)
        middle = len(scores) // 2
        first_avg = statistics.fmean(scores[:middle])
        second_avg = statistics.fmean(scores[middle:])

        if second_avg > first_avg + TREND_THRESHOLD:
            trend = "improving"
        elif second_avg < first_avg - TREND_THRESHOLD:
            trend = "declining"
        else:
            trend = "stable"

        volatility = statistics.pstdev(scores)

        recommendations = []
        if trend == "declining":
            recommendations.append("Fairness is declining - consider implementing workload balancing strategy")
        if volatility > HIGH_VOLATILITY:
            recommendations.append("High volatility in fairness scores - consider more consistent rotation strategy")
        if average < FAIRNESS_THRESHOLD:
            recommendations.append("Average fairness below threshold - immediate rebalancing recommended")

        return FairnessTrend(
            trend=trend,
            averageEquity=round(average, 2),
            volatility=round(volatility, 2),
            recommendations=recommendations,
        )

    def predict_optimal_assignment(
        self, workloads: List[MemberWorkload], chore_points: float, difficulty: str = "medium"
    ) -> List[AssignmentPrediction]:
        """Estimated fairness impact of giving a chore to each member, best first."""
        predictions = []
        for workload in workloads:
            impact = self._estimate_fairness_impact(workload, chore_points)
            predictions.append(AssignmentPrediction(
                memberId=workload.memberId,
                fairnessImpact=impact,
                reasoning=(
                    f"Current fairness: {workload.fairnessScore:g}, "
                    f"estimated impact of a {difficulty} chore: {impact:+g}"
                ),
            ))
        return sorted(predictions, key=lambda p: p.fairnessImpact, reverse=True)

    @staticmethod
    def _estimate_fairness_impact(workload: MemberWorkload, chore_points: float) -> float:
        scale = chore_points / 10
        # Under-loaded members absorb new work best
        if workload.fairnessScore > 85:
            return round(max(-10.0, -5 * scale), 2)
        if workload.fairnessScore > 70:
            return round(max(-5.0, -2 * scale), 2)
        return round(min(-1.0, -10 * scale), 2)
