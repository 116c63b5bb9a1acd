from pydantic import BaseModel, Field
from typing import List, Dict, Literal, Optional
from datetime import datetime

from chore_rotation.models.timestamps import UtcDateTime


class MemberWorkload(BaseModel):
    """
    Computed, ephemeral snapshot of a member's load. Recomputed on every
    rotation call; bounded fields are validated so a broken computation
    fails loudly instead of leaking out-of-range scores.
    """
    memberId: str
    memberName: Optional[str] = None
    currentPoints: float = 0.0
    currentChores: int = 0
    weeklyPoints: float = 0.0
    weeklyChores: int = 0
    completedChores: int = Field(0, description="Completions inside the trailing history window.")
    difficultyDistribution: Dict[str, int] = Field(default_factory=lambda: {"easy": 0, "medium": 0, "hard": 0})
    completionRate: float = Field(1.0, ge=0.0, le=1.0)
    averageCompletionTimeMinutes: float = 30.0
    fairnessScore: float = Field(100.0, ge=0.0, le=100.0)
    capacityUtilization: float = Field(0.0, ge=0.0, le=1.0)
    preferenceRespectRate: float = Field(0.8, ge=0.0, le=1.0)


class FamilyFairnessMetrics(BaseModel):
    lastCalculatedAt: datetime
    memberWorkloads: List[MemberWorkload] = Field(default_factory=list)
    equityScore: float = Field(..., description="Mean member fairness score (0-100).")
    rebalancingNeeded: bool
    workloadVariance: float = Field(..., description="Standard deviation of weekly points.")
    fairnessThreshold: float


class FairnessSnapshot(BaseModel):
    date: UtcDateTime
    equityScore: float
    memberWorkloads: List[MemberWorkload] = Field(default_factory=list)
    rebalancingActions: List[str] = Field(default_factory=list)


class FairnessTrend(BaseModel):
    trend: Literal["improving", "declining", "stable"]
    averageEquity: float
    volatility: float
    recommendations: List[str] = Field(default_factory=list)


class AssignmentPrediction(BaseModel):
    memberId: str
    fairnessImpact: float
    reasoning: str
