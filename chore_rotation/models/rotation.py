from pydantic import BaseModel, Field, model_validator
from typing import List, Optional, Dict, Any
from enum import Enum

from chore_rotation.models.member import Member
from chore_rotation.models.timestamps import UtcDateTime
from chore_rotation.models.availability import ScheduleConflict


class RotationStrategy(str, Enum):
    ROUND_ROBIN = "round_robin"
    WORKLOAD_BALANCE = "workload_balance"
    SKILL_BASED = "skill_based"
    CALENDAR_AWARE = "calendar_aware"
    RANDOM_FAIR = "random_fair"
    PREFERENCE_BASED = "preference_based"
    MIXED_STRATEGY = "mixed_strategy"


# --- 1. Family configuration ---

class StrategyConfig(BaseModel):
    """Weight of one strategy inside the mixed strategy."""
    enabled: bool = True
    weight: float = Field(0.0, ge=0.0, le=1.0)
    parameters: Dict[str, Any] = Field(default_factory=dict)


class FamilyRotationSettings(BaseModel):
    defaultStrategy: RotationStrategy = RotationStrategy.ROUND_ROBIN
    fairnessWeight: float = Field(0.7, description="0-1, how much to prioritize fairness.")
    preferenceWeight: float = Field(0.5, description="0-1, how much to respect preferences.")
    availabilityWeight: float = Field(0.8, description="0-1, how much to consider the calendar.")
    enableIntelligentScheduling: bool = True
    maxChoresPerMember: int = 10
    emergencyFallbackEnabled: bool = Field(True, description="Promote a conflict-free alternative automatically.")
    strategyConfigs: Dict[str, StrategyConfig] = Field(default_factory=dict)


class Family(BaseModel):
    """Family rotation state. Persisting the advanced index is the caller's job."""
    familyId: str = Field(..., alias="id")
    name: Optional[str] = None
    memberRotationOrder: List[str] = Field(default_factory=list)
    nextFamilyChoreAssigneeIndex: int = 0
    rotationSettings: FamilyRotationSettings = Field(default_factory=FamilyRotationSettings)

    class Config:
        populate_by_name = True


class RotationContext(BaseModel):
    familyId: Optional[str] = None
    currentAssignee: Optional[str] = None
    availableMembers: List[Member] = Field(default_factory=list)
    familySettings: Optional[FamilyRotationSettings] = Field(None, description="Overrides the family's settings.")
    emergencyMode: bool = False


# --- 2. Results ---

class AlternativeAssignment(BaseModel):
    memberId: str
    memberName: Optional[str] = None
    fairnessScore: float
    conflicts: List[ScheduleConflict] = Field(default_factory=list)
    recommendationReason: str
    acceptable: bool


class RotationResult(BaseModel):
    """
    Outcome of one rotation decision. Exactly one of (assignedMemberId and
    success) or (errorMessage and not success) holds. On failure the original
    pick, if any, is kept in candidateMemberId for manual override.
    """
    success: bool
    assignedMemberId: Optional[str] = None
    assignedMemberName: Optional[str] = None
    strategy: RotationStrategy
    fairnessScore: float = 0.0
    conflictsDetected: List[ScheduleConflict] = Field(default_factory=list)
    alternativeAssignments: List[AlternativeAssignment] = Field(default_factory=list)
    candidateMemberId: Optional[str] = None
    nextRotationIndex: Optional[int] = None
    recommendedAction: Optional[str] = None
    errorMessage: Optional[str] = None

    @model_validator(mode="after")
    def check_outcome(self):
        if self.success and (not self.assignedMemberId or self.errorMessage):
            raise ValueError("A successful rotation needs an assignee and no error message")
        if not self.success and (self.assignedMemberId or not self.errorMessage):
            raise ValueError("A failed rotation needs an error message and no assignee")
        return self


# --- 3. Batch operations ---

class BatchRotationOperation(BaseModel):
    choreIds: List[str]
    targetDate: Optional[UtcDateTime] = None
    forceRebalance: bool = False
    strategy: Optional[RotationStrategy] = None
    dryRun: bool = True


class BatchRotationResult(BaseModel):
    success: bool
    processedChores: int
    failedChores: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    fairnessImpact: float = Field(0.0, description="Change in family equity score if the batch is applied.")
    results: Dict[str, RotationResult] = Field(default_factory=dict)
