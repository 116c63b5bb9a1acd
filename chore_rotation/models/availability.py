from pydantic import BaseModel, Field
from typing import List, Optional, Dict, Literal
from datetime import datetime

from chore_rotation.models.timestamps import UtcDateTime

ConflictType = Literal["calendar", "capacity", "preference", "skill", "availability"]
ConflictSeverity = Literal["low", "medium", "high", "critical"]
EventType = Literal["work", "personal", "family", "travel", "other"]


class ScheduleConflict(BaseModel):
    """An incompatibility between a candidate assignment and real-world constraints."""
    type: ConflictType
    severity: ConflictSeverity
    description: str
    suggestedResolution: Optional[str] = None
    canOverride: bool = True

    @property
    def blocks_assignment(self) -> bool:
        """Critical, or high and not overridable."""
        return self.severity == "critical" or (self.severity == "high" and not self.canOverride)


class CalendarEvent(BaseModel):
    id: str
    title: str
    startTime: UtcDateTime
    endTime: UtcDateTime
    location: Optional[str] = None
    type: EventType = "other"


class AvailabilityResult(BaseModel):
    score: float = Field(..., ge=0.0, le=100.0, description="0-100, higher is better availability.")
    conflicts: List[ScheduleConflict] = Field(default_factory=list)
    suggestedTimes: List[datetime] = Field(default_factory=list)
    reasoning: str = ""


class GroupTimeResult(BaseModel):
    optimalTime: datetime
    memberAvailability: Dict[str, AvailabilityResult] = Field(default_factory=dict)
    groupScore: float
    reasoning: str
