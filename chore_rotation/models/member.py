from pydantic import BaseModel, Field, field_validator
from typing import List, Optional, Literal
from datetime import date


class TimeRange(BaseModel):
    """
    Hour window on selected days. Days use the family app convention
    (0 = Sunday ... 6 = Saturday). startHour > endHour wraps past midnight.
    """
    startHour: int = Field(..., ge=0, le=23)
    endHour: int = Field(..., ge=0, le=24)
    daysOfWeek: List[int] = Field(default_factory=lambda: list(range(7)))
    enabled: bool = True

    def contains(self, hour: int, day_of_week: int) -> bool:
        if not self.enabled or day_of_week not in self.daysOfWeek:
            return False
        if self.startHour <= self.endHour:
            return self.startHour <= hour < self.endHour
        return hour >= self.startHour or hour < self.endHour


class UnavailabilityPeriod(BaseModel):
    startDate: date
    endDate: date
    reason: str = ""
    recurring: bool = False
    daysOfWeek: List[int] = Field(default_factory=list, description="Weekly pattern, only used when recurring.")

    def covers(self, day: date, day_of_week: int) -> bool:
        if not (self.startDate <= day <= self.endDate):
            return False
        if self.recurring and self.daysOfWeek:
            return day_of_week in self.daysOfWeek
        return True


class EnergyPattern(BaseModel):
    timeRange: TimeRange
    energyLevel: Literal["low", "medium", "high"] = "medium"
    description: Optional[str] = None


class MemberRotationPreferences(BaseModel):
    """Rotation preferences a member (or a parent on their behalf) configured."""
    preferredChoreTypes: List[str] = Field(default_factory=list)
    dislikedChoreTypes: List[str] = Field(default_factory=list)
    preferredDifficulties: List[str] = Field(default_factory=list)
    maxChoresPerWeek: Optional[int] = Field(None, description="Weekly chore allowance; 10 when unset.")
    maxChoresPerDay: Optional[int] = None
    preferredDaysOfWeek: List[int] = Field(default_factory=list)
    preferredTimeRanges: List[TimeRange] = Field(default_factory=list)
    unavailabilityPeriods: List[UnavailabilityPeriod] = Field(default_factory=list)
    skillCertifications: List[str] = Field(default_factory=list)
    energyPatterns: List[EnergyPattern] = Field(default_factory=list)

    def has_preference_data(self) -> bool:
        return bool(self.preferredChoreTypes or self.dislikedChoreTypes or self.preferredDifficulties)


class Member(BaseModel):
    """
    Family member as seen by the rotation engine. Owned by the member
    directory; the engine never mutates it.
    """
    memberId: str = Field(..., alias="uid")
    name: Optional[str] = None
    role: str = "child"
    isActive: bool = True
    rotationPreferences: Optional[MemberRotationPreferences] = None

    class Config:
        # Allows Member(uid="m1") as well as Member(memberId="m1")
        populate_by_name = True

    @field_validator("name", mode="before")
    @classmethod
    def blank_name_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def display_name(self) -> str:
        return self.name or self.memberId

    @property
    def preferences(self) -> MemberRotationPreferences:
        return self.rotationPreferences or MemberRotationPreferences()
