from pydantic import BaseModel, Field, field_validator, model_validator
from typing import List, Optional, Any, Literal

from chore_rotation.models.timestamps import UtcDateTime


class ChoreRotationConfig(BaseModel):
    """
    Per-chore rotation rules. `strategy` stays a plain string so an unknown
    strategy id survives validation and can be reported by the engine.
    """
    strategy: Optional[str] = None
    requiredSkills: List[str] = Field(default_factory=list)
    eligibleMembers: Optional[List[str]] = Field(None, description="Allow-list; None means everyone.")
    preferredMembers: List[str] = Field(default_factory=list)
    avoidMembers: List[str] = Field(default_factory=list)
    priorityLevel: Literal["low", "normal", "high", "urgent"] = "normal"


class Chore(BaseModel):
    """
    Model for a Chore. Uses a validator to flatten the legacy nested
    'rotation' payload of older chore documents.
    """
    choreId: str = Field(..., alias="_id")
    title: str = ""
    type: str = Field("individual", description="Chore type used for preference matching.")
    difficulty: Literal["easy", "medium", "hard"] = "medium"
    points: float = 0.0
    dueDate: Optional[UtcDateTime] = None
    estimatedDurationMinutes: Optional[int] = None
    status: str = Field("open", description="open, completed, archived ...")
    assignedTo: Optional[str] = Field(None, description="Current assignee memberId.")
    rotationConfig: ChoreRotationConfig = Field(default_factory=ChoreRotationConfig)

    class Config:
        populate_by_name = True

    @model_validator(mode="before")
    @classmethod
    def extract_nested_fields(cls, data: Any) -> Any:
        """Promotes the legacy 'rotation' key and a nested assignee object."""
        if isinstance(data, dict):
            if "rotationConfig" not in data and isinstance(data.get("rotation"), dict):
                data = dict(data)
                data["rotationConfig"] = data.pop("rotation")

            assignee = data.get("assignedTo")
            if isinstance(assignee, dict):
                data = dict(data)
                data["assignedTo"] = assignee.get("uid") or assignee.get("_id") or assignee.get("id")
        return data

    @field_validator("points", mode="before")
    @classmethod
    def convert_points(cls, v):
        """Ensure points is a float."""
        try:
            return float(v)
        except (ValueError, TypeError):
            return 0.0


class CompletionRecord(BaseModel):
    """One completed chore from the completion history store."""
    choreId: str
    memberId: str = Field(..., alias="userId")
    completedAt: UtcDateTime
    pointsEarned: float = 0.0
    completionTimeMinutes: Optional[float] = Field(None, alias="completionTime")

    class Config:
        populate_by_name = True
