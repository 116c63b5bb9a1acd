from fastapi import APIRouter, Body, Depends
from typing import Dict, List, Optional
from pydantic import BaseModel, Field

from chore_rotation.core.availability import AvailabilityOracle
from chore_rotation.core.defaults import DEFAULT_CHORE_DURATION_MINUTES
from chore_rotation.models.availability import AvailabilityResult, GroupTimeResult
from chore_rotation.models.member import MemberRotationPreferences
from chore_rotation.models.timestamps import UtcDateTime
from chore_rotation.routes.dependencies import get_oracle

router = APIRouter()


# ---------------------------------------------------------
# Request Models
# ---------------------------------------------------------

class AvailabilityRequest(BaseModel):
    memberId: str
    targetTime: UtcDateTime
    durationMinutes: int = Field(DEFAULT_CHORE_DURATION_MINUTES, gt=0)
    preferences: Optional[MemberRotationPreferences] = None


class MultipleAvailabilityRequest(BaseModel):
    memberIds: List[str]
    targetTime: UtcDateTime
    durationMinutes: int = Field(DEFAULT_CHORE_DURATION_MINUTES, gt=0)
    preferences: Dict[str, MemberRotationPreferences] = Field(default_factory=dict)


class GroupTimeRequest(MultipleAvailabilityRequest):
    flexibilityHours: int = Field(6, ge=0, le=12)


# The oracle degrades every failure to a default result, so these routes
# need no error translation.

@router.post("/check", response_model=AvailabilityResult)
async def check_availability(
    req: AvailabilityRequest = Body(...),
    oracle: AvailabilityOracle = Depends(get_oracle),
):
    return await oracle.check_member_availability(req.memberId, req.targetTime, req.durationMinutes, req.preferences)


@router.post("/multiple", response_model=Dict[str, AvailabilityResult])
async def check_multiple_availability(
    req: MultipleAvailabilityRequest = Body(...),
    oracle: AvailabilityOracle = Depends(get_oracle),
):
    return await oracle.check_multiple_member_availability(
        req.memberIds, req.targetTime, req.durationMinutes, req.preferences
    )


@router.post("/group-time", response_model=GroupTimeResult)
async def optimal_group_time(
    req: GroupTimeRequest = Body(...),
    oracle: AvailabilityOracle = Depends(get_oracle),
):
    return await oracle.find_optimal_group_time(
        req.memberIds, req.targetTime, req.durationMinutes, req.flexibilityHours, req.preferences
    )


@router.get("/cache")
async def cache_stats(oracle: AvailabilityOracle = Depends(get_oracle)):
    return oracle.get_cache_stats()


@router.delete("/cache")
async def clear_cache(oracle: AvailabilityOracle = Depends(get_oracle)):
    oracle.clear_cache()
    return {"cleared": True}
