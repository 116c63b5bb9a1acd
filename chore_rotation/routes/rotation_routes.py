import logging
from fastapi import APIRouter, Body, Depends, HTTPException
from typing import List, Optional
from pydantic import BaseModel, Field

from chore_rotation.core.rotation_engine import advance_rotation_index
from chore_rotation.models.chore import Chore
from chore_rotation.models.member import Member
from chore_rotation.models.rotation import (
    BatchRotationOperation,
    BatchRotationResult,
    Family,
    FamilyRotationSettings,
    RotationContext,
    RotationResult,
)
from chore_rotation.routes.dependencies import RotationServices, get_services

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------
# Request Models
# ---------------------------------------------------------

class NextAssigneeRequest(BaseModel):
    """
    The family's rotation state travels with the request; members and the
    chore are loaded from the family backend unless supplied here.
    """
    family: Family
    choreId: Optional[str] = None
    chore: Optional[Chore] = Field(None, description="Inline chore, takes precedence over choreId.")
    members: Optional[List[Member]] = None
    currentAssignee: Optional[str] = None
    familySettings: Optional[FamilyRotationSettings] = None
    emergencyMode: bool = False


class BatchRotationRequest(BaseModel):
    family: Family
    operation: BatchRotationOperation
    members: Optional[List[Member]] = None
    emergencyMode: bool = False


class AdvanceIndexRequest(BaseModel):
    family: Family
    memberId: str


async def _build_context(
    services: RotationServices,
    family_id: str,
    members: Optional[List[Member]],
    **kwargs,
) -> RotationContext:
    if members is None:
        members = await services.member_directory.get_members(family_id)
    return RotationContext(familyId=family_id, availableMembers=members, **kwargs)


# ---------------------------------------------------------
# POST /api/rotation/next-assignee/{family_id}
# ---------------------------------------------------------
@router.post("/next-assignee/{family_id}", response_model=RotationResult)
async def next_assignee(
    family_id: str,
    req: NextAssigneeRequest = Body(...),
    services: RotationServices = Depends(get_services),
) -> RotationResult:
    try:
        chore = req.chore
        if chore is None:
            if not req.choreId:
                raise HTTPException(status_code=400, detail="Either chore or choreId is required")
            chore = await services.chore_store.get_chore(req.choreId)
            if chore is None:
                raise HTTPException(status_code=404, detail=f"Chore {req.choreId} not found")

        context = await _build_context(
            services,
            family_id,
            req.members,
            currentAssignee=req.currentAssignee,
            familySettings=req.familySettings,
            emergencyMode=req.emergencyMode,
        )
        return await services.engine.determine_next_assignee(chore, req.family, context)

    except HTTPException:
        raise

    except Exception as e:
        logger.error("[ROTATION] Next assignee failed for family %s: %s", family_id, e)
        raise HTTPException(
            status_code=500,
            detail=f"Rotation failed: {str(e)}",
            headers={"X-Failure-Reason": "Rotation service error"},
        )


# ---------------------------------------------------------
# POST /api/rotation/batch/{family_id}
# ---------------------------------------------------------
@router.post("/batch/{family_id}", response_model=BatchRotationResult)
async def batch_rotation(
    family_id: str,
    req: BatchRotationRequest = Body(...),
    services: RotationServices = Depends(get_services),
) -> BatchRotationResult:
    try:
        context = await _build_context(services, family_id, req.members, emergencyMode=req.emergencyMode)
        return await services.batch.process_batch_rotation(req.operation, req.family, context)

    except Exception as e:
        logger.error("[BATCH] Batch rotation failed for family %s: %s", family_id, e)
        raise HTTPException(
            status_code=500,
            detail=f"Batch rotation failed: {str(e)}",
            headers={"X-Failure-Reason": "Rotation service error"},
        )


# ---------------------------------------------------------
# POST /api/rotation/advance-index
# ---------------------------------------------------------
@router.post("/advance-index")
async def advance_index(req: AdvanceIndexRequest = Body(...)):
    """Index the caller should persist after the member took their turn."""
    return {"nextFamilyChoreAssigneeIndex": advance_rotation_index(req.family, req.memberId)}
