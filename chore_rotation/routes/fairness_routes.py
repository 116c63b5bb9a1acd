import logging
from fastapi import APIRouter, Body, Depends, HTTPException, Query
from typing import List, Literal

from chore_rotation.models.fairness import (
    AssignmentPrediction,
    FairnessSnapshot,
    FairnessTrend,
    FamilyFairnessMetrics,
    MemberWorkload,
)
from chore_rotation.routes.dependencies import RotationServices, get_services

logger = logging.getLogger(__name__)

router = APIRouter()


async def _workloads(services: RotationServices, family_id: str) -> List[MemberWorkload]:
    members = await services.member_directory.get_members(family_id)
    return await services.fairness.calculate_member_workloads(family_id, members)


def _fail(family_id: str, e: Exception) -> HTTPException:
    logger.error("[FAIRNESS] Request failed for family %s: %s", family_id, e)
    return HTTPException(
        status_code=500,
        detail=f"Fairness calculation failed: {str(e)}",
        headers={"X-Failure-Reason": "Rotation service error"},
    )


@router.get("/{family_id}/workloads", response_model=List[MemberWorkload])
async def member_workloads(family_id: str, services: RotationServices = Depends(get_services)):
    try:
        return await _workloads(services, family_id)
    except Exception as e:
        raise _fail(family_id, e)


@router.get("/{family_id}/metrics", response_model=FamilyFairnessMetrics)
async def family_metrics(family_id: str, services: RotationServices = Depends(get_services)):
    try:
        workloads = await _workloads(services, family_id)
        return await services.fairness.calculate_family_fairness(family_id, workloads)
    except Exception as e:
        raise _fail(family_id, e)


@router.get("/{family_id}/recommendations")
async def rebalancing_recommendations(family_id: str, services: RotationServices = Depends(get_services)):
    try:
        workloads = await _workloads(services, family_id)
        metrics = await services.fairness.calculate_family_fairness(family_id, workloads)
        recommendations = services.fairness.generate_rebalancing_recommendations(metrics)
        snapshot = services.fairness.create_fairness_snapshot(
            metrics, recommendations if metrics.rebalancingNeeded else []
        )
        return {
            "rebalancingNeeded": metrics.rebalancingNeeded,
            "recommendations": recommendations,
            "snapshot": snapshot,
        }
    except Exception as e:
        raise _fail(family_id, e)


@router.get("/{family_id}/predict", response_model=List[AssignmentPrediction])
async def predict_assignment(
    family_id: str,
    points: float = Query(..., ge=0),
    difficulty: Literal["easy", "medium", "hard"] = "medium",
    services: RotationServices = Depends(get_services),
):
    try:
        workloads = await _workloads(services, family_id)
        return services.fairness.predict_optimal_assignment(workloads, points, difficulty)
    except Exception as e:
        raise _fail(family_id, e)


@router.post("/trends", response_model=FairnessTrend)
async def fairness_trends(
    snapshots: List[FairnessSnapshot] = Body(...),
    services: RotationServices = Depends(get_services),
):
    ordered = sorted(snapshots, key=lambda s: s.date)
    return services.fairness.analyze_fairness_trends(ordered)
