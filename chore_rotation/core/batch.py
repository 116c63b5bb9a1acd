import logging
from typing import Awaitable, Callable, Dict, List, Optional

from chore_rotation.core.fairness_engine import FairnessEngine
from chore_rotation.core.rotation_engine import RotationEngine
from chore_rotation.core.stores import ChoreStore
from chore_rotation.models.chore import Chore
from chore_rotation.models.rotation import (
    BatchRotationOperation,
    BatchRotationResult,
    Family,
    RotationContext,
    RotationResult,
    RotationStrategy,
)

logger = logging.getLogger(__name__)

# Called with each successful assignment of a non-dry-run batch
AssignmentSink = Callable[[Chore, RotationResult], Awaitable[None]]


class BatchCoordinator:
    """
    Rotates a list of chores in one pass. Chores are handled in order and
    each success is visible to the decisions that follow it: the round-robin
    index advances on a local copy of the family, and assigned chores are
    added to a projected workload overlay. Nothing is persisted unless the
    batch is not a dry run and an assignment sink was provided.
    """

    def __init__(
        self,
        engine: RotationEngine,
        chore_store: ChoreStore,
        fairness_engine: FairnessEngine,
        assignment_sink: Optional[AssignmentSink] = None,
    ):
        self.engine = engine
        self.chore_store = chore_store
        self.fairness_engine = fairness_engine
        self.assignment_sink = assignment_sink

    async def process_batch_rotation(
        self,
        operation: BatchRotationOperation,
        family: Family,
        context: RotationContext,
    ) -> BatchRotationResult:
        family_id = context.familyId or family.familyId
        members = context.availableMembers
        logger.info(
            "[BATCH] Family %s: rotating %d chores (dryRun=%s, forceRebalance=%s)",
            family_id, len(operation.choreIds), operation.dryRun, operation.forceRebalance,
        )

        try:
            baseline = await self.fairness_engine.calculate_member_workloads(family_id, members)
        except Exception as e:
            logger.error("[BATCH] Could not compute workloads for family %s: %s", family_id, e)
            return BatchRotationResult(
                success=False,
                processedChores=0,
                failedChores=list(operation.choreIds),
                warnings=[f"Could not compute family workloads: {e}"],
            )

        local_family = family.model_copy(deep=True)
        pending: Dict[str, List[Chore]] = {}
        results: Dict[str, RotationResult] = {}
        failed: List[str] = []
        warnings: List[str] = []
        processed = 0

        for chore_id in operation.choreIds:
            try:
                chore = await self.chore_store.get_chore(chore_id)
            except Exception as e:
                failed.append(chore_id)
                warnings.append(f"Failed to load chore {chore_id}: {e}")
                continue
            if chore is None:
                failed.append(chore_id)
                warnings.append(f"Chore {chore_id} not found")
                continue

            chore = self._prepare_chore(chore, operation)
            result = await self.engine.determine_next_assignee(chore, local_family, context, pending)
            results[chore_id] = result

            if not result.success:
                failed.append(chore_id)
                warnings.append(f"Failed to rotate chore {chore_id}: {result.errorMessage}")
                continue

            if not operation.dryRun and self.assignment_sink is not None:
                try:
                    await self.assignment_sink(chore, result)
                except Exception as e:
                    failed.append(chore_id)
                    warnings.append(f"Failed to save assignment for chore {chore_id}: {e}")
                    continue

            processed += 1
            pending.setdefault(result.assignedMemberId, []).append(chore)
            if result.nextRotationIndex is not None:
                local_family.nextFamilyChoreAssigneeIndex = result.nextRotationIndex

        current = self.fairness_engine.family_fairness(baseline)
        projected = self.fairness_engine.family_fairness(
            self.fairness_engine.project_assignments(members, baseline, pending)
        )
        if pending and projected.rebalancingNeeded:
            warnings.append(
                f"Projected family equity {projected.equityScore:g} still needs rebalancing after this batch"
            )

        logger.info(
            "[BATCH] Family %s: %d processed, %d failed, equity %.1f -> %.1f",
            family_id, processed, len(failed), current.equityScore, projected.equityScore,
        )
        return BatchRotationResult(
            success=not failed,
            processedChores=processed,
            failedChores=failed,
            warnings=warnings,
            fairnessImpact=round(projected.equityScore - current.equityScore, 2),
            results=results,
        )

    @staticmethod
    def _prepare_chore(chore: Chore, operation: BatchRotationOperation) -> Chore:
        strategy = operation.strategy
        if strategy is None and operation.forceRebalance:
            strategy = RotationStrategy.WORKLOAD_BALANCE

        update = {}
        if strategy is not None:
            update["rotationConfig"] = chore.rotationConfig.model_copy(update={"strategy": strategy.value})
        if chore.dueDate is None and operation.targetDate is not None:
            update["dueDate"] = operation.targetDate
        return chore.model_copy(update=update) if update else chore
