import asyncio
import json
import sys
from datetime import timedelta
from pathlib import Path
# Ensure project root is on sys.path so 'chore_rotation' can be imported when running this script directly
sys.path.append(str(Path(__file__).resolve().parents[1]))
from chore_rotation.core.data_loader import DataLoader
from chore_rotation.routes.dependencies import RotationServices, get_oracle
from chore_rotation.models.rotation import BatchRotationOperation, Family, RotationContext
from chore_rotation.models.timestamps import utc_now


async def main(family_id: str):
    """Dry-run rotation of every open chore of a family against the configured backend."""
    loader = DataLoader()
    services = RotationServices(loader, loader, loader, get_oracle(loader))

    members = await loader.get_members(family_id)
    chores = await loader.get_open_chores(family_id)
    family = Family(id=family_id, memberRotationOrder=[m.memberId for m in members])

    operation = BatchRotationOperation(
        choreIds=[c.choreId for c in chores],
        targetDate=utc_now() + timedelta(days=1),
        dryRun=True,
    )
    context = RotationContext(familyId=family_id, availableMembers=members)
    result = await services.batch.process_batch_rotation(operation, family, context)

    print("WORKLOADS:")
    workloads = await services.fairness.calculate_member_workloads(family_id, members)
    print(json.dumps([w.model_dump() for w in workloads], indent=2, default=str))
    print("BATCH PREVIEW:")
    print(json.dumps(result.model_dump(mode="json"), indent=2))


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else "test_family"))
