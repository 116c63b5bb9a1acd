from typing import Dict

from fastapi import Depends, Request

from chore_rotation.core.availability import AvailabilityOracle
from chore_rotation.core.availability_cache import AvailabilityCache
from chore_rotation.core.batch import BatchCoordinator
from chore_rotation.core.calendar_provider import StubCalendarProvider
from chore_rotation.core.data_loader import DataLoader
from chore_rotation.core.fairness_engine import FairnessEngine
from chore_rotation.core.rotation_engine import RotationEngine
from chore_rotation.core.stores import ChoreStore, CompletionHistoryStore, MemberDirectory


class RotationServices:
    """The engines wired over one set of stores, built once per request."""

    def __init__(
        self,
        member_directory: MemberDirectory,
        chore_store: ChoreStore,
        history_store: CompletionHistoryStore,
        oracle: AvailabilityOracle,
    ):
        self.member_directory = member_directory
        self.oracle = oracle
        self.fairness = FairnessEngine(chore_store, history_store)
        self.engine = RotationEngine(self.fairness, oracle, chore_store)
        self.batch = BatchCoordinator(self.engine, chore_store, self.fairness)
        self.chore_store = chore_store


# One calendar source and cache per process so cached events outlive single requests.
_calendar_provider = StubCalendarProvider()
_calendar_cache = AvailabilityCache()


# ---------------------------------------------------------
# Helper: extract Authorization + Cookie headers
# ---------------------------------------------------------
def _build_forward_headers(request: Request) -> Dict[str, str]:
    """Extracts the headers forwarded to the family backend."""
    headers = {}
    req_headers = {k.lower(): v for k, v in request.headers.items()}

    if "authorization" in req_headers:
        headers["Authorization"] = req_headers["authorization"]

    if "cookie" in req_headers:
        headers["Cookie"] = req_headers["cookie"]

    if "x-user-id" in req_headers:
        headers["X-User-Id"] = req_headers["x-user-id"]

    return headers


def get_loader(request: Request) -> DataLoader:
    return DataLoader(incoming_headers=_build_forward_headers(request))


def get_oracle(loader: MemberDirectory = Depends(get_loader)) -> AvailabilityOracle:
    """Oracle over the shared calendar cache; stored preferences come from the request's loader."""
    return AvailabilityOracle(_calendar_provider, _calendar_cache, member_directory=loader)


def get_services(
    loader: DataLoader = Depends(get_loader),
    oracle: AvailabilityOracle = Depends(get_oracle),
) -> RotationServices:
    return RotationServices(loader, loader, loader, oracle)
