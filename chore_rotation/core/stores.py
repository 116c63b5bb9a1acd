from typing import Dict, List, Optional, Protocol, Iterable

from chore_rotation.models.chore import Chore, CompletionRecord
from chore_rotation.models.member import Member

# ------------------------------------------------------
# Read-only contracts of the collaborators owned by the family app.
# ------------------------------------------------------


class MemberDirectory(Protocol):
    async def get_members(self, family_id: str) -> List[Member]: ...

    async def get_member(self, member_id: str) -> Optional[Member]: ...


class ChoreStore(Protocol):
    async def get_open_chores(self, family_id: str) -> List[Chore]: ...

    async def get_chore(self, chore_id: str) -> Optional[Chore]: ...


class CompletionHistoryStore(Protocol):
    async def get_completion_records(self, family_id: str, days: int) -> List[CompletionRecord]: ...


class InMemoryFamilyStore:
    """
    Implements all three contracts over plain dictionaries. Used by the demo
    script and the tests; production wiring uses the HTTP DataLoader.
    Completion records are returned unfiltered; the fairness engine applies
    the trailing window itself.
    """

    def __init__(
        self,
        members: Optional[Dict[str, Iterable[Member]]] = None,
        chores: Optional[Dict[str, Iterable[Chore]]] = None,
        completions: Optional[Dict[str, Iterable[CompletionRecord]]] = None,
    ):
        self.members: Dict[str, List[Member]] = {fid: list(ms) for fid, ms in (members or {}).items()}
        self.chores: Dict[str, List[Chore]] = {fid: list(cs) for fid, cs in (chores or {}).items()}
        self.completions: Dict[str, List[CompletionRecord]] = {fid: list(rs) for fid, rs in (completions or {}).items()}

    async def get_members(self, family_id: str) -> List[Member]:
        return list(self.members.get(family_id, []))

    async def get_member(self, member_id: str) -> Optional[Member]:
        for members in self.members.values():
            for member in members:
                if member.memberId == member_id:
                    return member
        return None

    async def get_open_chores(self, family_id: str) -> List[Chore]:
        return [c for c in self.chores.get(family_id, []) if c.status == "open"]

    async def get_chore(self, chore_id: str) -> Optional[Chore]:
        for chores in self.chores.values():
            for chore in chores:
                if chore.choreId == chore_id:
                    return chore
        return None

    async def get_completion_records(self, family_id: str, days: int) -> List[CompletionRecord]:
        return list(self.completions.get(family_id, []))
