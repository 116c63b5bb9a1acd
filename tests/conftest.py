import random
from datetime import datetime

import pytest

from chore_rotation.core.availability import AvailabilityOracle
from chore_rotation.core.calendar_provider import InMemoryCalendarProvider
from chore_rotation.core.fairness_engine import FairnessEngine
from chore_rotation.core.rotation_engine import RotationEngine
from chore_rotation.core.stores import InMemoryFamilyStore
from chore_rotation.models.chore import Chore
from chore_rotation.models.member import Member, MemberRotationPreferences
from chore_rotation.models.rotation import Family

# Wednesday noon; day-of-week 3 in the app convention
NOW = datetime(2025, 3, 12, 12, 0)
FAMILY_ID = "fam"


def member(member_id: str, name: str = None, active: bool = True, **prefs) -> Member:
    return Member(
        uid=member_id,
        name=name or member_id.title(),
        isActive=active,
        rotationPreferences=MemberRotationPreferences(**prefs) if prefs else None,
    )


def chore(chore_id: str, **fields) -> Chore:
    data = {"_id": chore_id, "title": chore_id.replace("-", " "), "type": "individual", "points": 10}
    data.update(fields)
    return Chore(**data)


@pytest.fixture
def members():
    return [member("alice"), member("bob"), member("cara")]


@pytest.fixture
def family():
    return Family(id=FAMILY_ID, name="Test family", memberRotationOrder=["alice", "bob", "cara"])


@pytest.fixture
def store(members):
    return InMemoryFamilyStore(members={FAMILY_ID: members})


@pytest.fixture
def calendar():
    return InMemoryCalendarProvider()


@pytest.fixture
def oracle(calendar):
    return AvailabilityOracle(calendar)


@pytest.fixture
def fairness(store):
    return FairnessEngine(store, store, clock=lambda: NOW)


@pytest.fixture
def engine(fairness, oracle, store):
    return RotationEngine(fairness, oracle, store, rng=random.Random(7), clock=lambda: NOW)
