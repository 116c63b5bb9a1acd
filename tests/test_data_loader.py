import asyncio
import json

import httpx
import pytest

import chore_rotation.core.data_loader as data_loader_module
from chore_rotation.core.data_loader import DataLoader
from chore_rotation.core.errors import DataLoaderError

BASE = "http://family.test/api"


def _loader(routes, seen=None, **kwargs):
    """DataLoader whose HTTP calls are answered from a {path: (status, body)} table."""

    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        path = request.url.path[len("/api"):]
        status, body = routes.get(path, (404, {"error": "not found"}))
        return httpx.Response(status, json=body)

    return DataLoader(base_url=BASE, transport=httpx.MockTransport(handler), **kwargs)


def test_members_accept_wrapped_payloads():
    loader = _loader({
        "/families/fam/members": (200, {"members": [
            {"uid": "alice", "name": "Alice", "rotationPreferences": {"preferredChoreTypes": ["kitchen"]}},
            {"uid": "bob", "name": "  "},
        ]}),
    })
    members = asyncio.run(loader.get_members("fam"))

    assert [m.memberId for m in members] == ["alice", "bob"]
    assert members[0].preferences.preferredChoreTypes == ["kitchen"]
    assert members[1].name is None
    assert members[1].display_name == "bob"


def test_open_chores_filter_and_legacy_fields():
    seen = []
    loader = _loader({
        "/families/fam/chores": (200, {"data": [
            {"_id": "c1", "title": "Dishes", "points": "15", "assignedTo": {"uid": "alice"},
             "rotation": {"strategy": "workload_balance"}},
            {"_id": "c2", "title": "Trash", "status": "completed"},
        ]}),
    }, seen)
    chores = asyncio.run(loader.get_open_chores("fam"))

    assert [c.choreId for c in chores] == ["c1"]
    assert chores[0].points == 15.0
    assert chores[0].assignedTo == "alice"
    assert chores[0].rotationConfig.strategy == "workload_balance"
    assert seen[0].url.params["status"] == "open"


def test_json_string_payload_is_unwrapped():
    body = json.dumps([{"choreId": "c1", "userId": "alice", "completedAt": "2025-03-10T18:00:00", "pointsEarned": 5}])
    loader = _loader({"/families/fam/completions": (200, body)})
    records = asyncio.run(loader.get_completion_records("fam", 30))

    assert records[0].memberId == "alice"
    assert records[0].pointsEarned == 5


def test_missing_chore_returns_none():
    loader = _loader({})
    assert asyncio.run(loader.get_chore("ghost")) is None
    assert asyncio.run(loader.get_member("ghost")) is None


def test_server_errors_raise_data_loader_error():
    loader = _loader({"/families/fam/members": (500, {"error": "boom"})})
    with pytest.raises(DataLoaderError):
        asyncio.run(loader.get_members("fam"))


def test_unexpected_structure_raises():
    loader = _loader({"/families/fam/members": (200, {"unexpected": True})})
    with pytest.raises(DataLoaderError):
        asyncio.run(loader.get_members("fam"))


def test_invalid_payload_raises():
    loader = _loader({"/families/fam/completions": (200, {"records": [{"choreId": "c1"}]})})
    with pytest.raises(DataLoaderError):
        asyncio.run(loader.get_completion_records("fam", 30))


def test_incoming_authorization_is_forwarded(monkeypatch):
    monkeypatch.setattr(data_loader_module, "FAMILY_API_KEY", "secret")
    seen = []
    loader = _loader({"/chores/c1": (200, {"chore": {"_id": "c1"}})}, seen,
                     incoming_headers={"authorization": "Bearer user-token", "X-User-Id": "u1"})
    asyncio.run(loader.get_chore("c1"))

    assert seen[0].headers["Authorization"] == "Bearer user-token"
    assert seen[0].headers["X-User-Id"] == "u1"


def test_api_key_used_without_incoming_authorization(monkeypatch):
    monkeypatch.setattr(data_loader_module, "FAMILY_API_KEY", "secret")
    seen = []
    loader = _loader({"/members/alice": (200, {"member": {"uid": "alice"}})}, seen)
    asyncio.run(loader.get_member("alice"))

    assert seen[0].headers["Authorization"] == "Bearer secret"
