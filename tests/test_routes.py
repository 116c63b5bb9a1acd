import pytest
from fastapi.testclient import TestClient

from conftest import FAMILY_ID, chore, member
from chore_rotation.main import app
from chore_rotation.models.chore import CompletionRecord
from chore_rotation.routes.dependencies import RotationServices, get_loader, get_oracle, get_services

FAMILY = {"id": FAMILY_ID, "memberRotationOrder": ["alice", "bob", "cara"]}


@pytest.fixture
def client(store, oracle):
    store.chores[FAMILY_ID] = [chore("dishes", dueDate="2025-03-15T10:00:00"), chore("trash")]
    app.dependency_overrides[get_services] = lambda: RotationServices(store, store, store, oracle)
    app.dependency_overrides[get_oracle] = lambda: oracle
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_root(client):
    r = client.get("/")
    assert r.status_code == 200
    assert "active" in r.json()["message"]


def test_next_assignee_by_chore_id(client):
    r = client.post(f"/api/rotation/next-assignee/{FAMILY_ID}", json={
        "family": FAMILY,
        "choreId": "dishes",
        "currentAssignee": "alice",
    })
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["assignedMemberId"] == "bob"
    assert body["strategy"] == "round_robin"
    assert body["nextRotationIndex"] == 2


def test_next_assignee_with_inline_chore_and_members(client):
    r = client.post(f"/api/rotation/next-assignee/{FAMILY_ID}", json={
        "family": FAMILY,
        "chore": {"_id": "inline", "title": "Walk dog", "rotationConfig": {"strategy": "workload_balance"}},
        "members": [{"uid": "cara", "name": "Cara"}],
    })
    assert r.status_code == 200
    assert r.json()["assignedMemberId"] == "cara"


def test_next_assignee_unknown_chore_is_404(client):
    r = client.post(f"/api/rotation/next-assignee/{FAMILY_ID}", json={"family": FAMILY, "choreId": "ghost"})
    assert r.status_code == 404


def test_next_assignee_needs_a_chore(client):
    r = client.post(f"/api/rotation/next-assignee/{FAMILY_ID}", json={"family": FAMILY})
    assert r.status_code == 400


def test_batch_preview(client):
    r = client.post(f"/api/rotation/batch/{FAMILY_ID}", json={
        "family": FAMILY,
        "operation": {"choreIds": ["dishes", "trash", "ghost"], "targetDate": "2025-03-15T10:00:00"},
    })
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is False
    assert body["processedChores"] == 2
    assert body["failedChores"] == ["ghost"]
    assert body["results"]["dishes"]["assignedMemberId"] == "alice"
    assert body["results"]["trash"]["assignedMemberId"] == "bob"


def test_advance_index(client):
    r = client.post("/api/rotation/advance-index", json={"family": FAMILY, "memberId": "cara"})
    assert r.json() == {"nextFamilyChoreAssigneeIndex": 0}


def test_fairness_endpoints(client):
    r = client.get(f"/api/fairness/{FAMILY_ID}/workloads")
    assert r.status_code == 200
    assert {w["memberId"] for w in r.json()} == {"alice", "bob", "cara"}

    r = client.get(f"/api/fairness/{FAMILY_ID}/metrics")
    assert r.status_code == 200
    assert r.json()["equityScore"] == 100

    r = client.get(f"/api/fairness/{FAMILY_ID}/recommendations")
    assert r.status_code == 200
    body = r.json()
    assert body["rebalancingNeeded"] is False
    assert body["recommendations"] == ["No rebalancing needed - family workload is well distributed"]

    r = client.get(f"/api/fairness/{FAMILY_ID}/predict", params={"points": 10, "difficulty": "easy"})
    assert r.status_code == 200
    assert len(r.json()) == 3


def test_fairness_trends(client):
    r = client.post("/api/fairness/trends", json=[
        {"date": "2025-03-01T00:00:00", "equityScore": 90},
        {"date": "2025-03-08T00:00:00", "equityScore": 70},
    ])
    assert r.status_code == 200
    assert r.json()["trend"] == "declining"


def test_availability_endpoints(client):
    r = client.post("/api/availability/check", json={
        "memberId": "alice", "targetTime": "2025-03-15T10:00:00", "durationMinutes": 30,
    })
    assert r.status_code == 200
    assert r.json()["score"] == 100

    r = client.post("/api/availability/multiple", json={
        "memberIds": ["alice", "bob"], "targetTime": "2025-03-15T10:00:00",
    })
    assert set(r.json()) == {"alice", "bob"}

    r = client.post("/api/availability/group-time", json={
        "memberIds": ["alice", "bob"], "targetTime": "2025-03-15T10:00:00", "flexibilityHours": 2,
    })
    assert r.status_code == 200
    assert r.json()["groupScore"] == 100

    assert client.get("/api/availability/cache").json()["size"] >= 1
    assert client.delete("/api/availability/cache").json() == {"cleared": True}
    assert client.get("/api/availability/cache").json()["size"] == 0


def test_fairness_metrics_accept_utc_suffixed_history(client, store):
    store.completions[FAMILY_ID] = [
        CompletionRecord(choreId="old", userId="alice", completedAt="2025-03-10T18:00:00Z", pointsEarned=5),
    ]
    r = client.get(f"/api/fairness/{FAMILY_ID}/metrics")
    assert r.status_code == 200

    r = client.post(f"/api/rotation/next-assignee/{FAMILY_ID}", json={"family": FAMILY, "choreId": "dishes"})
    assert r.json()["success"] is True


@pytest.fixture
def stub_client(store):
    app.dependency_overrides[get_loader] = lambda: store
    client = TestClient(app)
    client.delete("/api/availability/cache")
    yield client
    client.delete("/api/availability/cache")
    app.dependency_overrides.clear()


def test_availability_check_uses_stored_preferences(stub_client, store):
    store.members[FAMILY_ID] = [member("alice", preferredDaysOfWeek=[3])]

    r = stub_client.post("/api/availability/check", json={
        "memberId": "alice", "targetTime": "2025-03-12T10:00:00Z", "durationMinutes": 30,
    })
    assert r.status_code == 200
    body = r.json()
    # Weekday work block (-50) inside a preferred day (+15)
    assert body["score"] == 65
    assert any(c["severity"] == "critical" for c in body["conflicts"])
