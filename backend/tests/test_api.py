"""
HTTP Surface Tests
===================
The FastAPI app booted against SQLite with a policy file, as in production.
"""

import pytest
from fastapi.testclient import TestClient

from tenantguard.main import create_app

POLICIES = """admin;0;authorization;C;none;none;allow
admin;0;authorization;R;none;none;allow
admin;0;authorization;D;none;none;allow
member;7;note;R;none;none;allow
member;7;note;GR;none;none;allow
staff;admin;0
alice;member;7
"""

STAFF = {"X-Actor": "staff"}
ALICE = {"X-Actor": "Alice"}


@pytest.fixture
def client(tmp_path):
    policy_file = tmp_path / "policies.csv"
    policy_file.write_text(POLICIES, encoding="utf-8")
    app = create_app(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'api.db'}",
        policy_file=str(policy_file),
    )
    with TestClient(app) as test_client:
        yield test_client


def test_health(client):
    assert client.get("/health").json()["status"] == "healthy"
    ready = client.get("/ready").json()
    assert ready["ready"] is True
    assert ready["policies"] == 5


# ---------------------------------------------------------------------------
# Authorize
# ---------------------------------------------------------------------------

def test_authorize_allowed(client):
    response = client.post("/api/v1/authorize", json={"dom": "7", "obj": "note", "act": "R"}, headers=ALICE)

    assert response.status_code == 200
    body = response.json()
    assert body["actor"] == "alice"
    assert body["allowed"] is True
    assert body["roles"] == [{"role": "member", "domain": "7", "actor": None}]
    assert body["conditions"] == {}


def test_authorize_without_identity_is_public(client):
    response = client.post("/api/v1/authorize", json={"dom": "7", "obj": "note", "act": "R"})
    assert response.status_code == 403


def test_authorize_rejects_malformed_domain(client):
    response = client.post("/api/v1/authorize", json={"dom": "7a", "obj": "note", "act": "R"}, headers=ALICE)
    assert response.status_code == 400


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------

def test_domain_roles_requires_permission(client):
    response = client.get("/api/v1/domain-roles", params={"domain": "7"}, headers=STAFF)
    assert response.status_code == 200
    assert [r["actor"] for r in response.json()] == ["alice"]

    assert client.get("/api/v1/domain-roles", params={"domain": "7"}, headers=ALICE).status_code == 403


def test_assign_and_list_roles(client):
    payload = {"username": "Dave", "role": "member", "domain": "7"}
    response = client.post("/api/v1/user-role", json=payload, headers=STAFF)
    assert response.status_code == 201
    assert response.json() == {"added": True}

    mine = client.get("/api/v1/my-roles", headers={"X-Actor": "dave"}).json()
    assert mine == [{"role": "member", "domain": "7", "actor": None}]

    response = client.request("DELETE", "/api/v1/user-role", json=payload, headers=STAFF)
    assert response.json() == {"removed": True}
    assert client.get("/api/v1/my-roles", headers={"X-Actor": "dave"}).json() == []


def test_assigning_unknown_role_is_not_found(client):
    payload = {"username": "dave", "role": "overlord", "domain": "7"}
    response = client.post("/api/v1/user-role", json=payload, headers=STAFF)

    assert response.status_code == 404
    assert client.get("/api/v1/my-roles", headers={"X-Actor": "dave"}).json() == []


def test_customer_cannot_assign_roles(client):
    payload = {"username": "mallory", "role": "member", "domain": "7"}
    assert client.post("/api/v1/user-role", json=payload, headers=ALICE).status_code == 403


# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------

def test_list_and_add_policies(client):
    listed = client.get("/api/v1/policies", params={"subject": "member"}, headers=STAFF).json()
    assert {p["action"] for p in listed} == {"R", "GR"}

    policy = {"subject": "auditor", "domain": "7", "object": "note", "action": "R", "condition": "none"}
    assert client.post("/api/v1/policy", json=policy, headers=STAFF).json() == {"added": True}
    assert client.post("/api/v1/policy", json=policy, headers=STAFF).json() == {"added": False}


def test_invalid_policy_is_rejected(client):
    policy = {"subject": "auditor", "domain": "7", "object": "note", "action": "Z"}
    assert client.post("/api/v1/policy", json=policy, headers=STAFF).status_code == 400


def test_remove_policies_conflicts_with_assigned_role(client):
    response = client.request(
        "DELETE", "/api/v1/policies", json={"subject": "member", "domain": "7"}, headers=STAFF
    )
    assert response.status_code == 409

    response = client.request("DELETE", "/api/v1/policies", json={"subject": "member"}, headers=STAFF)
    assert response.status_code == 400
