"""
Tests for the auth and admin HTTP endpoints.
"""

import pytest
from fastapi.testclient import TestClient

from accademia.core.roles import Role
from tests.conftest import PASSWORD, MemoryMatrixBackend, bearer

pytestmark = pytest.mark.api


# ── Auth ─────────────────────────────────────────────────────────

def test_signup_signin_and_me(client: TestClient):
    response = client.post(
        "/api/auth/signup",
        json={"email": "learner@example.com", "password": "secret123", "full_name": "Learner"},
    )
    assert response.status_code == 201
    assert response.json()["user"]["role"] == "user"

    response = client.post("/api/auth/signin", json={"email": "learner@example.com", "password": "secret123"})
    assert response.status_code == 200
    token = response.json()["token"]

    response = client.get("/api/auth/me", headers=bearer(token))
    assert response.status_code == 200
    data = response.json()
    assert data["user"]["email"] == "learner@example.com"
    assert data["level"] == 40
    assert "education" in data["sections"]
    assert "normatives.read" in data["permissions"]


def test_signup_duplicate_email(client: TestClient, users):
    response = client.post(
        "/api/auth/signup",
        json={"email": users[Role.user].email, "password": "secret123", "full_name": "Again"},
    )
    assert response.status_code == 409


def test_signin_wrong_password(client: TestClient, users):
    response = client.post("/api/auth/signin", json={"email": users[Role.user].email, "password": "nope-nope"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid email or password"


def test_signin_works_with_fixture_password(client: TestClient, users):
    response = client.post("/api/auth/signin", json={"email": users[Role.admin].email, "password": PASSWORD})
    assert response.status_code == 200


def test_me_requires_token(client: TestClient):
    assert client.get("/api/auth/me").status_code == 401
    assert client.get("/api/auth/me", headers=bearer("garbage")).status_code == 401


def test_signout(client: TestClient, tokens):
    response = client.post("/api/auth/signout", headers=bearer(tokens[Role.guest]))
    assert response.status_code == 200
    assert response.json()["message"] == "Signed out"


# ── Role matrix ──────────────────────────────────────────────────

def test_matrix_is_super_admin_only(client: TestClient, tokens):
    assert client.get("/api/admin/matrix").status_code == 401
    assert client.get("/api/admin/matrix", headers=bearer(tokens[Role.admin])).status_code == 403

    response = client.get("/api/admin/matrix", headers=bearer(tokens[Role.super_admin]))
    assert response.status_code == 200
    data = response.json()
    assert data["available"] is True
    assert [r["role"] for r in data["roles"]] == [r.value for r in Role]
    assert "system.permissions" in data["catalogue"]["system"]


def test_toggle_permission_changes_access(client: TestClient, tokens):
    admin = bearer(tokens[Role.admin])
    root = bearer(tokens[Role.super_admin])
    assert client.get("/api/admin/users", headers=bearer(tokens[Role.operator])).status_code == 200

    response = client.put("/api/admin/matrix/operator/permissions/users.read", json={"enabled": False}, headers=root)
    assert response.status_code == 200
    assert client.get("/api/admin/users", headers=bearer(tokens[Role.operator])).status_code == 403
    # Untouched roles keep access.
    assert client.get("/api/admin/users", headers=admin).status_code == 200


def test_toggle_permission_requires_system_permissions(client: TestClient, tokens):
    response = client.put(
        "/api/admin/matrix/user/permissions/users.delete",
        json={"enabled": True},
        headers=bearer(tokens[Role.admin]),
    )
    assert response.status_code == 403

    audit = client.get("/api/admin/audit?granted=false", headers=bearer(tokens[Role.admin])).json()
    assert audit["total"] == 1
    assert audit["logs"][0]["resource"] == "system"
    assert audit["logs"][0]["ip_address"] == "testclient"


def test_toggle_refusals_return_conflict(client: TestClient, tokens):
    root = bearer(tokens[Role.super_admin])
    responses = [
        client.put("/api/admin/matrix/super_admin/permissions/system.permissions", json={"enabled": False}, headers=root),
        client.put("/api/admin/matrix/super_admin/sections/superadmin", json={"enabled": False}, headers=root),
        client.put("/api/admin/matrix/janitor/permissions/users.read", json={"enabled": True}, headers=root),
        client.put("/api/admin/matrix/user/sections/casino", json={"enabled": True}, headers=root),
    ]
    assert [r.status_code for r in responses] == [409, 409, 409, 409]


def test_stale_version_returns_conflict(client: TestClient, tokens):
    root = bearer(tokens[Role.super_admin])
    first = client.put(
        "/api/admin/matrix/guest/sections/education",
        json={"enabled": True, "expected_version": 0}, headers=root,
    )
    assert first.status_code == 200
    second = client.put(
        "/api/admin/matrix/guest/sections/reports",
        json={"enabled": True, "expected_version": 0}, headers=root,
    )
    assert second.status_code == 409


def test_section_toggle_shows_in_me(client: TestClient, tokens):
    root = bearer(tokens[Role.super_admin])
    response = client.put("/api/admin/matrix/guest/sections/reports", json={"enabled": True}, headers=root)
    assert response.status_code == 200

    me = client.get("/api/auth/me", headers=bearer(tokens[Role.guest])).json()
    assert "reports" in me["sections"]


def test_refresh_matrix(client: TestClient, tokens):
    response = client.post("/api/admin/matrix/refresh", headers=bearer(tokens[Role.super_admin]))
    assert response.status_code == 200
    assert response.json()["detail"] == {"available": True}


def test_failed_refresh_fails_closed(client: TestClient, tokens, matrix_store):
    backend = MemoryMatrixBackend()
    backend.fail_reads = True
    matrix_store.backend = backend

    response = client.post("/api/admin/matrix/refresh", headers=bearer(tokens[Role.super_admin]))
    assert response.status_code == 503
    assert client.get("/api/health").json()["status"] == "degraded"
    assert client.get("/api/admin/users", headers=bearer(tokens[Role.admin])).status_code == 403
    # super_admin keeps access while the matrix is down.
    assert client.get("/api/admin/users", headers=bearer(tokens[Role.super_admin])).status_code == 200


# ── Users ────────────────────────────────────────────────────────

def test_admin_can_promote_user_to_operator(client: TestClient, tokens, users):
    target = users[Role.user]
    response = client.put(
        f"/api/admin/users/{target.id}", json={"role": "operator"}, headers=bearer(tokens[Role.admin]),
    )
    assert response.status_code == 200
    assert response.json()["role"] == "operator"


def test_admin_cannot_assign_own_level(client: TestClient, tokens, users):
    target = users[Role.user]
    response = client.put(
        f"/api/admin/users/{target.id}", json={"role": "admin"}, headers=bearer(tokens[Role.admin]),
    )
    assert response.status_code == 403


def test_admin_cannot_demote_super_admin(client: TestClient, tokens, users):
    target = users[Role.super_admin]
    response = client.put(
        f"/api/admin/users/{target.id}", json={"role": "guest"}, headers=bearer(tokens[Role.admin]),
    )
    assert response.status_code == 403


def test_operator_cannot_update_users(client: TestClient, tokens, users):
    response = client.put(
        f"/api/admin/users/{users[Role.guest].id}", json={"full_name": "Renamed"},
        headers=bearer(tokens[Role.operator]),
    )
    assert response.status_code == 403


def test_deactivated_user_token_stops_working(client: TestClient, tokens, users):
    guest = bearer(tokens[Role.guest])
    assert client.get("/api/auth/me", headers=guest).status_code == 200

    response = client.put(
        f"/api/admin/users/{users[Role.guest].id}", json={"is_active": False},
        headers=bearer(tokens[Role.admin]),
    )
    assert response.status_code == 200
    assert client.get("/api/auth/me", headers=guest).status_code == 401


# ── Alerts & health ──────────────────────────────────────────────

def test_alerts_list_denials(client: TestClient, tokens):
    client.get("/api/admin/matrix", headers=bearer(tokens[Role.operator]))

    assert client.get("/api/admin/alerts", headers=bearer(tokens[Role.admin])).status_code == 403
    response = client.get("/api/admin/alerts", headers=bearer(tokens[Role.super_admin]))
    assert response.status_code == 200
    categories = [n["category"] for n in response.json()]
    assert "access.denied" in categories


def test_health(client: TestClient):
    response = client.get("/api/health", headers={"X-Request-Id": "req-123"})
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "role_matrix": "ok"}
    assert response.headers["X-Request-Id"] == "req-123"
