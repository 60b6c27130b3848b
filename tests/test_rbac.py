"""
FieldTrack - Role-Based Access Control Tests

Tests for:
- Role gates on admin-only routes
- Ownership checks on movements
- Tokens carrying the older `rol` claim

Run with: pytest tests/test_rbac.py -v
"""

import time

import pytest
from jose import jwt

from tests.conftest import (
    ADMIN_EMAIL,
    ADMIN_PASSWORD,
    ENGINEER_EMAIL,
    ENGINEER_PASSWORD,
    INSPECTOR_EMAIL,
    INSPECTOR_PASSWORD,
    auth_headers,
    login_headers,
    movement_payload,
)


@pytest.fixture
def admin_headers(client, admin):
    return login_headers(client, ADMIN_EMAIL, ADMIN_PASSWORD)


@pytest.fixture
def inspector_headers(client, inspector):
    return login_headers(client, INSPECTOR_EMAIL, INSPECTOR_PASSWORD)


@pytest.fixture
def engineer_headers(client, engineer):
    return login_headers(client, ENGINEER_EMAIL, ENGINEER_PASSWORD)


def _register(client, headers, **overrides):
    response = client.post("/api/v1/movements", json=movement_payload(**overrides), headers=headers)
    assert response.status_code == 201
    return response.json()["data"]


# =============================================================================
# ROLE GATES
# =============================================================================

class TestRoleGates:

    @pytest.mark.parametrize("method,path", [
        ("get", "/api/v1/users"),
        ("get", "/api/v1/admin/export/5/2024"),
        ("get", "/api/v1/messages/admin/all"),
    ])
    def test_non_admin_forbidden(self, client, inspector_headers, method, path):
        response = getattr(client, method)(path, headers=inspector_headers)

        assert response.status_code == 403
        assert response.json()["code"] == "FORBIDDEN"

    def test_admin_allowed(self, client, admin_headers):
        assert client.get("/api/v1/users", headers=admin_headers).status_code == 200

    def test_inspector_cannot_delete_movement(self, client, inspector_headers):
        movement = _register(client, inspector_headers)

        response = client.delete(f"/api/v1/movements/{movement['id']}", headers=inspector_headers)

        assert response.status_code == 403
        assert response.json()["code"] == "FORBIDDEN"
        assert client.get(f"/api/v1/movements/{movement['id']}", headers=inspector_headers).status_code == 200

    def test_admin_delete_hides_movement(self, client, inspector_headers, admin_headers):
        movement = _register(client, inspector_headers)

        response = client.delete(f"/api/v1/movements/{movement['id']}", headers=admin_headers)

        assert response.status_code == 200
        listing = client.get("/api/v1/movements", headers=inspector_headers).json()
        assert listing["total"] == 0
        assert client.get(f"/api/v1/movements/{movement['id']}", headers=inspector_headers).status_code == 404

    def test_admin_can_see_deleted_on_request(self, client, inspector_headers, admin_headers):
        movement = _register(client, inspector_headers)
        client.delete(f"/api/v1/movements/{movement['id']}", headers=admin_headers)

        response = client.get(
            f"/api/v1/movements/{movement['id']}",
            params={"include_deleted": True},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json()["deleted_at"] is not None

    def test_include_deleted_ignored_for_non_admin(self, client, inspector_headers, admin_headers):
        movement = _register(client, inspector_headers)
        client.delete(f"/api/v1/movements/{movement['id']}", headers=admin_headers)

        response = client.get(
            "/api/v1/movements",
            params={"include_deleted": True},
            headers=inspector_headers,
        )

        assert response.json()["total"] == 0


# =============================================================================
# OWNERSHIP
# =============================================================================

class TestOwnership:

    def test_cannot_read_someone_elses_movement(self, client, inspector_headers, engineer_headers):
        movement = _register(client, engineer_headers)

        response = client.get(f"/api/v1/movements/{movement['id']}", headers=inspector_headers)

        assert response.status_code == 403

    def test_cannot_update_someone_elses_movement(self, client, inspector_headers, engineer_headers):
        movement = _register(client, engineer_headers)

        response = client.patch(
            f"/api/v1/movements/{movement['id']}",
            json={"notes": "not mine"},
            headers=inspector_headers,
        )

        assert response.status_code == 403

    def test_admin_reads_any_movement(self, client, engineer_headers, admin_headers):
        movement = _register(client, engineer_headers)

        assert client.get(f"/api/v1/movements/{movement['id']}", headers=admin_headers).status_code == 200

    def test_user_profile_self_only(self, client, inspector, engineer, inspector_headers):
        assert client.get(f"/api/v1/users/{inspector.id}", headers=inspector_headers).status_code == 200
        assert client.get(f"/api/v1/users/{engineer.id}", headers=inspector_headers).status_code == 403


# =============================================================================
# OLDER TOKEN CLAIMS
# =============================================================================

class TestLegacyRoleClaim:

    def _legacy_token(self, test_settings, user):
        payload = {
            "id": str(user.id),
            "tokenId": "legacy-1",
            "rol": "admin",
            "exp": int(time.time()) + 600,
        }
        return jwt.encode(payload, test_settings.ACCESS_TOKEN_SECRET, algorithm="HS256")

    def test_legacy_admin_claim_passes_admin_gate(self, client, admin, test_settings):
        token = self._legacy_token(test_settings, admin)

        response = client.get("/api/v1/messages/admin/all", headers=auth_headers(token))

        assert response.status_code == 200

    def test_legacy_claim_not_honoured_by_role_gate(self, client, admin, test_settings):
        token = self._legacy_token(test_settings, admin)

        response = client.get("/api/v1/users", headers=auth_headers(token))

        assert response.status_code == 403

    def test_legacy_claim_needs_stored_admin(self, client, inspector, test_settings):
        token = self._legacy_token(test_settings, inspector)

        response = client.get("/api/v1/messages/admin/all", headers=auth_headers(token))

        assert response.status_code == 403
