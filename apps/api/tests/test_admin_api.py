"""
Admin endpoints: session required, then admin role required.
"""
import pytest


def _auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


class TestAdminAccess:

    def test_requires_auth_header(self, client):
        response = client.get("/v1/admin/users")
        assert response.status_code == 401
        assert response.json()["error_code"] == "MISSING_AUTH_HEADER"

    @pytest.mark.parametrize("role", ["athlete", "coach"])
    def test_non_admin_forbidden(self, client, register_user, role):
        tokens = register_user(f"{role}@example.com", role=role)
        response = client.get("/v1/admin/users", headers=_auth_headers(tokens["access_token"]))
        assert response.status_code == 403
        assert response.json()["error_code"] == "INSUFFICIENT_PERMISSIONS"

    def test_admin_lists_users(self, client, register_user, admin_tokens):
        register_user("one@example.com")
        register_user("two@example.com", role="coach")
        response = client.get(
            "/v1/admin/users", params={"page": 1, "limit": 2},
            headers=_auth_headers(admin_tokens["access_token"]),
        )
        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 3
        assert len(body["users"]) == 2
        assert body["page"] == 1


class TestRoleAssignment:

    def test_admin_promotes_user(self, client, register_user, admin_tokens):
        target = register_user("coachme@example.com")
        response = client.put(
            f"/v1/admin/users/{target['user']['id']}/role",
            json={"role": "coach"},
            headers=_auth_headers(admin_tokens["access_token"]),
        )
        assert response.status_code == 200

        # New role shows up in tokens minted from the existing refresh token.
        refreshed = client.post("/v1/auth/refresh", json={"refresh_token": target["refresh_token"]})
        profile = client.get("/v1/auth/profile", headers=_auth_headers(refreshed.json()["access_token"]))
        assert profile.json()["role"] == "coach"

    def test_unknown_user(self, client, admin_tokens):
        response = client.put(
            "/v1/admin/users/00000000-0000-0000-0000-000000000000/role",
            json={"role": "coach"},
            headers=_auth_headers(admin_tokens["access_token"]),
        )
        assert response.status_code == 404
        assert response.json()["error_code"] == "USER_NOT_FOUND"

    def test_invalid_role(self, client, register_user, admin_tokens):
        target = register_user("x@example.com")
        response = client.put(
            f"/v1/admin/users/{target['user']['id']}/role",
            json={"role": "owner"},
            headers=_auth_headers(admin_tokens["access_token"]),
        )
        assert response.status_code == 400
