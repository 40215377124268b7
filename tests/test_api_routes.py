"""
tests/test_api_routes.py -- Integration tests for the /api/v1 auth and user routes.

These tests exercise the full stack: FastAPI routing -> auth dependency injection
-> AuthService -> SessionStore -> response model serialization. Unit testing
individual route functions would miss middleware, the exception handlers that
map engine errors to status codes, and cookie handling.

Coverage:
  - Register: 201, duplicate 409, invalid email / weak password 400, bad body 422
  - Login: 200 with tokens + httpOnly cookie + no-store, 401, 404, lockout 429
  - Refresh: body and cookie transport, single use, missing token 401
  - Logout / me / users: 401 without token, 403 on another account, 204 delete

Fixtures used (from conftest.py):
  - api_client: module-scoped TestClient backed by a private shared-memory DB.
    Each test registers its own account with a unique email.
"""

from __future__ import annotations

import uuid

import pytest
from fastapi.testclient import TestClient

PASSWORD = "Alice123!"


def _unique(prefix: str = "user") -> tuple[str, str]:
    tag = uuid.uuid4().hex[:12]
    return f"{prefix}+{tag}@example.com", f"{prefix}_{tag}"


def _register(client: TestClient, password: str = PASSWORD) -> dict:
    email, username = _unique()
    resp = client.post("/api/v1/auth/register", json={"email": email, "username": username, "password": password})
    assert resp.status_code == 201, resp.text
    return resp.json()


def _login(client: TestClient, email: str, password: str = PASSWORD) -> dict:
    resp = client.post("/api/v1/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    return resp.json()


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


class TestRegister:
    def test_register_returns_201_with_account(self, api_client: TestClient) -> None:
        email, username = _unique("alice")
        resp = api_client.post(
            "/api/v1/auth/register", json={"email": email, "username": username, "password": PASSWORD}
        )
        assert resp.status_code == 201, resp.text
        data = resp.json()
        assert data["email"] == email
        assert data["username"] == username
        assert data["email_verified"] is False
        assert data["is_active"] is True
        assert "password_hash" not in data
        assert "password" not in data

    def test_duplicate_email_returns_409(self, api_client: TestClient) -> None:
        account = _register(api_client)
        resp = api_client.post(
            "/api/v1/auth/register",
            json={"email": account["email"], "username": "someone_else", "password": PASSWORD},
        )
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "user_exists"

    def test_invalid_email_returns_400(self, api_client: TestClient) -> None:
        resp = api_client.post(
            "/api/v1/auth/register", json={"email": "not-an-email", "username": "x", "password": PASSWORD}
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_email"

    def test_weak_password_returns_400(self, api_client: TestClient) -> None:
        email, username = _unique()
        resp = api_client.post("/api/v1/auth/register", json={"email": email, "username": username, "password": "weak"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "weak_password"

    def test_missing_field_returns_422(self, api_client: TestClient) -> None:
        resp = api_client.post("/api/v1/auth/register", json={"email": "a@example.com"})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"


class TestLogin:
    def test_login_returns_tokens_and_sets_cookie(self, api_client: TestClient) -> None:
        account = _register(api_client)
        resp = api_client.post("/api/v1/auth/login", json={"email": account["email"], "password": PASSWORD})
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["access_token"]
        assert data["refresh_token"]
        assert data["token_type"] == "bearer"
        assert data["expires_in"] > 0
        assert data["user"]["id"] == account["id"]
        assert data["user"]["last_login_at"] is not None

        assert resp.headers["cache-control"] == "no-store"
        set_cookie = resp.headers["set-cookie"]
        assert "refresh_token=" in set_cookie
        assert "HttpOnly" in set_cookie
        assert "Path=/api/v1/auth" in set_cookie

    def test_wrong_password_returns_401(self, api_client: TestClient) -> None:
        account = _register(api_client)
        resp = api_client.post("/api/v1/auth/login", json={"email": account["email"], "password": "Wrong123!"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "invalid_credentials"
        assert resp.headers["cache-control"] == "no-store"

    def test_unknown_email_returns_404(self, api_client: TestClient) -> None:
        email, _ = _unique("ghost")
        resp = api_client.post("/api/v1/auth/login", json={"email": email, "password": PASSWORD})
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "not_found"

    def test_lockout_returns_429_with_retry_after(self, api_client: TestClient) -> None:
        account = _register(api_client)
        for _ in range(5):
            resp = api_client.post("/api/v1/auth/login", json={"email": account["email"], "password": "Wrong123!"})
            assert resp.status_code == 401
        resp = api_client.post("/api/v1/auth/login", json={"email": account["email"], "password": PASSWORD})
        assert resp.status_code == 429
        assert resp.json()["error"]["code"] == "too_many_attempts"
        assert resp.headers["retry-after"] == "900"


class TestRefresh:
    def test_refresh_with_body_rotates_token(self, api_client: TestClient) -> None:
        account = _register(api_client)
        login = _login(api_client, account["email"])

        resp = api_client.post("/api/v1/auth/refresh", json={"refresh_token": login["refresh_token"]})
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["access_token"]
        assert data["refresh_token"] != login["refresh_token"]
        assert resp.headers["cache-control"] == "no-store"

        reused = api_client.post("/api/v1/auth/refresh", json={"refresh_token": login["refresh_token"]})
        assert reused.status_code == 401
        assert reused.json()["error"]["code"] == "invalid_refresh_token"

    def test_refresh_with_cookie(self, api_client: TestClient) -> None:
        account = _register(api_client)
        api_client.cookies.clear()
        _login(api_client, account["email"])

        resp = api_client.post("/api/v1/auth/refresh")
        assert resp.status_code == 200, resp.text
        assert resp.json()["access_token"]

    def test_refresh_without_token_returns_401(self, api_client: TestClient) -> None:
        api_client.cookies.clear()
        resp = api_client.post("/api/v1/auth/refresh", json={})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "invalid_refresh_token"

    def test_new_access_token_authenticates(self, api_client: TestClient) -> None:
        account = _register(api_client)
        login = _login(api_client, account["email"])
        data = api_client.post("/api/v1/auth/refresh", json={"refresh_token": login["refresh_token"]}).json()

        resp = api_client.get("/api/v1/auth/me", headers=_bearer(data["access_token"]))
        assert resp.status_code == 200
        assert resp.json()["id"] == account["id"]


class TestAuthenticatedRoutes:
    @pytest.mark.parametrize(
        "method, path",
        [
            ("get", "/api/v1/auth/me"),
            ("post", "/api/v1/auth/logout"),
            ("get", "/api/v1/users/some-id"),
            ("delete", "/api/v1/users/some-id"),
        ],
    )
    def test_requires_bearer_token(self, api_client: TestClient, method: str, path: str) -> None:
        resp = getattr(api_client, method)(path)
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"
        assert resp.headers["www-authenticate"] == "Bearer"

    def test_garbage_token_is_401(self, api_client: TestClient) -> None:
        resp = api_client.get("/api/v1/auth/me", headers=_bearer("not-a-jwt"))
        assert resp.status_code == 401

    def test_me_returns_current_account(self, api_client: TestClient) -> None:
        account = _register(api_client)
        login = _login(api_client, account["email"])
        resp = api_client.get("/api/v1/auth/me", headers=_bearer(login["access_token"]))
        assert resp.status_code == 200
        assert resp.json()["email"] == account["email"]

    def test_logout_revokes_refresh_token(self, api_client: TestClient) -> None:
        account = _register(api_client)
        login = _login(api_client, account["email"])

        resp = api_client.post("/api/v1/auth/logout", headers=_bearer(login["access_token"]))
        assert resp.status_code == 200
        assert resp.json()["message"]

        after = api_client.post("/api/v1/auth/refresh", json={"refresh_token": login["refresh_token"]})
        assert after.status_code == 401

    def test_get_user_by_id(self, api_client: TestClient) -> None:
        account = _register(api_client)
        other = _register(api_client)
        login = _login(api_client, account["email"])

        resp = api_client.get(f"/api/v1/users/{other['id']}", headers=_bearer(login["access_token"]))
        assert resp.status_code == 200
        assert resp.json()["username"] == other["username"]

        missing = api_client.get("/api/v1/users/no-such-id", headers=_bearer(login["access_token"]))
        assert missing.status_code == 404

    def test_cannot_act_on_another_account(self, api_client: TestClient) -> None:
        account = _register(api_client)
        other = _register(api_client)
        login = _login(api_client, account["email"])

        resp = api_client.delete(f"/api/v1/users/{other['id']}", headers=_bearer(login["access_token"]))
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "forbidden"

    def test_change_password(self, api_client: TestClient) -> None:
        account = _register(api_client)
        login = _login(api_client, account["email"])

        resp = api_client.post(
            f"/api/v1/users/{account['id']}/change-password",
            json={"old_password": PASSWORD, "new_password": "Brandnew456"},
            headers=_bearer(login["access_token"]),
        )
        assert resp.status_code == 200, resp.text
        _login(api_client, account["email"], "Brandnew456")

    def test_change_password_wrong_old_password(self, api_client: TestClient) -> None:
        account = _register(api_client)
        login = _login(api_client, account["email"])
        resp = api_client.post(
            f"/api/v1/users/{account['id']}/change-password",
            json={"old_password": "Wrong123!", "new_password": "Brandnew456"},
            headers=_bearer(login["access_token"]),
        )
        assert resp.status_code == 401

    def test_delete_own_account(self, api_client: TestClient) -> None:
        account = _register(api_client)
        login = _login(api_client, account["email"])
        headers = _bearer(login["access_token"])

        resp = api_client.delete(f"/api/v1/users/{account['id']}", headers=headers)
        assert resp.status_code == 204

        # The access token is still well-signed, but its subject is gone.
        assert api_client.get("/api/v1/auth/me", headers=headers).status_code == 401
        gone = api_client.post("/api/v1/auth/login", json={"email": account["email"], "password": PASSWORD})
        assert gone.status_code == 404
