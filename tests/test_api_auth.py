"""
tests/test_api_auth.py -- Integration tests for /api/v1/auth/* through the full ASGI stack.

Every request goes through the real middleware (signed cookie decoding, the
auth pipeline, CSRF enforcement) and real stores on an in-memory database.

Covers:
  - register -> login -> /me happy path, last_login stamped
  - invalid credentials: one generic error, no cookie
  - registration disabled by default, duplicates reported as 409
  - CSRF: missing / wrong token rejected, header and form field accepted
  - password change revokes the old session token
  - deactivation ends an active session
  - logout is idempotent
  - tampered cookie is dropped and cleared
"""

from __future__ import annotations

import pytest
from conftest import PASSWORD, api_login

from core.config import get_settings

SESSION_COOKIE = get_settings().session_cookie_name
CSRF_HEADER = get_settings().csrf_header_name


@pytest.fixture
def registration_open(monkeypatch):
    monkeypatch.setattr(get_settings(), "self_registration_enabled", True)


def _set_cookie_headers(resp) -> list[str]:
    return resp.headers.get_list("set-cookie")


class TestRegisterAndLogin:
    def test_register_login_me(self, api_client, registration_open):
        resp = api_client.post(
            "/api/v1/auth/register",
            json={"username": "alice", "email": "alice@example.com", "password": "Secret123!"},
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["username"] == "alice"
        assert body["last_login"] is None
        assert "password" not in body and "password_hash" not in body
        # Registration does not log in.
        assert not any(h.startswith(f"{SESSION_COOKIE}=") for h in _set_cookie_headers(resp))

        resp = api_client.post("/api/v1/auth/login", json={"identifier": "alice", "password": "Secret123!"})
        assert resp.status_code == 200
        assert resp.headers["cache-control"] == "no-store"
        cookie = next(h for h in _set_cookie_headers(resp) if h.startswith(f"{SESSION_COOKIE}="))
        assert "httponly" in cookie.lower()
        data = resp.json()
        assert data["user"]["last_login"] is not None
        assert data["csrf_token"]
        assert data["expires_in"] == get_settings().session_ttl_seconds

        me = api_client.get("/api/v1/auth/me")
        assert me.status_code == 200
        assert me.json()["user"]["username"] == "alice"
        assert me.json()["csrf_token"] == data["csrf_token"]

    def test_wrong_password_generic_error(self, api_client):
        resp = api_client.post("/api/v1/auth/login", json={"identifier": "admin", "password": "wrong"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "invalid_credentials"
        assert not any(h.startswith(f"{SESSION_COOKIE}=") for h in _set_cookie_headers(resp))

    def test_unknown_user_same_error(self, api_client):
        wrong_pw = api_client.post("/api/v1/auth/login", json={"identifier": "admin", "password": "wrong"})
        unknown = api_client.post("/api/v1/auth/login", json={"identifier": "nobody", "password": "wrong"})
        assert unknown.status_code == wrong_pw.status_code == 401
        assert unknown.json() == wrong_pw.json()

    def test_login_by_email(self, api_client):
        resp = api_client.post(
            "/api/v1/auth/login", json={"identifier": "ADMIN@example.com", "password": PASSWORD}
        )
        assert resp.status_code == 200
        assert resp.json()["user"]["username"] == "admin"

    def test_me_requires_auth(self, api_client):
        resp = api_client.get("/api/v1/auth/me")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"

    def test_registration_disabled_by_default(self, api_client):
        resp = api_client.post(
            "/api/v1/auth/register",
            json={"username": "mallory", "email": "mallory@example.com", "password": "Secret123!"},
        )
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "forbidden"

    def test_duplicate_username_and_email(self, api_client, registration_open):
        resp = api_client.post(
            "/api/v1/auth/register",
            json={"username": "ADMIN", "email": "fresh@example.com", "password": "Secret123!"},
        )
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "duplicate_username"

        resp = api_client.post(
            "/api/v1/auth/register",
            json={"username": "fresh", "email": "admin@example.com", "password": "Secret123!"},
        )
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "duplicate_email"

    def test_short_password_rejected(self, api_client, registration_open):
        resp = api_client.post(
            "/api/v1/auth/register",
            json={"username": "shorty", "email": "shorty@example.com", "password": "short"},
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "validation_error"

    def test_username_with_at_sign_rejected(self, api_client, registration_open):
        resp = api_client.post(
            "/api/v1/auth/register",
            json={"username": "a@b", "email": "ab@example.com", "password": "Secret123!"},
        )
        assert resp.status_code == 422


class TestCsrf:
    def test_unsafe_request_without_token_rejected(self, api_client):
        api_login(api_client)
        resp = api_client.patch("/api/v1/auth/me", json={"email": "admin2@example.com"})
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "forbidden"

    def test_wrong_token_rejected(self, api_client):
        api_login(api_client)
        resp = api_client.patch(
            "/api/v1/auth/me", json={"email": "admin2@example.com"}, headers={CSRF_HEADER: "nope"}
        )
        assert resp.status_code == 403

    def test_header_token_accepted(self, api_client):
        csrf = api_login(api_client)
        resp = api_client.patch(
            "/api/v1/auth/me", json={"email": "Admin@Example.com"}, headers={CSRF_HEADER: csrf}
        )
        assert resp.status_code == 200
        assert resp.json()["email"] == "admin@example.com"

    def test_anonymous_unsafe_request_not_csrf_checked(self, api_client):
        """No session means nothing to forge: login itself needs no token."""
        resp = api_client.post("/api/v1/auth/logout")
        assert resp.status_code == 200

    def test_logout_with_session_needs_token(self, api_client):
        csrf = api_login(api_client)
        assert api_client.post("/api/v1/auth/logout").status_code == 403
        assert api_client.post("/api/v1/auth/logout", headers={CSRF_HEADER: csrf}).status_code == 200
        assert api_client.get("/api/v1/auth/me").status_code == 401


class TestSessionLifecycle:
    def test_password_change_invalidates_old_token(self, api_client, api_env):
        api_env.user_store.create_user("pwchange", "pwchange@example.com", PASSWORD)
        csrf = api_login(api_client, "pwchange")
        old_cookie = api_client.cookies.get(SESSION_COOKIE)

        resp = api_client.post(
            "/api/v1/auth/password",
            json={"current_password": PASSWORD, "new_password": "another-long-password"},
            headers={CSRF_HEADER: csrf},
        )
        assert resp.status_code == 200
        new_csrf = resp.json()["csrf_token"]
        assert new_csrf != csrf

        # The response carried a new cookie; the client keeps working.
        assert api_client.get("/api/v1/auth/me").status_code == 200

        # Replaying the old cookie is unauthenticated.
        api_client.cookies.clear()
        replay = api_client.get("/api/v1/auth/me", headers={"Cookie": f"{SESSION_COOKIE}={old_cookie}"})
        assert replay.status_code == 401

        # Old password no longer works, new one does.
        bad = api_client.post("/api/v1/auth/login", json={"identifier": "pwchange", "password": PASSWORD})
        assert bad.status_code == 401
        api_login(api_client, "pwchange", "another-long-password")

    def test_password_change_wrong_current(self, api_client, api_env):
        api_env.user_store.create_user("pwwrong", "pwwrong@example.com", PASSWORD)
        csrf = api_login(api_client, "pwwrong")
        resp = api_client.post(
            "/api/v1/auth/password",
            json={"current_password": "not-it", "new_password": "another-long-password"},
            headers={CSRF_HEADER: csrf},
        )
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "invalid_credentials"
        # The session survives a failed attempt.
        assert api_client.get("/api/v1/auth/me").status_code == 200

    def test_deactivation_ends_session(self, api_client, api_env):
        user = api_env.user_store.create_user("leaver", "leaver@example.com", PASSWORD)
        api_login(api_client, "leaver")
        assert api_client.get("/api/v1/auth/me").status_code == 200

        api_env.user_store.set_active(user.id, False)
        resp = api_client.get("/api/v1/auth/me")
        assert resp.status_code == 401

        login = api_client.post("/api/v1/auth/login", json={"identifier": "leaver", "password": PASSWORD})
        assert login.status_code == 401
        assert login.json()["error"]["code"] == "invalid_credentials"

    def test_logout_is_idempotent(self, api_client):
        csrf = api_login(api_client)
        first = api_client.post("/api/v1/auth/logout", headers={CSRF_HEADER: csrf})
        assert first.status_code == 200
        assert any(h.startswith(f"{SESSION_COOKIE}=") for h in _set_cookie_headers(first))
        second = api_client.post("/api/v1/auth/logout")
        assert second.status_code == 200

    def test_login_replaces_previous_session(self, api_client, api_env):
        api_login(api_client)
        first_cookie = api_client.cookies.get(SESSION_COOKIE)
        csrf = api_client.get("/api/v1/auth/me").json()["csrf_token"]
        resp = api_client.post(
            "/api/v1/auth/login",
            json={"identifier": "admin", "password": PASSWORD},
            headers={CSRF_HEADER: csrf},
        )
        assert resp.status_code == 200
        api_client.cookies.clear()
        replay = api_client.get("/api/v1/auth/me", headers={"Cookie": f"{SESSION_COOKIE}={first_cookie}"})
        assert replay.status_code == 401

    def test_tampered_cookie_is_cleared(self, api_client):
        resp = api_client.get("/api/v1/auth/me", headers={"Cookie": f"{SESSION_COOKIE}=forged.value"})
        assert resp.status_code == 401
        cleared = [h for h in _set_cookie_headers(resp) if h.startswith(f"{SESSION_COOKIE}=")]
        assert cleared
        assert "max-age=0" in cleared[0].lower()
