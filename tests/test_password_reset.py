"""
tests/test_password_reset.py -- Integration tests for /api/v1/auth/reset-password/*.

The test lifespan wires a MemoryOutbox as the delivery backend, so raw
tokens are read either from the outbox fixture or through the admin-only
debug endpoint, exactly as a developer would in DEBUG mode.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from api.limiter import limiter
from auth.models import PasswordResetToken
from auth.service import RESET_REQUESTED_MESSAGE
from auth.tokens import hash_token
from core.db import iso_utc

BASE = "/api/v1/auth/reset-password"
NEW_PASSWORD = "Brand!new123"


def _request(client, email: str):
    return client.post(f"{BASE}/request", json={"email": email})


class TestRequest:
    def test_same_reply_for_known_and_unknown_email(self, api_client, make_user) -> None:
        client, _, _ = api_client
        make_user("forgetful")
        known = _request(client, "forgetful@example.com")
        unknown = _request(client, "nobody@example.com")
        assert known.status_code == unknown.status_code == 200
        assert known.json() == unknown.json() == {"message": RESET_REQUESTED_MESSAGE}

    def test_token_never_in_response(self, api_client, make_user, test_stores) -> None:
        client, _, _ = api_client
        outbox = test_stores[2]
        make_user("secretive")
        resp = _request(client, "secretive@example.com")
        raw = outbox.latest_for("secretive@example.com")
        assert raw is not None
        assert raw not in resp.text

    def test_inactive_user_gets_no_token(self, api_client, make_user, test_stores) -> None:
        client, _, _ = api_client
        make_user("dormant", is_active=False)
        assert _request(client, "dormant@example.com").status_code == 200
        assert test_stores[2].latest_for("dormant@example.com") is None

    def test_bad_email_is_validation_error(self, api_client) -> None:
        client, _, _ = api_client
        assert _request(client, "not-an-email").status_code == 400

    def test_request_rate_limited(self, api_client) -> None:
        client, _, _ = api_client
        limiter.enabled = True
        limiter.reset()
        try:
            codes = [_request(client, "flood@example.com").status_code for _ in range(6)]
            assert codes[:5] == [200] * 5
            assert codes[5] == 429
        finally:
            limiter.reset()
            limiter.enabled = False


class TestValidateAndReset:
    def test_full_flow(self, api_client, make_user, test_stores) -> None:
        client, _, _ = api_client
        outbox = test_stores[2]
        make_user("resetter")
        login = client.post("/api/v1/auth/login", json={"username": "resetter", "password": "User@12345"}).json()

        _request(client, "resetter@example.com")
        raw = outbox.latest_for("resetter@example.com")

        resp = client.get(f"{BASE}/validate/{raw}")
        assert resp.status_code == 200, resp.text
        assert resp.json()["valid"] is True
        assert resp.json()["username"] == "resetter"

        resp = client.post(
            f"{BASE}/reset",
            json={"token": raw, "new_password": NEW_PASSWORD, "confirm_password": NEW_PASSWORD},
        )
        assert resp.status_code == 200, resp.text

        # Old sessions are gone, the new password works, the old one does not.
        me = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {login['access_token']}"})
        assert me.status_code == 401
        old_refresh = client.post("/api/v1/auth/refresh-token", json={"refresh_token": login["refresh_token"]})
        assert old_refresh.status_code == 401
        assert client.post("/api/v1/auth/login", json={"username": "resetter", "password": "User@12345"}).status_code == 401
        assert client.post("/api/v1/auth/login", json={"username": "resetter", "password": NEW_PASSWORD}).status_code == 200

        # One-time use.
        again = client.post(f"{BASE}/reset", json={"token": raw, "new_password": "Other!pass123"})
        assert again.status_code == 400
        assert again.json()["error"]["code"] == "invalid_token"
        assert client.get(f"{BASE}/validate/{raw}").json()["error"]["code"] == "invalid_token"

    def test_new_request_invalidates_older_token(self, api_client, make_user, test_stores) -> None:
        client, _, _ = api_client
        outbox = test_stores[2]
        make_user("twice")
        _request(client, "twice@example.com")
        first = outbox.latest_for("twice@example.com")
        _request(client, "twice@example.com")
        second = outbox.latest_for("twice@example.com")
        assert client.get(f"{BASE}/validate/{first}").status_code == 400
        assert client.get(f"{BASE}/validate/{second}").status_code == 200

    def test_expired_token(self, api_client, make_user, test_stores) -> None:
        client, _, _ = api_client
        user_store = test_stores[0]
        uid, _ = make_user("too_late")
        past = iso_utc(datetime.now(timezone.utc) - timedelta(hours=1))
        user_store.create_reset_token(PasswordResetToken(user_id=uid, token_hash=hash_token("expired-raw"), expires_at=past))
        resp = client.get(f"{BASE}/validate/expired-raw")
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "token_expired"

    def test_unknown_token(self, api_client) -> None:
        client, _, _ = api_client
        resp = client.post(f"{BASE}/reset", json={"token": "nope", "new_password": NEW_PASSWORD})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_token"

    def test_mismatched_confirmation(self, api_client, make_user, test_stores) -> None:
        client, _, _ = api_client
        make_user("mismatch")
        _request(client, "mismatch@example.com")
        raw = test_stores[2].latest_for("mismatch@example.com")
        resp = client.post(
            f"{BASE}/reset",
            json={"token": raw, "new_password": NEW_PASSWORD, "confirm_password": "Different!123"},
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "validation_error"
        assert client.get(f"{BASE}/validate/{raw}").status_code == 200

    def test_weak_new_password(self, api_client, make_user, test_stores) -> None:
        client, _, _ = api_client
        make_user("weakreset")
        _request(client, "weakreset@example.com")
        raw = test_stores[2].latest_for("weakreset@example.com")
        resp = client.post(f"{BASE}/reset", json={"token": raw, "new_password": "short"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "weak_password"


class TestAdminTools:
    def test_debug_get_token(self, api_client, make_user, auth_headers) -> None:
        client, token, _ = api_client
        make_user("debugged")
        _request(client, "debugged@example.com")
        resp = client.post(f"{BASE}/debug/get-token", json={"email": "debugged@example.com"}, headers=auth_headers(token))
        assert resp.status_code == 200, resp.text
        raw = resp.json()["token"]
        assert client.get(f"{BASE}/validate/{raw}").status_code == 200

    def test_debug_get_token_unknown_email(self, api_client, auth_headers) -> None:
        client, token, _ = api_client
        resp = client.post(f"{BASE}/debug/get-token", json={"email": "never@example.com"}, headers=auth_headers(token))
        assert resp.status_code == 404

    def test_debug_get_token_admin_only(self, api_client, make_user, auth_headers) -> None:
        client, _, _ = api_client
        _, customer = make_user("debug_customer")
        resp = client.post(
            f"{BASE}/debug/get-token", json={"email": "debug_customer@example.com"}, headers=auth_headers(customer)
        )
        assert resp.status_code == 403

    def test_cleanup(self, api_client, auth_headers) -> None:
        client, token, _ = api_client
        resp = client.delete(f"{BASE}/cleanup", headers=auth_headers(token))
        assert resp.status_code == 200, resp.text
        assert set(resp.json()) == {"refresh_tokens", "revoked_tokens", "reset_tokens"}

    def test_delete_user_tokens(self, api_client, make_user, auth_headers, test_stores) -> None:
        client, token, _ = api_client
        uid, _ = make_user("purged")
        _request(client, "purged@example.com")
        raw = test_stores[2].latest_for("purged@example.com")
        resp = client.delete(f"{BASE}/user/{uid}", headers=auth_headers(token))
        assert resp.status_code == 200
        assert resp.json()["deleted"] == 1
        assert client.get(f"{BASE}/validate/{raw}").status_code == 400

    def test_delete_user_tokens_unknown_user(self, api_client, auth_headers) -> None:
        client, token, _ = api_client
        assert client.delete(f"{BASE}/user/999999", headers=auth_headers(token)).status_code == 404
