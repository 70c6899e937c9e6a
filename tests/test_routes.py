"""HTTP tests through the Flask test client."""

from __future__ import annotations

from typing import Callable

from flask import Flask
from flask.testing import FlaskClient

from models.audit_log import AuditLog
from models.login_attempt import LoginAttempt
from models.session import Session
from models.user import User
from security import alerts
from security.bruteforce import lockout_state
from security.errors import IdentityProviderError
from security.identity import IdentityProvider
from tests.conftest import AlertCollector, FakeIdentityProvider, auth

LAPTOP = {"X-Device-Fingerprint": "fp-laptop", "User-Agent": "Mozilla/5.0 (Macintosh; Mac OS X) Firefox/128.0"}
PHONE = {"X-Device-Fingerprint": "fp-phone", "User-Agent": "Mozilla/5.0 (iPhone) Mobile Safari/604.1"}


def _login(client: FlaskClient, email: str, password: str, headers: dict | None = None):
    return client.post("/auth/login", json={"email": email, "password": password}, headers=headers or LAPTOP)


class TestHealth:
    def test_health_and_security_headers(self, client: FlaskClient) -> None:
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.get_json() == {"status": "ok"}
        assert resp.headers["X-Frame-Options"] == "DENY"
        assert resp.headers["X-Content-Type-Options"] == "nosniff"


class TestLogin:
    def test_success_returns_token_and_session(self, client: FlaskClient, user: User) -> None:
        resp = _login(client, "jane@example.com", "correct-horse")
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["access_token"]
        assert data["session"]["is_current"] is True
        assert data["session"]["device_info"] == "Firefox on macOS (Desktop)"
        assert "security_warning" not in data

    def test_first_login_creates_local_account(self, client: FlaskClient, identity: FakeIdentityProvider) -> None:
        identity.register("fresh@example.com", "pw-123456")
        assert _login(client, "FRESH@example.com", "pw-123456").status_code == 200
        fresh = User.query.filter_by(email="fresh@example.com").one()
        assert [r.name for r in fresh.roles] == ["USER"]

    def test_wrong_password(self, client: FlaskClient, user: User) -> None:
        resp = _login(client, "jane@example.com", "nope")
        assert resp.status_code == 401
        assert resp.get_json() == {"error": "Invalid credentials", "attempts_remaining": 4}

    def test_invalid_email(self, client: FlaskClient) -> None:
        resp = _login(client, "not-an-email", "x")
        assert resp.status_code == 400
        assert LoginAttempt.query.count() == 0

    def test_locked_after_five_failures_even_with_right_password(
        self, client: FlaskClient, user: User, identity: FakeIdentityProvider, alerts_sent: AlertCollector
    ) -> None:
        for _ in range(4):
            assert _login(client, "jane@example.com", "wrong").status_code == 401
        fifth = _login(client, "jane@example.com", "wrong")
        assert fifth.status_code == 429

        sixth = _login(client, "jane@example.com", "correct-horse")
        assert sixth.status_code == 429
        body = sixth.get_json()
        assert body["locked_until"]
        assert body["retry_after_seconds"] > 0
        assert identity.tokens == {}

        assert lockout_state("jane@example.com")[0] == 5
        assert len(alerts_sent.of_type(alerts.ACCOUNT_LOCKED)) == 2

    def test_identity_provider_outage(self, app: Flask, client: FlaskClient, user: User) -> None:
        class DownProvider(IdentityProvider):
            def authenticate(self, email, password):
                raise IdentityProviderError("Identity provider unreachable")

        app.config["IDENTITY_PROVIDER"] = DownProvider()
        resp = _login(client, "jane@example.com", "correct-horse")
        assert resp.status_code == 503
        assert LoginAttempt.query.count() == 0

    def test_impossible_travel_is_reported_not_blocked(
        self, client: FlaskClient, user: User, alerts_sent: AlertCollector
    ) -> None:
        paris = {"email": "jane@example.com", "password": "correct-horse",
                 "geo": {"latitude": 48.8566, "longitude": 2.3522, "city": "Paris", "country": "France"}}
        tokyo = {"email": "jane@example.com", "password": "correct-horse",
                 "geo": {"latitude": 35.6762, "longitude": 139.6503, "city": "Tokyo", "country": "Japan"}}

        assert client.post("/auth/login", json=paris, headers=LAPTOP).status_code == 200
        resp = client.post("/auth/login", json=tokyo, headers=LAPTOP)
        assert resp.status_code == 200
        warning = resp.get_json()["security_warning"]
        assert warning["suspicious"] is True
        assert warning["details"]["last_location"] == "Paris, France"
        assert len(alerts_sent.of_type(alerts.SUSPICIOUS_LOGIN)) == 1


class TestAuthenticatedAccount:
    def test_me_requires_token(self, client: FlaskClient) -> None:
        assert client.get("/auth/me").status_code == 401
        assert client.get("/auth/me", headers=auth("unknown-token")).status_code == 401

    def test_me(self, client: FlaskClient, user: User, token_for: Callable[[User], str]) -> None:
        resp = client.get("/auth/me", headers=auth(token_for(user)))
        assert resp.status_code == 200
        assert resp.get_json()["email"] == "jane@example.com"
        assert resp.get_json()["roles"] == ["USER"]

    def test_own_audit_logs(self, client: FlaskClient, user: User) -> None:
        token = _login(client, "jane@example.com", "correct-horse").get_json()["access_token"]
        resp = client.get("/auth/audit-logs", headers=auth(token, **LAPTOP))
        assert resp.status_code == 200
        assert [e["action"] for e in resp.get_json()] == ["LOGIN_SUCCESS"]

    def test_logout_revokes_session_and_token(
        self, client: FlaskClient, user: User, identity: FakeIdentityProvider
    ) -> None:
        token = _login(client, "jane@example.com", "correct-horse").get_json()["access_token"]
        resp = client.post("/auth/logout", headers=auth(token, **LAPTOP))
        assert resp.status_code == 200
        assert token in identity.revoked
        assert Session.query.filter_by(account_id=user.id).count() == 0
        assert client.get("/auth/me", headers=auth(token)).status_code == 401


class TestSessionRoutes:
    def test_every_request_refreshes_the_current_device(
        self, client: FlaskClient, user: User, token_for: Callable[[User], str]
    ) -> None:
        token = token_for(user)
        client.get("/auth/me", headers=auth(token, **LAPTOP))
        resp = client.get("/sessions", headers=auth(token, **PHONE))

        rows = {s["device_info"]: (s["is_current"], s["this_device"]) for s in resp.get_json()}
        assert rows == {
            "Safari on iOS (Mobile)": (True, True),
            "Firefox on macOS (Desktop)": (False, False),
        }

    def test_revoke_others(self, client: FlaskClient, user: User, token_for: Callable[[User], str]) -> None:
        token = token_for(user)
        client.get("/auth/me", headers=auth(token, **LAPTOP))
        resp = client.post("/sessions/revoke-others", headers=auth(token, **PHONE))
        assert resp.get_json() == {"revoked_sessions": 1}
        assert [s.fingerprint for s in Session.query.filter_by(account_id=user.id)] == ["fp-phone"]

    def test_revoking_current_session_ends_the_token(
        self, client: FlaskClient, user: User, identity: FakeIdentityProvider, token_for: Callable[[User], str]
    ) -> None:
        token = token_for(user)
        session_id = client.get("/sessions", headers=auth(token, **LAPTOP)).get_json()[0]["id"]

        resp = client.delete(f"/sessions/{session_id}", headers=auth(token, **LAPTOP))
        assert resp.status_code == 200
        assert resp.get_json()["was_current"] is True
        assert token in identity.revoked

    def test_admin_revoking_someone_elses_current_session_keeps_own_token(
        self,
        client: FlaskClient,
        user: User,
        admin: User,
        identity: FakeIdentityProvider,
        token_for: Callable[[User], str],
    ) -> None:
        session_id = client.get("/sessions", headers=auth(token_for(user), **LAPTOP)).get_json()[0]["id"]
        admin_token = token_for(admin)

        resp = client.delete(f"/sessions/{session_id}", headers=auth(admin_token, **PHONE))
        assert resp.status_code == 200
        assert resp.get_json()["was_current"] is True
        assert resp.get_json()["account_id"] == user.id
        assert admin_token not in identity.revoked
        assert client.get("/auth/me", headers=auth(admin_token, **PHONE)).status_code == 200
        assert Session.query.filter_by(account_id=user.id).count() == 0

    def test_cannot_revoke_another_users_session(
        self, client: FlaskClient, user: User, other_user: User, token_for: Callable[[User], str]
    ) -> None:
        session_id = client.get("/sessions", headers=auth(token_for(other_user), **LAPTOP)).get_json()[0]["id"]
        resp = client.delete(f"/sessions/{session_id}", headers=auth(token_for(user), **PHONE))
        assert resp.status_code == 403

    def test_unknown_session_is_404(self, client: FlaskClient, user: User, token_for: Callable[[User], str]) -> None:
        assert client.delete("/sessions/4242", headers=auth(token_for(user))).status_code == 404


class TestQuotaRoutes:
    def test_consume_until_exhausted(self, client: FlaskClient, user: User, token_for: Callable[[User], str]) -> None:
        headers = auth(token_for(user))
        for i in range(10):
            resp = client.post("/ai-assist/quota/consume", headers=headers)
            assert resp.status_code == 200
            assert resp.get_json()["remaining"] == 9 - i

        resp = client.post("/ai-assist/quota/consume", headers=headers)
        assert resp.status_code == 429
        assert resp.get_json()["remaining"] == 0
        assert "tomorrow" in resp.get_json()["error"]

        quota = client.get("/ai-assist/quota", headers=headers).get_json()
        assert quota["used"] == 10
        assert quota["daily_limit"] == 10


class TestAdminRoutes:
    def test_non_admin_is_forbidden(self, client: FlaskClient, user: User, token_for: Callable[[User], str]) -> None:
        headers = auth(token_for(user))
        assert client.get("/admin/lockouts", headers=headers).status_code == 403
        assert client.post("/admin/accounts/unlock", json={"email": "x@y.com"}, headers=headers).status_code == 403
        assert client.get("/admin/audit-logs", headers=headers).status_code == 403
        assert client.get("/admin/lockouts").status_code == 401

    def test_unlock_flow(
        self, client: FlaskClient, admin: User, user: User, token_for: Callable[[User], str]
    ) -> None:
        for _ in range(5):
            _login(client, "jane@example.com", "wrong")

        headers = auth(token_for(admin))
        locked = client.get("/admin/lockouts", headers=headers).get_json()
        assert [r["email"] for r in locked] == ["jane@example.com"]

        resp = client.post("/admin/accounts/unlock", json={"email": "jane@example.com"}, headers=headers)
        assert resp.get_json() == {"unlocked": True, "had_lockout": True}
        assert _login(client, "jane@example.com", "correct-horse").status_code == 200

        entry = AuditLog.query.filter_by(action="ADMIN_ACCOUNT_UNLOCKED").one()
        assert entry.actor_id == admin.id

    def test_unlock_validates_email(self, client: FlaskClient, admin: User, token_for: Callable[[User], str]) -> None:
        resp = client.post("/admin/accounts/unlock", json={"email": "bogus"}, headers=auth(token_for(admin)))
        assert resp.status_code == 400

    def test_set_count_then_consume(
        self, client: FlaskClient, admin: User, user: User, token_for: Callable[[User], str]
    ) -> None:
        user_headers = auth(token_for(user))
        for _ in range(10):
            client.post("/ai-assist/quota/consume", headers=user_headers)
        assert client.post("/ai-assist/quota/consume", headers=user_headers).status_code == 429

        admin_headers = auth(token_for(admin))
        resp = client.put(f"/admin/rate-limits/{user.id}", json={"count": 0}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["request_count"] == 0

        assert client.post("/ai-assist/quota/consume", headers=user_headers).status_code == 200
        entries = AuditLog.query.filter_by(action="ADMIN_RATE_LIMIT_SET").all()
        assert [(e.actor_id, e.details["target_user_id"]) for e in entries] == [(admin.id, user.id)]

        listing = client.get("/admin/rate-limits", headers=admin_headers).get_json()
        assert listing[0]["email"] == "jane@example.com"
        assert listing[0]["request_count"] == 1

    def test_set_count_rejects_bad_values(
        self, client: FlaskClient, admin: User, user: User, token_for: Callable[[User], str]
    ) -> None:
        headers = auth(token_for(admin))
        assert client.put(f"/admin/rate-limits/{user.id}", json={"count": "3"}, headers=headers).status_code == 400
        assert client.put(f"/admin/rate-limits/{user.id}", json={}, headers=headers).status_code == 400
        assert client.put(f"/admin/rate-limits/{user.id}", json={"count": -1}, headers=headers).status_code == 400

    def test_reset_rate_limit(
        self, client: FlaskClient, admin: User, user: User, token_for: Callable[[User], str]
    ) -> None:
        client.post("/ai-assist/quota/consume", headers=auth(token_for(user)))
        resp = client.post(f"/admin/rate-limits/{user.id}/reset", headers=auth(token_for(admin)))
        assert resp.get_json()["request_count"] == 0
        assert AuditLog.query.filter_by(action="ADMIN_RATE_LIMIT_RESET", actor_id=admin.id).count() == 1

    def test_admin_revokes_user_session(
        self, client: FlaskClient, admin: User, user: User, token_for: Callable[[User], str]
    ) -> None:
        session_id = client.get("/sessions", headers=auth(token_for(user), **LAPTOP)).get_json()[0]["id"]
        resp = client.delete(f"/admin/sessions/{session_id}", headers=auth(token_for(admin), **PHONE))
        assert resp.status_code == 200
        assert resp.get_json()["account_id"] == user.id
        assert AuditLog.query.filter_by(action="SESSION_REVOKED", actor_id=admin.id).count() == 1

    def test_security_stats(
        self, client: FlaskClient, admin: User, user: User, token_for: Callable[[User], str]
    ) -> None:
        for _ in range(5):
            _login(client, "jane@example.com", "wrong")
        client.post("/ai-assist/quota/consume", headers=auth(token_for(user)))

        stats = client.get("/admin/security-stats", headers=auth(token_for(admin))).get_json()
        assert stats["failed_logins_today"] == 5
        assert stats["successful_logins_today"] == 0
        assert len(stats["recent_logins"]) == 5
        assert stats["locked_accounts"] == 1
        assert stats["ai_assist_requests_today"] == 1

    def test_audit_log_filter(self, client: FlaskClient, admin: User, user: User, token_for: Callable[[User], str]) -> None:
        _login(client, "jane@example.com", "wrong")
        _login(client, "jane@example.com", "correct-horse")

        resp = client.get("/admin/audit-logs?action=login_fail", headers=auth(token_for(admin)))
        assert resp.status_code == 200
        assert [e["action"] for e in resp.get_json()] == ["LOGIN_FAIL"]
