"""
Authentication tests.

Verifies:
- Client self-registration and password policy
- Login, lockout after repeated failures, logout revocation
- Cookie and Bearer token transport
- Password reset: generic response, single use, expiry, session revocation
"""

from datetime import timedelta

import pytest

from pawpal.models import EmailOutbox, PasswordReset, SecurityEvent, User
from pawpal.services import login_throttle_service
from pawpal.services.password_reset_service import GENERIC_RESPONSE
from pawpal.time_utils import utcnow

from conftest import TEST_PASSWORD, auth_headers, get_auth_token


# =============================================================================
# REGISTRATION
# =============================================================================


class TestRegistration:

    def test_register_client(self, client, db_session):
        resp = client.post("/api/auth/register", json={
            "first_name": "Carla",
            "last_name": "Santos",
            "email": "Carla@Example.com",
            "password": "Secure123",
        })
        assert resp.status_code == 201
        assert resp.json["user"]["email"] == "carla@example.com"
        assert resp.json["user"]["role"] == "client"
        assert "password_hash" not in resp.json["user"]

    def test_role_cannot_be_chosen(self, client, db_session):
        resp = client.post("/api/auth/register", json={
            "firstName": "Eve",
            "lastName": "Admin",
            "email": "eve@example.com",
            "password": "Secure123",
            "role": "admin",
        })
        assert resp.status_code == 201
        assert resp.json["user"]["role"] == "client"

    @pytest.mark.parametrize(
        "password,message",
        [
            ("short1", "Password must be at least 8 characters long"),
            ("12345678", "Password must contain at least one letter"),
            ("abcdefgh", "Password must contain at least one digit"),
        ],
    )
    def test_weak_password_rejected(self, client, db_session, password, message):
        resp = client.post("/api/auth/register", json={
            "first_name": "Weak",
            "last_name": "Password",
            "email": "weak@example.com",
            "password": password,
        })
        assert resp.status_code == 400
        assert resp.json["error"] == message
        assert db_session.query(User).count() == 0

    def test_duplicate_email_rejected(self, client, client_user):
        resp = client.post("/api/auth/register", json={
            "first_name": "Ana",
            "last_name": "Again",
            "email": client_user.email.upper(),
            "password": "Secure123",
        })
        assert resp.status_code == 400
        assert resp.json["error"] == "Email already exists"

    def test_missing_fields(self, client, db_session):
        resp = client.post("/api/auth/register", json={"email": "x@example.com"})
        assert resp.status_code == 400
        assert resp.json["error"] == "Email and password are required"


# =============================================================================
# LOGIN / SESSIONS
# =============================================================================


class TestLogin:

    def test_login_returns_token_and_cookie(self, client, client_user, db_session):
        resp = client.post("/api/auth/login", json={"email": client_user.email, "password": TEST_PASSWORD})
        assert resp.status_code == 200
        assert resp.json["token"]
        assert resp.json["user"]["id"] == client_user.id

        cookie = resp.headers.get("Set-Cookie")
        assert "session_token=" in cookie
        assert "HttpOnly" in cookie

        event = db_session.query(SecurityEvent).filter_by(event_type="LOGIN_SUCCESS").one()
        assert event.user_id == client_user.id

    def test_cookie_authenticates(self, client, client_user):
        client.post("/api/auth/login", json={"email": client_user.email, "password": TEST_PASSWORD})
        resp = client.get("/api/auth/me")
        assert resp.status_code == 200
        assert resp.json["user"]["email"] == client_user.email

    def test_wrong_password(self, client, client_user):
        resp = client.post("/api/auth/login", json={"email": client_user.email, "password": "Wrong1234"})
        assert resp.status_code == 401
        assert resp.json["error"] == "Invalid email or password"

    def test_inactive_user_cannot_login(self, client, client_user, db_session):
        client_user.is_active = False
        db_session.commit()

        resp = client.post("/api/auth/login", json={"email": client_user.email, "password": TEST_PASSWORD})
        assert resp.status_code == 401

    def test_lockout_after_repeated_failures(self, client, db_session):
        email = "nobody@pawpal.test"
        for attempt in range(1, login_throttle_service.MAX_FAILED_ATTEMPTS):
            resp = client.post("/api/auth/login", json={"email": email, "password": "Wrong1234"})
            assert resp.status_code == 401
            if login_throttle_service.MAX_FAILED_ATTEMPTS - attempt <= 3:
                assert "warning" in resp.json

        resp = client.post("/api/auth/login", json={"email": email, "password": "Wrong1234"})
        assert resp.status_code == 429
        assert resp.json["locked"] is True

        resp = client.post("/api/auth/login", json={"email": email, "password": "Wrong1234"})
        assert resp.status_code == 429
        assert resp.json["retry_after_seconds"] > 0

        status = client.get(f"/api/auth/lockout-status/{email}")
        assert status.status_code == 200
        assert status.json["locked"] is True

    def test_logout_revokes_token(self, client, client_user):
        token = get_auth_token(client, client_user.email, TEST_PASSWORD)
        headers = auth_headers(token)

        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        assert client.get("/api/auth/me", headers=headers).status_code == 401

    def test_malformed_authorization_header(self, client, client_user):
        resp = client.get("/api/auth/me", headers={"Authorization": "Token abc"})
        assert resp.status_code == 401

    def test_deactivation_revokes_sessions(self, client, admin_headers, client_user, client_headers):
        resp = client.patch(f"/api/admin/users/{client_user.id}", headers=admin_headers, json={"is_active": False})
        assert resp.status_code == 200
        assert resp.json["message"] == "User deactivated successfully"

        assert client.get("/api/auth/me", headers=client_headers).status_code == 401


# =============================================================================
# PASSWORD RESET
# =============================================================================


class TestPasswordReset:

    def _request(self, client, email):
        return client.post("/api/auth/forgot-password", json={"email": email})

    def _token_for(self, db_session, user):
        return db_session.query(PasswordReset).filter_by(user_id=user.id).one().token

    def test_generic_response_for_known_and_unknown_email(self, client, client_user, db_session):
        known = self._request(client, client_user.email)
        unknown = self._request(client, "ghost@pawpal.test")

        assert known.status_code == unknown.status_code == 200
        assert known.json["message"] == unknown.json["message"] == GENERIC_RESPONSE
        assert db_session.query(PasswordReset).count() == 1

    def test_reset_email_is_queued(self, client, client_user, db_session):
        self._request(client, client_user.email)
        token = self._token_for(db_session, client_user)

        row = db_session.query(EmailOutbox).filter_by(to_address=client_user.email).one()
        assert row.subject == "Password Reset Request - Pawpal"
        assert f"reset-password?token={token}" in row.html_body
        assert f"reset-password?token={token}" in row.text_body

    def test_reissue_overwrites_token(self, client, client_user, db_session):
        self._request(client, client_user.email)
        first = self._token_for(db_session, client_user)
        self._request(client, client_user.email)
        db_session.expire_all()
        second = self._token_for(db_session, client_user)

        assert first != second
        assert db_session.query(PasswordReset).count() == 1

    def test_check_token(self, client, client_user, db_session):
        self._request(client, client_user.email)
        token = self._token_for(db_session, client_user)

        resp = client.get(f"/api/auth/reset-password?token={token}")
        assert resp.status_code == 200
        assert resp.json == {"valid": True, "email": client_user.email}

        resp = client.get("/api/auth/reset-password?token=not-a-token")
        assert resp.status_code == 400
        assert resp.json["valid"] is False

    def test_token_is_single_use(self, client, client_user, client_headers, db_session):
        self._request(client, client_user.email)
        token = self._token_for(db_session, client_user)

        resp = client.post("/api/auth/reset-password", json={"token": token, "password": "NewPass456"})
        assert resp.status_code == 200
        assert resp.json["message"] == "Password has been reset successfully"

        resp = client.post("/api/auth/reset-password", json={"token": token, "password": "Other789x"})
        assert resp.status_code == 400
        assert resp.json["error"] == "This reset link has already been used"

        # Existing sessions were revoked; the new password works
        assert client.get("/api/auth/me", headers=client_headers).status_code == 401
        assert get_auth_token(client, client_user.email, "NewPass456")
        assert get_auth_token(client, client_user.email, TEST_PASSWORD) is None

    def test_expired_token(self, client, client_user, db_session):
        self._request(client, client_user.email)
        reset = db_session.query(PasswordReset).filter_by(user_id=client_user.id).one()
        reset.expires_at = utcnow() - timedelta(minutes=1)
        db_session.commit()

        resp = client.post("/api/auth/reset-password", json={"token": reset.token, "password": "NewPass456"})
        assert resp.status_code == 400
        assert resp.json["error"] == "This reset link has expired"

    def test_weak_new_password_keeps_token(self, client, client_user, db_session):
        self._request(client, client_user.email)
        token = self._token_for(db_session, client_user)

        resp = client.post("/api/auth/reset-password", json={"token": token, "password": "weak"})
        assert resp.status_code == 400

        db_session.expire_all()
        assert db_session.query(PasswordReset).filter_by(token=token).one().used is False

    def test_unknown_token(self, client, db_session):
        resp = client.post("/api/auth/reset-password", json={"token": "nope", "password": "NewPass456"})
        assert resp.status_code == 400
        assert resp.json["error"] == "Invalid reset token"
