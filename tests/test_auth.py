"""
FieldTrack - Authentication Test Suite

Tests for:
- Password hashing
- Token issuance, verification and rotation
- Bearer guard failure codes
- Register / login / refresh / logout
- Password recovery and change

Run with: pytest tests/test_auth.py -v
"""

import time
from datetime import timedelta

import pytest
from jose import jwt
from sqlalchemy import func
from sqlmodel import select

from fieldtrack.auth import store
from fieldtrack.auth.models import Role, User
from fieldtrack.auth.password import generate_reset_token, hash_password, needs_rehash, verify_password
from fieldtrack.auth.tokens import TokenIssuer
from fieldtrack.datetime_utils import utcnow
from fieldtrack.errors import ExpiredTokenError, InvalidTokenError
from tests.conftest import (
    ADMIN_EMAIL,
    INSPECTOR_EMAIL,
    INSPECTOR_PASSWORD,
    auth_headers,
    login_user,
    make_identity,
)


# =============================================================================
# PASSWORD HASHING TESTS
# =============================================================================

class TestPasswordHashing:
    """Unit tests for bcrypt password utilities."""

    def test_hash_password_creates_bcrypt_hash(self):
        hashed = hash_password("SecurePassword123")

        assert hashed.startswith("$2b$")
        assert len(hashed) == 60

    def test_verify_password(self):
        hashed = hash_password("SecurePassword123")

        assert verify_password("SecurePassword123", hashed) is True
        assert verify_password("WrongPassword", hashed) is False

    def test_verify_password_malformed_hash(self):
        assert verify_password("anything", "not-a-bcrypt-hash") is False

    def test_needs_rehash_old_work_factor(self):
        import bcrypt
        old_hash = bcrypt.hashpw(b"password", bcrypt.gensalt(rounds=10)).decode()

        assert needs_rehash(old_hash, target_work_factor=12) is True
        assert needs_rehash(hash_password("password")) is False

    def test_reset_token_is_32_bytes_hex(self):
        token = generate_reset_token()

        assert len(token) == 64
        int(token, 16)
        assert token != generate_reset_token()


# =============================================================================
# TOKEN ISSUER TESTS
# =============================================================================

class TestTokenIssuer:
    """Access/refresh issuance and verification."""

    def test_access_token_round_trip(self, issuer):
        identity = make_identity(Role.ENGINEER)
        issued = issuer.issue_access_token(identity)

        claims = issuer.verify_access(issued.token)

        assert claims.sub == str(identity.id)
        assert claims.role == "engineer"
        assert claims.email == identity.email
        assert claims.jti == issued.token_id
        assert claims.type == "access"
        assert issued.expires_in == 15 * 60

    def test_expired_access_token_rejected(self, issuer):
        issued = issuer.issue_access_token(make_identity(), expires_delta=timedelta(seconds=-1))

        with pytest.raises(ExpiredTokenError):
            issuer.verify_access(issued.token)

    def test_access_token_valid_before_expiry(self, issuer):
        issued = issuer.issue_access_token(make_identity(), expires_delta=timedelta(seconds=30))

        assert issuer.verify_access(issued.token).jti == issued.token_id

    def test_tampered_token_rejected(self, issuer):
        token = issuer.issue_access_token(make_identity()).token
        header, payload, signature = token.split(".")
        tampered = ".".join([header, payload, signature[::-1]])

        with pytest.raises(InvalidTokenError):
            issuer.verify_access(tampered)

    def test_garbage_token_rejected(self, issuer):
        with pytest.raises(InvalidTokenError):
            issuer.verify_access("not.a.jwt")

    def test_token_classes_not_interchangeable(self, issuer):
        pair = issuer.issue_pair(make_identity())

        with pytest.raises(InvalidTokenError):
            issuer.verify_access(pair.refresh_token)
        with pytest.raises(InvalidTokenError):
            issuer.verify_refresh(pair.access_token)

    def test_refresh_type_under_access_secret_rejected(self, issuer, test_settings):
        """A refresh-class payload signed with the access secret is still refused."""
        identity = make_identity()
        payload = {
            "sub": str(identity.id),
            "jti": "abc",
            "type": "refresh",
            "exp": int(time.time()) + 600,
        }
        token = jwt.encode(payload, test_settings.ACCESS_TOKEN_SECRET, algorithm="HS256")

        with pytest.raises(InvalidTokenError):
            issuer.verify_access(token)

    def test_refresh_and_access_share_token_id(self, issuer):
        pair = issuer.issue_pair(make_identity())

        assert issuer.verify_access(pair.access_token).jti == pair.token_id
        assert issuer.verify_refresh(pair.refresh_token).jti == pair.token_id

    def test_refresh_issues_new_access_with_same_identity(self, issuer):
        identity = make_identity(Role.ADMIN)
        pair = issuer.issue_pair(identity)

        rotated = issuer.refresh(pair.refresh_token)
        claims = issuer.verify_access(rotated.access_token)

        assert rotated.access_token != pair.access_token
        assert rotated.token_id != pair.token_id
        assert claims.sub == str(identity.id)
        assert claims.role == "admin"

    def test_old_refresh_token_survives_rotation(self, issuer):
        pair = issuer.issue_pair(make_identity())
        issuer.refresh(pair.refresh_token)

        assert issuer.refresh(pair.refresh_token).access_token

    def test_legacy_claim_names_accepted(self, issuer, test_settings):
        identity = make_identity()
        payload = {
            "id": str(identity.id),
            "tokenId": "legacy-token",
            "rol": "admin",
            "exp": int(time.time()) + 600,
        }
        token = jwt.encode(payload, test_settings.ACCESS_TOKEN_SECRET, algorithm="HS256")

        claims = issuer.verify_access(token)

        assert claims.sub == str(identity.id)
        assert claims.jti == "legacy-token"
        assert claims.rol == "admin"
        assert claims.role is None

    def test_missing_secrets_refused(self, test_settings):
        settings = test_settings.model_copy(update={"REFRESH_TOKEN_SECRET": ""})

        with pytest.raises(ValueError):
            TokenIssuer(settings)


# =============================================================================
# BEARER GUARD TESTS
# =============================================================================

class TestBearerGuard:
    """Failure codes of the authorization guard."""

    def test_missing_header(self, client):
        response = client.get("/api/v1/auth/me")

        assert response.status_code == 401
        assert response.json()["code"] == "NO_TOKEN"
        assert response.json()["success"] is False

    def test_wrong_scheme(self, client):
        response = client.get("/api/v1/auth/me", headers={"Authorization": "Token abc"})

        assert response.status_code == 401
        assert response.json()["code"] == "NO_TOKEN"

    def test_invalid_token(self, client):
        response = client.get("/api/v1/auth/me", headers=auth_headers("garbage"))

        assert response.status_code == 401
        assert response.json()["code"] == "INVALID_TOKEN"

    def test_expired_token(self, client, inspector, issuer):
        token = issuer.issue_access_token(inspector, expires_delta=timedelta(seconds=-5)).token

        response = client.get("/api/v1/auth/me", headers=auth_headers(token))

        assert response.status_code == 401
        assert response.json()["code"] == "TOKEN_EXPIRED"

    def test_valid_token(self, client, inspector, issuer):
        token = issuer.issue_access_token(inspector).token

        response = client.get("/api/v1/auth/me", headers=auth_headers(token))

        assert response.status_code == 200
        assert response.json()["email"] == INSPECTOR_EMAIL
        assert "password_hash" not in response.json()


# =============================================================================
# REGISTER / LOGIN TESTS
# =============================================================================

class TestRegisterAndLogin:

    def _register(self, client, email="new.user@test.com"):
        return client.post("/api/v1/auth/register", json={
            "name": "New User",
            "email": email,
            "password": "NewUserPass1",
            "region": "Risaralda",
            "transport": "motorcycle",
        })

    def test_register_issues_tokens(self, client):
        response = self._register(client)

        assert response.status_code == 201
        data = response.json()
        assert data["success"] is True
        assert data["access_token"]
        assert data["refresh_token"]
        assert data["user"]["role"] == "inspector"
        assert data["user"]["region"] == "Risaralda"
        assert "password_hash" not in data["user"]

    def test_duplicate_email_case_insensitive(self, client, db_session):
        assert self._register(client, "dup@test.com").status_code == 201

        response = self._register(client, "DUP@Test.com")

        assert response.status_code == 409
        assert response.json()["code"] == "CONFLICT"
        count = db_session.exec(
            select(func.count()).select_from(User).where(func.lower(User.email) == "dup@test.com")
        ).one()
        assert count == 1

    def test_register_missing_fields(self, client):
        response = client.post("/api/v1/auth/register", json={"email": "x@test.com"})

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "VALIDATION_ERROR"
        assert {"name", "password", "region", "transport"} <= set(body["fields"])

    def test_register_invalid_region(self, client):
        response = client.post("/api/v1/auth/register", json={
            "name": "X",
            "email": "x@test.com",
            "password": "Password1",
            "region": "Antioquia",
            "transport": "car",
        })

        assert response.status_code == 400
        assert "region" in response.json()["fields"]

    def test_login_success(self, client, inspector):
        data = login_user(client, INSPECTOR_EMAIL, INSPECTOR_PASSWORD)

        assert data is not None
        assert data["token_type"] == "bearer"
        assert data["expires_in"] == 900
        assert data["user"]["id"] == str(inspector.id)

    def test_login_email_is_case_insensitive(self, client, inspector):
        assert login_user(client, INSPECTOR_EMAIL.upper(), INSPECTOR_PASSWORD) is not None

    def test_login_wrong_password(self, client, inspector):
        response = client.post("/api/v1/auth/login", json={
            "email": INSPECTOR_EMAIL,
            "password": "WrongPassword",
        })

        assert response.status_code == 401
        assert response.json()["code"] == "INVALID_CREDENTIALS"

    def test_login_unknown_email_same_error(self, client):
        response = client.post("/api/v1/auth/login", json={
            "email": "nobody@test.com",
            "password": "WhateverPass1",
        })

        assert response.status_code == 401
        assert response.json()["code"] == "INVALID_CREDENTIALS"

    def test_login_inactive_account(self, client, inactive_user):
        response = client.post("/api/v1/auth/login", json={
            "email": "inactive@test.com",
            "password": "InactivePass123",
        })

        assert response.status_code == 401
        assert response.json()["message"] == "Account is inactive"

    def test_login_records_session(self, client, inspector):
        data = login_user(client, INSPECTOR_EMAIL, INSPECTOR_PASSWORD)

        response = client.get("/api/v1/auth/sessions", headers=auth_headers(data["access_token"]))

        assert response.status_code == 200
        sessions = response.json()["sessions"]
        assert len(sessions) == 1
        assert sessions[0]["is_current"] is True


# =============================================================================
# REFRESH / LOGOUT TESTS
# =============================================================================

class TestRefreshAndLogout:

    def test_refresh_returns_working_access_token(self, client, inspector):
        tokens = login_user(client, INSPECTOR_EMAIL, INSPECTOR_PASSWORD)

        response = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})

        assert response.status_code == 200
        new_access = response.json()["access_token"]
        assert new_access != tokens["access_token"]
        me = client.get("/api/v1/auth/me", headers=auth_headers(new_access))
        assert me.json()["id"] == str(inspector.id)

    def test_refresh_rejects_access_token(self, client, inspector):
        tokens = login_user(client, INSPECTOR_EMAIL, INSPECTOR_PASSWORD)

        response = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["access_token"]})

        assert response.status_code == 401
        assert response.json()["code"] == "INVALID_TOKEN"

    def test_logout_terminates_all_tokens(self, client, inspector):
        tokens = login_user(client, INSPECTOR_EMAIL, INSPECTOR_PASSWORD)
        headers = auth_headers(tokens["access_token"])

        assert client.post("/api/v1/auth/logout", headers=headers).status_code == 200

        me = client.get("/api/v1/auth/me", headers=headers)
        assert me.status_code == 401
        assert me.json()["code"] == "INVALID_TOKEN"
        refreshed = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert refreshed.status_code == 401

    def test_login_after_logout_works(self, client, inspector):
        tokens = login_user(client, INSPECTOR_EMAIL, INSPECTOR_PASSWORD)
        client.post("/api/v1/auth/logout", headers=auth_headers(tokens["access_token"]))

        fresh = login_user(client, INSPECTOR_EMAIL, INSPECTOR_PASSWORD)

        assert client.get("/api/v1/auth/me", headers=auth_headers(fresh["access_token"])).status_code == 200

    def test_deactivated_identity_cannot_refresh(self, client, inspector, db_session):
        tokens = login_user(client, INSPECTOR_EMAIL, INSPECTOR_PASSWORD)
        user = db_session.get(User, inspector.id)
        user.is_active = False
        db_session.add(user)
        db_session.commit()

        response = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})

        assert response.status_code == 401


# =============================================================================
# PASSWORD RECOVERY TESTS
# =============================================================================

class TestPasswordRecovery:

    def test_request_reset_mails_token(self, client, inspector, mailer, db_session):
        response = client.post("/api/v1/auth/request-password-reset", json={"email": INSPECTOR_EMAIL})

        assert response.status_code == 200
        assert len(mailer.sent) == 1
        assert mailer.sent[0].to == INSPECTOR_EMAIL
        db_session.expire_all()
        user = db_session.get(User, inspector.id)
        assert user.reset_token == mailer.sent[0].token
        assert user.reset_token_expires_at > utcnow() + timedelta(minutes=59)

    def test_unknown_email_gets_same_response(self, client, mailer):
        response = client.post("/api/v1/auth/request-password-reset", json={"email": "ghost@test.com"})

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert mailer.sent == []

    def test_reset_password_with_token(self, client, inspector, mailer):
        client.post("/api/v1/auth/request-password-reset", json={"email": INSPECTOR_EMAIL})
        token = mailer.sent[0].token

        response = client.post("/api/v1/auth/reset-password", json={
            "token": token,
            "new_password": "BrandNewPass9",
        })

        assert response.status_code == 200
        assert login_user(client, INSPECTOR_EMAIL, INSPECTOR_PASSWORD) is None
        assert login_user(client, INSPECTOR_EMAIL, "BrandNewPass9") is not None

    def test_reset_token_single_use(self, client, inspector, mailer):
        client.post("/api/v1/auth/request-password-reset", json={"email": INSPECTOR_EMAIL})
        token = mailer.sent[0].token
        client.post("/api/v1/auth/reset-password", json={"token": token, "new_password": "BrandNewPass9"})

        response = client.post("/api/v1/auth/reset-password", json={"token": token, "new_password": "Another99"})

        assert response.status_code == 400
        assert response.json()["fields"] == ["token"]

    def test_expired_reset_token_rejected(self, client, inspector, db_session):
        user = db_session.get(User, inspector.id)
        user.reset_token = "a" * 64
        user.reset_token_expires_at = utcnow() - timedelta(minutes=1)
        db_session.add(user)
        db_session.commit()

        response = client.post("/api/v1/auth/reset-password", json={
            "token": "a" * 64,
            "new_password": "BrandNewPass9",
        })

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_mail_failure_is_reported_and_token_discarded(self, client, inspector, mailer, db_session):
        mailer.fail = True

        response = client.post("/api/v1/auth/request-password-reset", json={"email": INSPECTOR_EMAIL})

        assert response.status_code == 500
        assert response.json()["code"] == "INTERNAL_ERROR"
        db_session.expire_all()
        assert db_session.get(User, inspector.id).reset_token is None

    def test_change_password_wrong_old_password(self, client, inspector):
        tokens = login_user(client, INSPECTOR_EMAIL, INSPECTOR_PASSWORD)

        response = client.put(
            "/api/v1/auth/change-password",
            json={"old_password": "nope", "new_password": "BrandNewPass9"},
            headers=auth_headers(tokens["access_token"]),
        )

        assert response.status_code == 400
        assert response.json()["fields"] == ["old_password"]

    def test_change_password_invalidates_tokens(self, client, inspector):
        tokens = login_user(client, INSPECTOR_EMAIL, INSPECTOR_PASSWORD)
        headers = auth_headers(tokens["access_token"])

        response = client.put(
            "/api/v1/auth/change-password",
            json={"old_password": INSPECTOR_PASSWORD, "new_password": "BrandNewPass9"},
            headers=headers,
        )

        assert response.status_code == 200
        assert client.get("/api/v1/auth/me", headers=headers).status_code == 401
        assert login_user(client, INSPECTOR_EMAIL, "BrandNewPass9") is not None


class TestAdminSeeding:

    def test_default_admin_seeded(self, admin):
        assert admin is not None
        assert admin.email == ADMIN_EMAIL
        assert admin.role == Role.ADMIN

    def test_seeding_reactivates_admin(self, db_session, admin):
        admin.is_active = False
        db_session.add(admin)
        db_session.commit()

        seeded = store.ensure_default_admin(db_session, ADMIN_EMAIL, "ignored", "Admin")

        assert seeded.id == admin.id
        assert seeded.is_active is True

    def test_seeding_skipped_without_password(self, db_session):
        assert store.ensure_default_admin(db_session, "other@test.com", "", "Admin") is None
        assert store.get_user_by_email(db_session, "other@test.com") is None
