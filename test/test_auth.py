"""
Registration, login and token flows.
"""
from datetime import timedelta

import config
from auth.security import (
    create_access_token, create_refresh_token, create_password_reset_token, token_claims_for,
    decode_token, get_password_hash, verify_password, validate_password, TOKEN_TYPE_REFRESH,
    TOKEN_TYPE_PASSWORD_RESET, _encode,
)
from core.exceptions import InvalidTokenError, TokenExpiredError
from database.models import User, UserRole, ApprovalStatus, College

import pytest

from conftest import auth_headers, DEFAULT_PASSWORD


def test_password_hash_roundtrip():
    hashed = get_password_hash("correct horse battery")
    assert hashed != "correct horse battery"
    assert verify_password("correct horse battery", hashed)
    assert not verify_password("wrong password", hashed)


def test_verify_password_rejects_garbage_hash():
    assert verify_password("anything", "not-a-bcrypt-hash") is False


def test_validate_password_rules():
    assert validate_password("short")[0] is False
    assert validate_password("x" * 73)[0] is False
    assert validate_password("long enough")[0] is True


def test_decode_token_checks_type(student):
    refresh = create_refresh_token(token_claims_for(student))
    with pytest.raises(InvalidTokenError):
        decode_token(refresh)
    assert decode_token(refresh, TOKEN_TYPE_REFRESH)["sub"] == str(student.id)


def test_decode_token_reports_expiry(student):
    token = create_access_token(token_claims_for(student), expires_delta=timedelta(seconds=-10))
    with pytest.raises(TokenExpiredError):
        decode_token(token)


def test_register_member_is_pending(client, college):
    response = client.post("/api/auth/register", json={
        "name": "Asha Rao",
        "email": "Asha.Rao@Example.com",
        "password": "fieldwork123",
        "role": "student",
        "collegeId": college.id,
    })
    assert response.status_code == 201
    user = response.json()["user"]
    assert user["status"] == "pending"
    assert user["email"] == "asha.rao@example.com"
    assert "password_hash" not in user
    assert "token" not in response.json()


def test_register_rejects_admin_roles(client, college):
    response = client.post("/api/auth/register", json={
        "name": "Sneaky",
        "email": "sneaky@example.com",
        "password": "fieldwork123",
        "role": "super_admin",
        "collegeId": college.id,
    })
    assert response.status_code == 400


def test_register_requires_approved_college(client, factory):
    pending = factory.college(status=ApprovalStatus.PENDING)
    response = client.post("/api/auth/register", json={
        "name": "Ravi",
        "email": "ravi@example.com",
        "password": "fieldwork123",
        "role": "professor",
        "collegeId": pending.id,
    })
    assert response.status_code == 400
    assert response.json()["detail"] == "College not found or not approved"


def test_register_duplicate_email_conflicts(client, college, student):
    response = client.post("/api/auth/register", json={
        "name": "Copy",
        "email": student.email.upper(),
        "password": "fieldwork123",
        "role": "student",
        "collegeId": college.id,
    })
    assert response.status_code == 409


def test_register_college_admin_creates_pending_college(client, db):
    response = client.post("/api/auth/register/college-admin", json={
        "name": "Meera Iyer",
        "email": "meera@example.com",
        "password": "fieldwork123",
        "collegeName": "Krishi Institute",
        "collegeLocation": "Pune",
    })
    assert response.status_code == 201
    body = response.json()
    assert body["user"]["role"] == "college_admin"
    assert body["user"]["status"] == "pending"
    assert body["college"]["status"] == "pending"
    assert body["college"]["college_code"].startswith("CLG")
    assert body["user"]["college_id"] == body["college"]["id"]


def test_register_college_admin_duplicate_email_leaves_no_college(client, db, student):
    response = client.post("/api/auth/register/college-admin", json={
        "name": "Dup",
        "email": student.email,
        "password": "fieldwork123",
        "collegeName": "Orphan College",
    })
    assert response.status_code == 409
    with db.get_session() as session:
        assert session.query(College).filter(College.name == "Orphan College").count() == 0


def test_register_super_admin_returns_tokens(client):
    response = client.post("/api/auth/register/super-admin", json={
        "name": "Root",
        "email": "root@example.com",
        "password": "fieldwork123",
    })
    assert response.status_code == 201
    body = response.json()
    assert body["user"]["status"] == "approved"
    assert body["token"] and body["refreshToken"]


def test_second_super_admin_blocked_when_disabled(client, super_admin, monkeypatch):
    monkeypatch.setattr(config, "ALLOW_MULTIPLE_SUPER_ADMINS", False)
    response = client.post("/api/auth/register/super-admin", json={
        "name": "Second",
        "email": "second@example.com",
        "password": "fieldwork123",
    })
    assert response.status_code == 403


def test_second_super_admin_allowed_by_default(client, super_admin):
    response = client.post("/api/auth/register/super-admin", json={
        "name": "Second",
        "email": "second@example.com",
        "password": "fieldwork123",
    })
    assert response.status_code == 201


def test_login_success(client, student):
    response = client.post("/api/auth/login", json={"email": student.email, "password": DEFAULT_PASSWORD})
    assert response.status_code == 200
    body = response.json()
    assert body["user"]["id"] == student.id
    assert body["tokenType"] == "bearer"
    assert decode_token(body["token"])["sub"] == str(student.id)


def test_login_wrong_password(client, student):
    response = client.post("/api/auth/login", json={"email": student.email, "password": "nope-nope-nope"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid email or password"


def test_login_unknown_email(client):
    response = client.post("/api/auth/login", json={"email": "ghost@example.com", "password": "whatever1"})
    assert response.status_code == 401


def test_login_deactivated(client, factory, college):
    user = factory.user(college=college, is_active=False)
    response = client.post("/api/auth/login", json={"email": user.email, "password": DEFAULT_PASSWORD})
    assert response.status_code == 403


def test_pending_user_can_login_but_not_use_guarded_routes(client, factory, college):
    user = factory.user(college=college, status=ApprovalStatus.PENDING)
    login = client.post("/api/auth/login", json={"email": user.email, "password": DEFAULT_PASSWORD})
    assert login.status_code == 200
    headers = {"Authorization": f"Bearer {login.json()['token']}"}

    assert client.get("/api/auth/me", headers=headers).status_code == 200
    response = client.get("/api/projects", headers=headers)
    assert response.status_code == 403
    assert response.json()["detail"] == "Account not approved"


def test_me_requires_token(client):
    response = client.get("/api/auth/me")
    assert response.status_code == 401
    assert response.json()["detail"] == "Access token required"


def test_me_rejects_bad_token(client):
    response = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


def test_me_rejects_refresh_token(client, student):
    token = create_refresh_token(token_claims_for(student))
    response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


def test_me_returns_college(client, student, college):
    response = client.get("/api/auth/me", headers=auth_headers(student))
    assert response.status_code == 200
    assert response.json()["college"]["id"] == college.id


def test_refresh_issues_new_tokens(client, student):
    refresh = create_refresh_token(token_claims_for(student))
    response = client.post("/api/auth/refresh", json={"refreshToken": refresh})
    assert response.status_code == 200
    assert decode_token(response.json()["token"])["sub"] == str(student.id)


def test_refresh_expired_is_reported(client, student):
    refresh = create_refresh_token(token_claims_for(student), expires_delta=timedelta(seconds=-5))
    response = client.post("/api/auth/refresh", json={"refreshToken": refresh})
    assert response.status_code == 401
    assert response.json()["detail"] == "Refresh token expired"


def test_refresh_rejects_access_token(client, student):
    access = create_access_token(token_claims_for(student))
    response = client.post("/api/auth/refresh", json={"refreshToken": access})
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid refresh token"


def test_reset_password_flow(client, db, student):
    token = create_password_reset_token(student.id)
    response = client.post("/api/auth/reset-password", json={"token": token, "newPassword": "brand-new-pass"})
    assert response.status_code == 200

    login = client.post("/api/auth/login", json={"email": student.email, "password": "brand-new-pass"})
    assert login.status_code == 200


def test_reset_password_rejects_access_token(client, student):
    token = create_access_token(token_claims_for(student))
    response = client.post("/api/auth/reset-password", json={"token": token, "newPassword": "brand-new-pass"})
    assert response.status_code == 400


def test_forgot_password_does_not_reveal_accounts(client):
    response = client.post("/api/auth/forgot-password", json={"email": "nobody@example.com"})
    assert response.status_code == 200
    assert "resetToken" not in response.json()


def test_change_password(client, db, student):
    response = client.post(
        "/api/auth/change-password",
        json={"currentPassword": DEFAULT_PASSWORD, "newPassword": "another-pass-1"},
        headers=auth_headers(student),
    )
    assert response.status_code == 200
    with db.get_session() as session:
        stored = session.get(User, student.id)
        assert verify_password("another-pass-1", stored.password_hash)


def test_change_password_wrong_current(client, student):
    response = client.post(
        "/api/auth/change-password",
        json={"currentPassword": "not-my-password", "newPassword": "another-pass-1"},
        headers=auth_headers(student),
    )
    assert response.status_code == 401


def test_non_numeric_subject_is_invalid():
    token = create_refresh_token({"sub": "not-a-number", "role": "student"})
    with pytest.raises(InvalidTokenError):
        decode_token(token, TOKEN_TYPE_REFRESH)


def test_signed_token_with_bad_subject_is_401(client, student):
    refresh = create_refresh_token({"sub": "admin", "role": "student"})
    response = client.post("/api/auth/refresh", json={"refreshToken": refresh})
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid refresh token"

    access = create_access_token({"sub": "admin", "role": "student"})
    assert client.get("/api/auth/me", headers={"Authorization": f"Bearer {access}"}).status_code == 401


def test_reset_token_with_bad_subject_is_rejected(client):
    token = _encode({"sub": "x1"}, TOKEN_TYPE_PASSWORD_RESET, timedelta(minutes=5))
    response = client.post("/api/auth/reset-password", json={"token": token, "newPassword": "brand-new-pass"})
    assert response.status_code == 400
