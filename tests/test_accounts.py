"""
Signup, login, sessions and the password/verification flows.
"""
from datetime import datetime, timedelta

import pytest
from sqlmodel import select

from goswift import accounts, config
from goswift.auth import create_session, resolve_identity, verify_password
from goswift.errors import Conflict, InvalidArgument, Unauthenticated
from goswift.models import ActivityLog, UserRole, UserSession
from goswift.schemas import SignupRequest, UserUpdate


def signup_request(**overrides):
    data = dict(
        name="Ayesha Khan",
        email="Ayesha@Mail.com",
        phone="03001234567",
        password="longenough",
        confirm_password="longenough",
        role="rider",
    )
    data.update(overrides)
    return SignupRequest(**data)


def test_signup_stores_normalized_user(session):
    user = accounts.signup(session, signup_request())
    assert user.email == "ayesha@mail.com"
    assert user.role == UserRole.RIDER
    assert user.is_verified is True
    assert user.password_hash != "longenough"
    assert verify_password("longenough", user.password_hash)

    actions = session.exec(select(ActivityLog.action).where(ActivityLog.user_id == user.id)).all()
    assert actions == ["user_registered"]


@pytest.mark.parametrize("overrides", [
    {"role": "admin"},
    {"role": "driver"},
    {"email": "not-an-email"},
    {"phone": "12345"},
    {"password": "short", "confirm_password": "short"},
    {"confirm_password": "different1"},
    {"name": "  "},
])
def test_signup_rejects_bad_input(session, overrides):
    with pytest.raises(InvalidArgument):
        accounts.signup(session, signup_request(**overrides))


def test_signup_duplicates_conflict(session):
    accounts.signup(session, signup_request())
    with pytest.raises(Conflict):
        accounts.signup(session, signup_request(phone="03007654321"))
    with pytest.raises(Conflict):
        accounts.signup(session, signup_request(email="other@mail.com"))


def test_signup_without_auto_verify_then_verify_email(session, monkeypatch):
    monkeypatch.setattr(config, "AUTO_VERIFY_USERS", False)
    user = accounts.signup(session, signup_request(role="owner"))
    assert user.is_verified is False
    token = user.verification_token
    assert token

    verified = accounts.verify_email(session, token)
    assert verified.is_verified is True
    assert verified.verification_token is None

    with pytest.raises(InvalidArgument):
        accounts.verify_email(session, token)


def test_login_by_email_or_phone(session, make_user):
    user = make_user(name="Bilal")
    row, logged_in = accounts.login(session, user.email.upper(), "secret123")
    assert logged_in.id == user.id
    assert logged_in.last_login_at is not None
    assert row.expires_at > datetime.utcnow()

    identity = resolve_identity(session, row.token, "10.0.0.1")
    assert identity.user_id == user.id
    assert identity.ip_address == "10.0.0.1"

    _, by_phone = accounts.login(session, user.phone, "secret123")
    assert by_phone.id == user.id


def test_login_failures(session, make_user):
    user = make_user()
    with pytest.raises(Unauthenticated):
        accounts.login(session, user.email, "wrong-password")
    with pytest.raises(Unauthenticated):
        accounts.login(session, "nobody@mail.com", "secret123")
    with pytest.raises(InvalidArgument):
        accounts.login(session, "", "")


def test_logout_revokes_session(session, make_user):
    user = make_user()
    token = create_session(session, user).token
    accounts.logout(session, token)
    assert resolve_identity(session, token) is None


def test_expired_session_is_dropped(session, make_user):
    user = make_user()
    row = create_session(session, user)
    row.expires_at = datetime.utcnow() - timedelta(minutes=1)
    session.add(row)
    session.commit()
    token = row.token

    assert resolve_identity(session, token) is None
    assert session.get(UserSession, token) is None


def test_forgot_and_reset_password(session, make_user):
    user = make_user()
    old_token = create_session(session, user).token

    accounts.forgot_password(session, "nobody@mail.com")   # silently ignored
    accounts.forgot_password(session, user.email)
    session.refresh(user)
    reset_token = user.verification_token
    assert reset_token

    with pytest.raises(InvalidArgument):
        accounts.reset_password(session, reset_token, "newpassword", "mismatch")
    accounts.reset_password(session, reset_token, "newpassword", "newpassword")

    session.refresh(user)
    assert verify_password("newpassword", user.password_hash)
    assert user.verification_token is None
    assert resolve_identity(session, old_token) is None
    with pytest.raises(InvalidArgument):
        accounts.reset_password(session, reset_token, "another1", "another1")


def test_check_auth(session, make_user, identity_of):
    assert accounts.check_auth(session, None).authenticated is False
    user = make_user(name="Sara")
    status = accounts.check_auth(session, identity_of(user))
    assert status.authenticated is True
    assert status.user.name == "Sara"


def test_update_profile(session, make_user, identity_of):
    user = make_user()
    other = make_user()
    updated = accounts.update_profile(session, identity_of(user), UserUpdate(name=" New Name ", phone="+923001112233"))
    assert updated.name == "New Name"
    assert updated.phone == "+923001112233"

    with pytest.raises(Conflict):
        accounts.update_profile(session, identity_of(user), UserUpdate(phone=other.phone))
    with pytest.raises(InvalidArgument):
        accounts.update_profile(session, identity_of(user), UserUpdate(phone="12"))
    with pytest.raises(InvalidArgument):
        accounts.update_profile(session, identity_of(user), UserUpdate())
