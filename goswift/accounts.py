"""
Signup, login and the account maintenance flows around them.
"""

import logging
from datetime import datetime
from typing import Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from . import config, notifications
from .auth import (
    Identity,
    create_session,
    generate_token,
    hash_password,
    revoke_session,
    revoke_user_sessions,
    verify_password,
)
from .errors import Conflict, InvalidArgument, NotFound, Unauthenticated
from .models import User, UserRole, UserSession
from .schemas import AuthStatus, SignupRequest, UserRead, UserUpdate
from .validation import require_fields, validate_email, validate_password, validate_phone

logger = logging.getLogger(__name__)

SIGNUP_ROLES = (UserRole.OWNER, UserRole.RIDER)


def _find_by_email(session: Session, email: str) -> Optional[User]:
    return session.exec(select(User).where(User.email == email)).first()


def _find_by_phone(session: Session, phone: str) -> Optional[User]:
    return session.exec(select(User).where(User.phone == phone)).first()


def signup(session: Session, data: SignupRequest, ip_address: Optional[str] = None) -> User:
    require_fields(data.model_dump(), ("name", "email", "phone", "password", "confirm_password", "role"))
    try:
        role = UserRole(data.role.strip().lower())
    except ValueError:
        role = None
    if role not in SIGNUP_ROLES:
        raise InvalidArgument("Invalid role selected")

    email = validate_email(data.email)
    phone = validate_phone(data.phone)
    validate_password(data.password, data.confirm_password)

    if _find_by_email(session, email):
        raise Conflict("Email already registered")
    if _find_by_phone(session, phone):
        raise Conflict("Phone number already registered")

    user = User(
        name=data.name.strip(),
        email=email,
        phone=phone,
        password_hash=hash_password(data.password),
        role=role,
        is_verified=config.AUTO_VERIFY_USERS,
        verification_token=None if config.AUTO_VERIFY_USERS else generate_token(),
    )
    session.add(user)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise Conflict("Email or phone number already registered")
    session.refresh(user)

    logger.info("User %s signed up as %s", user.id, role.value)
    if user.verification_token:
        # no mail transport; the link goes to the log
        logger.info("Verification link for %s: %s/api/auth/verify-email?token=%s",
                    email, config.SITE_URL, user.verification_token)
    notifications.log_activity(user.id, "user_registered", f"Role: {role.value}", ip_address)
    return user


def login(session: Session, identifier: str, password: str, ip_address: Optional[str] = None) -> Tuple[UserSession, User]:
    identifier = (identifier or "").strip()
    if not identifier or not password:
        raise InvalidArgument("Email and password are required")

    user = _find_by_email(session, identifier.lower()) or _find_by_phone(session, identifier)
    if not user or not verify_password(password, user.password_hash):
        logger.info("Failed login for %s", identifier)
        raise Unauthenticated("Invalid email or password")

    now = datetime.utcnow()
    user.last_login_at = now
    user.updated_at = now
    session.add(user)
    session.commit()
    row = create_session(session, user)
    session.refresh(user)

    logger.info("User %s logged in", user.id)
    notifications.log_activity(user.id, "user_login", "", ip_address)
    return row, user


def logout(session: Session, token: Optional[str], identity: Optional[Identity] = None) -> None:
    if token:
        revoke_session(session, token)
    if identity is not None:
        notifications.log_activity(identity.user_id, "user_logout", "", identity.ip_address)


def verify_email(session: Session, token: str, ip_address: Optional[str] = None) -> User:
    if not token:
        raise InvalidArgument("Invalid verification link")
    user = session.exec(select(User).where(User.verification_token == token)).first()
    if not user:
        raise InvalidArgument("Invalid or expired verification link")
    user.is_verified = True
    user.verification_token = None
    user.updated_at = datetime.utcnow()
    session.add(user)
    session.commit()
    session.refresh(user)
    notifications.log_activity(user.id, "email_verified", "", ip_address)
    return user


def forgot_password(session: Session, email: str) -> None:
    """Issue a reset token when the address is known; callers always see success."""
    try:
        email = validate_email(email)
    except InvalidArgument:
        return
    user = _find_by_email(session, email)
    if not user:
        return
    user.verification_token = generate_token()
    user.updated_at = datetime.utcnow()
    session.add(user)
    session.commit()
    logger.info("Password reset link for %s: %s/reset-password?token=%s",
                email, config.SITE_URL, user.verification_token)


def reset_password(
    session: Session,
    token: str,
    password: str,
    confirm: str,
    ip_address: Optional[str] = None,
) -> None:
    if not token:
        raise InvalidArgument("Invalid reset link")
    validate_password(password, confirm)
    user = session.exec(select(User).where(User.verification_token == token)).first()
    if not user:
        raise InvalidArgument("Invalid or expired reset link")
    user.password_hash = hash_password(password)
    # the reset link proves the mailbox, so this also verifies the address
    user.is_verified = True
    user.verification_token = None
    user.updated_at = datetime.utcnow()
    session.add(user)
    session.commit()
    revoke_user_sessions(session, user.id)
    logger.info("Password reset for user %s", user.id)
    notifications.log_activity(user.id, "password_reset", "", ip_address)


def get_user(session: Session, identity: Identity) -> User:
    user = session.get(User, identity.user_id)
    if not user:
        raise NotFound("User not found")
    return user


def check_auth(session: Session, identity: Optional[Identity]) -> AuthStatus:
    if identity is None:
        return AuthStatus(authenticated=False)
    user = session.get(User, identity.user_id)
    if not user:
        return AuthStatus(authenticated=False)
    return AuthStatus(authenticated=True, user=UserRead.model_validate(user))


def update_profile(session: Session, identity: Identity, payload: UserUpdate) -> User:
    user = get_user(session, identity)
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        raise InvalidArgument("No fields to update")
    if "name" in changes:
        changes["name"] = changes["name"].strip()
        if not changes["name"]:
            raise InvalidArgument("Field 'name' is required")
    if "phone" in changes:
        changes["phone"] = validate_phone(changes["phone"])
        other = _find_by_phone(session, changes["phone"])
        if other and other.id != user.id:
            raise Conflict("Phone number already registered")

    for k, v in changes.items():
        setattr(user, k, v)
    user.updated_at = datetime.utcnow()
    session.add(user)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise Conflict("Phone number already registered")
    session.refresh(user)
    return user
