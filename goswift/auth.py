import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from fastapi import Depends, Request
from sqlmodel import Session, select
from werkzeug.security import check_password_hash, generate_password_hash

from . import config
from .database import get_session
from .errors import Unauthenticated, Unauthorized
from .models import User, UserRole, UserSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """Who is calling; resolved once per request and passed into every operation."""
    user_id: int
    role: UserRole
    ip_address: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return check_password_hash(password_hash, password)


def generate_token(nbytes: int = 32) -> str:
    return secrets.token_hex(nbytes)


# ------------------------------------------------------------------
# Sessions
# ------------------------------------------------------------------
def create_session(session: Session, user: User) -> UserSession:
    now = datetime.utcnow()
    row = UserSession(
        token=generate_token(),
        user_id=user.id,
        created_at=now,
        expires_at=now + timedelta(hours=config.SESSION_TTL_HOURS),
    )
    session.add(row)
    session.commit()
    session.refresh(row)
    return row


def revoke_session(session: Session, token: str) -> None:
    row = session.get(UserSession, token)
    if row:
        session.delete(row)
        session.commit()


def revoke_user_sessions(session: Session, user_id: int) -> None:
    rows = session.exec(select(UserSession).where(UserSession.user_id == user_id)).all()
    for row in rows:
        session.delete(row)
    session.commit()


def resolve_identity(session: Session, token: Optional[str], ip_address: Optional[str] = None) -> Optional[Identity]:
    if not token:
        return None
    row = session.get(UserSession, token)
    if not row:
        return None
    if row.expires_at <= datetime.utcnow():
        session.delete(row)
        session.commit()
        return None
    user = session.get(User, row.user_id)
    if not user:
        return None
    return Identity(user_id=user.id, role=user.role, ip_address=ip_address)


# ------------------------------------------------------------------
# FastAPI dependencies
# ------------------------------------------------------------------
def request_token(request: Request) -> Optional[str]:
    auth = request.headers.get("Authorization", "")
    if auth.startswith("Bearer "):
        return auth.split(" ", 1)[1].strip() or None
    return request.cookies.get(config.SESSION_COOKIE)


def client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


def get_optional_identity(
    request: Request,
    session: Session = Depends(get_session),
) -> Optional[Identity]:
    return resolve_identity(session, request_token(request), client_ip(request))


def get_identity(identity: Optional[Identity] = Depends(get_optional_identity)) -> Identity:
    if identity is None:
        raise Unauthenticated("Authentication required")
    return identity


def require_role(*roles: UserRole) -> Callable[..., Identity]:
    def _check(identity: Identity = Depends(get_identity)) -> Identity:
        if identity.role not in roles:
            raise Unauthorized("Insufficient permissions")
        return identity
    return _check
