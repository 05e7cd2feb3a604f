import logging
from typing import List, Optional

from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from . import database
from .auth import Identity
from .errors import NotFound
from .models import ActivityLog, Notification

logger = logging.getLogger(__name__)

BOOKING_REQUEST = "booking_request"
BOOKING_CONFIRMED = "booking_confirmed"
BOOKING_CANCELLED = "booking_cancelled"
TRIP_COMPLETED = "trip_completed"
TRIP_CANCELLED = "trip_cancelled"
VEHICLE_VERIFIED = "vehicle_verified"
VEHICLE_REJECTED = "vehicle_rejected"


def notify(user_id: int, type: str, title: str, message: str, link: Optional[str] = None) -> None:
    try:
        with database.new_session() as session:
            session.add(Notification(user_id=user_id, type=type, title=title, message=message, link=link))
            session.commit()
    except SQLAlchemyError:
        logger.exception("Failed to write %s notification for user %s", type, user_id)


def log_activity(user_id: Optional[int], action: str, details: str = "", ip_address: Optional[str] = None) -> None:
    try:
        with database.new_session() as session:
            session.add(ActivityLog(user_id=user_id, action=action, details=details, ip_address=ip_address))
            session.commit()
    except SQLAlchemyError:
        logger.exception("Failed to log activity %s for user %s", action, user_id)


# ------------------------------------------------------------------
# Read side
# ------------------------------------------------------------------
def list_notifications(session: Session, identity: Identity, unread_only: bool = False) -> List[Notification]:
    stmt = select(Notification).where(Notification.user_id == identity.user_id)
    if unread_only:
        stmt = stmt.where(Notification.is_read == False)  # noqa: E712
    stmt = stmt.order_by(Notification.created_at.desc(), Notification.id.desc())
    return list(session.exec(stmt).all())


def unread_count(session: Session, identity: Identity) -> int:
    count = session.exec(
        select(func.count(Notification.id)).where(
            (Notification.user_id == identity.user_id) & (Notification.is_read == False)  # noqa: E712
        )
    ).one()
    return int(count or 0)


def mark_read(session: Session, identity: Identity, notification_id: int) -> Notification:
    note = session.get(Notification, notification_id)
    if not note or note.user_id != identity.user_id:
        raise NotFound("Notification not found")
    note.is_read = True
    session.add(note)
    session.commit()
    session.refresh(note)
    return note


def mark_all_read(session: Session, identity: Identity) -> int:
    result = session.exec(
        update(Notification)
        .where((Notification.user_id == identity.user_id) & (Notification.is_read == False))  # noqa: E712
        .values(is_read=True)
    )
    session.commit()
    return result.rowcount
