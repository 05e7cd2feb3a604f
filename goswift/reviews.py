import logging
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from . import notifications
from .auth import Identity
from .errors import Conflict, InvalidArgument, InvalidState, NotFound, Unauthorized
from .models import Booking, BookingStatus, Review, Trip, User
from .schemas import ReviewRead

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5


def owner_rating(session: Session, user_id: int) -> Tuple[float, int]:
    """Average rating and review count received by ``user_id``."""
    avg, count = session.exec(
        select(func.avg(Review.rating), func.count(Review.id)).where(Review.reviewed_user_id == user_id)
    ).one()
    return round(float(avg or 0), 2), int(count or 0)


def recent_reviews(session: Session, user_id: int, limit: int = 5) -> List[ReviewRead]:
    rows = session.exec(
        select(Review)
        .where(Review.reviewed_user_id == user_id)
        .order_by(Review.created_at.desc(), Review.id.desc())
        .limit(limit)
    ).all()
    out: List[ReviewRead] = []
    for r in rows:
        reviewer = session.get(User, r.reviewer_id)
        out.append(ReviewRead(
            **ReviewRead.model_validate(r).model_dump(exclude={"reviewer_name"}),
            reviewer_name=reviewer.name if reviewer else None,
        ))
    return out


def submit_review(
    session: Session,
    identity: Identity,
    booking_id: int,
    rating: int,
    comment: Optional[str] = None,
) -> Review:
    """The rider of a completed booking rates the trip owner, once."""
    booking = session.get(Booking, booking_id)
    if not booking:
        raise NotFound("Booking not found")
    if booking.rider_id != identity.user_id:
        raise Unauthorized("Only the rider can review this booking")
    if booking.status != BookingStatus.COMPLETED:
        raise InvalidState("Only completed bookings can be reviewed")
    if rating < MIN_RATING or rating > MAX_RATING:
        raise InvalidArgument(f"Rating must be between {MIN_RATING} and {MAX_RATING}")
    trip = session.get(Trip, booking.trip_id)
    if not trip:
        raise NotFound("Trip not found")

    review = Review(
        booking_id=booking.id,
        reviewer_id=identity.user_id,
        reviewed_user_id=trip.owner_id,
        rating=rating,
        comment=(comment or "").strip() or None,
    )
    session.add(review)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise Conflict("This booking has already been reviewed")
    session.refresh(review)

    logger.info("Review %s left for user %s (%s stars)", review.id, review.reviewed_user_id, rating)
    notifications.log_activity(identity.user_id, "review_submitted", f"Booking ID: {booking_id}", identity.ip_address)
    return review
