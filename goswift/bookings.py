# goswift/bookings.py
import logging
import secrets
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from . import notifications
from .auth import Identity
from .errors import Conflict, Internal, InvalidArgument, InvalidState, NotFound, Unauthorized
from .models import ACTIVE_BOOKING_STATUSES, Booking, BookingStatus, Trip, TripStatus, User, Vehicle
from .places import place_names
from .schemas import BookingRead, BookingRequest, RiderBooking

logger = logging.getLogger(__name__)

DEFAULT_CANCEL_REASON = "No reason provided"


def generate_booking_code() -> str:
    return secrets.token_hex(4).upper()


# ===================== Seat & status primitives =====================
# These never commit; the caller owns the transaction.

def hold_seats(session: Session, trip_id: int, seats: int) -> bool:
    result = session.exec(
        update(Trip)
        .where(
            (Trip.id == trip_id)
            & (Trip.status == TripStatus.ACTIVE)
            & (Trip.seats_left >= seats)
        )
        .values(seats_left=Trip.seats_left - seats)
    )
    return result.rowcount == 1


def release_seats(session: Session, trip_id: int, seats: int) -> None:
    result = session.exec(
        update(Trip)
        .where((Trip.id == trip_id) & (Trip.seats_left + seats <= Trip.seats_total))
        .values(seats_left=Trip.seats_left + seats)
    )
    if result.rowcount != 1:
        session.rollback()
        logger.error("Seat release of %s on trip %s would exceed seats_total", seats, trip_id)
        raise Internal("Seat count out of sync")


def transition(session: Session, booking: Booking, target: BookingStatus, **values) -> None:
    """Move ``booking`` to ``target`` only if its stored status still allows it."""
    current = booking.status
    result = session.exec(
        update(Booking)
        .where((Booking.id == booking.id) & (Booking.status.in_(BookingStatus.sources_for(target))))
        .values(status=target, updated_at=datetime.utcnow(), **values)
    )
    if result.rowcount != 1:
        session.rollback()
        raise InvalidState(f"Booking cannot move from {current.value} to {target.value}")


def active_booking(session: Session, trip_id: int, rider_id: int) -> Optional[Booking]:
    return session.exec(
        select(Booking).where(
            (Booking.trip_id == trip_id)
            & (Booking.rider_id == rider_id)
            & (Booking.status.in_(ACTIVE_BOOKING_STATUSES))
        )
    ).first()


def _load(session: Session, booking_id: int) -> Tuple[Booking, Trip]:
    booking = session.get(Booking, booking_id)
    if not booking:
        raise NotFound("Booking not found")
    trip = session.get(Trip, booking.trip_id)
    if not trip:
        raise NotFound("Trip not found")
    return booking, trip


# ===================== Lifecycle operations =====================

def create_booking(session: Session, identity: Identity, trip_id: int, seats_requested: int) -> Booking:
    trip = session.get(Trip, trip_id)
    if not trip or trip.status != TripStatus.ACTIVE:
        raise NotFound("Trip not found or not available")
    if trip.owner_id == identity.user_id:
        raise InvalidArgument("You cannot book your own trip")
    if seats_requested < 1:
        raise InvalidArgument("At least one seat must be booked")
    if trip.depart_datetime <= datetime.utcnow():
        raise InvalidArgument("Cannot book past trips")
    if active_booking(session, trip.id, identity.user_id):
        raise Conflict("You already have a booking for this trip")
    if seats_requested > trip.seats_left:
        raise InvalidArgument("Not enough seats available")

    owner_id = trip.owner_id
    total_price = round(trip.price_per_seat * seats_requested, 2)

    if not hold_seats(session, trip.id, seats_requested):
        session.rollback()
        raise InvalidArgument("Not enough seats available")

    booking = Booking(
        trip_id=trip.id,
        rider_id=identity.user_id,
        seats_booked=seats_requested,
        total_price=total_price,
        booking_code=generate_booking_code(),
        status=BookingStatus.PENDING,
    )
    session.add(booking)
    try:
        session.commit()
    except IntegrityError:
        # lost a race against another booking by the same rider
        session.rollback()
        raise Conflict("You already have a booking for this trip")
    session.refresh(booking)

    logger.info("Booking %s created: rider=%s trip=%s seats=%s", booking.id, identity.user_id, trip_id, seats_requested)
    rider = session.get(User, identity.user_id)
    notifications.notify(
        owner_id,
        notifications.BOOKING_REQUEST,
        "New Booking Request",
        f"{rider.name if rider else 'A rider'} requested to book {seats_requested} seat(s) for your trip.",
    )
    notifications.log_activity(identity.user_id, "booking_created", f"Booking ID: {booking.id}", identity.ip_address)
    return booking


def confirm_booking(session: Session, identity: Identity, booking_id: int) -> Booking:
    booking, trip = _load(session, booking_id)
    if trip.owner_id != identity.user_id:
        raise Unauthorized("Unauthorized")
    if booking.status != BookingStatus.PENDING:
        raise InvalidState("Booking is not pending")

    transition(session, booking, BookingStatus.CONFIRMED)
    session.commit()
    session.refresh(booking)

    logger.info("Booking %s confirmed by owner %s", booking.id, identity.user_id)
    notifications.notify(
        booking.rider_id,
        notifications.BOOKING_CONFIRMED,
        "Booking Confirmed",
        "Your booking has been confirmed by the vehicle owner.",
    )
    notifications.log_activity(identity.user_id, "booking_confirmed", f"Booking ID: {booking.id}", identity.ip_address)
    return booking


def cancel_booking(session: Session, identity: Identity, booking_id: int, reason: Optional[str] = None) -> Booking:
    booking, trip = _load(session, booking_id)
    if identity.user_id not in (booking.rider_id, trip.owner_id):
        raise Unauthorized("Unauthorized")
    if not booking.status.is_active:
        raise InvalidState("Cannot cancel this booking")

    seats, trip_id = booking.seats_booked, trip.id
    rider_id, owner_id = booking.rider_id, trip.owner_id
    transition(
        session,
        booking,
        BookingStatus.CANCELLED,
        cancellation_reason=(reason or "").strip() or DEFAULT_CANCEL_REASON,
    )
    release_seats(session, trip_id, seats)
    session.commit()
    session.refresh(booking)

    logger.info("Booking %s cancelled by user %s, %s seat(s) returned to trip %s", booking.id, identity.user_id, seats, trip_id)
    notifications.notify(
        owner_id if identity.user_id == rider_id else rider_id,
        notifications.BOOKING_CANCELLED,
        "Booking Cancelled",
        "A booking has been cancelled.",
    )
    notifications.log_activity(identity.user_id, "booking_cancelled", f"Booking ID: {booking.id}", identity.ip_address)
    return booking


def complete_booking(session: Session, identity: Identity, booking_id: int) -> Booking:
    booking, trip = _load(session, booking_id)
    if trip.owner_id != identity.user_id:
        raise Unauthorized("Unauthorized")
    if booking.status != BookingStatus.CONFIRMED:
        raise InvalidState("Only confirmed bookings can be completed")

    transition(session, booking, BookingStatus.COMPLETED)
    session.commit()
    session.refresh(booking)

    logger.info("Booking %s completed", booking.id)
    notifications.notify(
        booking.rider_id,
        notifications.TRIP_COMPLETED,
        "Trip Completed",
        "Your trip has been completed. Please leave a review!",
    )
    notifications.log_activity(identity.user_id, "booking_completed", f"Booking ID: {booking.id}", identity.ip_address)
    return booking


# ===================== Listings =====================

def _booking_fields(booking: Booking) -> dict:
    return BookingRead.model_validate(booking).model_dump()


def _status_filter(status: str) -> Optional[BookingStatus]:
    if status == "all":
        return None
    try:
        return BookingStatus(status)
    except ValueError:
        raise InvalidArgument(f"Unknown booking status '{status}'")


def my_bookings(session: Session, identity: Identity, status: str = "all") -> List[RiderBooking]:
    wanted = _status_filter(status)
    stmt = select(Booking).where(Booking.rider_id == identity.user_id)
    if wanted is not None:
        stmt = stmt.where(Booking.status == wanted)
    rows = session.exec(stmt.order_by(Booking.created_at.desc(), Booking.id.desc())).all()

    out: List[RiderBooking] = []
    for b in rows:
        trip = session.get(Trip, b.trip_id)
        veh = session.get(Vehicle, trip.vehicle_id) if trip and trip.vehicle_id else None
        owner = session.get(User, trip.owner_id) if trip else None
        out.append(RiderBooking(
            **_booking_fields(b),
            depart_datetime=trip.depart_datetime if trip else None,
            price_per_seat=trip.price_per_seat if trip else None,
            trip_notes=trip.notes if trip else None,
            vehicle_type=veh.type if veh else None,
            vehicle_make=veh.make if veh else None,
            vehicle_model=veh.model if veh else None,
            vehicle_plate_number=veh.plate_number if veh else None,
            owner_id=owner.id if owner else None,
            owner_name=owner.name if owner else None,
            owner_phone=owner.phone if owner else None,
            owner_photo=owner.profile_photo if owner else None,
            **(place_names(session, trip) if trip else {}),
        ))
    return out


def booking_requests(session: Session, identity: Identity, status: str = "pending") -> List[BookingRequest]:
    wanted = _status_filter(status)
    stmt = (
        select(Booking)
        .join(Trip, Trip.id == Booking.trip_id)
        .where(Trip.owner_id == identity.user_id)
    )
    if wanted is not None:
        stmt = stmt.where(Booking.status == wanted)
    rows = session.exec(stmt.order_by(Booking.created_at.desc(), Booking.id.desc())).all()

    out: List[BookingRequest] = []
    for b in rows:
        trip = session.get(Trip, b.trip_id)
        rider = session.get(User, b.rider_id)
        out.append(BookingRequest(
            **_booking_fields(b),
            depart_datetime=trip.depart_datetime,
            price_per_seat=trip.price_per_seat,
            rider_name=rider.name if rider else None,
            rider_phone=rider.phone if rider else None,
            rider_photo=rider.profile_photo if rider else None,
            **place_names(session, trip),
        ))
    return out
