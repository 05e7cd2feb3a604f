# goswift/trips.py
import logging
import math
from datetime import datetime, time, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import func, update
from sqlmodel import Session, select

from . import bookings, config, notifications
from .auth import Identity
from .errors import InvalidArgument, InvalidState, NotFound, Unauthorized
from .models import ACTIVE_BOOKING_STATUSES, Booking, BookingStatus, Trip, TripStatus, User, Vehicle, VehicleStatus
from .places import place_names, require_area, require_city
from .reviews import owner_rating, recent_reviews
from .schemas import (
    OwnerTrip,
    Pagination,
    TripCreate,
    TripDetail,
    TripFilters,
    TripRead,
    TripReadFull,
    TripSearchResult,
    TripUpdate,
)
from .validation import ensure_future

logger = logging.getLogger(__name__)

TRIP_CANCELLED_REASON = "Trip cancelled by owner"


# ===================== Search query building =====================

def _on_date(day) -> Any:
    start = datetime.combine(day, time.min)
    return (Trip.depart_datetime >= start) & (Trip.depart_datetime < start + timedelta(days=1))


# one parameterized clause per filter field
TRIP_FILTERS: Dict[str, Callable[[Any], Any]] = {
    "from_city": lambda v: Trip.departure_city_id == v,
    "from_area": lambda v: Trip.departure_area_id == v,
    "to_city": lambda v: Trip.arrival_city_id == v,
    "to_area": lambda v: Trip.arrival_area_id == v,
    "travel_date": _on_date,
    "seats": lambda v: Trip.seats_left >= v,
    "vehicle_type": lambda v: Vehicle.type == v,
    "max_price": lambda v: Trip.price_per_seat <= v,
}

TRIP_SORTS = {
    "price_low": Trip.price_per_seat.asc(),
    "price_high": Trip.price_per_seat.desc(),
    "seats": Trip.seats_left.desc(),
    "time_late": Trip.depart_datetime.desc(),
}
DEFAULT_SORT = Trip.depart_datetime.asc()


def build_predicates(filters: TripFilters, now: Optional[datetime] = None) -> List[Any]:
    """Active, future trips narrowed by every filter that was supplied (AND)."""
    now = now or datetime.utcnow()
    clauses = [Trip.status == TripStatus.ACTIVE, Trip.depart_datetime > now]
    for name, value in filters.model_dump(exclude_none=True).items():
        clauses.append(TRIP_FILTERS[name](value))
    return clauses


def sort_clause(sort: Optional[str]):
    # unknown sort keys fall back to soonest departure first
    return TRIP_SORTS.get(sort or "", DEFAULT_SORT)


def search_trips(
    session: Session,
    filters: TripFilters,
    sort: Optional[str] = None,
    page: int = 1,
) -> TripSearchResult:
    page = max(1, page)
    per_page = config.TRIPS_PER_PAGE
    clauses = build_predicates(filters)

    total = session.exec(
        select(func.count(Trip.id))
        .select_from(Trip)
        .join(Vehicle, Vehicle.id == Trip.vehicle_id)
        .where(*clauses)
    ).one()

    rows = session.exec(
        select(Trip)
        .join(Vehicle, Vehicle.id == Trip.vehicle_id)
        .where(*clauses)
        .order_by(sort_clause(sort), Trip.id)
        .offset((page - 1) * per_page)
        .limit(per_page)
    ).all()

    return TripSearchResult(
        trips=[_full(session, t) for t in rows],
        pagination=Pagination(
            page=page,
            per_page=per_page,
            total=int(total or 0),
            total_pages=math.ceil(int(total or 0) / per_page),
        ),
    )


# ===================== Views =====================

def _count_bookings(session: Session, trip_id: int, status: Optional[BookingStatus] = None) -> int:
    stmt = select(func.count(Booking.id)).where(Booking.trip_id == trip_id)
    if status is not None:
        stmt = stmt.where(Booking.status == status)
    return int(session.exec(stmt).one() or 0)


def _full(session: Session, trip: Trip) -> TripReadFull:
    veh = session.get(Vehicle, trip.vehicle_id) if trip.vehicle_id else None
    owner = session.get(User, trip.owner_id)
    rating, _ = owner_rating(session, trip.owner_id)
    return TripReadFull(
        **TripRead.model_validate(trip).model_dump(),
        vehicle_type=veh.type if veh else None,
        vehicle_make=veh.make if veh else None,
        vehicle_model=veh.model if veh else None,
        vehicle_year=veh.year if veh else None,
        vehicle_color=veh.color if veh else None,
        vehicle_capacity=veh.capacity if veh else None,
        owner_name=owner.name if owner else None,
        owner_photo=owner.profile_photo if owner else None,
        owner_rating=rating,
        total_bookings=_count_bookings(session, trip.id),
        **place_names(session, trip),
    )


def get_trip(session: Session, trip_id: int) -> TripDetail:
    trip = session.get(Trip, trip_id)
    if not trip:
        raise NotFound("Trip not found")
    full = _full(session, trip)
    veh = session.get(Vehicle, trip.vehicle_id) if trip.vehicle_id else None
    owner = session.get(User, trip.owner_id)
    _, total_reviews = owner_rating(session, trip.owner_id)
    return TripDetail(
        **full.model_dump(),
        vehicle_plate_number=veh.plate_number if veh else None,
        vehicle_photos=list(veh.photos) if veh else [],
        owner_phone=owner.phone if owner else None,
        total_reviews=total_reviews,
        reviews=recent_reviews(session, trip.owner_id),
    )


def my_trips(session: Session, identity: Identity, status: str = "active") -> List[OwnerTrip]:
    stmt = select(Trip).where(Trip.owner_id == identity.user_id)
    if status != "all":
        try:
            stmt = stmt.where(Trip.status == TripStatus(status))
        except ValueError:
            raise InvalidArgument(f"Unknown trip status '{status}'")
    rows = session.exec(stmt.order_by(Trip.depart_datetime.desc(), Trip.id.desc())).all()
    return [
        OwnerTrip(
            **_full(session, t).model_dump(),
            booking_count=_count_bookings(session, t.id),
            pending_bookings=_count_bookings(session, t.id, BookingStatus.PENDING),
        )
        for t in rows
    ]


# ===================== Owner operations =====================

def _check_seats(seats_total: int, capacity: Optional[int]) -> None:
    if seats_total < 1:
        raise InvalidArgument("At least one seat must be offered")
    if capacity is not None and seats_total > capacity:
        raise InvalidArgument("Seats exceed vehicle capacity")


def _check_price(price: float) -> None:
    if price <= 0:
        raise InvalidArgument("Price per seat must be greater than zero")


def create_trip(session: Session, identity: Identity, payload: TripCreate) -> Trip:
    vehicle = session.get(Vehicle, payload.vehicle_id)
    if not vehicle or vehicle.owner_id != identity.user_id or vehicle.status != VehicleStatus.VERIFIED:
        raise InvalidArgument("Invalid or unverified vehicle")
    _check_seats(payload.seats_total, vehicle.capacity)
    _check_price(payload.price_per_seat)
    depart = ensure_future(payload.depart_datetime)
    require_city(session, payload.departure_city_id)
    require_city(session, payload.arrival_city_id)
    require_area(session, payload.departure_area_id, payload.departure_city_id)
    require_area(session, payload.arrival_area_id, payload.arrival_city_id)

    data = payload.model_dump(exclude={"depart_datetime"})
    trip = Trip(
        owner_id=identity.user_id,
        depart_datetime=depart,
        seats_left=payload.seats_total,   # nothing booked yet
        status=TripStatus.ACTIVE,
        **data,
    )
    session.add(trip)
    session.commit()
    session.refresh(trip)

    logger.info("Trip %s posted by owner %s with %s seat(s)", trip.id, identity.user_id, trip.seats_total)
    notifications.log_activity(identity.user_id, "trip_created", f"Trip ID: {trip.id}", identity.ip_address)
    return trip


def _owned_trip(session: Session, identity: Identity, trip_id: int) -> Trip:
    trip = session.get(Trip, trip_id)
    if not trip or trip.owner_id != identity.user_id:
        raise Unauthorized("Trip not found or unauthorized")
    return trip


def update_trip(session: Session, identity: Identity, trip_id: int, payload: TripUpdate) -> Trip:
    trip = _owned_trip(session, identity, trip_id)
    if trip.status != TripStatus.ACTIVE:
        raise InvalidState("Only active trips can be updated")
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        raise InvalidArgument("No fields to update")

    if "depart_datetime" in changes:
        changes["depart_datetime"] = ensure_future(changes["depart_datetime"])
    if "price_per_seat" in changes:
        _check_price(changes["price_per_seat"])

    new_total = changes.pop("seats_total", None)
    if new_total is not None:
        veh = session.get(Vehicle, trip.vehicle_id) if trip.vehicle_id else None
        _check_seats(new_total, veh.capacity if veh else None)
        held = trip.seats_total - trip.seats_left
        if new_total < held:
            raise InvalidArgument(f"Cannot offer fewer than the {held} seat(s) already booked")

    for k, v in changes.items():
        setattr(trip, k, v)
    session.add(trip)

    if new_total is not None:
        # keep seats_left = seats_total - held seats, checked against the stored row
        result = session.exec(
            update(Trip)
            .where((Trip.id == trip.id) & (Trip.seats_total - Trip.seats_left <= new_total))
            .values(
                seats_left=new_total - (Trip.seats_total - Trip.seats_left),
                seats_total=new_total,
            )
        )
        if result.rowcount != 1:
            session.rollback()
            raise InvalidArgument("Cannot offer fewer seats than are already booked")

    session.commit()
    session.refresh(trip)
    notifications.log_activity(identity.user_id, "trip_updated", f"Trip ID: {trip.id}", identity.ip_address)
    return trip


def cancel_trip(session: Session, identity: Identity, trip_id: int) -> Tuple[Trip, int]:
    """Cancel a trip and every booking still holding seats on it.

    Returns the trip and the number of bookings that were cancelled.
    """
    trip = _owned_trip(session, identity, trip_id)
    result = session.exec(
        update(Trip)
        .where((Trip.id == trip.id) & (Trip.status == TripStatus.ACTIVE))
        .values(status=TripStatus.CANCELLED)
    )
    if result.rowcount != 1:
        session.rollback()
        raise InvalidState("Trip is already cancelled")

    held = session.exec(
        select(Booking).where((Booking.trip_id == trip.id) & (Booking.status.in_(ACTIVE_BOOKING_STATUSES)))
    ).all()
    riders = []
    for b in held:
        riders.append(b.rider_id)
        bookings.transition(session, b, BookingStatus.CANCELLED, cancellation_reason=TRIP_CANCELLED_REASON)
        bookings.release_seats(session, trip.id, b.seats_booked)
    session.commit()
    session.refresh(trip)

    logger.info("Trip %s cancelled by owner %s; %s booking(s) cancelled", trip.id, identity.user_id, len(riders))
    for rider_id in sorted(set(riders)):
        notifications.notify(
            rider_id,
            notifications.TRIP_CANCELLED,
            "Trip Cancelled",
            "A trip you booked has been cancelled by the owner.",
            link="dashboard-rider",
        )
    notifications.log_activity(identity.user_id, "trip_cancelled", f"Trip ID: {trip.id}", identity.ip_address)
    return trip, len(riders)
