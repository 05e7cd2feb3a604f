"""
Trip posting, search and owner management.
Covers:
- Create checks: verified vehicle, capacity, price, future departure, areas
- Search filters, sort keys and pagination
- Seat total updates keep held seats
- Cancelling a trip cancels its bookings and hands their seats back
"""
from datetime import datetime, timedelta

import pytest
from sqlmodel import select

from goswift import bookings, config, reviews, trips
from goswift.errors import InvalidArgument, InvalidState, NotFound, Unauthorized
from goswift.models import (
    Booking,
    BookingStatus,
    Notification,
    TripStatus,
    UserRole,
    VehicleStatus,
    VehicleType,
)
from goswift.schemas import TripCreate, TripFilters, TripUpdate


def trip_payload(world, **overrides):
    data = dict(
        vehicle_id=world["car"].id,
        departure_city_id=world["karachi"].id,
        arrival_city_id=world["lahore"].id,
        depart_datetime=datetime.utcnow() + timedelta(days=2),
        seats_total=3,
        price_per_seat=1500.0,
    )
    data.update(overrides)
    return TripCreate(**data)


# ────────────────────────── create ──────────────────────────────────────────

def test_create_trip_starts_with_all_seats_free(session, world, identity_of):
    trip = trips.create_trip(session, identity_of(world["owner"]), trip_payload(world))
    assert trip.seats_left == trip.seats_total == 3
    assert trip.status == TripStatus.ACTIVE
    assert trip.owner_id == world["owner"].id


def test_create_trip_requires_verified_own_vehicle(session, world, make_user, make_vehicle, identity_of):
    owner = identity_of(world["owner"])
    pending_car = make_vehicle(world["owner"], world["karachi"], status=VehicleStatus.PENDING)
    with pytest.raises(InvalidArgument):
        trips.create_trip(session, owner, trip_payload(world, vehicle_id=pending_car.id))

    other_owner = make_user(UserRole.OWNER)
    with pytest.raises(InvalidArgument):
        trips.create_trip(session, identity_of(other_owner), trip_payload(world))


@pytest.mark.parametrize("overrides", [
    {"seats_total": 0},
    {"seats_total": 5},
    {"price_per_seat": 0},
    {"depart_datetime": datetime.utcnow() - timedelta(minutes=5)},
    {"arrival_city_id": 9999},
])
def test_create_trip_rejects_bad_input(session, world, identity_of, overrides):
    with pytest.raises(InvalidArgument):
        trips.create_trip(session, identity_of(world["owner"]), trip_payload(world, **overrides))


def test_create_trip_area_must_be_in_city(session, world, make_city, identity_of):
    _, (latifabad,) = make_city("Hyderabad", ["Latifabad"])
    with pytest.raises(InvalidArgument):
        trips.create_trip(
            session, identity_of(world["owner"]), trip_payload(world, departure_area_id=latifabad.id)
        )


# ────────────────────────── search ──────────────────────────────────────────

@pytest.fixture
def listing(session, world, make_city, make_vehicle, make_trip):
    owner, karachi, lahore = world["owner"], world["karachi"], world["lahore"]
    islamabad, (f6,) = make_city("Islamabad", ["F-6"])
    van = make_vehicle(owner, karachi, capacity=10, type=VehicleType.VAN)
    now = datetime.utcnow()
    made = {
        "cheap_van": make_trip(owner, van, karachi, islamabad, seats=8, price=300.0,
                               depart=now + timedelta(days=3), to_area=f6),
        "late_car": make_trip(owner, world["car"], lahore, islamabad, seats=2, price=900.0,
                              depart=now + timedelta(days=5)),
        "past": make_trip(owner, world["car"], karachi, islamabad, price=100.0,
                          depart=now - timedelta(days=1)),
        "cancelled": make_trip(owner, world["car"], karachi, islamabad, price=100.0,
                               status=TripStatus.CANCELLED),
    }
    made["base"] = world["trip"]   # karachi -> lahore, 4 seats, 500, tomorrow
    made["islamabad"] = islamabad
    made["f6"] = f6
    return made


def ids(result):
    return [t.id for t in result.trips]


def test_search_excludes_past_and_cancelled(session, listing):
    result = trips.search_trips(session, TripFilters())
    assert set(ids(result)) == {listing["base"].id, listing["cheap_van"].id, listing["late_car"].id}
    assert result.pagination.total == 3


def test_search_default_sort_is_soonest_first(session, listing):
    result = trips.search_trips(session, TripFilters())
    assert ids(result) == [listing["base"].id, listing["cheap_van"].id, listing["late_car"].id]


@pytest.mark.parametrize("sort,expected", [
    ("price_low", ["cheap_van", "base", "late_car"]),
    ("price_high", ["late_car", "base", "cheap_van"]),
    ("seats", ["cheap_van", "base", "late_car"]),
    ("time_late", ["late_car", "cheap_van", "base"]),
    ("nonsense", ["base", "cheap_van", "late_car"]),
])
def test_search_sort_keys(session, listing, sort, expected):
    result = trips.search_trips(session, TripFilters(), sort=sort)
    assert ids(result) == [listing[k].id for k in expected]


def test_search_filters_combine_with_and(session, world, listing):
    islamabad = listing["islamabad"]
    by_route = trips.search_trips(session, TripFilters(from_city=world["karachi"].id, to_city=islamabad.id))
    assert ids(by_route) == [listing["cheap_van"].id]

    by_area = trips.search_trips(session, TripFilters(to_area=listing["f6"].id))
    assert ids(by_area) == [listing["cheap_van"].id]

    by_seats = trips.search_trips(session, TripFilters(seats=4))
    assert set(ids(by_seats)) == {listing["base"].id, listing["cheap_van"].id}

    by_type = trips.search_trips(session, TripFilters(vehicle_type=VehicleType.CAR))
    assert set(ids(by_type)) == {listing["base"].id, listing["late_car"].id}

    by_price = trips.search_trips(session, TripFilters(max_price=500))
    assert set(ids(by_price)) == {listing["base"].id, listing["cheap_van"].id}

    nothing = trips.search_trips(session, TripFilters(vehicle_type=VehicleType.BIKE))
    assert nothing.trips == []
    assert nothing.pagination.total_pages == 0


def test_search_by_travel_date(session, listing):
    day = listing["late_car"].depart_datetime.date()
    result = trips.search_trips(session, TripFilters(travel_date=day))
    assert ids(result) == [listing["late_car"].id]


def test_search_pagination(session, world, make_trip, monkeypatch):
    monkeypatch.setattr(config, "TRIPS_PER_PAGE", 2)
    now = datetime.utcnow()
    for hours in range(30, 34):
        make_trip(world["owner"], world["car"], world["karachi"], world["lahore"],
                  depart=now + timedelta(hours=hours))

    first = trips.search_trips(session, TripFilters(), page=1)
    last = trips.search_trips(session, TripFilters(), page=3)
    assert first.pagination.total == 5
    assert first.pagination.total_pages == 3
    assert first.pagination.per_page == 2
    assert len(first.trips) == 2
    assert len(last.trips) == 1
    assert first.trips[0].id == world["trip"].id

    # pages below 1 are treated as the first page
    assert ids(trips.search_trips(session, TripFilters(), page=0)) == ids(first)


def test_search_rows_carry_names_and_rating(session, world, listing):
    row = next(t for t in trips.search_trips(session, TripFilters()).trips if t.id == listing["base"].id)
    assert row.departure_city_name == "Karachi"
    assert row.arrival_city_name == "Lahore"
    assert row.vehicle_type == VehicleType.CAR
    assert row.owner_name == "Owner"
    assert row.owner_rating == 0.0


# ────────────────────────── detail & owner views ────────────────────────────

def test_get_trip_detail_with_reviews(session, world, identity_of):
    owner, rider = identity_of(world["owner"]), identity_of(world["rider_a"])
    booking = bookings.create_booking(session, rider, world["trip"].id, 1)
    bookings.confirm_booking(session, owner, booking.id)
    bookings.complete_booking(session, owner, booking.id)
    reviews.submit_review(session, rider, booking.id, 4, "Smooth ride")

    detail = trips.get_trip(session, world["trip"].id)
    assert detail.owner_rating == 4.0
    assert detail.total_reviews == 1
    assert detail.reviews[0].reviewer_name == "Rider A"
    assert detail.vehicle_plate_number == world["car"].plate_number
    assert detail.owner_phone == world["owner"].phone
    assert detail.total_bookings == 1

    with pytest.raises(NotFound):
        trips.get_trip(session, 9999)


def test_my_trips_counts(session, world, make_trip, identity_of):
    owner = identity_of(world["owner"])
    bookings.create_booking(session, identity_of(world["rider_a"]), world["trip"].id, 1)
    b = bookings.create_booking(session, identity_of(world["rider_b"]), world["trip"].id, 1)
    bookings.confirm_booking(session, owner, b.id)
    make_trip(world["owner"], world["car"], world["karachi"], world["lahore"], status=TripStatus.CANCELLED)

    active = trips.my_trips(session, owner)
    assert [t.id for t in active] == [world["trip"].id]
    assert active[0].booking_count == 2
    assert active[0].pending_bookings == 1
    assert len(trips.my_trips(session, owner, "all")) == 2

    with pytest.raises(InvalidArgument):
        trips.my_trips(session, owner, "bogus")


# ────────────────────────── update ──────────────────────────────────────────

def test_update_seats_keeps_held_seats(session, world, identity_of):
    owner = identity_of(world["owner"])
    trip = world["trip"]
    bookings.create_booking(session, identity_of(world["rider_a"]), trip.id, 3)

    trip = trips.update_trip(session, owner, trip.id, TripUpdate(seats_total=3))
    assert (trip.seats_total, trip.seats_left) == (3, 0)

    with pytest.raises(InvalidArgument):
        trips.update_trip(session, owner, trip.id, TripUpdate(seats_total=2))
    with pytest.raises(InvalidArgument):
        trips.update_trip(session, owner, trip.id, TripUpdate(seats_total=5))   # car seats 4

    trip = trips.update_trip(session, owner, trip.id, TripUpdate(seats_total=4, notes="AC car"))
    assert (trip.seats_total, trip.seats_left, trip.notes) == (4, 1, "AC car")


def test_update_trip_guards(session, world, identity_of):
    owner = identity_of(world["owner"])
    trip = world["trip"]
    with pytest.raises(InvalidArgument):
        trips.update_trip(session, owner, trip.id, TripUpdate())
    with pytest.raises(Unauthorized):
        trips.update_trip(session, identity_of(world["rider_a"]), trip.id, TripUpdate(notes="x"))
    with pytest.raises(InvalidArgument):
        trips.update_trip(session, owner, trip.id,
                          TripUpdate(depart_datetime=datetime.utcnow() - timedelta(hours=1)))

    trips.cancel_trip(session, owner, trip.id)
    with pytest.raises(InvalidState):
        trips.update_trip(session, owner, trip.id, TripUpdate(notes="x"))


# ────────────────────────── cancel ──────────────────────────────────────────

def test_cancel_trip_cascades_to_bookings(session, world, identity_of):
    owner = identity_of(world["owner"])
    trip = world["trip"]
    pending = bookings.create_booking(session, identity_of(world["rider_a"]), trip.id, 1)
    confirmed = bookings.create_booking(session, identity_of(world["rider_b"]), trip.id, 2)
    bookings.confirm_booking(session, owner, confirmed.id)

    trip, cancelled = trips.cancel_trip(session, owner, trip.id)
    assert cancelled == 2
    assert trip.status == TripStatus.CANCELLED
    assert trip.seats_left == trip.seats_total == 4

    for b in (pending, confirmed):
        row = session.get(Booking, b.id)
        session.refresh(row)
        assert row.status == BookingStatus.CANCELLED
        assert row.cancellation_reason == "Trip cancelled by owner"

    notified = session.exec(select(Notification.user_id).where(Notification.type == "trip_cancelled")).all()
    assert sorted(notified) == sorted([world["rider_a"].id, world["rider_b"].id])


def test_cancel_trip_twice_or_by_stranger(session, world, identity_of):
    owner = identity_of(world["owner"])
    with pytest.raises(Unauthorized):
        trips.cancel_trip(session, identity_of(world["rider_a"]), world["trip"].id)
    trips.cancel_trip(session, owner, world["trip"].id)
    with pytest.raises(InvalidState):
        trips.cancel_trip(session, owner, world["trip"].id)
