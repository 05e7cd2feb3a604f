import itertools
from datetime import datetime, timedelta

import pytest
from httpx import ASGITransport, AsyncClient
from sqlmodel import Session, SQLModel, create_engine

from goswift import config, database
from goswift import models  # noqa: F401  (registers tables on the metadata)
from goswift.auth import Identity, create_session, hash_password
from goswift.models import (
    Area,
    City,
    Trip,
    TripStatus,
    User,
    UserRole,
    Vehicle,
    VehicleStatus,
    VehicleType,
)

PASSWORD = "secret123"


# ────────────────────────── fixtures ────────────────────────────────────────

@pytest.fixture(autouse=True)
def engine(tmp_path, monkeypatch):
    """Each test runs against a fresh SQLite file."""
    new_engine = create_engine(
        f"sqlite:///{tmp_path}/test.db", echo=False, connect_args={"check_same_thread": False}
    )
    monkeypatch.setattr(database, "engine", new_engine)
    monkeypatch.setattr(config, "UPLOAD_DIR", str(tmp_path / "uploads"))
    monkeypatch.setattr(config, "AUTO_VERIFY_USERS", True)
    monkeypatch.setattr(config, "AUTO_VERIFY_VEHICLES", False)
    SQLModel.metadata.create_all(new_engine)
    yield new_engine
    SQLModel.metadata.drop_all(new_engine)
    new_engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as s:
        yield s


@pytest.fixture
def app(engine):
    from goswift.main import create_app
    return create_app()


@pytest.fixture
def client(app):
    # Starlette is an ASGI app, so httpx talks to it through ASGITransport
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver")


# ────────────────────────── factories ───────────────────────────────────────

@pytest.fixture
def identity_of():
    def _identity(user: User) -> Identity:
        return Identity(user_id=user.id, role=user.role)
    return _identity


@pytest.fixture
def make_user(session):
    counter = itertools.count(1)

    def _make(role=UserRole.RIDER, name=None, verified=True):
        n = next(counter)
        user = User(
            name=name or f"User {n}",
            email=f"user{n}@mail.com",
            phone=f"0300{n:07d}",
            password_hash=hash_password(PASSWORD),
            role=role,
            is_verified=verified,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user
    return _make


@pytest.fixture
def make_city(session):
    def _make(name, areas=()):
        city = City(name=name)
        session.add(city)
        session.commit()
        session.refresh(city)
        rows = []
        for area_name in areas:
            area = Area(city_id=city.id, name=area_name)
            session.add(area)
            session.commit()
            session.refresh(area)
            rows.append(area)
        return city, rows
    return _make


@pytest.fixture
def make_vehicle(session):
    counter = itertools.count(1)

    def _make(owner, city, capacity=4, status=VehicleStatus.VERIFIED, type=VehicleType.CAR):
        n = next(counter)
        vehicle = Vehicle(
            owner_id=owner.id,
            type=type,
            make="Toyota",
            model="Corolla",
            year=2020,
            plate_number=f"ABC-{n:03d}",
            color="White",
            capacity=capacity,
            city_id=city.id,
            docs={"registration_doc": "doc.pdf"},
            photos=["photo.jpg"],
            status=status,
        )
        session.add(vehicle)
        session.commit()
        session.refresh(vehicle)
        return vehicle
    return _make


@pytest.fixture
def make_trip(session):
    def _make(
        owner,
        vehicle,
        from_city,
        to_city,
        seats=4,
        price=500.0,
        depart=None,
        status=TripStatus.ACTIVE,
        from_area=None,
        to_area=None,
    ):
        trip = Trip(
            owner_id=owner.id,
            vehicle_id=vehicle.id if vehicle else None,
            departure_city_id=from_city.id,
            departure_area_id=from_area.id if from_area else None,
            arrival_city_id=to_city.id,
            arrival_area_id=to_area.id if to_area else None,
            depart_datetime=depart or datetime.utcnow() + timedelta(days=1),
            seats_total=seats,
            seats_left=seats,
            price_per_seat=price,
            status=status,
        )
        session.add(trip)
        session.commit()
        session.refresh(trip)
        return trip
    return _make


@pytest.fixture
def world(make_user, make_city, make_vehicle, make_trip):
    """An owner with a verified car and one four-seat Karachi to Lahore trip, plus two riders."""
    owner = make_user(UserRole.OWNER, name="Owner")
    rider_a = make_user(UserRole.RIDER, name="Rider A")
    rider_b = make_user(UserRole.RIDER, name="Rider B")
    karachi, _ = make_city("Karachi", ["Clifton"])
    lahore, _ = make_city("Lahore", ["Gulberg"])
    car = make_vehicle(owner, karachi)
    trip = make_trip(owner, car, karachi, lahore, seats=4, price=500.0)
    return {
        "owner": owner,
        "rider_a": rider_a,
        "rider_b": rider_b,
        "karachi": karachi,
        "lahore": lahore,
        "car": car,
        "trip": trip,
    }


@pytest.fixture
def bearer(session):
    def _headers(user):
        token = create_session(session, user).token
        return {"Authorization": f"Bearer {token}"}
    return _headers
