import enum
from typing import Optional, List, Dict
from datetime import datetime

import sqlalchemy as sa
from sqlalchemy import Column, Index, JSON, text
from sqlmodel import SQLModel, Field, UniqueConstraint


# ------------------------------------------------------------------
# Status / role enums
# ------------------------------------------------------------------
class UserRole(str, enum.Enum):
    OWNER = "owner"
    RIDER = "rider"
    ADMIN = "admin"


class VehicleType(str, enum.Enum):
    CAR = "Car"
    BIKE = "Bike"
    VAN = "Van"


class VehicleStatus(str, enum.Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"

    def can_become(self, target: "VehicleStatus") -> bool:
        return target in _VEHICLE_TRANSITIONS[self]


class TripStatus(str, enum.Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"

    @property
    def is_active(self) -> bool:
        """Pending and confirmed bookings hold seats on their trip."""
        return self in ACTIVE_BOOKING_STATUSES

    def can_become(self, target: "BookingStatus") -> bool:
        return target in _BOOKING_TRANSITIONS[self]

    @classmethod
    def sources_for(cls, target: "BookingStatus") -> List["BookingStatus"]:
        """Every status from which ``target`` is reachable in one step."""
        return [s for s in cls if s.can_become(target)]


_VEHICLE_TRANSITIONS = {
    VehicleStatus.PENDING: {VehicleStatus.VERIFIED, VehicleStatus.REJECTED},
    VehicleStatus.VERIFIED: set(),
    VehicleStatus.REJECTED: set(),
}

_BOOKING_TRANSITIONS = {
    BookingStatus.PENDING: {BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
    BookingStatus.CONFIRMED: {BookingStatus.COMPLETED, BookingStatus.CANCELLED},
    BookingStatus.CANCELLED: set(),
    BookingStatus.COMPLETED: set(),
}

ACTIVE_BOOKING_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)


def _enum_column(enum_cls, index: bool = False) -> Column:
    # store enum values ("pending"), not member names ("PENDING")
    return Column(
        sa.Enum(
            enum_cls,
            native_enum=False,
            length=16,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        index=index,
    )


# ------------------------------------------------------------------
# Accounts
# ------------------------------------------------------------------
class User(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("email"), UniqueConstraint("phone"))
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    email: str
    phone: str
    password_hash: str
    role: UserRole = Field(default=UserRole.RIDER, sa_column=_enum_column(UserRole))
    is_verified: bool = False
    verification_token: Optional[str] = Field(default=None, index=True)
    profile_photo: Optional[str] = None
    # datetimes are stored as naive UTC
    created_at: datetime = Field(default_factory=datetime.utcnow, sa_type=sa.DateTime)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_type=sa.DateTime)
    last_login_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime)


class UserSession(SQLModel, table=True):
    token: str = Field(primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow, sa_type=sa.DateTime)
    expires_at: datetime = Field(sa_type=sa.DateTime)


# ------------------------------------------------------------------
# Places
# ------------------------------------------------------------------
class City(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("name"),)
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str


class Area(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("city_id", "name"),)
    id: Optional[int] = Field(default=None, primary_key=True)
    city_id: int = Field(foreign_key="city.id", index=True)
    name: str


# ------------------------------------------------------------------
# Vehicles & trips
# ------------------------------------------------------------------
class Vehicle(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("plate_number"),)
    id: Optional[int] = Field(default=None, primary_key=True)
    owner_id: int = Field(foreign_key="user.id", index=True)
    type: VehicleType = Field(sa_column=_enum_column(VehicleType))
    make: str
    model: str
    year: int
    plate_number: str
    color: Optional[str] = None
    capacity: int
    city_id: int = Field(foreign_key="city.id")
    area_ids: List[int] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    docs: Dict[str, str] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    photos: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    status: VehicleStatus = Field(default=VehicleStatus.PENDING, sa_column=_enum_column(VehicleStatus, index=True))
    review_notes: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow, sa_type=sa.DateTime)


class Trip(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    owner_id: int = Field(foreign_key="user.id", index=True)
    vehicle_id: Optional[int] = Field(default=None, foreign_key="vehicle.id", index=True)
    departure_city_id: int = Field(foreign_key="city.id", index=True)
    departure_area_id: Optional[int] = Field(default=None, foreign_key="area.id")
    arrival_city_id: int = Field(foreign_key="city.id", index=True)
    arrival_area_id: Optional[int] = Field(default=None, foreign_key="area.id")
    depart_datetime: datetime = Field(index=True, sa_type=sa.DateTime)
    seats_total: int
    seats_left: int
    price_per_seat: float
    luggage_allowance: Optional[str] = None
    notes: Optional[str] = None
    allow_partial_booking: bool = True
    is_recurring: bool = False
    recurring_pattern: Optional[str] = None
    status: TripStatus = Field(default=TripStatus.ACTIVE, sa_column=_enum_column(TripStatus, index=True))
    created_at: datetime = Field(default_factory=datetime.utcnow, sa_type=sa.DateTime)


class Booking(SQLModel, table=True):
    __table_args__ = (
        # one pending/confirmed booking per rider per trip
        Index(
            "uq_booking_active_rider",
            "trip_id",
            "rider_id",
            unique=True,
            sqlite_where=text("status IN ('pending', 'confirmed')"),
            postgresql_where=text("status IN ('pending', 'confirmed')"),
        ),
    )
    id: Optional[int] = Field(default=None, primary_key=True)
    trip_id: int = Field(foreign_key="trip.id", index=True)
    rider_id: int = Field(foreign_key="user.id", index=True)
    seats_booked: int
    total_price: float
    booking_code: str = Field(index=True)
    status: BookingStatus = Field(default=BookingStatus.PENDING, sa_column=_enum_column(BookingStatus, index=True))
    cancellation_reason: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow, sa_type=sa.DateTime)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_type=sa.DateTime)


# ------------------------------------------------------------------
# Feedback & bookkeeping
# ------------------------------------------------------------------
class Review(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("booking_id"),)
    id: Optional[int] = Field(default=None, primary_key=True)
    booking_id: int = Field(foreign_key="booking.id")
    reviewer_id: int = Field(foreign_key="user.id")
    reviewed_user_id: int = Field(foreign_key="user.id", index=True)
    rating: int
    comment: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow, sa_type=sa.DateTime)


class Notification(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    type: str
    title: str
    message: str
    link: Optional[str] = None
    is_read: bool = False
    created_at: datetime = Field(default_factory=datetime.utcnow, sa_type=sa.DateTime)


class ActivityLog(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: Optional[int] = Field(default=None, foreign_key="user.id", index=True)
    action: str
    details: str = ""
    ip_address: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow, sa_type=sa.DateTime)
