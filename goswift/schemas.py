from typing import Optional, List, Dict
from datetime import date, datetime
from pydantic import BaseModel

from .models import BookingStatus, TripStatus, UserRole, VehicleStatus, VehicleType


# ------------------------------------------------------------------
# Base class for models read straight off SQLModel rows
# ------------------------------------------------------------------
class ORMModel(BaseModel):
    model_config = {"from_attributes": True}


class MessageResponse(BaseModel):
    success: bool = True
    message: str


# ------------------------------------------------------------------
# Accounts
# ------------------------------------------------------------------
class SignupRequest(BaseModel):
    name: str
    email: str
    phone: str
    password: str
    confirm_password: str
    role: str


class SignupResponse(BaseModel):
    success: bool = True
    message: str
    user_id: int
    auto_verified: bool


class LoginRequest(BaseModel):
    email: str          # email address or phone number
    password: str


class ForgotPasswordRequest(BaseModel):
    email: str


class ResetPasswordRequest(BaseModel):
    token: str
    password: str
    confirm_password: str


class UserRead(ORMModel):
    id: int
    name: str
    email: str
    phone: str
    role: UserRole
    is_verified: bool
    profile_photo: Optional[str] = None


class UserUpdate(ORMModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    profile_photo: Optional[str] = None


class LoginResponse(BaseModel):
    success: bool = True
    message: str = "Login successful"
    token: str
    expires_at: datetime
    user: UserRead


class AuthStatus(BaseModel):
    authenticated: bool
    user: Optional[UserRead] = None


# ------------------------------------------------------------------
# Places
# ------------------------------------------------------------------
class CityRead(ORMModel):
    id: int
    name: str


class AreaRead(ORMModel):
    id: int
    city_id: int
    name: str


# ------------------------------------------------------------------
# Vehicles
# ------------------------------------------------------------------
class VehicleRead(ORMModel):
    id: int
    owner_id: int
    type: VehicleType
    make: str
    model: str
    year: int
    plate_number: Optional[str] = None   # hidden from non-owners
    color: Optional[str] = None
    capacity: int
    city_id: int
    area_ids: List[int] = []
    docs: Optional[Dict[str, str]] = None   # hidden from non-owners
    photos: List[str] = []
    status: VehicleStatus
    review_notes: Optional[str] = None
    created_at: datetime


class VehicleDetail(VehicleRead):
    city_name: Optional[str] = None
    owner_name: Optional[str] = None
    total_trips: int = 0


class VehicleUpdate(BaseModel):
    color: Optional[str] = None
    capacity: Optional[int] = None
    city_id: Optional[int] = None
    area_ids: Optional[List[int]] = None


class VehicleReview(BaseModel):
    status: VehicleStatus
    notes: str = ""


class VehicleRegistered(BaseModel):
    success: bool = True
    message: str
    vehicle_id: int
    status: VehicleStatus


# ------------------------------------------------------------------
# Trips
# ------------------------------------------------------------------
class TripCreate(BaseModel):
    vehicle_id: int
    departure_city_id: int
    departure_area_id: Optional[int] = None
    arrival_city_id: int
    arrival_area_id: Optional[int] = None
    depart_datetime: datetime
    seats_total: int
    price_per_seat: float
    luggage_allowance: Optional[str] = None
    notes: Optional[str] = None
    allow_partial_booking: bool = True
    is_recurring: bool = False
    recurring_pattern: Optional[str] = None


class TripUpdate(BaseModel):
    depart_datetime: Optional[datetime] = None
    seats_total: Optional[int] = None
    price_per_seat: Optional[float] = None
    luggage_allowance: Optional[str] = None
    notes: Optional[str] = None


class TripRead(ORMModel):
    id: int
    owner_id: int
    vehicle_id: Optional[int] = None
    departure_city_id: int
    departure_area_id: Optional[int] = None
    arrival_city_id: int
    arrival_area_id: Optional[int] = None
    depart_datetime: datetime
    seats_total: int
    seats_left: int
    price_per_seat: float
    luggage_allowance: Optional[str] = None
    notes: Optional[str] = None
    allow_partial_booking: bool
    is_recurring: bool
    recurring_pattern: Optional[str] = None
    status: TripStatus
    created_at: datetime


class TripReadFull(TripRead):
    vehicle_type: Optional[VehicleType] = None
    vehicle_make: Optional[str] = None
    vehicle_model: Optional[str] = None
    vehicle_year: Optional[int] = None
    vehicle_color: Optional[str] = None
    vehicle_capacity: Optional[int] = None
    departure_city_name: Optional[str] = None
    departure_area_name: Optional[str] = None
    arrival_city_name: Optional[str] = None
    arrival_area_name: Optional[str] = None
    owner_name: Optional[str] = None
    owner_photo: Optional[str] = None
    owner_rating: float = 0.0
    total_bookings: int = 0


class ReviewRead(ORMModel):
    id: int
    booking_id: int
    reviewer_id: int
    reviewed_user_id: int
    rating: int
    comment: Optional[str] = None
    created_at: datetime
    reviewer_name: Optional[str] = None


class TripDetail(TripReadFull):
    vehicle_plate_number: Optional[str] = None
    vehicle_photos: List[str] = []
    owner_phone: Optional[str] = None
    total_reviews: int = 0
    reviews: List[ReviewRead] = []


class OwnerTrip(TripReadFull):
    booking_count: int = 0
    pending_bookings: int = 0


class TripFilters(BaseModel):
    from_city: Optional[int] = None
    from_area: Optional[int] = None
    to_city: Optional[int] = None
    to_area: Optional[int] = None
    travel_date: Optional[date] = None
    seats: Optional[int] = None
    vehicle_type: Optional[VehicleType] = None
    max_price: Optional[float] = None


class Pagination(BaseModel):
    page: int
    per_page: int
    total: int
    total_pages: int


class TripSearchResult(BaseModel):
    success: bool = True
    trips: List[TripReadFull]
    pagination: Pagination


# ------------------------------------------------------------------
# Bookings
# ------------------------------------------------------------------
class BookingCreate(BaseModel):
    trip_id: int
    seats_booked: int


class BookingCancel(BaseModel):
    reason: Optional[str] = None


class BookingRead(ORMModel):
    id: int
    trip_id: int
    rider_id: int
    seats_booked: int
    total_price: float
    booking_code: str
    status: BookingStatus
    cancellation_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class RiderBooking(BookingRead):
    depart_datetime: Optional[datetime] = None
    price_per_seat: Optional[float] = None
    trip_notes: Optional[str] = None
    vehicle_type: Optional[VehicleType] = None
    vehicle_make: Optional[str] = None
    vehicle_model: Optional[str] = None
    vehicle_plate_number: Optional[str] = None
    departure_city_name: Optional[str] = None
    departure_area_name: Optional[str] = None
    arrival_city_name: Optional[str] = None
    arrival_area_name: Optional[str] = None
    owner_id: Optional[int] = None
    owner_name: Optional[str] = None
    owner_phone: Optional[str] = None
    owner_photo: Optional[str] = None


class BookingRequest(BookingRead):
    depart_datetime: Optional[datetime] = None
    price_per_seat: Optional[float] = None
    departure_city_name: Optional[str] = None
    departure_area_name: Optional[str] = None
    arrival_city_name: Optional[str] = None
    arrival_area_name: Optional[str] = None
    rider_name: Optional[str] = None
    rider_phone: Optional[str] = None
    rider_photo: Optional[str] = None


# ------------------------------------------------------------------
# Reviews & notifications
# ------------------------------------------------------------------
class ReviewCreate(BaseModel):
    booking_id: int
    rating: int
    comment: Optional[str] = None


class NotificationRead(ORMModel):
    id: int
    type: str
    title: str
    message: str
    link: Optional[str] = None
    is_read: bool
    created_at: datetime


class UnreadCount(BaseModel):
    count: int
