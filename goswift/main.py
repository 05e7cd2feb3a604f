# goswift/main.py
import logging
import os
from datetime import date as date_type
from typing import List, Optional

from fastapi import Depends, FastAPI, File, Form, Query, Request, Response, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from . import accounts, bookings, config, notifications, places, reviews, trips, vehicles
from . import schemas as s
from .auth import Identity, client_ip, get_identity, get_optional_identity, request_token, require_role
from .database import get_session, init_db
from .errors import ServiceError
from .models import UserRole, VehicleStatus, VehicleType

logger = logging.getLogger(__name__)


def _error(status_code: int, message: str, code: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message, "code": code})


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    loc = first.get("loc") or ("body",)
    field = str(loc[-1])
    if first.get("type") == "missing":
        return f"Field '{field}' is required"
    return f"Invalid value for '{field}': {first.get('msg', 'invalid')}"


def create_app() -> FastAPI:
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    app = FastAPI(title="Go Swift API", version=config.APP_VERSION)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # uploaded documents and photos
    os.makedirs(config.UPLOAD_DIR, exist_ok=True)
    app.mount("/uploads", StaticFiles(directory=config.UPLOAD_DIR), name="uploads")

    @app.on_event("startup")
    def _startup():
        init_db()
        logger.info("Go Swift API %s started", config.APP_VERSION)

    # ---------------- Errors ----------------
    @app.exception_handler(ServiceError)
    async def _service_error(request: Request, exc: ServiceError):
        return _error(exc.status_code, exc.message, exc.code)

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        return _error(400, _validation_message(exc), "invalid_argument")

    @app.exception_handler(SQLAlchemyError)
    async def _database_error(request: Request, exc: SQLAlchemyError):
        logger.error("Database error on %s %s", request.method, request.url.path, exc_info=exc)
        return _error(500, "Database error occurred", "internal")

    # ---------------- Health ----------------
    @app.get("/api/health")
    def health():
        return {"status": "ok", "version": config.APP_VERSION}

    # ---------------- Auth ------------------
    @app.post("/api/auth/signup", response_model=s.SignupResponse, status_code=201)
    def signup(payload: s.SignupRequest, request: Request, session: Session = Depends(get_session)):
        user = accounts.signup(session, payload, client_ip(request))
        message = (
            "Registration successful! You can now login."
            if user.is_verified
            else "Registration successful! Please check your email to verify your account."
        )
        return s.SignupResponse(message=message, user_id=user.id, auto_verified=user.is_verified)

    @app.post("/api/auth/login", response_model=s.LoginResponse)
    def login(
        payload: s.LoginRequest,
        request: Request,
        response: Response,
        session: Session = Depends(get_session),
    ):
        row, user = accounts.login(session, payload.email, payload.password, client_ip(request))
        response.set_cookie(
            config.SESSION_COOKIE,
            row.token,
            max_age=config.SESSION_TTL_HOURS * 3600,
            httponly=True,
            samesite="lax",
        )
        return s.LoginResponse(token=row.token, expires_at=row.expires_at, user=s.UserRead.model_validate(user))

    @app.post("/api/auth/logout", response_model=s.MessageResponse)
    def logout(
        request: Request,
        response: Response,
        identity: Optional[Identity] = Depends(get_optional_identity),
        session: Session = Depends(get_session),
    ):
        accounts.logout(session, request_token(request), identity)
        response.delete_cookie(config.SESSION_COOKIE)
        return s.MessageResponse(message="Logged out successfully")

    @app.get("/api/auth/verify-email", response_model=s.MessageResponse)
    def verify_email(request: Request, token: str = Query(""), session: Session = Depends(get_session)):
        accounts.verify_email(session, token, client_ip(request))
        return s.MessageResponse(message="Email verified successfully. You can now login.")

    @app.get("/api/auth/check", response_model=s.AuthStatus)
    def check(
        identity: Optional[Identity] = Depends(get_optional_identity),
        session: Session = Depends(get_session),
    ):
        return accounts.check_auth(session, identity)

    @app.post("/api/auth/forgot-password", response_model=s.MessageResponse)
    def forgot_password(payload: s.ForgotPasswordRequest, session: Session = Depends(get_session)):
        accounts.forgot_password(session, payload.email)
        return s.MessageResponse(message="If an account exists with this email, a reset link has been sent.")

    @app.post("/api/auth/reset-password", response_model=s.MessageResponse)
    def reset_password(payload: s.ResetPasswordRequest, request: Request, session: Session = Depends(get_session)):
        accounts.reset_password(session, payload.token, payload.password, payload.confirm_password, client_ip(request))
        return s.MessageResponse(message="Password reset successfully. Please login with your new password.")

    # ---------------- Users -----------------
    @app.get("/api/users/me", response_model=s.UserRead)
    def me(identity: Identity = Depends(get_identity), session: Session = Depends(get_session)):
        return s.UserRead.model_validate(accounts.get_user(session, identity))

    @app.patch("/api/users/me", response_model=s.UserRead)
    def update_me(
        payload: s.UserUpdate,
        identity: Identity = Depends(get_identity),
        session: Session = Depends(get_session),
    ):
        return s.UserRead.model_validate(accounts.update_profile(session, identity, payload))

    # ---------------- Places ----------------
    @app.get("/api/cities", response_model=List[s.CityRead])
    def cities(session: Session = Depends(get_session)):
        return [s.CityRead.model_validate(c) for c in places.list_cities(session)]

    @app.get("/api/cities/{city_id}/areas", response_model=List[s.AreaRead])
    def areas(city_id: int, session: Session = Depends(get_session)):
        return [s.AreaRead.model_validate(a) for a in places.list_areas(session, city_id)]

    # --------------- Vehicles ---------------
    @app.post("/api/vehicles", response_model=s.VehicleRegistered, status_code=201)
    def register_vehicle(
        type: Optional[str] = Form(None),
        make: Optional[str] = Form(None),
        model: Optional[str] = Form(None),
        year: Optional[str] = Form(None),
        plate_number: Optional[str] = Form(None),
        color: Optional[str] = Form(None),
        capacity: Optional[str] = Form(None),
        city_id: Optional[str] = Form(None),
        area_ids: Optional[str] = Form(None),
        registration_doc: Optional[UploadFile] = File(None),
        photos: Optional[List[UploadFile]] = File(None),
        identity: Identity = Depends(require_role(UserRole.OWNER)),
        session: Session = Depends(get_session),
    ):
        fields = {
            "type": type, "make": make, "model": model, "year": year,
            "plate_number": plate_number, "color": color, "capacity": capacity,
            "city_id": city_id, "area_ids": area_ids,
        }
        v = vehicles.register_vehicle(session, identity, fields, registration_doc, photos or [])
        message = (
            "Vehicle registered successfully!"
            if v.status == VehicleStatus.VERIFIED
            else "Vehicle registered successfully! Awaiting admin verification."
        )
        return s.VehicleRegistered(message=message, vehicle_id=v.id, status=v.status)

    @app.get("/api/vehicles/mine", response_model=List[s.VehicleDetail])
    def list_my_vehicles(identity: Identity = Depends(get_identity), session: Session = Depends(get_session)):
        return vehicles.my_vehicles(session, identity)

    @app.get("/api/vehicles/{vehicle_id}", response_model=s.VehicleDetail)
    def vehicle_detail(
        vehicle_id: int,
        identity: Optional[Identity] = Depends(get_optional_identity),
        session: Session = Depends(get_session),
    ):
        return vehicles.get_vehicle(session, identity, vehicle_id)

    @app.patch("/api/vehicles/{vehicle_id}", response_model=s.VehicleRead)
    def update_vehicle(
        vehicle_id: int,
        payload: s.VehicleUpdate,
        identity: Identity = Depends(get_identity),
        session: Session = Depends(get_session),
    ):
        return s.VehicleRead.model_validate(vehicles.update_vehicle(session, identity, vehicle_id, payload))

    @app.delete("/api/vehicles/{vehicle_id}", response_model=s.MessageResponse)
    def delete_vehicle(
        vehicle_id: int,
        identity: Identity = Depends(get_identity),
        session: Session = Depends(get_session),
    ):
        vehicles.delete_vehicle(session, identity, vehicle_id)
        return s.MessageResponse(message="Vehicle deleted successfully")

    @app.post("/api/vehicles/{vehicle_id}/review", response_model=s.VehicleRead)
    def review_vehicle(
        vehicle_id: int,
        payload: s.VehicleReview,
        identity: Identity = Depends(require_role(UserRole.ADMIN)),
        session: Session = Depends(get_session),
    ):
        v = vehicles.review_vehicle(session, identity, vehicle_id, payload.status, payload.notes)
        return s.VehicleRead.model_validate(v)

    # ---------------- Trips -----------------
    @app.post("/api/trips", response_model=s.TripRead, status_code=201)
    def create_trip(
        payload: s.TripCreate,
        identity: Identity = Depends(require_role(UserRole.OWNER)),
        session: Session = Depends(get_session),
    ):
        return s.TripRead.model_validate(trips.create_trip(session, identity, payload))

    @app.get("/api/trips", response_model=s.TripSearchResult)
    def search_trips(
        from_city: Optional[int] = None,
        from_area: Optional[int] = None,
        to_city: Optional[int] = None,
        to_area: Optional[int] = None,
        date: Optional[date_type] = None,
        seats: Optional[int] = None,
        vehicle_type: Optional[VehicleType] = None,
        max_price: Optional[float] = None,
        sort: Optional[str] = None,
        page: int = 1,
        session: Session = Depends(get_session),
    ):
        filters = s.TripFilters(
            from_city=from_city,
            from_area=from_area,
            to_city=to_city,
            to_area=to_area,
            travel_date=date,
            seats=seats,
            vehicle_type=vehicle_type,
            max_price=max_price,
        )
        return trips.search_trips(session, filters, sort=sort, page=page)

    @app.get("/api/trips/mine", response_model=List[s.OwnerTrip])
    def list_my_trips(
        status: str = "active",
        identity: Identity = Depends(get_identity),
        session: Session = Depends(get_session),
    ):
        return trips.my_trips(session, identity, status)

    @app.get("/api/trips/{trip_id}", response_model=s.TripDetail)
    def trip_detail(trip_id: int, session: Session = Depends(get_session)):
        return trips.get_trip(session, trip_id)

    @app.patch("/api/trips/{trip_id}", response_model=s.TripRead)
    def update_trip(
        trip_id: int,
        payload: s.TripUpdate,
        identity: Identity = Depends(get_identity),
        session: Session = Depends(get_session),
    ):
        return s.TripRead.model_validate(trips.update_trip(session, identity, trip_id, payload))

    @app.post("/api/trips/{trip_id}/cancel")
    def cancel_trip(
        trip_id: int,
        identity: Identity = Depends(get_identity),
        session: Session = Depends(get_session),
    ):
        trip, cancelled = trips.cancel_trip(session, identity, trip_id)
        return {
            "success": True,
            "message": "Trip cancelled successfully",
            "trip": s.TripRead.model_validate(trip),
            "cancelled_bookings": cancelled,
        }

    # --------------- Bookings ---------------
    @app.post("/api/bookings", response_model=s.BookingRead, status_code=201)
    def create_booking(
        payload: s.BookingCreate,
        identity: Identity = Depends(get_identity),
        session: Session = Depends(get_session),
    ):
        b = bookings.create_booking(session, identity, payload.trip_id, payload.seats_booked)
        return s.BookingRead.model_validate(b)

    @app.get("/api/bookings/mine", response_model=List[s.RiderBooking])
    def list_my_bookings(
        status: str = "all",
        identity: Identity = Depends(get_identity),
        session: Session = Depends(get_session),
    ):
        return bookings.my_bookings(session, identity, status)

    @app.get("/api/bookings/requests", response_model=List[s.BookingRequest])
    def list_booking_requests(
        status: str = "pending",
        identity: Identity = Depends(get_identity),
        session: Session = Depends(get_session),
    ):
        return bookings.booking_requests(session, identity, status)

    @app.post("/api/bookings/{booking_id}/confirm", response_model=s.BookingRead)
    def confirm_booking(
        booking_id: int,
        identity: Identity = Depends(get_identity),
        session: Session = Depends(get_session),
    ):
        return s.BookingRead.model_validate(bookings.confirm_booking(session, identity, booking_id))

    @app.post("/api/bookings/{booking_id}/cancel", response_model=s.BookingRead)
    def cancel_booking(
        booking_id: int,
        payload: Optional[s.BookingCancel] = None,
        identity: Identity = Depends(get_identity),
        session: Session = Depends(get_session),
    ):
        reason = payload.reason if payload else None
        return s.BookingRead.model_validate(bookings.cancel_booking(session, identity, booking_id, reason))

    @app.post("/api/bookings/{booking_id}/complete", response_model=s.BookingRead)
    def complete_booking(
        booking_id: int,
        identity: Identity = Depends(get_identity),
        session: Session = Depends(get_session),
    ):
        return s.BookingRead.model_validate(bookings.complete_booking(session, identity, booking_id))

    # --------------- Reviews ----------------
    @app.post("/api/reviews", response_model=s.ReviewRead, status_code=201)
    def submit_review(
        payload: s.ReviewCreate,
        identity: Identity = Depends(get_identity),
        session: Session = Depends(get_session),
    ):
        r = reviews.submit_review(session, identity, payload.booking_id, payload.rating, payload.comment)
        return s.ReviewRead.model_validate(r)

    # ------------- Notifications ------------
    @app.get("/api/notifications", response_model=List[s.NotificationRead])
    def list_notifications(
        unread_only: bool = False,
        identity: Identity = Depends(get_identity),
        session: Session = Depends(get_session),
    ):
        rows = notifications.list_notifications(session, identity, unread_only)
        return [s.NotificationRead.model_validate(n) for n in rows]

    @app.get("/api/notifications/unread-count", response_model=s.UnreadCount)
    def notifications_unread(identity: Identity = Depends(get_identity), session: Session = Depends(get_session)):
        return s.UnreadCount(count=notifications.unread_count(session, identity))

    @app.post("/api/notifications/{notification_id}/read", response_model=s.NotificationRead)
    def read_notification(
        notification_id: int,
        identity: Identity = Depends(get_identity),
        session: Session = Depends(get_session),
    ):
        return s.NotificationRead.model_validate(notifications.mark_read(session, identity, notification_id))

    @app.post("/api/notifications/read-all")
    def read_all_notifications(identity: Identity = Depends(get_identity), session: Session = Depends(get_session)):
        return {"success": True, "updated": notifications.mark_all_read(session, identity)}

    return app

app = create_app()
