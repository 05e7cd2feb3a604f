"""
Vehicle registration, owner management and admin review.
"""

import logging
from typing import Dict, List, Optional

from fastapi import UploadFile
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from . import config, notifications
from .auth import Identity
from .errors import Conflict, InvalidArgument, InvalidState, NotFound, Unauthorized
from .models import City, Trip, TripStatus, User, UserRole, Vehicle, VehicleStatus, VehicleType
from .places import require_area, require_city
from .schemas import VehicleDetail, VehicleRead, VehicleUpdate
from .uploads import PHOTO_TYPES, discard_upload, save_upload
from .validation import parse_area_ids, require_fields, validate_capacity, validate_vehicle_year

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("type", "make", "model", "year", "plate_number", "capacity", "city_id")
MAX_PHOTOS = 5


def _int_field(fields: Dict[str, Optional[str]], name: str) -> int:
    try:
        return int(str(fields[name]).strip())
    except (TypeError, ValueError):
        raise InvalidArgument(f"Field '{name}' must be a whole number")


def _check_areas(session: Session, area_ids: List[int], city_id: int) -> None:
    for area_id in area_ids:
        require_area(session, area_id, city_id)


def register_vehicle(
    session: Session,
    identity: Identity,
    fields: Dict[str, Optional[str]],
    registration_doc: Optional[UploadFile],
    photos: Optional[List[UploadFile]] = None,
) -> Vehicle:
    if identity.role != UserRole.OWNER:
        raise Unauthorized("Insufficient permissions")
    require_fields(fields, REQUIRED_FIELDS)
    try:
        vtype = VehicleType(fields["type"].strip())
    except ValueError:
        raise InvalidArgument("Invalid vehicle type")
    year = validate_vehicle_year(_int_field(fields, "year"))
    capacity = validate_capacity(_int_field(fields, "capacity"))
    city_id = _int_field(fields, "city_id")
    require_city(session, city_id)
    area_ids = parse_area_ids(fields.get("area_ids"))
    _check_areas(session, area_ids, city_id)

    plate = fields["plate_number"].strip().upper()
    if session.exec(select(Vehicle).where(Vehicle.plate_number == plate)).first():
        raise Conflict("Vehicle with this plate number already registered")

    if registration_doc is None or not registration_doc.filename:
        raise InvalidArgument("Registration document is required")
    try:
        doc_name = save_upload(registration_doc)
    except InvalidArgument as e:
        raise InvalidArgument(f"Registration document: {e.message}")

    stored_photos: List[str] = []
    for photo in (photos or [])[:MAX_PHOTOS]:
        try:
            stored_photos.append(save_upload(photo, PHOTO_TYPES))
        except InvalidArgument as e:
            logger.warning("Skipping vehicle photo %s: %s", photo.filename, e.message)

    vehicle = Vehicle(
        owner_id=identity.user_id,
        type=vtype,
        make=fields["make"].strip(),
        model=fields["model"].strip(),
        year=year,
        plate_number=plate,
        color=(fields.get("color") or "").strip() or None,
        capacity=capacity,
        city_id=city_id,
        area_ids=area_ids,
        docs={"registration_doc": doc_name},
        photos=stored_photos,
        status=VehicleStatus.VERIFIED if config.AUTO_VERIFY_VEHICLES else VehicleStatus.PENDING,
    )
    session.add(vehicle)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        for name in [doc_name, *stored_photos]:
            discard_upload(name)
        raise Conflict("Vehicle with this plate number already registered")
    session.refresh(vehicle)

    logger.info("Vehicle %s registered by owner %s (%s)", vehicle.id, identity.user_id, vehicle.status.value)
    notifications.log_activity(identity.user_id, "vehicle_registered", f"Vehicle ID: {vehicle.id}", identity.ip_address)
    return vehicle


def _detail(session: Session, vehicle: Vehicle, reveal: bool = True) -> VehicleDetail:
    city = session.get(City, vehicle.city_id)
    owner = session.get(User, vehicle.owner_id)
    total_trips = session.exec(select(func.count(Trip.id)).where(Trip.vehicle_id == vehicle.id)).one()
    data = VehicleRead.model_validate(vehicle).model_dump()
    if not reveal:
        # documents and plate number are for the owner and admins only
        data["docs"] = None
        data["plate_number"] = None
    return VehicleDetail(
        **data,
        city_name=city.name if city else None,
        owner_name=owner.name if owner else None,
        total_trips=int(total_trips or 0),
    )


def my_vehicles(session: Session, identity: Identity) -> List[VehicleDetail]:
    rows = session.exec(
        select(Vehicle)
        .where(Vehicle.owner_id == identity.user_id)
        .order_by(Vehicle.created_at.desc(), Vehicle.id.desc())
    ).all()
    return [_detail(session, v) for v in rows]


def get_vehicle(session: Session, identity: Optional[Identity], vehicle_id: int) -> VehicleDetail:
    vehicle = session.get(Vehicle, vehicle_id)
    if not vehicle:
        raise NotFound("Vehicle not found")
    reveal = identity is not None and (identity.user_id == vehicle.owner_id or identity.is_admin)
    return _detail(session, vehicle, reveal=reveal)


def _owned_vehicle(session: Session, identity: Identity, vehicle_id: int) -> Vehicle:
    vehicle = session.get(Vehicle, vehicle_id)
    if not vehicle or vehicle.owner_id != identity.user_id:
        raise Unauthorized("Vehicle not found or unauthorized")
    return vehicle


def update_vehicle(session: Session, identity: Identity, vehicle_id: int, payload: VehicleUpdate) -> Vehicle:
    vehicle = _owned_vehicle(session, identity, vehicle_id)
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        raise InvalidArgument("No fields to update")

    if "capacity" in changes:
        validate_capacity(changes["capacity"])
        offered = session.exec(
            select(func.max(Trip.seats_total)).where(
                (Trip.vehicle_id == vehicle.id) & (Trip.status == TripStatus.ACTIVE)
            )
        ).one()
        if offered and changes["capacity"] < offered:
            raise InvalidArgument(f"An active trip on this vehicle offers {offered} seats; capacity cannot be lower")
    city_id = changes.get("city_id", vehicle.city_id)
    if "city_id" in changes:
        require_city(session, city_id)
    if "area_ids" in changes or "city_id" in changes:
        _check_areas(session, changes.get("area_ids", vehicle.area_ids), city_id)

    for k, v in changes.items():
        setattr(vehicle, k, v)
    session.add(vehicle)
    session.commit()
    session.refresh(vehicle)
    notifications.log_activity(identity.user_id, "vehicle_updated", f"Vehicle ID: {vehicle.id}", identity.ip_address)
    return vehicle


def delete_vehicle(session: Session, identity: Identity, vehicle_id: int) -> None:
    vehicle = _owned_vehicle(session, identity, vehicle_id)
    active = session.exec(
        select(func.count(Trip.id)).where((Trip.vehicle_id == vehicle.id) & (Trip.status == TripStatus.ACTIVE))
    ).one()
    if active:
        raise Conflict("Cannot delete vehicle with active trips")

    # past trips stay on record without their vehicle
    session.exec(update(Trip).where(Trip.vehicle_id == vehicle.id).values(vehicle_id=None))
    session.delete(vehicle)
    session.commit()
    logger.info("Vehicle %s deleted by owner %s", vehicle_id, identity.user_id)
    notifications.log_activity(identity.user_id, "vehicle_deleted", f"Vehicle ID: {vehicle_id}", identity.ip_address)


def review_vehicle(
    session: Session,
    identity: Identity,
    vehicle_id: int,
    status: VehicleStatus,
    notes: str = "",
) -> Vehicle:
    if not identity.is_admin:
        raise Unauthorized("Admin access required")
    if status not in (VehicleStatus.VERIFIED, VehicleStatus.REJECTED):
        raise InvalidArgument("Status must be 'verified' or 'rejected'")
    vehicle = session.get(Vehicle, vehicle_id)
    if not vehicle:
        raise NotFound("Vehicle not found")
    current = vehicle.status
    if not current.can_become(status):
        raise InvalidState(f"Vehicle is already {current.value}")

    result = session.exec(
        update(Vehicle)
        .where((Vehicle.id == vehicle.id) & (Vehicle.status == current))
        .values(status=status, review_notes=notes.strip() or None)
    )
    if result.rowcount != 1:
        session.rollback()
        raise InvalidState("Vehicle was reviewed concurrently")
    session.commit()
    session.refresh(vehicle)

    logger.info("Vehicle %s %s by admin %s", vehicle.id, status.value, identity.user_id)
    if status == VehicleStatus.VERIFIED:
        notifications.notify(
            vehicle.owner_id,
            notifications.VEHICLE_VERIFIED,
            "Vehicle Verified",
            "Your vehicle has been verified! You can now post trips.",
            link="dashboard-owner",
        )
    else:
        notifications.notify(
            vehicle.owner_id,
            notifications.VEHICLE_REJECTED,
            "Vehicle Rejected",
            f"Your vehicle registration was rejected. Reason: {notes}",
            link="dashboard-owner",
        )
    notifications.log_activity(identity.user_id, f"vehicle_{status.value}", f"Vehicle ID: {vehicle.id}", identity.ip_address)
    return vehicle
