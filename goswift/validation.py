import json
import re
from datetime import datetime, timezone
from typing import Any, Iterable, List, Mapping, Optional

from email_validator import EmailNotValidError, validate_email as _validate_email

from .errors import InvalidArgument

PHONE_RE = re.compile(r"^(\+92|0)?[0-9]{10}$")
MIN_PASSWORD_LENGTH = 8
MIN_VEHICLE_YEAR = 1990
MAX_CAPACITY = 20


def require_fields(data: Mapping[str, Any], names: Iterable[str]) -> None:
    for name in names:
        value = data.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise InvalidArgument(f"Field '{name}' is required")


def validate_email(email: str) -> str:
    """Return the normalized, lower-cased address."""
    try:
        info = _validate_email(email.strip(), check_deliverability=False)
    except EmailNotValidError:
        raise InvalidArgument("Invalid email address")
    return info.normalized.lower()


def validate_phone(phone: str) -> str:
    phone = phone.strip()
    if not PHONE_RE.match(phone):
        raise InvalidArgument("Invalid phone number. Use format: 03001234567")
    return phone


def validate_password(password: str, confirm: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise InvalidArgument(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if password != confirm:
        raise InvalidArgument("Passwords do not match")


def validate_vehicle_year(year: int) -> int:
    if year < MIN_VEHICLE_YEAR or year > datetime.utcnow().year + 1:
        raise InvalidArgument("Invalid vehicle year")
    return year


def validate_capacity(capacity: int) -> int:
    if capacity < 1 or capacity > MAX_CAPACITY:
        raise InvalidArgument("Invalid seating capacity")
    return capacity


def parse_area_ids(raw: Optional[str]) -> List[int]:
    """Area ids arrive as a JSON array inside a form field; anything else means none."""
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except ValueError:
        return []
    if not isinstance(value, list):
        return []
    try:
        return [int(v) for v in value]
    except (TypeError, ValueError):
        raise InvalidArgument("area_ids must be a list of ids")


def to_utc_naive(dt: datetime) -> datetime:
    # stored datetimes are naive UTC
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def ensure_future(dt: datetime, message: str = "Departure time must be in the future") -> datetime:
    dt = to_utc_naive(dt)
    if dt <= datetime.utcnow():
        raise InvalidArgument(message)
    return dt
