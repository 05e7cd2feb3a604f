from typing import Dict, List, Optional

from sqlmodel import Session, select

from .errors import InvalidArgument, NotFound
from .models import Area, City, Trip


def list_cities(session: Session) -> List[City]:
    return list(session.exec(select(City).order_by(City.name)).all())


def list_areas(session: Session, city_id: int) -> List[Area]:
    if not session.get(City, city_id):
        raise NotFound("City not found")
    return list(session.exec(select(Area).where(Area.city_id == city_id).order_by(Area.name)).all())


def require_city(session: Session, city_id: int) -> City:
    city = session.get(City, city_id)
    if not city:
        raise InvalidArgument(f"Unknown city {city_id}")
    return city


def require_area(session: Session, area_id: Optional[int], city_id: int) -> Optional[Area]:
    """An area is optional, but when given it must lie inside ``city_id``."""
    if area_id is None:
        return None
    area = session.get(Area, area_id)
    if not area or area.city_id != city_id:
        raise InvalidArgument(f"Area {area_id} is not in city {city_id}")
    return area


def _name(session: Session, model, pk: Optional[int]) -> Optional[str]:
    if pk is None:
        return None
    row = session.get(model, pk)
    return row.name if row else None


def place_names(session: Session, trip: Trip) -> Dict[str, Optional[str]]:
    return {
        "departure_city_name": _name(session, City, trip.departure_city_id),
        "departure_area_name": _name(session, Area, trip.departure_area_id),
        "arrival_city_name": _name(session, City, trip.arrival_city_id),
        "arrival_area_name": _name(session, Area, trip.arrival_area_id),
    }
