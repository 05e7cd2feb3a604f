# goswift/seed.py
"""
Reference data and the admin account.

    python -m goswift.seed
"""
import logging
from typing import Dict, List

from sqlmodel import Session, select

from . import config, database
from .auth import hash_password
from .models import Area, City, User, UserRole
from .validation import validate_email

logger = logging.getLogger(__name__)

CITIES: Dict[str, List[str]] = {
    "Karachi": ["Clifton", "DHA", "Gulshan-e-Iqbal", "North Nazimabad", "Saddar"],
    "Lahore": ["Gulberg", "DHA", "Johar Town", "Model Town", "Anarkali"],
    "Islamabad": ["F-6", "F-7", "G-9", "I-8", "Blue Area"],
    "Rawalpindi": ["Saddar", "Bahria Town", "Satellite Town", "Chaklala"],
}

ADMIN_PHONE = "03000000000"


def seed_places(session: Session) -> int:
    added = 0
    for city_name, area_names in CITIES.items():
        city = session.exec(select(City).where(City.name == city_name)).first()
        if not city:
            city = City(name=city_name)
            session.add(city)
            session.flush()
            added += 1
        existing = set(session.exec(select(Area.name).where(Area.city_id == city.id)).all())
        for name in area_names:
            if name not in existing:
                session.add(Area(city_id=city.id, name=name))
                added += 1
    session.commit()
    return added


def seed_admin(session: Session, email: str, password: str) -> bool:
    if not email or not password:
        return False
    email = validate_email(email)
    if session.exec(select(User).where(User.email == email)).first():
        return False
    session.add(User(
        name="Administrator",
        email=email,
        phone=ADMIN_PHONE,
        password_hash=hash_password(password),
        role=UserRole.ADMIN,
        is_verified=True,
    ))
    session.commit()
    return True


def main() -> None:
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    database.init_db()
    with database.new_session() as session:
        added = seed_places(session)
        logger.info("Seeded %s city/area rows", added)
        if seed_admin(session, config.ADMIN_EMAIL, config.ADMIN_PASSWORD):
            logger.info("Created admin account %s", config.ADMIN_EMAIL)
        elif not (config.ADMIN_EMAIL and config.ADMIN_PASSWORD):
            logger.info("ADMIN_EMAIL/ADMIN_PASSWORD not set; skipping admin account")


if __name__ == "__main__":
    main()
