# goswift/database.py
from __future__ import annotations
from typing import Iterator

from sqlmodel import SQLModel, create_engine, Session

from . import config


def normalize_url(url: str, sslmode: str = "") -> str:
    # Neon and most hosts hand out postgresql://...
    # SQLAlchemy + psycopg = postgresql+psycopg://
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+psycopg://", 1)
    if sslmode and url.startswith("postgresql") and "sslmode=" not in url:
        sep = "&" if "?" in url else "?"
        url = f"{url}{sep}sslmode={sslmode}"
    return url


def make_engine(url: str):
    url = normalize_url(url, config.DB_SSLMODE)
    if url.startswith("sqlite"):
        # SQLite needs check_same_thread=False; FastAPI runs sync routes in a threadpool
        return create_engine(url, echo=False, connect_args={"check_same_thread": False})
    return create_engine(
        url,
        pool_pre_ping=True,   # auto-reconnect
        pool_size=5,
        max_overflow=10,
    )


engine = make_engine(config.DATABASE_URL)


def get_session() -> Iterator[Session]:
    with Session(engine) as session:
        yield session


def new_session() -> Session:
    """Standalone session for writes that live outside the request transaction."""
    return Session(engine)


def init_db() -> None:
    # Creates tables that don't exist; does not drop/alter
    from . import models  # noqa: F401  (registers tables on the metadata)
    SQLModel.metadata.create_all(engine)
