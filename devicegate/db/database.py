# devicegate/db/database.py
from __future__ import annotations

from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from devicegate.core.config import settings

DATABASE_URL = settings.DB_URL


def _connect_args(url: str) -> dict:
    # SQLite: Verbindungen werden zwischen Worker-Threads weitergereicht
    if url.startswith("sqlite"):
        return {"check_same_thread": False, "timeout": 30}
    return {}


engine = create_engine(DATABASE_URL, pool_pre_ping=True, future=True, connect_args=_connect_args(DATABASE_URL))
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_models(bind=None) -> None:
    import devicegate.models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
