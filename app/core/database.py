"""Database configuration and session management."""

from collections.abc import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from app.core.config import settings


def _connect_args(url: str) -> dict[str, bool]:
    # SQLite connections are shared across the threadpool FastAPI runs sync routes on
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


engine = create_engine(settings.DATABASE_URL, connect_args=_connect_args(settings.DATABASE_URL))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    """Base class for all reconciliation tables."""

    pass


def get_db() -> Iterator[Session]:
    """Dependency yielding one session per request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
