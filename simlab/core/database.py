from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from simlab.core.config import settings


def _sqlite_connect_args(url: str) -> dict:
    """Engine options for SQLite URLs.

    Simulation workers open sessions from their own threads, so the
    connection must not be pinned to the thread that created it.
    """
    if not url.startswith("sqlite"):
        return {}
    if url.startswith("sqlite:///") and ":memory:" not in url:
        Path(url.replace("sqlite:///", "", 1)).parent.mkdir(parents=True, exist_ok=True)
    return {"check_same_thread": False}


engine = create_engine(
    settings.DATABASE_URL,
    connect_args=_sqlite_connect_args(settings.DATABASE_URL),
    echo=False,
    pool_pre_ping=True,
)

# Shared by request handlers and the run executor
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    pass


def get_db():
    """Request-scoped session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
