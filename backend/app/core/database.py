"""
Database engine and session management.
"""

from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from app.core.config import settings


def _engine_kwargs(url: str) -> dict:
    # SQLite connections are shared with the threadpool FastAPI runs sync work in
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


engine = create_engine(settings.DATABASE_URL, **_engine_kwargs(settings.DATABASE_URL))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency yielding a database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """
    Create all tables from the ORM metadata.

    Tables are created from the models directly; no migration history is kept.
    """
    import app.models  # noqa: F401  registers models on Base.metadata

    Base.metadata.create_all(bind=engine)
