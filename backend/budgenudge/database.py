"""
Database engine, session factory and declarative base.
"""

from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session

from budgenudge.config import settings


def _engine_kwargs(url: str) -> dict:
    """Per-dialect engine options; every call gets the configured timeout."""
    if url.startswith("sqlite"):
        return {
            "connect_args": {
                "check_same_thread": False,
                "timeout": settings.database_timeout_seconds,
            }
        }
    return {
        "pool_pre_ping": True,
        "pool_timeout": settings.database_timeout_seconds,
        "connect_args": {"connect_timeout": int(settings.database_timeout_seconds)},
    }


engine = create_engine(settings.database_url, **_engine_kwargs(settings.database_url))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """
    Dependency for getting database sessions.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
