"""Database engine and session lifecycle"""

from contextlib import contextmanager
from functools import lru_cache
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from installment_ledger.config import settings


def build_engine(database_url: str | None = None) -> Engine:
    """Connection pool: recycle after 1 hour to avoid stale connections"""
    url = database_url or settings.database_url
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(
        url,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=10,
        max_overflow=10,
        pool_recycle=3600,
    )


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@lru_cache(maxsize=1)
def default_session_factory() -> sessionmaker:
    """Process-wide factory for the API, created on first use"""
    return build_session_factory(build_engine())


@contextmanager
def session_scope(session_factory: sessionmaker) -> Iterator[Session]:
    """Commit on success, roll back on error, always close"""
    db = session_factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_db() -> Iterator[Session]:
    """Dependency injection for database sessions"""
    db = default_session_factory()()
    try:
        yield db
    finally:
        db.close()
