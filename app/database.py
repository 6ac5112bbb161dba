"""Database layer utilities for SQLAlchemy-backed persistence."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Generator, Iterator

from fastapi import HTTPException, status
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

engine: Engine = create_engine(settings.database_url, pool_pre_ping=True, future=True)

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    future=True,
    expire_on_commit=False,
)

Base = declarative_base()


def get_engine() -> Engine:
    """Return the configured SQLAlchemy engine."""
    return engine


def get_session() -> Generator[Session, None, None]:
    """FastAPI dependency that yields a SQLAlchemy session per request."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def create_session() -> Session:
    """Return a new SQLAlchemy session for background tasks or scripts."""
    return SessionLocal()


@contextmanager
def batch_write(db: Session, *, failure_detail: str) -> Iterator[Session]:
    """Group the writes made inside the block into a single commit.

    Any ``SQLAlchemyError`` rolls the whole batch back and surfaces as a 500
    carrying ``failure_detail``. Other exceptions (including ``HTTPException``
    raised by validation inside the block) roll back and propagate unchanged.
    """

    try:
        yield db
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Batch write failed: %s", failure_detail)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=failure_detail) from exc
    except BaseException:
        db.rollback()
        raise


def init_db() -> None:
    """Initialise database schema by creating tables when missing."""
    # Import models to ensure they are registered on the metadata before create_all runs.
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=engine)


__all__ = [
    "Base",
    "SessionLocal",
    "batch_write",
    "create_session",
    "engine",
    "get_engine",
    "get_session",
    "init_db",
]
