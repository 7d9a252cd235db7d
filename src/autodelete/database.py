"""Database session factory and configuration.

Provides database connectivity and session management for the retention
log and run tables (and, when the reference store is used, the record tables).
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from .config import get_settings
from .models.base import Base

DATABASE_URL = get_settings().DATABASE_URL

# Pool settings only apply to server databases (not SQLite)
_engine_kwargs = {
    "pool_pre_ping": True,  # Verify connections before using
    "echo": False,
}

if not DATABASE_URL.startswith("sqlite"):
    _engine_kwargs["pool_size"] = 5
    _engine_kwargs["max_overflow"] = 10

engine = create_engine(DATABASE_URL, **_engine_kwargs)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    """Context manager for database sessions.

    Usage:
        with get_db_session() as session:
            session.query(RetentionRun).count()

    Automatically commits on success, rolls back on exception.
    """
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_db() -> Generator[Session, None, None]:
    """Dependency for FastAPI endpoints.

    Usage:
        @router.get("/runs")
        def list_runs(db: Session = Depends(get_db)):
            ...
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Engine = engine) -> None:
    """Create all tables known to the metadata (development and tests).

    Production deployments use the Alembic migrations instead.
    """
    # Registers the model classes on Base.metadata
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=bind)


def drop_db(bind: Engine = engine) -> None:
    """Drop the retention tables, used when the engine is uninstalled."""
    from . import models  # noqa: F401

    Base.metadata.drop_all(bind=bind)
