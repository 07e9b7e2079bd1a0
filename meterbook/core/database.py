"""Database configuration and session management."""

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from meterbook.core.config import settings


def _engine_options(database_url: str) -> dict:
    """Fail-fast options: busy timeout for SQLite, pool checkout timeout elsewhere."""
    if database_url.startswith("sqlite"):
        return {
            "connect_args": {
                "check_same_thread": False,  # Needed for SQLite
                "timeout": settings.STORE_TIMEOUT_SECONDS,
            }
        }
    return {"pool_timeout": settings.STORE_TIMEOUT_SECONDS, "pool_pre_ping": True}


# Create SQLAlchemy engine
engine = create_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))

# Create SessionLocal class
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# Base class for models
class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


def get_db():
    """Dependency for getting database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
