from contextlib import contextmanager
from typing import Generator, Iterator
import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
import redis

from .config import settings

logger = logging.getLogger(__name__)


def build_engine(url: str):
    """Create an engine for ``url`` with pool settings suited to the backend."""
    if url.startswith("sqlite"):
        # SQLite is only used for local runs and tests
        return create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
    return create_engine(
        url,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_recycle=1800,  # Recycle connections after 30 minutes
    )


engine = build_engine(settings.get_database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

_redis_client = None


# Database dependency
def get_db() -> Generator[Session, None, None]:
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# Redis dependency
def get_redis():
    """Get Redis client, created lazily on first use."""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    return _redis_client


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """Commit the unit of work on success, roll it back on any error."""
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise


# Database initialization
def init_db():
    """Initialize database tables."""
    # Register mappers before create_all
    from .. import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
