"""
Database connection and session management
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from banana_friends.config.settings import settings
from banana_friends.database.models import Base
from typing import Generator, Iterator
from contextlib import contextmanager
import logging

logger = logging.getLogger(__name__)


def _engine_options(url: str) -> dict:
    # Sync handlers run in the threadpool, so SQLite must accept cross-thread use
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True, "pool_recycle": 300}


engine = create_engine(
    settings.DATABASE_URL,
    echo=settings.DATABASE_ECHO,
    **_engine_options(settings.DATABASE_URL)
)
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine
)


def create_tables():
    """Create prompt, transfer, migration and user tables when missing"""
    Base.metadata.create_all(bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Request-scoped session for FastAPI handlers"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_session() -> Iterator[Session]:
    """Session for the migration CLI and other code outside a request"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


async def init_db():
    logger.info(f"Preparing database schema on {engine.url.render_as_string(hide_password=True)}")
    create_tables()
