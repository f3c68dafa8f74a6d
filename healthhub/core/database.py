"""
Database configuration and session handling for healthhub-api.

PostgreSQL (asyncpg) in production, SQLite (aiosqlite) for tests.
"""

import logging
from collections.abc import AsyncGenerator
from datetime import UTC, datetime

from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from healthhub.core.config import settings
from healthhub.core.retry import async_retry_with_backoff

logger = logging.getLogger(__name__)

# JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(UTC)


def ensure_aware(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops the offset on read)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


engine = create_async_engine(settings.SQLALCHEMY_DATABASE_URI, echo=False)

async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a database session."""
    async with async_session_maker() as session:
        yield session


@async_retry_with_backoff(max_attempts=5, min_wait_seconds=1, max_wait_seconds=10)
async def create_db_and_tables():
    """Create all tables, retrying while the database is still starting."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")


get_db = get_session
