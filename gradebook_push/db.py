"""
Database configuration with SQLAlchemy 2.0 async support.
"""

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from gradebook_push.settings import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


def _engine_kwargs(database_url: str) -> dict:
    """Pool settings only apply to server databases."""
    if database_url.startswith("sqlite"):
        return {}
    return {
        "pool_size": settings.database_pool_size,
        "max_overflow": settings.database_max_overflow,
        "pool_pre_ping": True,  # Verify connections before using
    }


# Create async engine
engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    **_engine_kwargs(settings.database_url),
)

# Session factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency that provides a database session."""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def get_db_context() -> AsyncGenerator[AsyncSession, None]:
    """Context manager for database sessions (for use outside of FastAPI)."""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db(max_retries: int = 10, retry_delay: float = 5) -> None:
    """Create tables if needed, retrying while the database comes up."""
    for attempt in range(max_retries):
        try:
            async with engine.begin() as conn:
                # Import models so they register on the metadata
                from gradebook_push.models import push_subscription  # noqa: F401
                await conn.run_sync(Base.metadata.create_all)
            logger.info("Database initialized successfully")
            return
        except Exception as e:
            if attempt < max_retries - 1:
                logger.warning(
                    "Database connection attempt %d/%d failed: %s - retrying in %s seconds",
                    attempt + 1, max_retries, e, retry_delay,
                )
                await asyncio.sleep(retry_delay)
            else:
                logger.error("Database connection failed after %d attempts", max_retries)
                raise


async def close_db() -> None:
    """Close database connections."""
    await engine.dispose()
