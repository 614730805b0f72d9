"""
Database configuration and session management.

Provides the declarative base, async engine construction and session
factories. Nothing here holds a global connection: callers build an engine
from Settings and hand a session factory to the row store.
"""
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from role_hierarchy.core.config import Settings, get_settings

logger = logging.getLogger(__name__)

# Create declarative base for ORM models
Base = declarative_base()


def to_async_url(database_url: str) -> str:
    """Convert a plain database URL to its async driver form."""
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if database_url.startswith("sqlite:///"):
        return database_url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    return database_url


def create_engine_from_settings(settings: Optional[Settings] = None) -> AsyncEngine:
    """
    Create the async engine for the configured database.

    Pool sizing only applies to PostgreSQL; SQLite uses SQLAlchemy's defaults.
    """
    settings = settings or get_settings()
    url = to_async_url(settings.database_url)

    if settings.is_postgres:
        return create_async_engine(
            url,
            echo=settings.database_echo,
            pool_pre_ping=True,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
        )
    return create_async_engine(url, echo=settings.database_echo)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create the async session factory bound to an engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_database(engine: AsyncEngine) -> None:
    """
    Initialize database - create tables if they don't exist.

    Note: In production, use Alembic migrations instead.
    This is mainly for development/testing.
    """
    # Register ORM models with Base
    from role_hierarchy.persistence.sql_row_store import RoleORM  # noqa: F401

    logger.info("Initializing database tables")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
