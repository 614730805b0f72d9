"""
Shared pytest fixtures for all tests.

Provides config isolation, row/tree builders and database fixtures.
"""

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from role_hierarchy.core.config import Settings, clear_settings_cache
from role_hierarchy.core.database import create_session_factory, init_database
from role_hierarchy.persistence.row_store import InMemoryRowStore


# =============================================================================
# CONFIGURATION FIXTURES
# =============================================================================

_ENV_KEYS = (
    "DATABASE_URL",
    "DATABASE_POOL_SIZE",
    "DATABASE_MAX_OVERFLOW",
    "DATABASE_ECHO",
    "LOG_LEVEL",
    "LOG_FORMAT",
    "ROLES_ALLOW_MULTIPLE_ROOTS",
    "ROLES_CASCADE_POLICY",
    "ROLES_UPSERT_BATCH_SIZE",
    "ROLES_CLEANUP_ORPHANS",
    "ROLES_SEED_DEFAULT_ROLE",
)


@pytest.fixture(autouse=True)
def isolate_config(monkeypatch):
    """
    Automatically isolate config for all tests.

    Clears engine environment variables and the settings cache.
    """
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def settings() -> Settings:
    """Default settings against an in-memory database."""
    return Settings(database_url="sqlite+aiosqlite:///:memory:")


# =============================================================================
# STORE FIXTURES
# =============================================================================

@pytest.fixture
def store() -> InMemoryRowStore:
    return InMemoryRowStore()


@pytest_asyncio.fixture
async def session_factory():
    """
    Async session factory over a fresh in-memory SQLite database.

    StaticPool keeps the single in-memory connection alive across sessions.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
    )
    await init_database(engine)

    yield create_session_factory(engine)

    await engine.dispose()
