"""Tests for engine and session construction."""

import pytest
from sqlalchemy import inspect

from role_hierarchy.core.config import Settings
from role_hierarchy.core.database import (
    create_engine_from_settings,
    create_session_factory,
    init_database,
    to_async_url,
)


class TestAsyncUrl:

    def test_postgres(self):
        assert to_async_url("postgresql://u:p@db/roles") == "postgresql+asyncpg://u:p@db/roles"

    def test_sqlite(self):
        assert to_async_url("sqlite:///./roles.db") == "sqlite+aiosqlite:///./roles.db"

    def test_already_async(self):
        url = "sqlite+aiosqlite:///:memory:"
        assert to_async_url(url) == url


class TestEngine:

    @pytest.mark.asyncio
    async def test_sqlite_engine_from_settings(self, settings):
        engine = create_engine_from_settings(settings)
        try:
            assert engine.dialect.name == "sqlite"
            assert engine.url.drivername == "sqlite+aiosqlite"
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_engine_from_environment(self):
        engine = create_engine_from_settings()
        try:
            assert str(engine.url) == "sqlite+aiosqlite:///:memory:"
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_init_database_creates_roles_table(self, tmp_path):
        engine = create_engine_from_settings(Settings(database_url=f"sqlite:///{tmp_path}/roles.db"))
        try:
            await init_database(engine)
            async with engine.connect() as conn:
                tables = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())
                columns = await conn.run_sync(
                    lambda sync_conn: [c["name"] for c in inspect(sync_conn).get_columns("roles")]
                )
        finally:
            await engine.dispose()

        assert "roles" in tables
        assert {"business_id", "year", "role_id", "parent_role_id", "order_index"} <= set(columns)

    @pytest.mark.asyncio
    async def test_session_factory(self, session_factory):
        async with session_factory() as session:
            assert session.get_bind().dialect.name == "sqlite"

    def test_session_factory_keeps_objects_after_commit(self, settings):
        engine = create_engine_from_settings(settings)
        factory = create_session_factory(engine)
        assert factory.kw["expire_on_commit"] is False
