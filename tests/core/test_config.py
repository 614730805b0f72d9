"""Tests for settings loading."""

import pytest

from role_hierarchy.core.config import (
    Settings,
    clear_settings_cache,
    get_settings,
    load_settings_from_env,
)


class TestDefaults:

    def test_defaults(self):
        settings = Settings()

        assert settings.database_url == "sqlite+aiosqlite:///./roles.db"
        assert settings.log_format == "text"
        assert settings.allow_multiple_roots is True
        assert settings.cascade_policy == "restrict"
        assert settings.upsert_batch_size == 500
        assert settings.cleanup_orphans is True
        assert settings.seed_default_role is True
        assert settings.is_postgres is False

    def test_postgres_detection(self):
        assert Settings(database_url="postgresql://localhost/roles").is_postgres is True


class TestValidation:

    def test_batch_size_must_be_positive(self):
        with pytest.raises(ValueError, match="ROLES_UPSERT_BATCH_SIZE"):
            Settings(upsert_batch_size=0)

    def test_unknown_cascade_policy(self):
        with pytest.raises(ValueError, match="ROLES_CASCADE_POLICY"):
            Settings(cascade_policy="orphan")

    def test_unknown_log_format(self):
        with pytest.raises(ValueError, match="LOG_FORMAT"):
            Settings(log_format="xml")


class TestEnvironment:

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql://db/roles")
        monkeypatch.setenv("DATABASE_POOL_SIZE", "12")
        monkeypatch.setenv("LOG_FORMAT", "json")
        monkeypatch.setenv("ROLES_ALLOW_MULTIPLE_ROOTS", "false")
        monkeypatch.setenv("ROLES_CASCADE_POLICY", "REPARENT")
        monkeypatch.setenv("ROLES_UPSERT_BATCH_SIZE", "50")
        monkeypatch.setenv("ROLES_CLEANUP_ORPHANS", "0")
        monkeypatch.setenv("ROLES_SEED_DEFAULT_ROLE", "no")

        settings = load_settings_from_env()

        assert settings.database_url == "postgresql://db/roles"
        assert settings.database_pool_size == 12
        assert settings.log_format == "json"
        assert settings.allow_multiple_roots is False
        assert settings.cascade_policy == "reparent"
        assert settings.upsert_batch_size == 50
        assert settings.cleanup_orphans is False
        assert settings.seed_default_role is False

    def test_bad_environment_value_fails_fast(self, monkeypatch):
        monkeypatch.setenv("ROLES_CASCADE_POLICY", "sometimes")

        with pytest.raises(ValueError):
            load_settings_from_env()

    def test_get_settings_cached(self, monkeypatch):
        first = get_settings()
        monkeypatch.setenv("ROLES_UPSERT_BATCH_SIZE", "7")

        assert get_settings() is first

        clear_settings_cache()
        assert get_settings().upsert_batch_size == 7
