"""Application configuration management."""

import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv


CASCADE_POLICIES = ("restrict", "reparent", "cascade")
LOG_FORMATS = ("json", "text")


@dataclass
class Settings:
    """Engine settings loaded from environment."""

    # Database
    database_url: str = "sqlite+aiosqlite:///./roles.db"
    database_pool_size: int = 5
    database_max_overflow: int = 10
    database_echo: bool = False

    # Logging
    log_level: str = "INFO"
    log_format: str = "text"  # json or text

    # Hierarchy policy
    allow_multiple_roots: bool = True
    cascade_policy: str = "restrict"  # restrict, reparent, cascade

    # Apply
    upsert_batch_size: int = 500
    cleanup_orphans: bool = True

    # Load
    seed_default_role: bool = True

    def __post_init__(self):
        """Validate settings after initialization."""
        if self.upsert_batch_size < 1:
            raise ValueError("ROLES_UPSERT_BATCH_SIZE must be at least 1")
        if self.cascade_policy not in CASCADE_POLICIES:
            raise ValueError(
                f"ROLES_CASCADE_POLICY must be one of {', '.join(CASCADE_POLICIES)}, "
                f"got {self.cascade_policy!r}"
            )
        if self.log_format.lower() not in LOG_FORMATS:
            raise ValueError(f"LOG_FORMAT must be 'json' or 'text', got {self.log_format!r}")

    @property
    def is_postgres(self) -> bool:
        """Check if the configured database is PostgreSQL."""
        return self.database_url.startswith("postgresql")


def load_settings_from_env() -> Settings:
    """Load settings from environment variables (and .env, if present)."""
    load_dotenv()

    def get_bool(key: str, default: bool = False) -> bool:
        value = os.getenv(key, str(default)).lower()
        return value in ("true", "1", "yes")

    def get_int(key: str, default: int) -> int:
        return int(os.getenv(key, str(default)))

    return Settings(
        # Database
        database_url=os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./roles.db"),
        database_pool_size=get_int("DATABASE_POOL_SIZE", 5),
        database_max_overflow=get_int("DATABASE_MAX_OVERFLOW", 10),
        database_echo=get_bool("DATABASE_ECHO", False),

        # Logging
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_format=os.getenv("LOG_FORMAT", "text"),

        # Hierarchy policy
        allow_multiple_roots=get_bool("ROLES_ALLOW_MULTIPLE_ROOTS", True),
        cascade_policy=os.getenv("ROLES_CASCADE_POLICY", "restrict").lower(),

        # Apply
        upsert_batch_size=get_int("ROLES_UPSERT_BATCH_SIZE", 500),
        cleanup_orphans=get_bool("ROLES_CLEANUP_ORPHANS", True),

        # Load
        seed_default_role=get_bool("ROLES_SEED_DEFAULT_ROLE", True),
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return load_settings_from_env()


def clear_settings_cache() -> None:
    """Clear settings cache (for testing)."""
    get_settings.cache_clear()
