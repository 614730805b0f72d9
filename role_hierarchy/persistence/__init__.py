"""Persistence module for role rows."""

from role_hierarchy.persistence.row_store import (
    RowStore,
    InMemoryRowStore,
    StorageError,
    StorageUnavailableError,
    StorageConflictError,
)
from role_hierarchy.persistence.sql_row_store import (
    RoleORM,
    SqlRowStore,
    create_row_store,
)

__all__ = [
    # Protocols
    "RowStore",
    # Implementations
    "InMemoryRowStore",
    "SqlRowStore",
    "create_row_store",
    # ORM
    "RoleORM",
    # Exceptions
    "StorageError",
    "StorageUnavailableError",
    "StorageConflictError",
]
