"""Row store protocol and in-memory implementation."""

import copy
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol, Sequence, Tuple, runtime_checkable

from role_hierarchy.domain.models import NATURAL_KEY, RoleRow


class StorageError(Exception):
    """Base exception for row store failures."""
    pass


class StorageUnavailableError(StorageError):
    """The backing store or its transport failed."""
    pass


class StorageConflictError(StorageError):
    """The store rejected a row (uniqueness or referential integrity)."""

    def __init__(self, message: str, role_id: Optional[str] = None):
        self.role_id = role_id
        super().__init__(message)


@runtime_checkable
class RowStore(Protocol):
    """Protocol for role row storage, one (business_id, year) scope at a time."""

    async def fetch(self, business_id: str, year: int) -> List[RoleRow]:
        """Return all rows in scope; empty list if none exist."""
        ...

    async def upsert(
        self,
        rows: Sequence[RoleRow],
        conflict_key: Tuple[str, ...] = NATURAL_KEY,
    ) -> List[RoleRow]:
        """Insert or overwrite rows by natural key. Returns rows as persisted."""
        ...

    async def delete(self, business_id: str, year: int, role_ids: Sequence[str]) -> None:
        """Delete rows by natural key. Missing rows are not an error."""
        ...


class InMemoryRowStore:
    """
    In-memory row store for testing.

    Mirrors the SQL store's conflict behavior: an upsert landing on an
    existing natural key overwrites content and updated_at but keeps
    created_at. With enforce_parent_references, a row whose parent is not
    already stored (or earlier in the same call) is rejected, like a store
    enforcing foreign keys incrementally.
    """

    def __init__(self, enforce_parent_references: bool = False):
        self._rows: Dict[Tuple[str, int, str], RoleRow] = {}
        self.enforce_parent_references = enforce_parent_references
        self.available = True

    def _check_available(self) -> None:
        if not self.available:
            raise StorageUnavailableError("In-memory row store is unavailable")

    async def fetch(self, business_id: str, year: int) -> List[RoleRow]:
        """Return all rows in scope, ordered by order_index."""
        self._check_available()
        rows = [
            copy.copy(row) for key, row in self._rows.items()
            if key[0] == business_id and key[1] == year
        ]
        rows.sort(key=lambda row: (row.order_index, row.role_id))
        return rows

    async def upsert(
        self,
        rows: Sequence[RoleRow],
        conflict_key: Tuple[str, ...] = NATURAL_KEY,
    ) -> List[RoleRow]:
        """Insert or overwrite rows. All-or-nothing per call."""
        self._check_available()
        if tuple(conflict_key) != NATURAL_KEY:
            raise ValueError(f"Unsupported conflict key {conflict_key}; expected {NATURAL_KEY}")

        staged = dict(self._rows)
        persisted: List[RoleRow] = []
        now = datetime.now(timezone.utc)

        for row in rows:
            if self.enforce_parent_references and row.parent_role_id is not None:
                parent_key = (row.business_id, row.year, row.parent_role_id)
                if parent_key not in staged:
                    raise StorageConflictError(
                        f"Parent {row.parent_role_id} of {row.role_id} does not exist",
                        role_id=row.role_id,
                    )

            existing = staged.get(row.natural_key)
            stored = copy.copy(row)
            stored.updated_at = row.updated_at or now
            if existing is not None:
                stored.created_at = existing.created_at
            else:
                stored.created_at = row.created_at or now

            staged[row.natural_key] = stored
            persisted.append(copy.copy(stored))

        self._rows = staged
        return persisted

    async def delete(self, business_id: str, year: int, role_ids: Sequence[str]) -> None:
        """Delete rows by natural key."""
        self._check_available()
        for role_id in role_ids:
            self._rows.pop((business_id, year, role_id), None)

    def clear(self) -> None:
        """Clear all rows (for testing)."""
        self._rows.clear()
