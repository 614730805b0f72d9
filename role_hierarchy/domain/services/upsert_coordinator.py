"""
Applies a ChangePlan to a row store.

Writes go out as conflict-aware upserts keyed by (business_id, year,
role_id): a row that already exists is overwritten, last writer wins per
row. Deletes follow once every write has succeeded. A store rejection stops
the run and is reported with what was already applied; retrying is the
caller's decision.
"""

import logging
from collections import deque
from datetime import datetime, timezone
from typing import Callable, Iterator, List, Optional, Sequence, Set, TypeVar

from role_hierarchy.domain.errors import ConflictError, ValidationError
from role_hierarchy.domain.models import AppliedResult, ChangePlan, RoleRow
from role_hierarchy.domain.services.role_validator import Violation, ViolationKind
from role_hierarchy.persistence.row_store import RowStore, StorageConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _batches(items: Sequence[T], size: int) -> Iterator[List[T]]:
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


class UpsertCoordinator:
    """Applies change plans for one scope at a time."""

    def __init__(
        self,
        store: RowStore,
        batch_size: int = 500,
        cleanup_orphans: bool = True,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self._store = store
        self._batch_size = batch_size
        self._cleanup_orphans = cleanup_orphans
        self._clock = clock or _utcnow

    async def apply(self, plan: ChangePlan, business_id: str, year: int) -> AppliedResult:
        """
        Apply a plan to the (business_id, year) scope.

        Returns:
            AppliedResult with rows as persisted, deleted ids and any
            orphans removed after the deletes.

        Raises:
            ValidationError: a plan row belongs to another scope
            ConflictError: the store rejected a row; nothing after it was sent
            StorageUnavailableError: transport failure, propagated unchanged
        """
        self._check_scope(plan, business_id, year)

        result = AppliedResult()
        if plan.is_empty:
            return result

        now = self._clock()
        insert_ids = {row.role_id for row in plan.inserts}
        stamped = [self._stamp(row, now, row.role_id in insert_ids) for row in plan.writes]

        for batch in _batches(stamped, self._batch_size):
            try:
                persisted = await self._store.upsert(batch)
            except StorageConflictError as exc:
                logger.warning(
                    "Store rejected role %s after %d writes; stopping apply",
                    exc.role_id or "<unknown>", len(result.written),
                    extra={"business_id": business_id, "year": year, "role_id": exc.role_id},
                )
                raise ConflictError(
                    role_id=exc.role_id,
                    written=result.written,
                    deleted=result.deleted,
                    plan=plan,
                    cause=exc,
                ) from exc
            result.written.extend(persisted)
            logger.debug(
                "Upserted %d roles", len(persisted),
                extra={"business_id": business_id, "year": year},
            )

        for batch in _batches(plan.deletes, self._batch_size):
            await self._store.delete(business_id, year, batch)
            result.deleted.extend(batch)
            logger.debug(
                "Deleted %d roles", len(batch),
                extra={"business_id": business_id, "year": year},
            )

        if self._cleanup_orphans and plan.deletes:
            result.orphans_removed = await self._remove_orphans(
                business_id, year, set(plan.deletes)
            )

        return result

    def _check_scope(self, plan: ChangePlan, business_id: str, year: int) -> None:
        violations = [
            Violation(
                role_id=row.role_id,
                kind=ViolationKind.MIXED_SCOPE,
                detail=f"{row.role_id} belongs to scope {row.scope}, "
                       f"not {(business_id, year)}",
            )
            for row in list(plan.inserts) + list(plan.updates)
            if row.scope != (business_id, year)
        ]
        if violations:
            raise ValidationError(violations)

    @staticmethod
    def _stamp(row: RoleRow, now: datetime, is_insert: bool) -> RoleRow:
        """created_at only for inserts; updated_at on every write."""
        return row.with_changes(
            created_at=now if is_insert else None,
            updated_at=now,
        )

    async def _remove_orphans(
        self,
        business_id: str,
        year: int,
        deleted_ids: Set[str],
    ) -> List[str]:
        """
        Delete rows left under roles this plan deleted.

        Such rows come from writers that ran between our read and our
        deletes. Their whole subtrees go, deepest first.
        """
        rows = await self._store.fetch(business_id, year)

        children_of = {}
        for row in rows:
            children_of.setdefault(row.parent_role_id, []).append(row.role_id)

        depth_of = {}
        queue = deque(
            (role_id, 0)
            for parent_id in sorted(deleted_ids)
            for role_id in children_of.get(parent_id, [])
        )
        while queue:
            role_id, depth = queue.popleft()
            if role_id in depth_of or role_id in deleted_ids:
                continue
            depth_of[role_id] = depth
            queue.extend((child, depth + 1) for child in children_of.get(role_id, []))

        if not depth_of:
            return []

        orphan_ids = sorted(depth_of, key=lambda role_id: (-depth_of[role_id], role_id))
        logger.warning(
            "Removing %d orphaned roles left under deleted parents",
            len(orphan_ids),
            extra={"business_id": business_id, "year": year, "role_ids": orphan_ids},
        )
        for batch in _batches(orphan_ids, self._batch_size):
            await self._store.delete(business_id, year, batch)
        return orphan_ids
