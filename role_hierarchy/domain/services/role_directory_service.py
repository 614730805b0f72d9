"""
Role directory service.

Entry point for editors, report generators and migration tooling. Owns the
reconciliation pipeline for one (business_id, year) scope:

    validate desired tree -> flatten -> fetch current -> plan -> apply
    -> fetch -> assemble

plus the single-role operations built on the same pipeline. Runs for
different scopes never interact; runs for the same scope race at row
granularity (last writer wins).
"""

import logging
from collections import deque
from typing import Any, List, Optional, Sequence, Union

from role_hierarchy.core.config import Settings, get_settings
from role_hierarchy.core.logging import LogContext
from role_hierarchy.domain.errors import MultipleRootsError, RoleNotFoundError
from role_hierarchy.domain.models import (
    CONTENT_FIELDS,
    DEFAULT_ROLE_COLOR,
    DEFAULT_ROLE_ID,
    DEFAULT_ROLE_NAME,
    CascadePolicy,
    ReconcileResult,
    RoleNode,
    RoleRow,
)
from role_hierarchy.domain.services.role_flattener import assemble, flatten
from role_hierarchy.domain.services.role_planner import plan
from role_hierarchy.domain.services.role_validator import validate
from role_hierarchy.domain.services.upsert_coordinator import UpsertCoordinator
from role_hierarchy.persistence.row_store import RowStore

logger = logging.getLogger(__name__)


def default_role() -> RoleNode:
    """The role offered for a scope with nothing stored yet."""
    return RoleNode(
        id=DEFAULT_ROLE_ID,
        name=DEFAULT_ROLE_NAME,
        color=DEFAULT_ROLE_COLOR,
        participates_in_rd=True,
    )


class RoleDirectoryService:
    """Loads and reconciles role hierarchies through a row store."""

    def __init__(
        self,
        store: RowStore,
        settings: Optional[Settings] = None,
        coordinator: Optional[UpsertCoordinator] = None,
    ):
        self._store = store
        self._settings = settings or get_settings()
        self._coordinator = coordinator or UpsertCoordinator(
            store,
            batch_size=self._settings.upsert_batch_size,
            cleanup_orphans=self._settings.cleanup_orphans,
        )
        self._cascade_policy = CascadePolicy(self._settings.cascade_policy)

    def _assemble(self, rows: Sequence[RoleRow]) -> List[RoleNode]:
        return assemble(rows, allow_multiple_roots=self._settings.allow_multiple_roots)

    # ------------------------------------------------------------------
    # Tree operations
    # ------------------------------------------------------------------

    async def load(self, business_id: str, year: int) -> List[RoleNode]:
        """
        Assemble the stored roles of a scope into a tree for editing.

        An empty scope yields the default role (not persisted) when
        seed_default_role is on, otherwise an empty list.
        """
        with LogContext(business_id=business_id, year=year):
            rows = await self._store.fetch(business_id, year)
            if not rows:
                if self._settings.seed_default_role:
                    logger.info("No roles stored; offering default role")
                    return [default_role()]
                return []
            return self._assemble(rows)

    async def reconcile(
        self,
        business_id: str,
        year: int,
        desired_tree: Union[RoleNode, Sequence[RoleNode]],
    ) -> ReconcileResult:
        """
        Move stored roles for a scope to match the desired tree.

        Raises:
            ValidationError: desired tree is malformed (nothing written)
            MultipleRootsError: several roots while a single root is required
            DanglingChildError: restrict policy blocks a delete (nothing written)
            ConflictError: store rejected a row mid-apply
            StorageUnavailableError: store transport failed
        """
        forest = [desired_tree] if isinstance(desired_tree, RoleNode) else list(desired_tree)

        with LogContext(business_id=business_id, year=year):
            validate(forest).raise_if_invalid()
            if not self._settings.allow_multiple_roots and len(forest) > 1:
                raise MultipleRootsError([node.id for node in forest])

            desired_rows = flatten(forest, business_id, year)
            current_rows = await self._store.fetch(business_id, year)
            change_plan = plan(current_rows, desired_rows, self._cascade_policy)

            applied = await self._coordinator.apply(change_plan, business_id, year)
            stored_rows = await self._store.fetch(business_id, year)

            logger.info(
                "Reconciled roles",
                extra={
                    "business_id": business_id,
                    "year": year,
                    **change_plan.summary,
                    "orphans_removed": len(applied.orphans_removed),
                },
            )

            return ReconcileResult(
                applied_tree=self._assemble(stored_rows),
                plan_summary=change_plan,
                applied=applied,
            )

    # ------------------------------------------------------------------
    # Single-role operations
    # ------------------------------------------------------------------

    async def get_role(self, business_id: str, year: int, role_id: str) -> Optional[RoleRow]:
        """Get one stored role by id. Returns None if absent."""
        for row in await self._store.fetch(business_id, year):
            if row.role_id == role_id:
                return row
        return None

    async def has_roles(self, business_id: str, year: int) -> bool:
        """Check whether anything is stored for the scope."""
        return len(await self._store.fetch(business_id, year)) > 0

    async def update_role(
        self,
        business_id: str,
        year: int,
        role_id: str,
        /,
        **changes: Any,
    ) -> RoleRow:
        """
        Change content fields of one role.

        Only name, color, participates_in_rd, parent_role_id and order_index
        may change; scope and identity are immutable.
        """
        unknown = sorted(set(changes) - set(CONTENT_FIELDS))
        if unknown:
            raise ValueError(
                f"Cannot update {', '.join(unknown)}: only {', '.join(CONTENT_FIELDS)} may change"
            )

        with LogContext(business_id=business_id, year=year, role_id=role_id):
            current_rows = await self._store.fetch(business_id, year)
            target = next((row for row in current_rows if row.role_id == role_id), None)
            if target is None:
                raise RoleNotFoundError(f"Role {role_id} not found for {business_id}/{year}")

            desired_rows = [
                row.with_changes(**changes) if row.role_id == role_id else row
                for row in current_rows
            ]
            change_plan = plan(current_rows, desired_rows, self._cascade_policy)
            applied = await self._coordinator.apply(change_plan, business_id, year)

            for row in applied.written:
                if row.role_id == role_id:
                    return row
            return target

    async def delete_role(self, business_id: str, year: int, role_id: str) -> List[str]:
        """
        Delete a role together with its whole subtree.

        Returns:
            Deleted role ids, children before parents.
        """
        with LogContext(business_id=business_id, year=year, role_id=role_id):
            current_rows = await self._store.fetch(business_id, year)
            if not any(row.role_id == role_id for row in current_rows):
                raise RoleNotFoundError(f"Role {role_id} not found for {business_id}/{year}")

            children_of = {}
            for row in current_rows:
                children_of.setdefault(row.parent_role_id, []).append(row.role_id)

            subtree = set()
            queue = deque([role_id])
            while queue:
                current_id = queue.popleft()
                if current_id in subtree:
                    continue
                subtree.add(current_id)
                queue.extend(children_of.get(current_id, []))

            desired_rows = [row for row in current_rows if row.role_id not in subtree]
            change_plan = plan(current_rows, desired_rows, self._cascade_policy)
            applied = await self._coordinator.apply(change_plan, business_id, year)

            logger.info("Deleted role subtree of %d roles", len(applied.deleted))
            return applied.deleted
