"""
Reconciliation planner for role hierarchies.

Diffs the rows currently stored for one (business_id, year) scope against
the desired rows and produces the minimal ChangePlan.

Matching policy: role_id only.
- role_id desired, not current -> INSERT
- role_id current, not desired -> DELETE
- role_id in both -> UPDATE only when a content field differs

Ordering:
- inserts/updates follow the desired tree in pre-order (parents first)
- deletes follow the current tree in post-order (children first)

Pure: no store access. Same input always produces the same plan.
"""

import logging
from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Set, Tuple

from role_hierarchy.domain.errors import DanglingChildError, ValidationError
from role_hierarchy.domain.models import CascadePolicy, ChangePlan, RoleRow
from role_hierarchy.domain.services.role_validator import (
    Violation,
    ViolationKind,
    validate,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _resolve_scope(
    current: Sequence[RoleRow],
    desired: Sequence[RoleRow],
) -> Optional[Tuple[str, int]]:
    """Both sides must describe the same single scope."""
    scope: Optional[Tuple[str, int]] = None
    violations: List[Violation] = []

    for row in list(current) + list(desired):
        if scope is None:
            scope = row.scope
        elif row.scope != scope:
            violations.append(Violation(
                role_id=row.role_id,
                kind=ViolationKind.MIXED_SCOPE,
                detail=f"{row.role_id} belongs to scope {row.scope}, expected {scope}",
            ))

    if violations:
        raise ValidationError(violations)
    return scope


def _same_row_set(current: Sequence[RoleRow], desired: Sequence[RoleRow]) -> bool:
    if len(current) != len(desired):
        return False
    current_keys = {(row.natural_key, row.content_key()) for row in current}
    desired_keys = {(row.natural_key, row.content_key()) for row in desired}
    return current_keys == desired_keys


def _children_index(rows: Sequence[RoleRow]) -> Dict[Optional[str], List[RoleRow]]:
    children_of: Dict[Optional[str], List[RoleRow]] = defaultdict(list)
    for row in rows:
        children_of[row.parent_role_id].append(row)
    for siblings in children_of.values():
        siblings.sort(key=lambda row: (row.order_index, row.role_id))
    return children_of


def _preorder(rows: Sequence[RoleRow]) -> List[str]:
    """Role ids of a validated row set, parents before children."""
    children_of = _children_index(rows)
    order: List[str] = []
    stack = [row.role_id for row in reversed(children_of.get(None, []))]

    while stack:
        role_id = stack.pop()
        order.append(role_id)
        stack.extend(row.role_id for row in reversed(children_of.get(role_id, [])))

    return order


def _postorder(rows: Sequence[RoleRow]) -> List[str]:
    """
    Role ids of a possibly malformed row set, children before parents.

    Walks from roots, then from rows whose parent is missing. Rows caught in
    cycles are never reached that way and come last, sorted by role_id.
    """
    by_id = {row.role_id: row for row in rows}
    children_of = _children_index(rows)

    starts = [row for row in rows if row.parent_role_id is None]
    starts += [
        row for row in rows
        if row.parent_role_id is not None and row.parent_role_id not in by_id
    ]
    starts.sort(key=lambda row: (row.parent_role_id is not None, row.order_index, row.role_id))

    order: List[str] = []
    visited: Set[str] = set()

    for start in starts:
        stack: List[Tuple[str, bool]] = [(start.role_id, False)]
        while stack:
            role_id, expanded = stack.pop()
            if expanded:
                order.append(role_id)
                continue
            if role_id in visited:
                continue
            visited.add(role_id)
            stack.append((role_id, True))
            for child in reversed(children_of.get(role_id, [])):
                if child.role_id not in visited:
                    stack.append((child.role_id, False))

    order.extend(sorted(role_id for role_id in by_id if role_id not in visited))
    return order


def _surviving_ancestor(
    role_id: str,
    current_by_id: Dict[str, RoleRow],
    surviving: Set[str],
) -> Optional[str]:
    """Nearest ancestor of role_id in the current tree that is kept."""
    row = current_by_id.get(role_id)
    ancestor = row.parent_role_id if row else None

    for _ in range(len(current_by_id)):
        if ancestor is None or ancestor in surviving:
            return ancestor
        parent_row = current_by_id.get(ancestor)
        ancestor = parent_row.parent_role_id if parent_row else None

    return None


# ---------------------------------------------------------------------------
# Cascade policy
# ---------------------------------------------------------------------------

def _apply_cascade_policy(
    desired: List[RoleRow],
    dangling: List[Violation],
    current_by_id: Dict[str, RoleRow],
    policy: CascadePolicy,
) -> List[RoleRow]:
    """
    Resolve retained children whose parent is being deleted.

    Returns the rewritten desired rows. RESTRICT raises instead.
    """
    orphaned_by_parent: Dict[str, List[str]] = defaultdict(list)
    for violation in dangling:
        orphaned_by_parent[violation.parent_role_id].append(violation.role_id)

    if policy == CascadePolicy.RESTRICT:
        parent_id, child_ids = next(iter(orphaned_by_parent.items()))
        raise DanglingChildError(parent_id, child_ids, orphaned_by_parent)

    orphan_ids = {violation.role_id for violation in dangling}

    if policy == CascadePolicy.CASCADE:
        removed = set(orphan_ids)
        changed = True
        while changed:
            changed = False
            for row in desired:
                if row.role_id not in removed and row.parent_role_id in removed:
                    removed.add(row.role_id)
                    changed = True
        logger.warning(
            "Cascading delete to %d retained descendants of deleted roles",
            len(removed),
            extra={"role_ids": sorted(removed)},
        )
        return [row for row in desired if row.role_id not in removed]

    # REPARENT: move each orphan under its nearest surviving ancestor
    surviving = {row.role_id for row in desired}
    next_index: Dict[Optional[str], int] = {}
    for row in desired:
        if row.role_id in orphan_ids:
            continue
        slot = next_index.get(row.parent_role_id, 0)
        next_index[row.parent_role_id] = max(slot, row.order_index + 1)

    rewritten: List[RoleRow] = []
    for row in desired:
        if row.role_id not in orphan_ids:
            rewritten.append(row)
            continue
        new_parent = _surviving_ancestor(row.parent_role_id, current_by_id, surviving)
        order_index = next_index.get(new_parent, 0)
        next_index[new_parent] = order_index + 1
        logger.warning(
            "Reparenting %s from deleted %s to %s",
            row.role_id, row.parent_role_id, new_parent or "<root>",
            extra={"role_id": row.role_id},
        )
        rewritten.append(row.with_changes(parent_role_id=new_parent, order_index=order_index))

    validate(rewritten).raise_if_invalid()
    return rewritten


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def plan(
    current: Sequence[RoleRow],
    desired: Sequence[RoleRow],
    cascade_policy: CascadePolicy = CascadePolicy.RESTRICT,
) -> ChangePlan:
    """
    Compute the change plan that moves current rows to desired rows.

    Args:
        current: Rows stored for the scope, as last read.
        desired: Flattened rows of the desired tree for the same scope.
        cascade_policy: Handling of retained children of deleted roles.

    Returns:
        ChangePlan with inserts/updates in parent-first order and deletes in
        child-first order.

    Raises:
        ValidationError: desired rows break an invariant, or rows span scopes
        DanglingChildError: RESTRICT policy and a deleted role keeps children
    """
    current = list(current)
    desired = list(desired)
    scope = _resolve_scope(current, desired)

    current_by_id: Dict[str, RoleRow] = {}
    for row in current:
        current_by_id.setdefault(row.role_id, row)

    desired_ids = {row.role_id for row in desired}
    deleted_ids = set(current_by_id) - desired_ids

    result = validate(desired)
    dangling: List[Violation] = []
    blocking: List[Violation] = []
    for violation in result.violations:
        if (
            violation.kind == ViolationKind.DANGLING_PARENT
            and violation.parent_role_id in deleted_ids
        ):
            dangling.append(violation)
        else:
            blocking.append(violation)

    if blocking:
        raise ValidationError(blocking)

    if dangling:
        desired = _apply_cascade_policy(desired, dangling, current_by_id, CascadePolicy(cascade_policy))

    if _same_row_set(current, desired):
        return ChangePlan()

    inserts: Dict[str, RoleRow] = {}
    updates: Dict[str, RoleRow] = {}
    for row in desired:
        existing = current_by_id.get(row.role_id)
        if existing is None:
            inserts[row.role_id] = row
        elif existing.content_key() != row.content_key():
            updates[row.role_id] = row

    write_order = [
        role_id for role_id in _preorder(desired)
        if role_id in inserts or role_id in updates
    ]

    kept_ids = {row.role_id for row in desired}
    deletes = [role_id for role_id in _postorder(current) if role_id not in kept_ids]

    change_plan = ChangePlan(
        inserts=[inserts[role_id] for role_id in write_order if role_id in inserts],
        updates=[updates[role_id] for role_id in write_order if role_id in updates],
        deletes=deletes,
        write_order=write_order,
    )

    if scope is not None:
        logger.info(
            "Planned role changes: %d inserts, %d updates, %d deletes",
            len(change_plan.inserts), len(change_plan.updates), len(change_plan.deletes),
            extra={"business_id": scope[0], "year": scope[1]},
        )

    return change_plan
