"""
Conversion between the editor's role tree and storage rows.

This is the only place parent/order relationships are derived from one
shape into the other.

- flatten: tree or forest -> rows, depth-first pre-order
- assemble: rows -> forest, re-validating the rows first

Both are pure and deterministic: identical input yields identical output.
"""

from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Union

from role_hierarchy.domain.errors import AssemblyError, MultipleRootsError
from role_hierarchy.domain.models import RoleNode, RoleRow, walk_forest
from role_hierarchy.domain.services.role_validator import validate


def _as_forest(tree: Union[RoleNode, Sequence[RoleNode]]) -> List[RoleNode]:
    if isinstance(tree, RoleNode):
        return [tree]
    return list(tree)


def flatten(
    tree: Union[RoleNode, Sequence[RoleNode]],
    business_id: str,
    year: int,
) -> List[RoleRow]:
    """
    Flatten a role tree (or ordered forest) into rows for one scope.

    parent_role_id comes from the traversal parent; order_index is the
    0-based sibling index, reset per parent. Timestamps are left unset for
    the coordinator to assign.
    """
    return [
        RoleRow(
            business_id=business_id,
            year=year,
            role_id=entry.node.id,
            name=entry.node.name,
            color=entry.node.color,
            participates_in_rd=entry.node.participates_in_rd,
            parent_role_id=entry.parent_id,
            order_index=entry.sibling_index,
        )
        for entry in walk_forest(_as_forest(tree))
    ]


def assemble(
    rows: Sequence[RoleRow],
    allow_multiple_roots: bool = True,
) -> List[RoleNode]:
    """
    Rebuild the ordered forest from stored rows.

    Rows are validated first; they may have been edited outside the engine.

    Raises:
        AssemblyError: rows break a structural invariant
        MultipleRootsError: more than one root while a single root is required
    """
    validate(rows).raise_if_invalid(AssemblyError)

    children_of: Dict[Optional[str], List[RoleRow]] = defaultdict(list)
    for row in rows:
        children_of[row.parent_role_id].append(row)
    for siblings in children_of.values():
        siblings.sort(key=lambda row: row.order_index)

    roots = children_of.get(None, [])
    if not allow_multiple_roots and len(roots) > 1:
        raise MultipleRootsError([row.role_id for row in roots])

    nodes: Dict[str, RoleNode] = {
        row.role_id: RoleNode(
            id=row.role_id,
            name=row.name,
            color=row.color,
            participates_in_rd=row.participates_in_rd,
        )
        for row in rows
    }
    for parent_id, siblings in children_of.items():
        if parent_id is None:
            continue
        nodes[parent_id].children = [nodes[row.role_id] for row in siblings]

    return [nodes[row.role_id] for row in roots]
