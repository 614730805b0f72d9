"""Role hierarchy domain models."""

from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from enum import Enum
from typing import Dict, Iterator, List, NamedTuple, Optional, Sequence, Set, Tuple
from uuid import uuid4


DEFAULT_ROLE_ID = "research-leader"
DEFAULT_ROLE_NAME = "Research Leader"
DEFAULT_ROLE_COLOR = "#1976d2"

# Identity used for upsert conflict resolution
NATURAL_KEY: Tuple[str, ...] = ("business_id", "year", "role_id")

# Fields an update may change; everything else is identity or bookkeeping
CONTENT_FIELDS: Tuple[str, ...] = (
    "name",
    "color",
    "participates_in_rd",
    "parent_role_id",
    "order_index",
)


class CascadePolicy(str, Enum):
    """What happens to retained children of a deleted role."""
    RESTRICT = "restrict"
    REPARENT = "reparent"
    CASCADE = "cascade"


class TraversalEntry(NamedTuple):
    """One step of a depth-first walk over a role tree."""
    node: "RoleNode"
    parent_id: Optional[str]
    sibling_index: int


@dataclass
class RoleNode:
    """
    Tree form of a role, as edited.

    Children are owned exclusively and their order is significant.
    Equality is structural: ids, field values and child order.
    """
    id: str
    name: str
    color: str = DEFAULT_ROLE_COLOR
    participates_in_rd: bool = True
    children: List["RoleNode"] = field(default_factory=list)

    @classmethod
    def create(
        cls,
        name: str,
        color: str = DEFAULT_ROLE_COLOR,
        participates_in_rd: bool = True,
        children: Optional[List["RoleNode"]] = None,
    ) -> "RoleNode":
        """Create a new role with a generated ID."""
        return cls(
            id=str(uuid4()),
            name=name,
            color=color,
            participates_in_rd=participates_in_rd,
            children=children or [],
        )

    def walk(self) -> Iterator[TraversalEntry]:
        """Depth-first pre-order walk rooted at this node."""
        return walk_forest([self])


def walk_forest(roots: Sequence[RoleNode]) -> Iterator[TraversalEntry]:
    """
    Depth-first pre-order walk over an ordered forest.

    Yields (node, parent_id, sibling_index) triples. Roots are indexed among
    themselves with parent_id None. Calling again restarts the walk.

    A node object reachable more than once is yielded each time but its
    children are expanded only once, so the walk terminates on any input.
    """
    expanded: Set[int] = set()
    stack: List[Tuple[RoleNode, Optional[str], int]] = [
        (node, None, index) for index, node in reversed(list(enumerate(roots)))
    ]

    while stack:
        node, parent_id, index = stack.pop()
        yield TraversalEntry(node, parent_id, index)

        if id(node) in expanded:
            continue
        expanded.add(id(node))

        for child_index in range(len(node.children) - 1, -1, -1):
            stack.append((node.children[child_index], node.id, child_index))


@dataclass
class RoleRow:
    """
    Storage form of a role: one relational row.

    Scope (business_id, year) and role_id are identity; the content fields
    are what a reconciliation may change.
    """
    business_id: str
    year: int
    role_id: str
    name: str
    color: str = DEFAULT_ROLE_COLOR
    participates_in_rd: bool = True
    parent_role_id: Optional[str] = None
    order_index: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def scope(self) -> Tuple[str, int]:
        return (self.business_id, self.year)

    @property
    def natural_key(self) -> Tuple[str, int, str]:
        return (self.business_id, self.year, self.role_id)

    @property
    def is_root(self) -> bool:
        return self.parent_role_id is None

    def content_key(self) -> tuple:
        """Comparable tuple of the fields an update may change."""
        return tuple(getattr(self, name) for name in CONTENT_FIELDS)

    def changed_fields(self, other: "RoleRow") -> List[str]:
        """Names of content fields whose values differ from other."""
        return [
            name for name in CONTENT_FIELDS
            if getattr(self, name) != getattr(other, name)
        ]

    def with_changes(self, **changes) -> "RoleRow":
        """Copy of this row with the given fields replaced."""
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, object]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass
class ChangePlan:
    """
    Inserts, updates and deletes that move one scope from current to desired.

    write_order lists the role_ids of inserts and updates merged in
    topological order (parents first); deletes are already children first.
    """
    inserts: List[RoleRow] = field(default_factory=list)
    updates: List[RoleRow] = field(default_factory=list)
    deletes: List[str] = field(default_factory=list)
    write_order: List[str] = field(default_factory=list)

    @property
    def writes(self) -> List[RoleRow]:
        """Inserts and updates interleaved so parents precede children."""
        by_id = {row.role_id: row for row in self.inserts}
        by_id.update({row.role_id: row for row in self.updates})
        if not self.write_order:
            return list(by_id.values())
        return [by_id[role_id] for role_id in self.write_order]

    @property
    def is_empty(self) -> bool:
        return not (self.inserts or self.updates or self.deletes)

    @property
    def summary(self) -> Dict[str, int]:
        return {
            "inserts": len(self.inserts),
            "updates": len(self.updates),
            "deletes": len(self.deletes),
        }


@dataclass
class AppliedResult:
    """Outcome of applying a change plan."""
    written: List[RoleRow] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    orphans_removed: List[str] = field(default_factory=list)


@dataclass
class ReconcileResult:
    """Result handed back to editors after a reconciliation run."""
    applied_tree: List[RoleNode]
    plan_summary: ChangePlan
    applied: AppliedResult = field(default_factory=AppliedResult)
