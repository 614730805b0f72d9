"""
Structural validation for role hierarchies.

Single authority for duplicate ids, parent references, parent cycles and
sibling ordering. Accepts either the tree form (a RoleNode or a forest of
them) or the row form, so desired state can be checked before flattening
and stored state can be re-checked before assembly.

All functions are pure: no store access, no side effects.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple, Type, Union

from role_hierarchy.domain.errors import ValidationError
from role_hierarchy.domain.models import RoleNode, RoleRow, walk_forest


RoleInput = Union[RoleNode, Sequence[RoleNode], Sequence[RoleRow]]


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

class ViolationKind(str, Enum):
    """Kinds of structural violation, in the order they are checked."""
    MIXED_SCOPE = "mixed_scope"
    DUPLICATE_ID = "duplicate_id"
    DANGLING_PARENT = "dangling_parent"
    CYCLE = "cycle"
    ORDER_COLLISION = "order_collision"


@dataclass
class Violation:
    """A single invariant failure for one role."""
    role_id: str
    kind: ViolationKind
    detail: str
    parent_role_id: Optional[str] = None


@dataclass
class ValidationResult:
    """Result of validating a tree or row set."""
    valid: bool
    violations: List[Violation] = field(default_factory=list)

    def of_kind(self, kind: ViolationKind) -> List[Violation]:
        return [v for v in self.violations if v.kind == kind]

    def raise_if_invalid(self, error_cls: Type[ValidationError] = ValidationError) -> None:
        if not self.valid:
            raise error_cls(self.violations)


@dataclass(frozen=True)
class _Link:
    """Parent pointer and ordering of one role, independent of representation."""
    role_id: str
    parent_role_id: Optional[str]
    order_index: int
    scope: Optional[Tuple[str, int]] = None


# ---------------------------------------------------------------------------
# Input normalization
# ---------------------------------------------------------------------------

def _to_links(roles: RoleInput) -> List[_Link]:
    if isinstance(roles, RoleNode):
        roles = [roles]

    items = list(roles)
    if not items:
        return []

    if all(isinstance(item, RoleNode) for item in items):
        return [
            _Link(entry.node.id, entry.parent_id, entry.sibling_index)
            for entry in walk_forest(items)
        ]

    if all(isinstance(item, RoleRow) for item in items):
        return [
            _Link(row.role_id, row.parent_role_id, row.order_index, row.scope)
            for row in items
        ]

    raise TypeError("validate() expects RoleNode trees or RoleRow rows, not a mix")


# ---------------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------------

def _check_scope(links: List[_Link], violations: List[Violation]) -> None:
    """Row sets must cover exactly one (business_id, year) scope."""
    scopes = [link.scope for link in links if link.scope is not None]
    if not scopes:
        return

    expected = scopes[0]
    for link in links:
        if link.scope is not None and link.scope != expected:
            violations.append(Violation(
                role_id=link.role_id,
                kind=ViolationKind.MIXED_SCOPE,
                detail=f"{link.role_id} belongs to scope {link.scope}, expected {expected}",
            ))


def _check_duplicates(links: List[_Link], violations: List[Violation]) -> Dict[str, _Link]:
    """Index links by role_id, reporting every repeat after the first."""
    by_id: Dict[str, _Link] = {}
    for link in links:
        if link.role_id in by_id:
            violations.append(Violation(
                role_id=link.role_id,
                kind=ViolationKind.DUPLICATE_ID,
                detail=f"{link.role_id} appears more than once",
            ))
            continue
        by_id[link.role_id] = link
    return by_id


def _check_dangling(
    by_id: Dict[str, _Link],
    violations: List[Violation],
) -> None:
    for link in by_id.values():
        parent_id = link.parent_role_id
        if parent_id is not None and parent_id not in by_id:
            violations.append(Violation(
                role_id=link.role_id,
                kind=ViolationKind.DANGLING_PARENT,
                detail=f"{link.role_id} references parent {parent_id} which does not exist",
                parent_role_id=parent_id,
            ))


def _check_cycles(by_id: Dict[str, _Link], violations: List[Violation]) -> None:
    """
    Walk each role's ancestor chain, reporting every member of a cycle.

    Each walk is bounded by the row count.
    """
    limit = len(by_id)
    resolved: set = set()
    reported: set = set()

    for start in by_id:
        if start in resolved:
            continue

        chain: List[str] = []
        position: Dict[str, int] = {}
        current: Optional[str] = start

        for _ in range(limit + 1):
            if current is None or current in resolved:
                break
            if current in position:
                cycle = chain[position[current]:]
                trace = " -> ".join(cycle + [current])
                for member in cycle:
                    if member not in reported:
                        reported.add(member)
                        violations.append(Violation(
                            role_id=member,
                            kind=ViolationKind.CYCLE,
                            detail=f"Parent cycle detected: {trace}",
                            parent_role_id=by_id[member].parent_role_id,
                        ))
                break

            position[current] = len(chain)
            chain.append(current)

            link = by_id.get(current)
            if link is None:
                break
            current = link.parent_role_id
        else:
            if start not in reported:
                reported.add(start)
                violations.append(Violation(
                    role_id=start,
                    kind=ViolationKind.CYCLE,
                    detail=f"{start} does not reach a root within {limit} steps",
                ))

        resolved.update(chain)


def _check_order_collisions(links: List[_Link], violations: List[Violation]) -> None:
    """Sibling order_index values must be unique per parent."""
    groups: Dict[Tuple[Optional[str], int], List[str]] = defaultdict(list)
    for link in links:
        groups[(link.parent_role_id, link.order_index)].append(link.role_id)

    for link in links:
        siblings = groups[(link.parent_role_id, link.order_index)]
        if len(siblings) < 2:
            continue
        others = [role_id for role_id in siblings if role_id != link.role_id]
        parent = link.parent_role_id or "<root>"
        violations.append(Violation(
            role_id=link.role_id,
            kind=ViolationKind.ORDER_COLLISION,
            detail=(
                f"{link.role_id} shares order_index {link.order_index} under "
                f"{parent} with {', '.join(others) or link.role_id}"
            ),
            parent_role_id=link.parent_role_id,
        ))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def validate(roles: RoleInput) -> ValidationResult:
    """
    Validate a role tree, forest or row set.

    Checks, in order: mixed scope (rows only), duplicate ids, dangling
    parent references, parent cycles, sibling order collisions. Returns all
    violations, not just the first. Never modifies its input.
    """
    links = _to_links(roles)
    violations: List[Violation] = []

    _check_scope(links, violations)
    by_id = _check_duplicates(links, violations)
    _check_dangling(by_id, violations)
    _check_cycles(by_id, violations)
    _check_order_collisions(links, violations)

    return ValidationResult(valid=len(violations) == 0, violations=violations)
