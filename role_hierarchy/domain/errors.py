"""Exceptions raised by the role hierarchy engine."""

from typing import TYPE_CHECKING, Dict, List, Optional, Sequence

if TYPE_CHECKING:
    from role_hierarchy.domain.models import ChangePlan, RoleRow
    from role_hierarchy.domain.services.role_validator import Violation


class RoleHierarchyError(Exception):
    """Base exception for the role hierarchy engine."""

    def __init__(self, message: str = "An error occurred"):
        self.message = message
        super().__init__(self.message)


class ValidationError(RoleHierarchyError):
    """A tree or row set breaks a structural invariant."""

    def __init__(self, violations: Sequence["Violation"], message: Optional[str] = None):
        self.violations = list(violations)
        if message is None:
            details = "; ".join(v.detail for v in self.violations[:5])
            more = len(self.violations) - 5
            if more > 0:
                details += f"; and {more} more"
            message = f"Role hierarchy is invalid: {details}"
        super().__init__(message)

    @property
    def role_ids(self) -> List[str]:
        return [v.role_id for v in self.violations]


class AssemblyError(ValidationError):
    """Stored rows cannot be assembled into a tree."""
    pass


class MultipleRootsError(AssemblyError):
    """More than one root where a single root is required."""

    def __init__(self, root_ids: Sequence[str]):
        self.root_ids = list(root_ids)
        super().__init__(
            [],
            message=f"Expected a single root role, found {len(self.root_ids)}: "
                    f"{', '.join(self.root_ids)}",
        )


class PlanningError(RoleHierarchyError):
    """A change plan cannot be computed."""
    pass


class DanglingChildError(PlanningError):
    """
    Deleted roles still have retained children and no new parent for them.

    parent_role_id / child_role_ids describe the first offending parent;
    orphaned_by_parent maps every offending parent to its retained children.
    """

    def __init__(
        self,
        parent_role_id: str,
        child_role_ids: Sequence[str],
        orphaned_by_parent: Optional[Dict[str, Sequence[str]]] = None,
    ):
        self.parent_role_id = parent_role_id
        self.child_role_ids = list(child_role_ids)
        if orphaned_by_parent is None:
            orphaned_by_parent = {parent_role_id: child_role_ids}
        self.orphaned_by_parent = {
            parent: list(children) for parent, children in orphaned_by_parent.items()
        }
        super().__init__(
            "Deleted roles still have retained children: "
            + "; ".join(
                f"{parent} <- {', '.join(children)}"
                for parent, children in self.orphaned_by_parent.items()
            )
        )


class ConflictError(RoleHierarchyError):
    """
    The store rejected part of a plan while it was being applied.

    Carries what was already written and deleted so the caller can decide
    whether to re-read, re-plan and re-apply.
    """

    def __init__(
        self,
        role_id: Optional[str],
        written: Sequence["RoleRow"],
        deleted: Sequence[str],
        plan: "ChangePlan",
        cause: Optional[Exception] = None,
    ):
        self.role_id = role_id
        self.written = list(written)
        self.deleted = list(deleted)
        self.plan = plan
        self.cause = cause
        super().__init__(
            f"Conflict applying role {role_id or '<unknown>'}: "
            f"{len(self.written)} written, {len(self.deleted)} deleted before failure"
            + (f" ({cause})" if cause else "")
        )


class RoleNotFoundError(RoleHierarchyError):
    """Role not found in scope."""
    pass
