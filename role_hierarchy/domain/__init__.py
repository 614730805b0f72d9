"""Role hierarchy domain: models, errors and pure services."""

from role_hierarchy.domain.models import (
    RoleNode,
    RoleRow,
    ChangePlan,
    AppliedResult,
    ReconcileResult,
    CascadePolicy,
    TraversalEntry,
    walk_forest,
)
from role_hierarchy.domain.errors import (
    RoleHierarchyError,
    ValidationError,
    AssemblyError,
    MultipleRootsError,
    PlanningError,
    DanglingChildError,
    ConflictError,
    RoleNotFoundError,
)

__all__ = [
    # Models
    "RoleNode",
    "RoleRow",
    "ChangePlan",
    "AppliedResult",
    "ReconcileResult",
    "CascadePolicy",
    "TraversalEntry",
    "walk_forest",
    # Exceptions
    "RoleHierarchyError",
    "ValidationError",
    "AssemblyError",
    "MultipleRootsError",
    "PlanningError",
    "DanglingChildError",
    "ConflictError",
    "RoleNotFoundError",
]
