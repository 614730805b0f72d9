"""
Role lookup helpers for consumers of the role tree.

Expense and activity screens reference roles by id and need flat lists,
name lookups and the R&D participant set.
"""

from typing import List, Optional, Sequence

from role_hierarchy.domain.models import RoleNode, walk_forest


NON_RD_ROLE_ID = "non-rd"
NON_RD_ROLE_NAME = "Non-R&D"
OTHER_ROLE_ID = "other"
OTHER_ROLE_NAME = "Other"
UNKNOWN_ROLE_NAME = "Unknown Role"


def iter_roles(roles: Sequence[RoleNode]) -> List[RoleNode]:
    """All roles of a forest in depth-first pre-order."""
    return [entry.node for entry in walk_forest(roles)]


def find_role(roles: Sequence[RoleNode], role_id: str) -> Optional[RoleNode]:
    for entry in walk_forest(roles):
        if entry.node.id == role_id:
            return entry.node
    return None


def rd_participant_ids(roles: Sequence[RoleNode]) -> List[str]:
    """Ids of roles flagged as participating in R&D, in tree order."""
    return [node.id for node in iter_roles(roles) if node.participates_in_rd]


def resolve_role_name(
    role_id: str,
    roles: Optional[Sequence[RoleNode]] = None,
    custom_name: Optional[str] = None,
) -> str:
    """
    Display name for a role id.

    The reserved ids "non-rd" and "other" resolve without a lookup; "other"
    prefers the caller's custom name.
    """
    if role_id == NON_RD_ROLE_ID:
        return NON_RD_ROLE_NAME
    if role_id == OTHER_ROLE_ID:
        return custom_name or OTHER_ROLE_NAME

    if roles:
        node = find_role(roles, role_id)
        if node is not None:
            return node.name

    return UNKNOWN_ROLE_NAME
