"""
Editor payload schemas.

The role editor exchanges trees as JSON objects shaped like
{"id", "name", "color", "participatesInRD", "children": [...]}.
"""

from typing import Any, Dict, List, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from role_hierarchy.domain.models import (
    DEFAULT_ROLE_COLOR,
    ChangePlan,
    ReconcileResult,
    RoleNode,
)


class RoleNodeSchema(BaseModel):
    """One role in an editor tree payload."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., min_length=1, description="Stable role identifier")
    name: str = Field(..., description="Display name")
    color: str = Field(DEFAULT_ROLE_COLOR, description="Display color hint")
    participates_in_rd: bool = Field(
        True, alias="participatesInRD", description="Whether the role takes part in R&D"
    )
    children: List["RoleNodeSchema"] = Field(default_factory=list)

    def to_node(self) -> RoleNode:
        return RoleNode(
            id=self.id,
            name=self.name,
            color=self.color,
            participates_in_rd=self.participates_in_rd,
            children=[child.to_node() for child in self.children],
        )

    @classmethod
    def from_node(cls, node: RoleNode) -> "RoleNodeSchema":
        return cls(
            id=node.id,
            name=node.name,
            color=node.color,
            participates_in_rd=node.participates_in_rd,
            children=[cls.from_node(child) for child in node.children],
        )


RoleNodeSchema.model_rebuild()

_forest_adapter = TypeAdapter(List[RoleNodeSchema])


def parse_forest(payload: Union[Dict[str, Any], Sequence[Dict[str, Any]]]) -> List[RoleNode]:
    """
    Parse an editor payload (one tree or a list of roots) into RoleNodes.

    Raises pydantic.ValidationError on malformed payloads.
    """
    if isinstance(payload, dict):
        payload = [payload]
    return [schema.to_node() for schema in _forest_adapter.validate_python(list(payload))]


def dump_forest(nodes: Sequence[RoleNode]) -> List[Dict[str, Any]]:
    """Serialize RoleNodes back into editor JSON (camelCase flag)."""
    return [RoleNodeSchema.from_node(node).model_dump(by_alias=True) for node in nodes]


class PlanSummarySchema(BaseModel):
    """Role ids touched by a change plan."""

    inserts: List[str] = Field(default_factory=list)
    updates: List[str] = Field(default_factory=list)
    deletes: List[str] = Field(default_factory=list)
    counts: Dict[str, int] = Field(default_factory=dict)

    @classmethod
    def from_plan(cls, plan: ChangePlan) -> "PlanSummarySchema":
        return cls(
            inserts=[row.role_id for row in plan.inserts],
            updates=[row.role_id for row in plan.updates],
            deletes=list(plan.deletes),
            counts=plan.summary,
        )


class ReconcileResponseSchema(BaseModel):
    """Reconciliation outcome as returned to the editor."""

    model_config = ConfigDict(populate_by_name=True)

    applied_tree: List[RoleNodeSchema] = Field(default_factory=list, alias="appliedTree")
    plan: PlanSummarySchema

    @classmethod
    def from_result(cls, result: ReconcileResult) -> "ReconcileResponseSchema":
        return cls(
            applied_tree=[RoleNodeSchema.from_node(node) for node in result.applied_tree],
            plan=PlanSummarySchema.from_plan(result.plan_summary),
        )
