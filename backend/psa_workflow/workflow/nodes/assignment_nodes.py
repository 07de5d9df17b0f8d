"""
Assignment Nodes — steps handed to a role (or, in old templates, a
department).

Entering an assignment node tells the orchestration layer whom to
assign; the engine itself auto-advances along the single outgoing edge.
"""

from __future__ import annotations

from typing import Any, Dict, List

from psa_workflow.workflow.issues import ValidationCode, ValidationIssue
from psa_workflow.workflow.nodes.base import (
    BaseNode,
    Event,
    ValidationContext,
    register_node,
)
from psa_workflow.workflow.workflow_model import (
    NodeType,
    WorkflowDefinition,
    WorkflowNode,
)
from psa_workflow.workflow.workflow_state import InstanceState, StepResult


@register_node
class RoleNode(BaseNode):
    """Assign the step to everyone holding a role."""

    node_type = NodeType.ROLE
    label = "Role"
    description = "Assign to a specific role (e.g. Video Editor, Designer)."
    category = "assignment"

    def entry_detail(self, node: WorkflowNode) -> Dict[str, Any]:
        return {"role_id": node.config.role_id, "role_name": node.config.role_name}

    def config_issues(self, node: WorkflowNode, ctx: ValidationContext) -> List[ValidationIssue]:
        if not node.config.role_id:
            return [self.error(
                node, ValidationCode.UNCONFIGURED_ROLE,
                f'Role node "{node.display_name}" has no role selected',
            )]
        return self.unknown_role_issue(node, node.config.role_id, ctx)

    def advance(
        self,
        graph: WorkflowDefinition,
        node: WorkflowNode,
        state: InstanceState,
        event: Event,
    ) -> StepResult:
        if event is not None:
            return self.reject_event(node, state, event)
        return self.follow_single_edge(graph, node, state)


@register_node
class DepartmentNode(BaseNode):
    """Legacy: assign the step to a whole department. Routed like a role
    node; new templates should use role nodes instead."""

    node_type = NodeType.DEPARTMENT
    label = "Department"
    description = "Legacy department node. Use Role nodes instead."
    category = "legacy"

    def entry_detail(self, node: WorkflowNode) -> Dict[str, Any]:
        return {
            "department_id": node.config.department_id,
            "department_name": node.config.department_name,
        }

    def config_issues(self, node: WorkflowNode, ctx: ValidationContext) -> List[ValidationIssue]:
        message = (
            f'Department node "{node.display_name}" is deprecated; '
            f"replace it with a Role node"
        )
        if ctx.config.allow_legacy_department:
            return [self.warning(node, ValidationCode.DEPRECATED_NODE_TYPE, message)]
        return [self.error(node, ValidationCode.DEPRECATED_NODE_TYPE, message)]

    def advance(
        self,
        graph: WorkflowDefinition,
        node: WorkflowNode,
        state: InstanceState,
        event: Event,
    ) -> StepResult:
        if event is not None:
            return self.reject_event(node, state, event)
        return self.follow_single_edge(graph, node, state)
