"""
Flow Nodes — graph entry, exit, and the retired sync node.
"""

from __future__ import annotations

from logging import getLogger
from typing import List

from psa_workflow.workflow.issues import ValidationCode, ValidationIssue
from psa_workflow.workflow.nodes.base import (
    BaseNode,
    Event,
    ValidationContext,
    fault_result,
    register_node,
)
from psa_workflow.workflow.workflow_model import (
    NodeType,
    WorkflowDefinition,
    WorkflowNode,
)
from psa_workflow.workflow.workflow_state import (
    FaultCode,
    InstanceState,
    SideEffect,
    SideEffectKind,
    StepResult,
    StepSuccess,
)

logger = getLogger(__name__)


@register_node
class StartNode(BaseNode):
    """Entry point. Auto-advances along its single outgoing edge."""

    node_type = NodeType.START
    label = "Start"
    description = "Where every workflow begins. Only one per workflow."

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
class EndNode(BaseNode):
    """Terminal node. Reaching it completes the instance."""

    node_type = NodeType.END
    label = "End"
    description = "Marks the workflow as complete."
    output_ports = []

    def advance(
        self,
        graph: WorkflowDefinition,
        node: WorkflowNode,
        state: InstanceState,
        event: Event,
    ) -> StepResult:
        if event is not None:
            return self.reject_event(node, state, event)
        done = state.completed()
        logger.info(
            f"[{state.instance_id}] completed at '{node.display_name}' "
            f"after {done.step_count} steps"
        )
        return StepSuccess(
            state=done,
            side_effects=[SideEffect(
                kind=SideEffectKind.COMPLETED,
                node_id=node.id,
                detail={"step_count": done.step_count},
            )],
        )


@register_node
class SyncNode(BaseNode):
    """Legacy parallel-join node. Parallel execution is disabled, so a
    sync node can neither be saved nor executed."""

    node_type = NodeType.SYNC
    label = "Sync"
    description = "Legacy parallel join (disabled)."
    category = "legacy"

    def config_issues(self, node: WorkflowNode, ctx: ValidationContext) -> List[ValidationIssue]:
        return [self.error(
            node, ValidationCode.SYNC_NOT_ALLOWED,
            f'Sync node "{node.display_name}" is not allowed. Parallel workflows are '
            f"disabled; remove the sync node and use a single pathway.",
        )]

    def advance(
        self,
        graph: WorkflowDefinition,
        node: WorkflowNode,
        state: InstanceState,
        event: Event,
    ) -> StepResult:
        return fault_result(
            state, FaultCode.UNSUPPORTED_NODE,
            f'Sync node "{node.display_name}" cannot be executed; parallel workflows are disabled',
            node.id,
        )


