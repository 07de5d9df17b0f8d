"""
Approval Nodes — gates that wait for an approver's decision.

An approval node exposes two outputs, ``approved`` and ``rejected``.
Neither has to be wired, but each may route to only one node. The
``rejected`` edge is the one edge in a workflow allowed to point back
upstream ("send back for revision").
"""

from __future__ import annotations

from logging import getLogger
from typing import Any, Dict, List

from psa_workflow.workflow.issues import ValidationCode, ValidationIssue
from psa_workflow.workflow.nodes.base import (
    BaseNode,
    Event,
    OutputPort,
    ValidationContext,
    fault_result,
    move_along,
    register_node,
)
from psa_workflow.workflow.workflow_model import (
    ApprovalDecision,
    NodeType,
    WorkflowDefinition,
    WorkflowNode,
)
from psa_workflow.workflow.workflow_state import (
    ApprovalDecisionEvent,
    DecisionRecord,
    FaultCode,
    InstanceState,
    InstanceStatus,
    SideEffect,
    SideEffectKind,
    StepResult,
    StepSuccess,
)

logger = getLogger(__name__)


@register_node
class ApprovalNode(BaseNode):
    """Block until an approver decides, then route on the decision."""

    node_type = NodeType.APPROVAL
    label = "Approval"
    description = "Requires an Approve / Reject decision before proceeding."
    category = "gate"
    branching = True

    output_ports = [
        OutputPort(id="approved", label="Approved", description="Approver accepted the work"),
        OutputPort(id="rejected", label="Rejected", description="Send back for revision"),
    ]

    def entry_detail(self, node: WorkflowNode) -> Dict[str, Any]:
        return {
            "approver_role_id": node.config.approver_role_id,
            "approver_role_name": node.config.approver_role_name,
        }

    def config_issues(self, node: WorkflowNode, ctx: ValidationContext) -> List[ValidationIssue]:
        if not node.config.approver_role_id:
            return [self.error(
                node, ValidationCode.UNCONFIGURED_APPROVAL,
                f'Approval node "{node.display_name}" has no approver role selected',
            )]
        return self.unknown_role_issue(node, node.config.approver_role_id, ctx)

    def route_issues(self, node: WorkflowNode, ctx: ValidationContext) -> List[ValidationIssue]:
        issues: List[ValidationIssue] = []
        by_decision: Dict[ApprovalDecision, List[str]] = {}
        for edge in ctx.graph.outgoing_edges(node.id):
            decision = edge.decision
            if decision is None:
                issues.append(self.warning(
                    node, ValidationCode.UNLABELED_DECISION_EDGE,
                    f'Edge {edge.id} from approval "{node.display_name}" has no '
                    f"approved/rejected decision and will never be taken",
                    edge_id=edge.id,
                ))
                continue
            by_decision.setdefault(decision, []).append(edge.id)

        for decision in ApprovalDecision:
            edge_ids = by_decision.get(decision, [])
            if len(edge_ids) > 1:
                issues.append(self.error(
                    node, ValidationCode.DUPLICATE_DECISION_TARGET,
                    f'Approval "{node.display_name}" has {len(edge_ids)} '
                    f'"{decision.value}" edges; only one is allowed',
                    edge_id=edge_ids[1],
                ))
        return issues

    def advance(
        self,
        graph: WorkflowDefinition,
        node: WorkflowNode,
        state: InstanceState,
        event: Event,
    ) -> StepResult:
        if event is None:
            if state.status == InstanceStatus.AWAITING_APPROVAL:
                return StepSuccess(state=state)
            return StepSuccess(
                state=state.waiting(InstanceStatus.AWAITING_APPROVAL),
                side_effects=[SideEffect(
                    kind=SideEffectKind.AWAITING_APPROVAL,
                    node_id=node.id,
                    detail=self.entry_detail(node),
                )],
            )

        if not isinstance(event, ApprovalDecisionEvent):
            return self.reject_event(node, state, event)

        edges = [e for e in graph.outgoing_edges(node.id) if e.decision == event.decision]
        if not edges:
            return fault_result(
                state, FaultCode.NO_ROUTE_FOR_DECISION,
                f'Approval "{node.display_name}" has no "{event.decision.value}" route',
                node.id,
            )
        if len({e.target for e in edges}) > 1:
            return fault_result(
                state, FaultCode.AMBIGUOUS_ROUTE,
                f'Approval "{node.display_name}" has several "{event.decision.value}" routes',
                node.id,
            )

        logger.info(
            f"[{state.instance_id}] approval '{node.display_name}': "
            f"{event.decision.value} → {edges[0].target}"
        )
        record = DecisionRecord(
            node_id=node.id,
            decision=event.decision,
            feedback=event.feedback,
            actor_id=event.actor_id,
        )
        recorded = SideEffect(
            kind=SideEffectKind.DECISION_RECORDED,
            node_id=node.id,
            detail={"decision": event.decision.value, "feedback": event.feedback},
        )
        return move_along(
            graph, state, edges[0],
            context=state.context.with_decision(record),
            effects=[recorded],
        )
