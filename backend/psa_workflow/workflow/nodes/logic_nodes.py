"""
Logic Nodes — conditional branching on submitted form values.

A conditional node reads one field of an upstream form and tests its
branches in declaration order; the first branch that holds wins. There
is no implicit default path: when nothing matches, the instance faults.
"""

from __future__ import annotations

from logging import getLogger
from typing import Any, Dict, List, Optional

from psa_workflow.workflow.conditions import branch_problem, first_matching_branch
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
    Branch,
    ConditionalConfig,
    FormField,
    NodeType,
    WorkflowDefinition,
    WorkflowEdge,
    WorkflowNode,
)
from psa_workflow.workflow.workflow_state import (
    FaultCode,
    InstanceState,
    SideEffect,
    SideEffectKind,
    StepResult,
)

logger = getLogger(__name__)


def edges_for_branch(
    graph: WorkflowDefinition,
    node: WorkflowNode,
    branch: Branch,
) -> List[WorkflowEdge]:
    """Outgoing edges of ``node`` that route ``branch``."""
    config: ConditionalConfig = node.config
    result = []
    for edge in graph.outgoing_edges(node.id):
        key = edge.route_key
        if key is None:
            continue
        matched = config.get_branch(key)
        if matched is not None and matched.id == branch.id:
            result.append(edge)
    return result


def resolve_source_field(
    graph: WorkflowDefinition,
    node: WorkflowNode,
) -> Optional[FormField]:
    """The form field a conditional node reads, if it can be found."""
    config: ConditionalConfig = node.config
    if not config.source_form_node_id or not config.source_form_field_id:
        return None
    form = graph.get_node(config.source_form_node_id)
    if form is None or form.type != NodeType.FORM:
        return None
    return form.config.get_field(config.source_form_field_id)


@register_node
class ConditionalNode(BaseNode):
    """Route to one of the configured branches based on a form value."""

    node_type = NodeType.CONDITIONAL
    label = "Conditional"
    description = "Route based on a value submitted in an earlier form."
    category = "logic"
    branching = True

    # Ports are the configured branches.
    output_ports = []

    def get_output_ports(self, node: WorkflowNode) -> List[OutputPort]:
        return [
            OutputPort(id=b.id, label=b.label or b.condition_type)
            for b in node.config.conditions
        ]

    def entry_detail(self, node: WorkflowNode) -> Dict[str, Any]:
        return {
            "source_form_node_id": node.config.source_form_node_id,
            "source_form_field_id": node.config.source_form_field_id,
        }

    # ── Validation ──

    def config_issues(self, node: WorkflowNode, ctx: ValidationContext) -> List[ValidationIssue]:
        config: ConditionalConfig = node.config
        issues: List[ValidationIssue] = []

        if not config.conditions:
            issues.append(self.warning(
                node, ValidationCode.UNCONFIGURED_CONDITIONAL,
                f'Conditional node "{node.display_name}" has no branches configured',
            ))
        elif len(config.conditions) > ctx.config.max_branches:
            issues.append(self.error(
                node, ValidationCode.TOO_MANY_BRANCHES,
                f'Conditional node "{node.display_name}" has {len(config.conditions)} '
                f"branches; at most {ctx.config.max_branches} are allowed",
            ))

        if not config.conditions and not config.source_form_node_id:
            return issues

        source_problem = self._source_problem(node, ctx.graph)
        if source_problem:
            issues.append(self.error(
                node, ValidationCode.INVALID_CONDITIONAL_SOURCE,
                f'Conditional node "{node.display_name}": {source_problem}',
            ))

        field = resolve_source_field(ctx.graph, node)
        field_type = field.type if field is not None else None
        for branch in config.conditions:
            problem = branch_problem(branch, field_type)
            if problem:
                issues.append(self.error(
                    node, ValidationCode.INCOMPATIBLE_CONDITION,
                    f'Branch "{branch.label or branch.id}" of "{node.display_name}": {problem}',
                ))
        return issues

    @staticmethod
    def _source_problem(node: WorkflowNode, graph: WorkflowDefinition) -> Optional[str]:
        config: ConditionalConfig = node.config
        if not config.source_form_node_id:
            return "no source form selected"
        form = graph.get_node(config.source_form_node_id)
        if form is None:
            return f"source form node {config.source_form_node_id} does not exist"
        if form.type != NodeType.FORM:
            return f'source node "{form.display_name}" is not a form'
        if not config.source_form_field_id:
            return "no source form field selected"
        if form.config.get_field(config.source_form_field_id) is None:
            return (
                f'form "{form.display_name}" has no field '
                f"{config.source_form_field_id}"
            )
        if form.id == node.id or node.id not in graph.reachable_from(form.id):
            return f'source form "{form.display_name}" is not upstream of this node'
        return None

    def route_issues(self, node: WorkflowNode, ctx: ValidationContext) -> List[ValidationIssue]:
        config: ConditionalConfig = node.config
        issues: List[ValidationIssue] = []
        routed: Dict[str, List[str]] = {}

        for edge in ctx.graph.outgoing_edges(node.id):
            key = edge.route_key
            branch = config.get_branch(key) if key else None
            if branch is None:
                issues.append(self.error(
                    node, ValidationCode.DANGLING_EDGE_REFERENCE,
                    f'Edge {edge.id} from "{node.display_name}" references branch '
                    f"'{key or '(none)'}', which is not configured",
                    edge_id=edge.id,
                ))
                continue
            routed.setdefault(branch.id, []).append(edge.id)

        for branch in config.conditions:
            edge_ids = routed.get(branch.id, [])
            name = branch.label or branch.id
            if not edge_ids:
                issues.append(self.warning(
                    node, ValidationCode.UNWIRED_BRANCH,
                    f'Branch "{name}" of "{node.display_name}" is not connected',
                ))
            elif len(edge_ids) > 1:
                issues.append(self.error(
                    node, ValidationCode.DUPLICATE_BRANCH_ROUTE,
                    f'Branch "{name}" of "{node.display_name}" has {len(edge_ids)} edges; '
                    f"only one is allowed",
                    edge_id=edge_ids[1],
                ))
        return issues

    # ── Routing ──

    def advance(
        self,
        graph: WorkflowDefinition,
        node: WorkflowNode,
        state: InstanceState,
        event: Event,
    ) -> StepResult:
        if event is not None:
            return self.reject_event(node, state, event)

        config: ConditionalConfig = node.config
        value = state.context.field_value(
            config.source_form_node_id, config.source_form_field_id,
        )
        branch = first_matching_branch(config.conditions, value)
        if branch is None:
            return fault_result(
                state, FaultCode.NO_BRANCH_MATCHED,
                f'No branch of "{node.display_name}" matched value {value!r}',
                node.id,
            )

        edges = edges_for_branch(graph, node, branch)
        if not edges:
            return fault_result(
                state, FaultCode.NO_ROUTE_FOR_BRANCH,
                f'Branch "{branch.label or branch.id}" of "{node.display_name}" '
                f"matched but is not connected",
                node.id,
            )

        logger.info(
            f"[{state.instance_id}] conditional '{node.display_name}': "
            f"{value!r} → branch '{branch.label or branch.id}'"
        )
        selected = SideEffect(
            kind=SideEffectKind.BRANCH_SELECTED,
            node_id=node.id,
            detail={"branch_id": branch.id, "branch_label": branch.label, "value": value},
        )
        return move_along(graph, state, edges[0], effects=[selected])
