"""
Workflow Inspector — a read-only audit report of a WorkflowDefinition.

Produces a structured description of how the routing engine will treat
the graph, for editors and operators reviewing a template:

* Each node's type, configuration and output ports
* Each edge's routing role (direct, approval decision, or branch)
* How each branching node chooses its route
* Reachability from the start node
* The validation result
"""

from __future__ import annotations

from collections import Counter
from logging import getLogger
from typing import Any, Dict, List, Optional, Set

from psa_workflow.workflow.conditions import ConditionType, VALUELESS_CONDITIONS
from psa_workflow.workflow.nodes.base import NodeRegistry, get_node_registry
from psa_workflow.workflow.nodes.logic_nodes import resolve_source_field
from psa_workflow.workflow.workflow_model import (
    NodeType,
    WorkflowDefinition,
    WorkflowEdge,
    WorkflowNode,
)
from psa_workflow.workflow.workflow_validator import validate

logger = getLogger(__name__)


# ====================================================================
# Public API
# ====================================================================


def inspect_workflow(
    workflow: WorkflowDefinition,
    registry: Optional[NodeRegistry] = None,
) -> Dict[str, Any]:
    """Inspect a workflow and produce the audit report.

    Returns a dict containing:
        - ``nodes``      : Per-node detail list
        - ``edges``      : Per-edge detail list
        - ``summary``    : High-level stats
        - ``validation`` : Validation result
    """
    reg = registry or get_node_registry()
    result = validate(workflow)

    start = workflow.get_start_node()
    reachable: Set[str] = workflow.reachable_from(start.id) if start else set()

    node_details = [_node_detail(workflow, n, reg, reachable) for n in workflow.nodes]
    edge_details = [_edge_detail(workflow, e) for e in workflow.edges]

    kinds = Counter(d["routing"] for d in edge_details)
    type_counts = Counter(n.type.value for n in workflow.nodes)

    return {
        "nodes": node_details,
        "edges": edge_details,
        "summary": {
            "workflow_name": workflow.name,
            "workflow_id": workflow.id,
            "total_nodes": len(workflow.nodes),
            "total_edges": len(workflow.edges),
            "node_types": dict(type_counts),
            "direct_edges": kinds.get("direct", 0),
            "decision_edges": kinds.get("decision", 0),
            "branch_edges": kinds.get("branch", 0),
            "reachable_nodes": len(reachable),
            "is_valid": result.valid,
            "error_count": len(result.errors),
            "warning_count": len(result.warnings),
        },
        "validation": result.to_dict(),
    }


# ====================================================================
# Node detail builder
# ====================================================================


def _node_detail(
    workflow: WorkflowDefinition,
    node: WorkflowNode,
    reg: NodeRegistry,
    reachable: Set[str],
) -> Dict[str, Any]:
    handler = reg.require(node.type)
    routes = []
    for e in workflow.outgoing_edges(node.id):
        target = workflow.get_node(e.target)
        routes.append({
            "edge_id": e.id,
            "route": _route_label(workflow, e),
            "target_id": e.target,
            "target_label": target.display_name if target else None,
        })

    return {
        "id": node.id,
        "label": node.display_name,
        "node_type": node.type.value,
        "category": handler.category,
        "description": handler.description,
        "is_branching": handler.branching,
        "is_reachable": node.id in reachable,
        "output_ports": [
            {"id": p.id, "label": p.label, "description": p.description}
            for p in handler.get_output_ports(node)
        ],
        "routes": routes,
        "config": node.config.model_dump(mode="json", exclude_none=True),
        "routing_logic": _describe_routing(workflow, node),
    }


def _describe_routing(workflow: WorkflowDefinition, node: WorkflowNode) -> Optional[str]:
    """Human-readable description of how the node picks its next step."""
    if node.type == NodeType.START:
        return "Advances immediately along its single outgoing edge."
    if node.type == NodeType.ROLE:
        who = node.config.role_name or node.config.role_id or "(unassigned)"
        return f"Assigns the work to {who}, then advances along its single outgoing edge."
    if node.type == NodeType.DEPARTMENT:
        who = node.config.department_name or node.config.department_id or "(unassigned)"
        return f"Assigns the work to {who} (legacy), then advances along its single outgoing edge."
    if node.type == NodeType.FORM:
        return (
            f'Waits for "{node.config.form_name or node.display_name}" to be submitted, '
            f"stores the values, then advances along its single outgoing edge."
        )
    if node.type == NodeType.APPROVAL:
        who = node.config.approver_role_name or node.config.approver_role_id or "(unassigned)"
        return (
            f"Waits for a decision from {who}.\n"
            f'"approved" and "rejected" each follow their own edge; '
            f"a decision without an edge faults the instance."
        )
    if node.type == NodeType.CONDITIONAL:
        field = resolve_source_field(workflow, node)
        field_name = field.label if field is not None else node.config.source_form_field_id
        lines = [f'Reads "{field_name}" from form {node.config.source_form_node_id}.']
        for i, b in enumerate(node.config.conditions, 1):
            lines.append(f"  {i}. {_branch_text(b.condition_type, b.value, b.value2)} → {b.label or b.id}")
        lines.append("First matching branch wins; no match faults the instance.")
        return "\n".join(lines)
    if node.type == NodeType.END:
        return "Completes the instance."
    if node.type == NodeType.SYNC:
        return "Not executable: parallel workflows are disabled."
    return None


def _branch_text(condition_type: str, value: str, value2: Optional[str]) -> str:
    if condition_type in {c.value for c in VALUELESS_CONDITIONS}:
        return condition_type
    if condition_type == ConditionType.BETWEEN.value:
        return f"between {value} and {value2}"
    return f"{condition_type} {value}"


# ====================================================================
# Edge detail builder
# ====================================================================


def _route_label(workflow: WorkflowDefinition, edge: WorkflowEdge) -> str:
    source = workflow.get_node(edge.source)
    if source is not None and source.type == NodeType.APPROVAL:
        return edge.decision.value if edge.decision else "(no decision)"
    if source is not None and source.type == NodeType.CONDITIONAL:
        branch = source.config.get_branch(edge.route_key) if edge.route_key else None
        return (branch.label or branch.id) if branch else "(no branch)"
    return "next"


def _edge_detail(workflow: WorkflowDefinition, edge: WorkflowEdge) -> Dict[str, Any]:
    source = workflow.get_node(edge.source)
    target = workflow.get_node(edge.target)

    if source is None or target is None:
        routing = "dangling"
    elif source.type == NodeType.APPROVAL:
        routing = "decision"
    elif source.type == NodeType.CONDITIONAL:
        routing = "branch"
    else:
        routing = "direct"

    return {
        "id": edge.id,
        "source": edge.source,
        "source_label": source.display_name if source else None,
        "target": edge.target,
        "target_label": target.display_name if target else None,
        "source_handle": edge.source_handle,
        "routing": routing,
        "route": _route_label(workflow, edge),
        "label": edge.data.label,
    }
