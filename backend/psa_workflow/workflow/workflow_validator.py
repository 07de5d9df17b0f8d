"""
Workflow Validator — save-time structural and configuration checks.

``validate`` is a pure function over a ``WorkflowDefinition``: it never
mutates the graph and never raises for graph content. Every check runs
on every call so the editor can show the full list of problems at once.

Check order:
    1. start node count, start with incoming edges
    2. end node count, end with outgoing edges
       duplicate node ids, edges to unknown nodes
    3. reachability from the start node
    4. orphans, dead ends, parallel outputs on single-path nodes
    5. per-type configuration (via node handlers)
    6. per-type outgoing-edge wiring (via node handlers)
    7. cycles not closed by an approval's ``rejected`` edge

Issues are then ordered by the declaration position of the node they
belong to, graph-level issues first.
"""

from __future__ import annotations

from logging import getLogger
from typing import Dict, List, Optional, Set

from psa_workflow.config import EngineConfig, get_engine_config
from psa_workflow.workflow.issues import ValidationCode, ValidationIssue, ValidationResult
import psa_workflow.workflow.nodes  # noqa: F401  registers node handlers
from psa_workflow.workflow.nodes.base import ValidationContext, get_node_registry
from psa_workflow.workflow.role_directory import RoleDirectory
from psa_workflow.workflow.workflow_model import (
    ApprovalDecision,
    NodeType,
    WorkflowDefinition,
    WorkflowEdge,
    WorkflowNode,
)

logger = getLogger(__name__)


def validate(
    graph: WorkflowDefinition,
    directory: Optional[RoleDirectory] = None,
    config: Optional[EngineConfig] = None,
) -> ValidationResult:
    """Validate a workflow graph.

    Args:
        graph: The workflow to check.
        directory: Optional role directory. When given, role references
            are checked for existence (``unknown_role``).
        config: Engine limits; defaults to the process-wide config.

    Returns:
        A ``ValidationResult``; ``valid`` is True when there are no errors.
    """
    ctx = ValidationContext(
        graph=graph,
        config=config or get_engine_config(),
        directory=directory,
    )
    issues: List[ValidationIssue] = []
    issues += _check_start(graph)
    issues += _check_end(graph)
    issues += _check_identity(graph)
    issues += _check_reachability(graph)
    issues += _check_connectivity(graph)
    issues += _check_node_config(ctx)
    issues += _check_node_routes(ctx)
    issues += _check_cycles(graph)

    ordered = sorted(issues, key=lambda i: _sort_key(graph, i))
    result = ValidationResult.from_issues(ordered)
    logger.debug(
        f"Workflow '{graph.name}' validated: "
        f"{len(result.errors)} errors, {len(result.warnings)} warnings"
    )
    return result


def _sort_key(graph: WorkflowDefinition, issue: ValidationIssue):
    if issue.node_id is None:
        return (0, 0)
    return (1, graph.node_index(issue.node_id))


def _error(
    code: ValidationCode,
    message: str,
    node: Optional[WorkflowNode] = None,
    edge: Optional[WorkflowEdge] = None,
) -> ValidationIssue:
    where = {}
    if node is not None:
        where["node_id"] = node.id
        where["node_label"] = node.display_name
    if edge is not None:
        where["edge_id"] = edge.id
    return ValidationIssue.error(code, message, **where)


# ============================================================================
# Steps 1-2: start and end nodes
# ============================================================================


def _check_start(graph: WorkflowDefinition) -> List[ValidationIssue]:
    starts = graph.nodes_of_type(NodeType.START)
    issues: List[ValidationIssue] = []
    if not starts:
        issues.append(_error(ValidationCode.MISSING_START, "Workflow must have a Start node"))
    elif len(starts) > 1:
        issues.append(_error(
            ValidationCode.MULTIPLE_START,
            f"Workflow must have exactly one Start node (found {len(starts)})",
        ))
    for start in starts:
        if graph.incoming_edges(start.id):
            issues.append(_error(
                ValidationCode.START_HAS_INCOMING,
                f'Start node "{start.display_name}" cannot have incoming connections',
                node=start,
            ))
    return issues


def _check_end(graph: WorkflowDefinition) -> List[ValidationIssue]:
    ends = graph.get_end_nodes()
    issues: List[ValidationIssue] = []
    if not ends:
        issues.append(_error(ValidationCode.MISSING_END, "Workflow must have at least one End node"))
    for end in ends:
        if graph.outgoing_edges(end.id):
            issues.append(_error(
                ValidationCode.END_HAS_OUTGOING,
                f'End node "{end.display_name}" cannot have outgoing connections',
                node=end,
            ))
    return issues


def _check_identity(graph: WorkflowDefinition) -> List[ValidationIssue]:
    """Duplicate node ids and edges whose endpoints do not exist."""
    issues: List[ValidationIssue] = []
    seen: Set[str] = set()
    for node in graph.nodes:
        if node.id in seen:
            issues.append(_error(
                ValidationCode.DUPLICATE_NODE_ID,
                f"Node id {node.id} is used more than once",
                node=node,
            ))
        seen.add(node.id)

    for edge in graph.edges:
        missing = [end for end in (edge.source, edge.target) if not graph.has_node(end)]
        if not missing:
            continue
        issues.append(_error(
            ValidationCode.UNKNOWN_EDGE_ENDPOINT,
            f"Edge {edge.id} references unknown node(s): {', '.join(missing)}",
            node=graph.get_node(edge.source),
            edge=edge,
        ))
    return issues


# ============================================================================
# Steps 3-4: reachability and connectivity
# ============================================================================


def _check_reachability(graph: WorkflowDefinition) -> List[ValidationIssue]:
    starts = graph.nodes_of_type(NodeType.START)
    if len(starts) != 1:
        return []
    reachable = graph.reachable_from(starts[0].id)
    return [
        _error(
            ValidationCode.UNREACHABLE_NODE,
            f'Node "{node.display_name}" cannot be reached from the Start node',
            node=node,
        )
        for node in graph.nodes
        if node.id not in reachable
    ]


def _check_connectivity(graph: WorkflowDefinition) -> List[ValidationIssue]:
    registry = get_node_registry()
    issues: List[ValidationIssue] = []
    for node in graph.nodes:
        incoming = [e for e in graph.incoming_edges(node.id) if graph.has_node(e.source)]
        outgoing = [e for e in graph.outgoing_edges(node.id) if graph.has_node(e.target)]

        if node.type != NodeType.START and not incoming:
            issues.append(_error(
                ValidationCode.ORPHAN_NODE,
                f'Node "{node.display_name}" has no incoming connections',
                node=node,
            ))
        if node.type == NodeType.END:
            continue
        if not outgoing:
            issues.append(_error(
                ValidationCode.DEAD_END,
                f'Node "{node.display_name}" has no outgoing connections',
                node=node,
            ))
        elif len(outgoing) > 1 and not registry.require(node.type).branching:
            issues.append(_error(
                ValidationCode.PARALLEL_NOT_ALLOWED,
                f'Node "{node.display_name}" has {len(outgoing)} outgoing connections; '
                f"only approval and conditional nodes may branch",
                node=node,
                edge=outgoing[1],
            ))
    return issues


# ============================================================================
# Steps 5-6: per-type checks
# ============================================================================


def _check_node_config(ctx: ValidationContext) -> List[ValidationIssue]:
    registry = get_node_registry()
    issues: List[ValidationIssue] = []
    for node in ctx.graph.nodes:
        issues += registry.require(node.type).config_issues(node, ctx)
    return issues


def _check_node_routes(ctx: ValidationContext) -> List[ValidationIssue]:
    registry = get_node_registry()
    issues: List[ValidationIssue] = []
    for node in ctx.graph.nodes:
        issues += registry.require(node.type).route_issues(node, ctx)
    return issues


# ============================================================================
# Step 7: cycles
# ============================================================================


def is_send_back_edge(graph: WorkflowDefinition, edge: WorkflowEdge) -> bool:
    """True for an approval node's ``rejected`` edge, the one permitted loop."""
    source = graph.get_node(edge.source)
    return (
        source is not None
        and source.type == NodeType.APPROVAL
        and edge.decision == ApprovalDecision.REJECTED
    )


def find_cycles(graph: WorkflowDefinition) -> List[List[str]]:
    """Find cycles not closed by a send-back edge.

    Iterative DFS with in-progress/done marking; each back edge found
    yields the node-id path of its cycle, starting and ending at the
    back edge's target.
    """
    IN_PROGRESS, DONE = 1, 2
    mark: Dict[str, int] = {}
    cycles: List[List[str]] = []

    def successors(node_id: str) -> List[str]:
        return [
            e.target for e in graph.outgoing_edges(node_id)
            if graph.has_node(e.target) and not is_send_back_edge(graph, e)
        ]

    for root in graph.nodes:
        if root.id in mark:
            continue
        path: List[str] = [root.id]
        stack = [iter(successors(root.id))]
        mark[root.id] = IN_PROGRESS
        while stack:
            target = next(stack[-1], None)
            if target is None:
                mark[path.pop()] = DONE
                stack.pop()
                continue
            state = mark.get(target)
            if state == IN_PROGRESS:
                cycles.append(path[path.index(target):] + [target])
            elif state is None:
                mark[target] = IN_PROGRESS
                path.append(target)
                stack.append(iter(successors(target)))
    return cycles


def _check_cycles(graph: WorkflowDefinition) -> List[ValidationIssue]:
    issues: List[ValidationIssue] = []
    for cycle in find_cycles(graph):
        closing = graph.get_node(cycle[-2])
        names = [graph.get_node(nid).display_name for nid in cycle]
        issues.append(_error(
            ValidationCode.DISALLOWED_CYCLE,
            "Loop detected: " + " → ".join(names)
            + ". Only an approval's rejected path may loop back",
            node=closing,
        ))
    return issues
