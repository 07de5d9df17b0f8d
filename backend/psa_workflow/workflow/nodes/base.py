"""
Node Base — BaseNode ABC, node registry, and shared routing helpers.

Every node type has exactly one ``BaseNode`` subclass registered with
``@register_node``. The validation engine asks the handler for per-type
config and wiring issues; the routing engine asks it to ``advance`` an
instance sitting on a node of that type.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from logging import getLogger
from typing import Any, Dict, List, Optional, Type, TypeVar, Union

from psa_workflow.config import EngineConfig
from psa_workflow.workflow.issues import ValidationCode, ValidationIssue
from psa_workflow.workflow.role_directory import RoleDirectory, find_role
from psa_workflow.workflow.workflow_model import (
    NodeType,
    WorkflowDefinition,
    WorkflowEdge,
    WorkflowNode,
)
from psa_workflow.workflow.workflow_state import (
    ApprovalDecisionEvent,
    Fault,
    FaultCode,
    FormSubmissionEvent,
    InstanceContext,
    InstanceState,
    SideEffect,
    SideEffectKind,
    StepFault,
    StepResult,
    StepSuccess,
)

logger = getLogger(__name__)

Event = Union[ApprovalDecisionEvent, FormSubmissionEvent, None]


@dataclass
class OutputPort:
    """A named output of a node."""

    id: str
    label: str
    description: str = ""


@dataclass
class ValidationContext:
    """What node handlers may consult while checking a node."""

    graph: WorkflowDefinition
    config: EngineConfig
    directory: Optional[RoleDirectory] = None


# ============================================================================
# Step helpers
# ============================================================================


def fault_result(
    state: InstanceState,
    code: FaultCode,
    message: str,
    node_id: Optional[str] = None,
) -> StepFault:
    """Build a fault. Fatal faults mark the instance faulted; recoverable
    ones hand back the instance unchanged."""
    fault = Fault.of(code, message, node_id)
    return StepFault(state=state if fault.recoverable else state.faulted(fault), fault=fault)


def move_along(
    graph: WorkflowDefinition,
    state: InstanceState,
    edge: WorkflowEdge,
    context: Optional[InstanceContext] = None,
    effects: Optional[List[SideEffect]] = None,
) -> StepResult:
    """Advance the instance across ``edge`` to its target."""
    target = graph.get_node(edge.target)
    if target is None:
        return fault_result(
            state, FaultCode.MISSING_NODE,
            f"Edge {edge.id} targets node {edge.target}, which is not in the workflow",
            edge.source,
        )

    detail: Dict[str, Any] = {
        "node_type": target.type.value,
        "label": target.label,
        "via_edge": edge.id,
    }
    handler = get_node_registry().get(target.type)
    if handler is not None:
        detail.update(handler.entry_detail(target))

    entered = SideEffect(kind=SideEffectKind.ENTERED_NODE, node_id=target.id, detail=detail)
    return StepSuccess(
        state=state.moved_to(target.id, context),
        side_effects=[*(effects or []), entered],
    )


# ============================================================================
# BaseNode
# ============================================================================


class BaseNode(ABC):
    """Behaviour of one node type in validation and routing."""

    node_type: NodeType
    label: str = ""
    description: str = ""
    category: str = "flow"

    # May this node type have more than one outgoing edge?
    branching: bool = False

    output_ports: List[OutputPort] = [
        OutputPort(id="default", label="Next"),
    ]

    def get_output_ports(self, node: WorkflowNode) -> List[OutputPort]:
        """Output ports for a concrete node; override when config-dependent."""
        return list(self.output_ports)

    def entry_detail(self, node: WorkflowNode) -> Dict[str, Any]:
        """Extra detail attached to the side effect of entering this node."""
        return {}

    # ── Validation hooks ──

    def config_issues(self, node: WorkflowNode, ctx: ValidationContext) -> List[ValidationIssue]:
        """Per-type config completeness checks."""
        return []

    def route_issues(self, node: WorkflowNode, ctx: ValidationContext) -> List[ValidationIssue]:
        """Per-type checks on the node's outgoing edges."""
        return []

    # ── Routing ──

    @abstractmethod
    def advance(
        self,
        graph: WorkflowDefinition,
        node: WorkflowNode,
        state: InstanceState,
        event: Event,
    ) -> StepResult:
        """Compute the transition for an instance sitting on ``node``."""

    # ── Helpers for subclasses ──

    @staticmethod
    def error(node: WorkflowNode, code: ValidationCode, message: str, **where: Any) -> ValidationIssue:
        return ValidationIssue.error(
            code, message, node_id=node.id, node_label=node.display_name, **where,
        )

    @staticmethod
    def warning(node: WorkflowNode, code: ValidationCode, message: str, **where: Any) -> ValidationIssue:
        return ValidationIssue.warning(
            code, message, node_id=node.id, node_label=node.display_name, **where,
        )

    @staticmethod
    def unknown_role_issue(
        node: WorkflowNode,
        role_id: Optional[str],
        ctx: ValidationContext,
    ) -> List[ValidationIssue]:
        if not role_id or ctx.directory is None:
            return []
        if find_role(ctx.directory, role_id) is not None:
            return []
        return [BaseNode.error(
            node, ValidationCode.UNKNOWN_ROLE,
            f'Node "{node.display_name}" references role {role_id}, which does not exist',
        )]

    def reject_event(self, node: WorkflowNode, state: InstanceState, event: Event) -> StepFault:
        return fault_result(
            state, FaultCode.EVENT_MISMATCH,
            f"{self.label} node \"{node.display_name}\" does not accept a {event.kind} event",
            node.id,
        )

    def follow_single_edge(
        self,
        graph: WorkflowDefinition,
        node: WorkflowNode,
        state: InstanceState,
        context: Optional[InstanceContext] = None,
        effects: Optional[List[SideEffect]] = None,
    ) -> StepResult:
        """Take the node's only successor."""
        edges = graph.outgoing_edges(node.id)
        if not edges:
            return fault_result(
                state, FaultCode.NO_OUTGOING_EDGE,
                f'Node "{node.display_name}" has no outgoing edge',
                node.id,
            )
        targets = {e.target for e in edges}
        if len(targets) > 1:
            return fault_result(
                state, FaultCode.AMBIGUOUS_ROUTE,
                f'Node "{node.display_name}" has {len(targets)} successors; only one is allowed',
                node.id,
            )
        return move_along(graph, state, edges[0], context, effects)


# ============================================================================
# Registry
# ============================================================================


class NodeRegistry:
    """Maps each NodeType to its handler instance."""

    def __init__(self) -> None:
        self._handlers: Dict[NodeType, BaseNode] = {}

    def register(self, handler: BaseNode) -> None:
        existing = self._handlers.get(handler.node_type)
        if existing is not None and type(existing) is not type(handler):
            logger.warning(
                f"Node type '{handler.node_type.value}' handler replaced: "
                f"{type(existing).__name__} → {type(handler).__name__}"
            )
        self._handlers[handler.node_type] = handler

    def get(self, node_type: NodeType) -> Optional[BaseNode]:
        return self._handlers.get(node_type)

    def require(self, node_type: NodeType) -> BaseNode:
        handler = self._handlers.get(node_type)
        if handler is None:
            raise LookupError(f"No handler registered for node type '{node_type.value}'")
        return handler

    def list_all(self) -> List[BaseNode]:
        return list(self._handlers.values())

    def missing_types(self) -> List[NodeType]:
        return [t for t in NodeType if t not in self._handlers]


_registry = NodeRegistry()


def get_node_registry() -> NodeRegistry:
    return _registry


N = TypeVar("N", bound=Type[BaseNode])


def register_node(cls: N) -> N:
    """Class decorator: instantiate the handler and register it."""
    _registry.register(cls())
    return cls
