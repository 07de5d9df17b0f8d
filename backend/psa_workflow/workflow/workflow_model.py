"""
Workflow Data Models — definitions, typed nodes, and edges.

These are the serializable data structures that describe an authored
workflow graph. The wire shape is the camelCase React-Flow payload sent
by the workflow editor (``roleId``, ``sourceHandle``, ``formFields``);
Python code uses snake_case attribute names. Both are accepted on input.

``WorkflowDefinition`` keeps an adjacency index (node arena keyed by id,
outgoing / incoming edge lists) that every mutation method keeps
current. Code that edits ``nodes`` / ``edges`` directly must call
``reindex()`` afterwards.
"""

from __future__ import annotations

import uuid
from collections import deque
from datetime import datetime, timezone
from enum import Enum
from logging import getLogger
from typing import Any, Dict, List, Optional, Set, Type, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from psa_workflow.workflow.exceptions import (
    DuplicateHandleTarget,
    DuplicateNode,
    InvalidConfig,
    UnknownNode,
)

logger = getLogger(__name__)


def _short_id() -> str:
    return str(uuid.uuid4())[:8]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class _FlowModel(BaseModel):
    """Base for models exchanged with the editor in camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Enumerations
# ============================================================================


class NodeType(str, Enum):
    """Workflow node types.

    ``department`` and ``sync`` are legacy variants kept so that old
    templates still load; new graphs should not use them.
    """
    START = "start"
    ROLE = "role"
    APPROVAL = "approval"
    FORM = "form"
    CONDITIONAL = "conditional"
    END = "end"
    DEPARTMENT = "department"
    SYNC = "sync"


class FieldType(str, Enum):
    """Form field input types."""
    TEXT = "text"
    TEXTAREA = "textarea"
    EMAIL = "email"
    URL = "url"
    NUMBER = "number"
    DATE = "date"
    DROPDOWN = "dropdown"
    MULTISELECT = "multiselect"
    CHECKBOX = "checkbox"


class ApprovalDecision(str, Enum):
    """The two outcomes every approval node exposes."""
    APPROVED = "approved"
    REJECTED = "rejected"


# ============================================================================
# Form fields & branches
# ============================================================================


class FormField(_FlowModel):
    """A typed field collected by a form node."""

    id: str = Field(default_factory=_short_id)
    label: str = ""
    type: FieldType = FieldType.TEXT
    required: bool = False
    placeholder: Optional[str] = None
    options: Optional[List[str]] = None


class Branch(_FlowModel):
    """A named condition on a conditional node, mapped to one outgoing edge."""

    id: str = Field(default_factory=_short_id)
    label: str = ""
    condition_type: str
    value: str = ""
    value2: Optional[str] = None
    color: str = "#3B82F6"

    @field_validator("value", "value2", mode="before")
    @classmethod
    def _stringify(cls, v: Any) -> Any:
        # Editors send numbers for numeric conditions.
        if v is None or isinstance(v, str):
            return v
        return str(v)


# ============================================================================
# Node configs — one model per node type
# ============================================================================


class NodeConfigBase(_FlowModel):
    """Common base for per-type configs. Unknown keys are a type mismatch."""

    model_config = ConfigDict(extra="forbid")


class StartConfig(NodeConfigBase):
    pass


class EndConfig(NodeConfigBase):
    pass


class SyncConfig(NodeConfigBase):
    pass


class RoleConfig(NodeConfigBase):
    role_id: Optional[str] = None
    role_name: Optional[str] = None


class DepartmentConfig(NodeConfigBase):
    department_id: Optional[str] = None
    department_name: Optional[str] = None


class ApprovalConfig(NodeConfigBase):
    approver_role_id: Optional[str] = None
    approver_role_name: Optional[str] = None
    required_approvals: int = 1
    allow_feedback: bool = True
    allow_send_back: bool = True


class FormConfig(NodeConfigBase):
    form_name: str = ""
    form_fields: List[FormField] = Field(default_factory=list)
    form_description: Optional[str] = None
    form_template_id: Optional[str] = None
    form_template_name: Optional[str] = None
    allow_attachments: bool = False
    is_draft_form: bool = False

    def get_field(self, field_id: str) -> Optional[FormField]:
        for f in self.form_fields:
            if f.id == field_id:
                return f
        return None


class ConditionalConfig(NodeConfigBase):
    source_form_field_id: Optional[str] = None
    source_form_node_id: Optional[str] = None
    conditions: List[Branch] = Field(default_factory=list)
    # Older editors stored the kind of conditional here ("form_value", ...).
    condition_type: Optional[str] = None

    def get_branch(self, key: str) -> Optional[Branch]:
        """Find a branch by id, falling back to its value."""
        for b in self.conditions:
            if b.id == key:
                return b
        for b in self.conditions:
            if b.value and b.value == key:
                return b
        return None


NodeConfig = Union[
    RoleConfig,
    ApprovalConfig,
    FormConfig,
    ConditionalConfig,
    DepartmentConfig,
    StartConfig,
    EndConfig,
    SyncConfig,
]

CONFIG_MODELS: Dict[NodeType, Type[NodeConfigBase]] = {
    NodeType.START: StartConfig,
    NodeType.ROLE: RoleConfig,
    NodeType.APPROVAL: ApprovalConfig,
    NodeType.FORM: FormConfig,
    NodeType.CONDITIONAL: ConditionalConfig,
    NodeType.END: EndConfig,
    NodeType.DEPARTMENT: DepartmentConfig,
    NodeType.SYNC: SyncConfig,
}


def parse_node_config(node_type: NodeType, raw: Any) -> NodeConfigBase:
    """Parse a raw config into the model for ``node_type``.

    Missing fields are fine (a node may sit unconfigured while the graph
    is being edited); fields belonging to another node type are not.

    Raises:
        InvalidConfig: If ``raw`` does not fit the type's config shape.
    """
    model = CONFIG_MODELS[node_type]
    if raw is None:
        return model()
    if isinstance(raw, NodeConfigBase):
        if type(raw) is not model:
            raise InvalidConfig(
                node_type.value,
                f"expected {model.__name__}, got {type(raw).__name__}",
            )
        return raw
    if not isinstance(raw, dict):
        raise InvalidConfig(node_type.value, f"expected a mapping, got {type(raw).__name__}")
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        raise InvalidConfig(node_type.value, str(e)) from e


# ============================================================================
# Nodes & edges
# ============================================================================


class WorkflowNode(_FlowModel):
    """A single node placed on the workflow canvas.

    ``config`` is always the model matching ``type``.
    """

    id: str = Field(default_factory=_short_id)
    type: NodeType
    label: str = ""
    config: NodeConfig = Field(default_factory=StartConfig)
    position: Dict[str, float] = Field(
        default_factory=lambda: {"x": 0, "y": 0}
    )

    @model_validator(mode="before")
    @classmethod
    def _parse_config(cls, data: Any) -> Any:
        if isinstance(data, dict) and "type" in data:
            node_type = NodeType(data["type"])
            data = dict(data)
            data["config"] = parse_node_config(node_type, data.get("config"))
        return data

    @property
    def display_name(self) -> str:
        return self.label or self.type.value


class EdgeData(_FlowModel):
    """Routing metadata attached to an edge."""

    model_config = ConfigDict(extra="ignore")

    label: Optional[str] = None
    condition_value: Optional[str] = None
    condition_type: Optional[str] = None
    decision: Optional[ApprovalDecision] = None


class WorkflowEdge(_FlowModel):
    """A directed edge between two nodes.

    ``source_handle`` names the output of a multi-output node: a branch
    id for conditional nodes, ``approved`` / ``rejected`` for approvals.
    """

    id: str = Field(default_factory=_short_id)
    source: str
    target: str
    source_handle: Optional[str] = None
    data: EdgeData = Field(default_factory=EdgeData)

    @field_validator("data", mode="before")
    @classmethod
    def _default_data(cls, v: Any) -> Any:
        return {} if v is None else v

    @field_validator("source_handle", mode="before")
    @classmethod
    def _blank_handle(cls, v: Any) -> Any:
        return v or None

    @property
    def decision(self) -> Optional[ApprovalDecision]:
        """Approval outcome this edge routes, if any."""
        if self.data.decision is not None:
            return self.data.decision
        for d in ApprovalDecision:
            if self.source_handle == d.value:
                return d
        return None

    @property
    def route_key(self) -> Optional[str]:
        """Branch reference used to match this edge against a conditional."""
        return self.source_handle or self.data.condition_value

    @property
    def output_key(self) -> Optional[str]:
        """Which named output of the source node this edge leaves from."""
        if self.source_handle:
            return self.source_handle
        if self.data.decision is not None:
            return self.data.decision.value
        return self.data.condition_value


# ============================================================================
# Workflow definition (the graph)
# ============================================================================


class WorkflowDefinition(BaseModel):
    """A complete workflow graph definition.

    Contains all nodes, edges, and metadata, plus the adjacency index
    used by the validation and routing engines.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = "Untitled Workflow"
    description: str = ""
    nodes: List[WorkflowNode] = Field(default_factory=list)
    edges: List[WorkflowEdge] = Field(default_factory=list)
    created_at: str = Field(default_factory=_now)
    updated_at: str = Field(default_factory=_now)
    is_template: bool = False

    _nodes_by_id: Dict[str, WorkflowNode] = PrivateAttr(default_factory=dict)
    _order: Dict[str, int] = PrivateAttr(default_factory=dict)
    _outgoing: Dict[str, List[WorkflowEdge]] = PrivateAttr(default_factory=dict)
    _incoming: Dict[str, List[WorkflowEdge]] = PrivateAttr(default_factory=dict)

    def model_post_init(self, __context: Any) -> None:
        self.reindex()

    def reindex(self) -> None:
        """Rebuild the adjacency index from ``nodes`` and ``edges``."""
        self._nodes_by_id = {}
        self._order = {}
        for i, n in enumerate(self.nodes):
            # First declaration wins; duplicates are reported by validation.
            if n.id not in self._nodes_by_id:
                self._nodes_by_id[n.id] = n
                self._order[n.id] = i
        self._outgoing = {}
        self._incoming = {}
        for e in self.edges:
            self._outgoing.setdefault(e.source, []).append(e)
            self._incoming.setdefault(e.target, []).append(e)

    def touch(self) -> None:
        """Update the ``updated_at`` timestamp."""
        self.updated_at = _now()

    # ── Queries ──

    def get_node(self, node_id: str) -> Optional[WorkflowNode]:
        return self._nodes_by_id.get(node_id)

    def has_node(self, node_id: str) -> bool:
        return node_id in self._nodes_by_id

    def node_index(self, node_id: str) -> int:
        """Declaration position of a node; unknown ids sort last."""
        return self._order.get(node_id, len(self.nodes))

    def nodes_of_type(self, node_type: NodeType) -> List[WorkflowNode]:
        return [n for n in self.nodes if n.type == node_type]

    def get_start_node(self) -> Optional[WorkflowNode]:
        """The first node of type 'start', if any."""
        starts = self.nodes_of_type(NodeType.START)
        return starts[0] if starts else None

    def get_end_nodes(self) -> List[WorkflowNode]:
        return self.nodes_of_type(NodeType.END)

    def outgoing_edges(self, node_id: str) -> List[WorkflowEdge]:
        return list(self._outgoing.get(node_id, ()))

    def incoming_edges(self, node_id: str) -> List[WorkflowEdge]:
        return list(self._incoming.get(node_id, ()))

    def get_edge(self, edge_id: str) -> Optional[WorkflowEdge]:
        for e in self.edges:
            if e.id == edge_id:
                return e
        return None

    def reachable_from(self, node_id: str) -> Set[str]:
        """All node ids reachable from ``node_id``, itself included.

        Edges pointing at nodes absent from the graph are not followed.
        """
        if node_id not in self._nodes_by_id:
            return set()
        seen: Set[str] = {node_id}
        queue = deque([node_id])
        while queue:
            current = queue.popleft()
            for edge in self._outgoing.get(current, ()):
                if edge.target in self._nodes_by_id and edge.target not in seen:
                    seen.add(edge.target)
                    queue.append(edge.target)
        return seen

    # ── Mutations ──

    def add_node(
        self,
        node_type: Union[NodeType, str],
        config: Any = None,
        label: str = "",
        node_id: Optional[str] = None,
        position: Optional[Dict[str, float]] = None,
    ) -> WorkflowNode:
        """Add a node with a freshly allocated id.

        Incomplete configs are accepted; validation flags them later.

        Raises:
            InvalidConfig: Unknown node type, or a config shaped for
                another node type.
            DuplicateNode: ``node_id`` is already taken.
        """
        try:
            ntype = NodeType(node_type)
        except ValueError:
            raise InvalidConfig(str(node_type), "unknown node type") from None

        parsed = parse_node_config(ntype, config)

        nid = node_id or _short_id()
        while node_id is None and nid in self._nodes_by_id:
            nid = _short_id()
        if nid in self._nodes_by_id:
            raise DuplicateNode(nid)

        node = WorkflowNode(
            id=nid,
            type=ntype,
            label=label or ntype.value.capitalize(),
            config=parsed,
            position=position or {"x": 0, "y": 0},
        )
        self.nodes.append(node)
        self._nodes_by_id[nid] = node
        self._order[nid] = len(self.nodes) - 1
        return node

    def add_edge(
        self,
        source_id: str,
        target_id: str,
        source_handle: Optional[str] = None,
        data: Any = None,
        edge_id: Optional[str] = None,
    ) -> WorkflowEdge:
        """Connect two nodes.

        Re-adding an identical route returns the existing edge.

        Raises:
            UnknownNode: Either endpoint is absent.
            InvalidConfig: An approval handle and ``data.decision`` disagree.
            DuplicateHandleTarget: The same output already routes elsewhere.
        """
        source = self.get_node(source_id)
        if source is None:
            raise UnknownNode(source_id)
        if target_id not in self._nodes_by_id:
            raise UnknownNode(target_id)

        edge_data = (
            data.model_copy() if isinstance(data, EdgeData)
            else EdgeData.model_validate(data or {})
        )
        edge = WorkflowEdge(
            id=edge_id or _short_id(),
            source=source_id,
            target=target_id,
            source_handle=source_handle,
            data=edge_data,
        )
        self._fill_route_data(source, edge)

        for existing in self._outgoing.get(source_id, ()):
            if existing.output_key != edge.output_key:
                continue
            if existing.target == target_id:
                return existing
            raise DuplicateHandleTarget(
                source_id, edge.output_key, existing.target, target_id,
            )

        self.edges.append(edge)
        self._outgoing.setdefault(source_id, []).append(edge)
        self._incoming.setdefault(target_id, []).append(edge)
        return edge

    @staticmethod
    def _fill_route_data(source: WorkflowNode, edge: WorkflowEdge) -> None:
        """Derive decision / branch metadata from the handle."""
        if source.type == NodeType.APPROVAL:
            handle = edge.source_handle
            if (
                handle in {d.value for d in ApprovalDecision}
                and edge.data.decision is not None
                and edge.data.decision.value != handle
            ):
                raise InvalidConfig(
                    source.type.value,
                    f"edge handle '{handle}' conflicts with decision "
                    f"'{edge.data.decision.value}'",
                )
            decision = edge.decision
            if decision is not None and edge.data.decision is None:
                edge.data.decision = decision
            if decision is not None and not edge.data.label:
                edge.data.label = decision.value.capitalize()
        elif source.type == NodeType.CONDITIONAL and edge.source_handle:
            if edge.data.condition_value is None:
                edge.data.condition_value = edge.source_handle
            branch = source.config.get_branch(edge.source_handle)
            if branch is not None:
                edge.data.label = edge.data.label or branch.label
                edge.data.condition_type = edge.data.condition_type or branch.condition_type

    def update_node_config(self, node_id: str, config: Any) -> WorkflowNode:
        """Replace a node's config.

        When a conditional node's branch set changes, its outgoing edges
        are cleared so no edge keeps routing to a branch that is gone.
        """
        node = self.get_node(node_id)
        if node is None:
            raise UnknownNode(node_id)
        parsed = parse_node_config(node.type, config)

        if node.type == NodeType.CONDITIONAL:
            before = [(b.id, b.value) for b in node.config.conditions]
            after = [(b.id, b.value) for b in parsed.conditions]
            if before != after:
                removed = self.remove_edges_from(node_id)
                if removed:
                    logger.info(
                        f"Branches of '{node.display_name}' ({node_id}) changed; "
                        f"cleared {len(removed)} outgoing edge(s)"
                    )

        node.config = parsed
        return node

    def remove_node(self, node_id: str) -> List[WorkflowEdge]:
        """Remove a node and every edge touching it.

        Returns the removed edges.
        """
        if node_id not in self._nodes_by_id:
            raise UnknownNode(node_id)
        removed = [e for e in self.edges if e.source == node_id or e.target == node_id]
        self.edges = [e for e in self.edges if e.source != node_id and e.target != node_id]
        self.nodes = [n for n in self.nodes if n.id != node_id]
        self.reindex()
        return removed

    def remove_edge(self, edge_id: str) -> bool:
        before = len(self.edges)
        self.edges = [e for e in self.edges if e.id != edge_id]
        if len(self.edges) == before:
            return False
        self.reindex()
        return True

    def remove_edges_from(self, node_id: str) -> List[WorkflowEdge]:
        """Drop every outgoing edge of a node; returns what was removed."""
        removed = self._outgoing.get(node_id, [])
        if not removed:
            return []
        self.edges = [e for e in self.edges if e.source != node_id]
        self.reindex()
        return list(removed)

    # ── Editor (React-Flow) shape ──

    def to_flow(self) -> Dict[str, List[Dict[str, Any]]]:
        """Export nodes and edges in the editor's React-Flow shape."""
        nodes = [
            {
                "id": n.id,
                "type": "workflowNode",
                "position": dict(n.position),
                "data": {
                    "label": n.label,
                    "type": n.type.value,
                    "config": n.config.model_dump(by_alias=True, exclude_none=True),
                },
            }
            for n in self.nodes
        ]
        edges = []
        for e in self.edges:
            edge: Dict[str, Any] = {
                "id": e.id,
                "source": e.source,
                "target": e.target,
                "data": e.data.model_dump(by_alias=True, exclude_none=True, mode="json"),
            }
            if e.source_handle:
                edge["sourceHandle"] = e.source_handle
            edges.append(edge)
        return {"nodes": nodes, "edges": edges}

    @classmethod
    def from_flow(
        cls,
        nodes: List[Dict[str, Any]],
        edges: List[Dict[str, Any]],
        **meta: Any,
    ) -> "WorkflowDefinition":
        """Build a definition from the editor's React-Flow nodes and edges."""
        parsed_nodes = []
        for raw in nodes:
            data = raw.get("data") or {}
            parsed_nodes.append(WorkflowNode(
                id=raw["id"],
                type=data.get("type") or raw.get("type"),
                label=data.get("label") or "",
                config=data.get("config"),
                position=raw.get("position") or {"x": 0, "y": 0},
            ))
        parsed_edges = [WorkflowEdge.model_validate(raw) for raw in edges]
        return cls(nodes=parsed_nodes, edges=parsed_edges, **meta)
