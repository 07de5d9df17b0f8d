"""
Shared fixtures for the workflow engine tests.

Graphs are built through the public mutation API (``add_node`` /
``add_edge``) with fixed ids so that assertions can name nodes.
"""

from typing import Callable, Dict, List, Optional

import pytest

from psa_workflow.config import EngineConfig, set_engine_config
from psa_workflow.workflow.conditions import make_branch
from psa_workflow.workflow.role_directory import DirectoryUser, InMemoryRoleDirectory, Role
from psa_workflow.workflow.workflow_model import (
    ApprovalConfig,
    ConditionalConfig,
    FieldType,
    FormConfig,
    FormField,
    NodeType,
    RoleConfig,
    WorkflowDefinition,
    WorkflowEdge,
    WorkflowNode,
)


@pytest.fixture(autouse=True)
def default_engine_config():
    """Every test starts from the built-in engine defaults."""
    set_engine_config(EngineConfig())
    yield
    set_engine_config(None)


@pytest.fixture
def review_loop() -> WorkflowDefinition:
    """Start -> Role(A) -> Approval(B, approver=Manager) -> [approved: End1, rejected: Role(A)]."""
    wf = WorkflowDefinition(id="wf-review", name="Review")
    wf.add_node(NodeType.START, node_id="start")
    wf.add_node(NodeType.ROLE, RoleConfig(role_id="role-a", role_name="Delivery"),
                label="A", node_id="A")
    wf.add_node(NodeType.APPROVAL,
                ApprovalConfig(approver_role_id="manager", approver_role_name="Manager"),
                label="B", node_id="B")
    wf.add_node(NodeType.END, label="End1", node_id="end1")
    wf.add_edge("start", "A", edge_id="e1")
    wf.add_edge("A", "B", edge_id="e2")
    wf.add_edge("B", "end1", source_handle="approved", edge_id="e3")
    wf.add_edge("B", "A", source_handle="rejected", edge_id="e4")
    return wf


@pytest.fixture
def scored_routing() -> WorkflowDefinition:
    """Start -> Form(score) -> Conditional[B1: score > 10, B2: score > 5] -> High/Mid -> End."""
    wf = WorkflowDefinition(id="wf-scored", name="Scored")
    wf.add_node(NodeType.START, node_id="start")
    wf.add_node(
        NodeType.FORM,
        FormConfig(
            form_name="Scoring",
            form_fields=[
                FormField(id="score", label="Score", type=FieldType.NUMBER, required=True),
                FormField(id="notes", label="Notes", type=FieldType.TEXT),
            ],
        ),
        label="Scoring", node_id="form",
    )
    wf.add_node(
        NodeType.CONDITIONAL,
        ConditionalConfig(
            source_form_node_id="form",
            source_form_field_id="score",
            conditions=[
                make_branch("Score", "greater_than", 10, index=0, branch_id="B1"),
                make_branch("Score", "greater_than", 5, index=1, branch_id="B2"),
            ],
        ),
        label="Route", node_id="cond",
    )
    wf.add_node(NodeType.ROLE, RoleConfig(role_id="role-high"), label="High", node_id="high")
    wf.add_node(NodeType.ROLE, RoleConfig(role_id="role-mid"), label="Mid", node_id="mid")
    wf.add_node(NodeType.END, node_id="end")
    wf.add_edge("start", "form")
    wf.add_edge("form", "cond")
    wf.add_edge("cond", "high", source_handle="B1", edge_id="e-b1")
    wf.add_edge("cond", "mid", source_handle="B2", edge_id="e-b2")
    wf.add_edge("high", "end")
    wf.add_edge("mid", "end")
    return wf


@pytest.fixture
def directory() -> InMemoryRoleDirectory:
    """Roles used by the fixture graphs; ``manager`` and ``role-a`` are staffed."""
    return InMemoryRoleDirectory(
        roles=[
            Role(id="role-a", name="Delivery", department_id="ops"),
            Role(id="manager", name="Manager", department_id="ops", hierarchy_level=2),
            Role(id="empty", name="Vacant"),
        ],
        users=[
            DirectoryUser(id="u1", name="Ana", role_ids=["role-a"]),
            DirectoryUser(id="u2", name="Ben", role_ids=["manager", "role-a"]),
        ],
    )


@pytest.fixture
def make_graph() -> Callable[..., WorkflowDefinition]:
    """Build a graph directly from node/edge specs, bypassing add_edge checks.

    ``nodes`` is a list of ``(id, type)`` or ``(id, type, config)``;
    ``edges`` is a list of ``(source, target)`` or ``(source, target, handle)``.
    """

    def _make(nodes: List[tuple], edges: List[tuple] = (), **meta) -> WorkflowDefinition:
        parsed_nodes = []
        for entry in nodes:
            nid, ntype = entry[0], entry[1]
            config: Optional[Dict] = entry[2] if len(entry) > 2 else None
            parsed_nodes.append(WorkflowNode(id=nid, type=ntype, label=nid, config=config))
        parsed_edges = []
        for i, entry in enumerate(edges):
            handle = entry[2] if len(entry) > 2 else None
            parsed_edges.append(WorkflowEdge(
                id=f"e{i}", source=entry[0], target=entry[1], source_handle=handle,
            ))
        return WorkflowDefinition(nodes=parsed_nodes, edges=parsed_edges, **meta)

    return _make
