"""
Pre-built Workflow Templates.

Provides factory functions that return ready-made ``WorkflowDefinition``
objects for the common PSA pathways, so teams can clone a template
rather than draw a workflow from scratch.
"""

from __future__ import annotations

from typing import Callable, Dict, List, Optional

from psa_workflow.workflow.conditions import make_branch
from psa_workflow.workflow.workflow_model import (
    ApprovalConfig,
    ConditionalConfig,
    FieldType,
    FormConfig,
    FormField,
    NodeType,
    RoleConfig,
    WorkflowDefinition,
)


# ============================================================================
# Review Loop Template
# ============================================================================


def create_review_loop_template() -> WorkflowDefinition:
    """Build a work-then-review loop.

    Topology::
        START → Delivery (role) → Manager Review (approval)
          ↓ [approved → END | rejected → Delivery]
    """
    wf = WorkflowDefinition(
        id="template-review-loop",
        name="Review Loop",
        description=(
            "Work is assigned to the delivery team and reviewed by a manager. "
            "Rejected work is sent back to the delivery team for revision."
        ),
        is_template=True,
    )

    wf.add_node(NodeType.START, label="Start", node_id="start",
                position={"x": 250, "y": 0})
    wf.add_node(NodeType.ROLE, RoleConfig(role_id="role-delivery", role_name="Delivery Team"),
                label="Delivery", node_id="delivery", position={"x": 250, "y": 120})
    wf.add_node(NodeType.APPROVAL,
                ApprovalConfig(approver_role_id="role-manager", approver_role_name="Manager"),
                label="Manager Review", node_id="review", position={"x": 250, "y": 240})
    wf.add_node(NodeType.END, label="End", node_id="end",
                position={"x": 250, "y": 380})

    wf.add_edge("start", "delivery", edge_id="e-start-delivery")
    wf.add_edge("delivery", "review", edge_id="e-delivery-review")
    wf.add_edge("review", "end", source_handle="approved", edge_id="e-review-approved")
    wf.add_edge("review", "delivery", source_handle="rejected", edge_id="e-review-rejected")
    return wf


# ============================================================================
# Intake Routing Template
# ============================================================================


def create_intake_routing_template() -> WorkflowDefinition:
    """Build an intake form that routes large projects to senior review.

    Topology::
        START → Project Intake (form) → Budget Check (conditional)
          ↓ [budget > 10000 → Senior Review (role) → END | budget <= 10000 → END]
    """
    wf = WorkflowDefinition(
        id="template-intake-routing",
        name="Intake Routing",
        description=(
            "Collects project details up front and sends large-budget "
            "projects to a senior reviewer before closing."
        ),
        is_template=True,
    )

    intake = FormConfig(
        form_name="Project Intake",
        form_description="Basic details for a new project request.",
        form_fields=[
            FormField(id="project_name", label="Project Name", type=FieldType.TEXT, required=True),
            FormField(id="budget", label="Budget", type=FieldType.NUMBER, required=True),
            FormField(
                id="priority", label="Priority", type=FieldType.DROPDOWN,
                options=["Low", "Medium", "High"],
            ),
        ],
    )
    large = make_branch("Budget", "greater_than", 10000, index=0, branch_id="large")
    small = make_branch("Budget", "less_or_equal", 10000, index=1, branch_id="small")
    check = ConditionalConfig(
        source_form_node_id="intake",
        source_form_field_id="budget",
        conditions=[large, small],
    )

    wf.add_node(NodeType.START, label="Start", node_id="start",
                position={"x": 250, "y": 0})
    wf.add_node(NodeType.FORM, intake, label="Project Intake", node_id="intake",
                position={"x": 250, "y": 120})
    wf.add_node(NodeType.CONDITIONAL, check, label="Budget Check", node_id="budget_check",
                position={"x": 250, "y": 240})
    wf.add_node(NodeType.ROLE,
                RoleConfig(role_id="role-senior-pm", role_name="Senior Project Manager"),
                label="Senior Review", node_id="senior_review", position={"x": 100, "y": 380})
    wf.add_node(NodeType.END, label="End", node_id="end",
                position={"x": 250, "y": 500})

    wf.add_edge("start", "intake", edge_id="e-start-intake")
    wf.add_edge("intake", "budget_check", edge_id="e-intake-check")
    wf.add_edge("budget_check", "senior_review", source_handle="large", edge_id="e-check-large")
    wf.add_edge("budget_check", "end", source_handle="small", edge_id="e-check-small")
    wf.add_edge("senior_review", "end", edge_id="e-senior-end")
    return wf


# ============================================================================
# Template Registry
# ============================================================================

ALL_TEMPLATES: List[Callable[[], WorkflowDefinition]] = [
    create_review_loop_template,
    create_intake_routing_template,
]


def get_template(template_id: str) -> Optional[WorkflowDefinition]:
    """Build the template with the given id, or None."""
    for factory in ALL_TEMPLATES:
        template = factory()
        if template.id == template_id:
            return template
    return None


def list_templates() -> Dict[str, str]:
    """Template id → display name."""
    return {t.id: t.name for t in (factory() for factory in ALL_TEMPLATES)}
