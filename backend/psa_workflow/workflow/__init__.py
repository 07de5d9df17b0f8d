"""
Workflow Engine — PSA workflow graphs, validation and routing.

Provides the infrastructure for defining, validating, and running
project workflows drawn in a visual node-edge editor.

Architecture:
    nodes/              — BaseNode ABC + one handler per node type
    workflow_model      — Graph model: nodes, edges, adjacency queries, mutations
    conditions          — Branch condition vocabulary and predicates
    workflow_validator  — Save-time validation
    activation          — Pre-activation checks against the role directory
    workflow_state      — Instance state, events, and step results
    workflow_executor   — Routing engine (``step``) and WorkflowExecutor
    workflow_inspector  — Read-only audit report
    templates           — Pre-built workflow templates
"""

from psa_workflow.workflow.nodes.base import (
    BaseNode,
    OutputPort,
    NodeRegistry,
    get_node_registry,
)
from psa_workflow.workflow.exceptions import (
    WorkflowError,
    InvalidConfig,
    UnknownNode,
    DuplicateNode,
    DuplicateHandleTarget,
    WorkflowValidationError,
)
from psa_workflow.workflow.workflow_model import (
    NodeType,
    FieldType,
    ApprovalDecision,
    FormField,
    Branch,
    WorkflowDefinition,
    WorkflowNode,
    WorkflowEdge,
)
from psa_workflow.workflow.issues import (
    Severity,
    ValidationCode,
    ValidationIssue,
    ValidationResult,
)
from psa_workflow.workflow.role_directory import (
    Role,
    DirectoryUser,
    RoleDirectory,
    InMemoryRoleDirectory,
)
from psa_workflow.workflow.workflow_state import (
    InstanceStatus,
    InstanceState,
    Fault,
    FaultCode,
    ApprovalDecisionEvent,
    FormSubmissionEvent,
    SideEffect,
    SideEffectKind,
    StepSuccess,
    StepFault,
    StepResult,
)
from psa_workflow.workflow.workflow_validator import validate
from psa_workflow.workflow.activation import check_activation
from psa_workflow.workflow.workflow_executor import (
    WorkflowExecutor,
    start_instance,
    step,
)
from psa_workflow.workflow.workflow_inspector import inspect_workflow
from psa_workflow.workflow.templates import (
    create_review_loop_template,
    create_intake_routing_template,
)

__all__ = [
    "BaseNode",
    "OutputPort",
    "NodeRegistry",
    "get_node_registry",
    "WorkflowError",
    "InvalidConfig",
    "UnknownNode",
    "DuplicateNode",
    "DuplicateHandleTarget",
    "WorkflowValidationError",
    "NodeType",
    "FieldType",
    "ApprovalDecision",
    "FormField",
    "Branch",
    "WorkflowDefinition",
    "WorkflowNode",
    "WorkflowEdge",
    "Severity",
    "ValidationCode",
    "ValidationIssue",
    "ValidationResult",
    "Role",
    "DirectoryUser",
    "RoleDirectory",
    "InMemoryRoleDirectory",
    "InstanceStatus",
    "InstanceState",
    "Fault",
    "FaultCode",
    "ApprovalDecisionEvent",
    "FormSubmissionEvent",
    "SideEffect",
    "SideEffectKind",
    "StepSuccess",
    "StepFault",
    "StepResult",
    "validate",
    "check_activation",
    "WorkflowExecutor",
    "start_instance",
    "step",
    "inspect_workflow",
    "create_review_loop_template",
    "create_intake_routing_template",
]
