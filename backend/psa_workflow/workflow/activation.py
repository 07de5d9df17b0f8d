"""
Activation Check — the stricter gate run before a workflow goes live.

Saving a draft only needs ``validate``; roles may not be staffed yet.
Activating requires every referenced role to exist in the directory and
to have at least one user assigned.
"""

from __future__ import annotations

from logging import getLogger
from typing import List, Optional, Tuple

from psa_workflow.config import EngineConfig
from psa_workflow.workflow.issues import ValidationCode, ValidationIssue, ValidationResult
from psa_workflow.workflow.role_directory import RoleDirectory, find_role
from psa_workflow.workflow.workflow_model import NodeType, WorkflowDefinition, WorkflowNode
from psa_workflow.workflow.workflow_validator import validate

logger = getLogger(__name__)


def _role_reference(node: WorkflowNode) -> Tuple[Optional[str], Optional[ValidationCode]]:
    """The role a node assigns work to, and the code used when it is unstaffed."""
    if node.type == NodeType.ROLE:
        return node.config.role_id, ValidationCode.ROLE_HAS_NO_USERS
    if node.type == NodeType.APPROVAL:
        return node.config.approver_role_id, ValidationCode.APPROVER_ROLE_HAS_NO_USERS
    return None, None


def staffing_issues(graph: WorkflowDefinition, directory: RoleDirectory) -> List[ValidationIssue]:
    """Issues for role references that cannot be staffed."""
    issues: List[ValidationIssue] = []
    for node in graph.nodes:
        role_id, empty_code = _role_reference(node)
        if not role_id:
            continue
        role = find_role(directory, role_id)
        if role is None:
            # Already reported by validate() when a directory is passed.
            continue
        if not directory.users_with_role(role_id):
            issues.append(ValidationIssue.error(
                empty_code,
                f'Role "{role.name}" used by "{node.display_name}" has no users assigned',
                node_id=node.id,
                node_label=node.display_name,
            ))
    return issues


def check_activation(
    graph: WorkflowDefinition,
    directory: RoleDirectory,
    config: Optional[EngineConfig] = None,
) -> ValidationResult:
    """Save-time validation plus role existence and staffing checks."""
    base = validate(graph, directory=directory, config=config)
    extra = staffing_issues(graph, directory)
    issues = base.errors + base.warnings + extra
    issues.sort(key=lambda i: (i.node_id is not None, graph.node_index(i.node_id or "")))
    result = ValidationResult.from_issues(issues)
    if not result.valid:
        logger.info(
            f"Workflow '{graph.name}' cannot be activated: {len(result.errors)} errors"
        )
    return result
