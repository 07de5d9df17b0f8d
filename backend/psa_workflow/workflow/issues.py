"""
Validation issue types shared by the validator, node handlers, and the
activation gate.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from psa_workflow.workflow.exceptions import WorkflowValidationError


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class ValidationCode(str, Enum):
    """Every issue the validation engine and activation gate can report."""
    # Graph shape
    MISSING_START = "missing_start"
    MULTIPLE_START = "multiple_start"
    START_HAS_INCOMING = "start_has_incoming"
    MISSING_END = "missing_end"
    END_HAS_OUTGOING = "end_has_outgoing"
    DUPLICATE_NODE_ID = "duplicate_node_id"
    UNKNOWN_EDGE_ENDPOINT = "unknown_edge_endpoint"
    UNREACHABLE_NODE = "unreachable_node"
    ORPHAN_NODE = "orphan_node"
    DEAD_END = "dead_end"
    PARALLEL_NOT_ALLOWED = "parallel_not_allowed"
    DISALLOWED_CYCLE = "disallowed_cycle"
    # Node configuration
    UNCONFIGURED_ROLE = "unconfigured_role"
    UNCONFIGURED_APPROVAL = "unconfigured_approval"
    UNCONFIGURED_FORM = "unconfigured_form"
    UNCONFIGURED_CONDITIONAL = "unconfigured_conditional"
    TOO_MANY_BRANCHES = "too_many_branches"
    INVALID_CONDITIONAL_SOURCE = "invalid_conditional_source"
    INCOMPATIBLE_CONDITION = "incompatible_condition"
    SYNC_NOT_ALLOWED = "sync_not_allowed"
    DEPRECATED_NODE_TYPE = "deprecated_node_type"
    UNKNOWN_ROLE = "unknown_role"
    # Routing
    UNWIRED_BRANCH = "unwired_branch"
    DANGLING_EDGE_REFERENCE = "dangling_edge_reference"
    DUPLICATE_BRANCH_ROUTE = "duplicate_branch_route"
    DUPLICATE_DECISION_TARGET = "duplicate_decision_target"
    UNLABELED_DECISION_EDGE = "unlabeled_decision_edge"
    # Activation
    ROLE_HAS_NO_USERS = "role_has_no_users"
    APPROVER_ROLE_HAS_NO_USERS = "approver_role_has_no_users"


class ValidationIssue(BaseModel):
    """A single error or warning found in a workflow graph."""

    severity: Severity
    code: ValidationCode
    message: str
    node_id: Optional[str] = None
    node_label: Optional[str] = None
    edge_id: Optional[str] = None

    @classmethod
    def error(cls, code: ValidationCode, message: str, **where: Any) -> "ValidationIssue":
        return cls(severity=Severity.ERROR, code=code, message=message, **where)

    @classmethod
    def warning(cls, code: ValidationCode, message: str, **where: Any) -> "ValidationIssue":
        return cls(severity=Severity.WARNING, code=code, message=message, **where)

    @property
    def is_error(self) -> bool:
        return self.severity == Severity.ERROR


class ValidationResult(BaseModel):
    """Complete outcome of a validation run."""

    valid: bool
    errors: List[ValidationIssue] = Field(default_factory=list)
    warnings: List[ValidationIssue] = Field(default_factory=list)

    @classmethod
    def from_issues(cls, issues: List[ValidationIssue]) -> "ValidationResult":
        errors = [i for i in issues if i.is_error]
        warnings = [i for i in issues if not i.is_error]
        return cls(valid=not errors, errors=errors, warnings=warnings)

    def codes(self) -> List[ValidationCode]:
        """Error and warning codes, errors first."""
        return [i.code for i in self.errors] + [i.code for i in self.warnings]

    def issues_for(self, node_id: str) -> List[ValidationIssue]:
        return [i for i in self.errors + self.warnings if i.node_id == node_id]

    def raise_for_errors(self) -> None:
        """Raise ``WorkflowValidationError`` if any error was found."""
        if self.errors:
            raise WorkflowValidationError(self)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")
