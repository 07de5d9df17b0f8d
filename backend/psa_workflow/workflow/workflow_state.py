"""
Workflow Instance State — the data a running instance carries between steps.

An instance is ``(status, current node, context)``. States are immutable:
every transition produced by the routing engine is a new ``InstanceState``
built with the ``moved_to`` / ``waiting`` / ``completed`` / ``faulted``
helpers, so a step never mutates the state it was given.

Also defines the external events an instance consumes and the
discriminated ``StepResult`` the engine returns.
"""

from __future__ import annotations

import uuid
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from psa_workflow.workflow.workflow_model import ApprovalDecision


class InstanceStatus(str, Enum):
    ACTIVE = "active"
    AWAITING_APPROVAL = "awaiting_approval"
    AWAITING_FORM_SUBMISSION = "awaiting_form_submission"
    COMPLETED = "completed"
    FAULTED = "faulted"


TERMINAL_STATUSES = frozenset({InstanceStatus.COMPLETED, InstanceStatus.FAULTED})


# ============================================================================
# Faults
# ============================================================================


class FaultCode(str, Enum):
    # Template defects: fatal to the instance.
    NO_ROUTE_FOR_DECISION = "no_route_for_decision"
    NO_BRANCH_MATCHED = "no_branch_matched"
    NO_ROUTE_FOR_BRANCH = "no_route_for_branch"
    MISSING_NODE = "missing_node"
    NO_OUTGOING_EDGE = "no_outgoing_edge"
    AMBIGUOUS_ROUTE = "ambiguous_route"
    UNSUPPORTED_NODE = "unsupported_node"
    STEP_LIMIT_EXCEEDED = "step_limit_exceeded"
    # Bad event delivery: the instance is left as it was.
    EVENT_MISMATCH = "event_mismatch"
    INVALID_SUBMISSION = "invalid_submission"
    INSTANCE_TERMINATED = "instance_terminated"


RECOVERABLE_FAULTS = frozenset({
    FaultCode.EVENT_MISMATCH,
    FaultCode.INVALID_SUBMISSION,
    FaultCode.INSTANCE_TERMINATED,
})


class Fault(BaseModel):
    """A condition where the engine cannot pick a next node."""

    model_config = ConfigDict(frozen=True)

    code: FaultCode
    message: str
    node_id: Optional[str] = None
    recoverable: bool = False

    @classmethod
    def of(cls, code: FaultCode, message: str, node_id: Optional[str] = None) -> "Fault":
        return cls(
            code=code,
            message=message,
            node_id=node_id,
            recoverable=code in RECOVERABLE_FAULTS,
        )


# ============================================================================
# Context & state
# ============================================================================


class DecisionRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    node_id: str
    decision: ApprovalDecision
    feedback: Optional[str] = None
    actor_id: Optional[str] = None


class InstanceContext(BaseModel):
    """Accumulated runtime data: form values, decisions, visited nodes.

    ``form_data`` is keyed by form node id, then by field id.
    """

    model_config = ConfigDict(frozen=True)

    form_data: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    decisions: List[DecisionRecord] = Field(default_factory=list)
    history: List[str] = Field(default_factory=list)

    def field_value(self, form_node_id: Optional[str], field_id: Optional[str]) -> Any:
        if not form_node_id or not field_id:
            return None
        return self.form_data.get(form_node_id, {}).get(field_id)

    def with_form(self, form_node_id: str, values: Dict[str, Any]) -> "InstanceContext":
        form_data = {k: dict(v) for k, v in self.form_data.items()}
        form_data[form_node_id] = dict(values)
        return self.model_copy(update={"form_data": form_data})

    def with_decision(self, record: DecisionRecord) -> "InstanceContext":
        return self.model_copy(update={"decisions": [*self.decisions, record]})

    def with_visit(self, node_id: str) -> "InstanceContext":
        return self.model_copy(update={"history": [*self.history, node_id]})


class InstanceState(BaseModel):
    """Snapshot of one running instance between two steps."""

    model_config = ConfigDict(frozen=True)

    instance_id: str = Field(default_factory=lambda: f"inst-{uuid.uuid4().hex[:8]}")
    workflow_id: str
    status: InstanceStatus = InstanceStatus.ACTIVE
    current_node_id: Optional[str] = None
    context: InstanceContext = Field(default_factory=InstanceContext)
    step_count: int = 0
    fault: Optional[Fault] = None

    @classmethod
    def active(
        cls,
        workflow_id: str,
        node_id: str,
        instance_id: Optional[str] = None,
    ) -> "InstanceState":
        """A fresh instance sitting on ``node_id``."""
        fields: Dict[str, Any] = {
            "workflow_id": workflow_id,
            "current_node_id": node_id,
            "context": InstanceContext(history=[node_id]),
        }
        if instance_id:
            fields["instance_id"] = instance_id
        return cls(**fields)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def moved_to(
        self,
        node_id: str,
        context: Optional[InstanceContext] = None,
    ) -> "InstanceState":
        ctx = (context or self.context).with_visit(node_id)
        return self.model_copy(update={
            "status": InstanceStatus.ACTIVE,
            "current_node_id": node_id,
            "context": ctx,
            "step_count": self.step_count + 1,
        })

    def waiting(self, status: InstanceStatus) -> "InstanceState":
        return self.model_copy(update={
            "status": status,
            "step_count": self.step_count + 1,
        })

    def completed(self) -> "InstanceState":
        return self.model_copy(update={
            "status": InstanceStatus.COMPLETED,
            "step_count": self.step_count + 1,
        })

    def faulted(self, fault: Fault) -> "InstanceState":
        return self.model_copy(update={
            "status": InstanceStatus.FAULTED,
            "fault": fault,
        })


# ============================================================================
# Events
# ============================================================================


class ApprovalDecisionEvent(BaseModel):
    """An approver's decision on an approval node."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["approval_decision"] = "approval_decision"
    decision: ApprovalDecision
    feedback: Optional[str] = None
    actor_id: Optional[str] = None


class FormSubmissionEvent(BaseModel):
    """Field values submitted for a form node, keyed by field id."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["form_submission"] = "form_submission"
    values: Dict[str, Any] = Field(default_factory=dict)
    actor_id: Optional[str] = None


WorkflowEvent = Annotated[
    Union[ApprovalDecisionEvent, FormSubmissionEvent],
    Field(discriminator="kind"),
]

_event_adapter: TypeAdapter = TypeAdapter(WorkflowEvent)


def parse_event(raw: Any) -> Union[ApprovalDecisionEvent, FormSubmissionEvent]:
    """Parse an event payload, e.g. ``{"kind": "approval_decision", "decision": "approved"}``."""
    if isinstance(raw, (ApprovalDecisionEvent, FormSubmissionEvent)):
        return raw
    return _event_adapter.validate_python(raw)


# ============================================================================
# Step results
# ============================================================================


class SideEffectKind(str, Enum):
    ENTERED_NODE = "entered_node"
    AWAITING_APPROVAL = "awaiting_approval"
    AWAITING_FORM = "awaiting_form"
    DECISION_RECORDED = "decision_recorded"
    FORM_RECORDED = "form_recorded"
    BRANCH_SELECTED = "branch_selected"
    COMPLETED = "completed"


class SideEffect(BaseModel):
    """Something the orchestration layer should act on after a step
    (notify an approver, assign a role, archive the instance)."""

    model_config = ConfigDict(frozen=True)

    kind: SideEffectKind
    node_id: Optional[str] = None
    detail: Dict[str, Any] = Field(default_factory=dict)


class StepSuccess(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: Literal[True] = True
    state: InstanceState
    side_effects: List[SideEffect] = Field(default_factory=list)


class StepFault(BaseModel):
    """``state`` is the faulted instance for fatal faults, and the
    unchanged instance for recoverable ones."""

    model_config = ConfigDict(frozen=True)

    ok: Literal[False] = False
    state: InstanceState
    fault: Fault


StepResult = Union[StepSuccess, StepFault]
