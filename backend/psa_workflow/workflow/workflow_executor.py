"""
Workflow Executor — route a running instance through a WorkflowDefinition.

``step`` is the routing engine: a pure function from
``(graph, state, event)`` to a ``StepResult``. It never mutates its
inputs and never raises for graph content; template defects discovered
at runtime come back as ``StepFault`` results.

``WorkflowExecutor`` wraps ``step`` for callers that want to drive one
workflow: it validates the graph before starting an instance, advances
an instance until it needs outside input, and records every transition
in the instance's ``InstanceLogger``. Loggers taken from the shared
registry are removed once the instance completes or faults.
"""

from __future__ import annotations

from logging import getLogger
from typing import Any, List, Optional

from pydantic import ValidationError

from psa_workflow.config import EngineConfig, get_engine_config
from psa_workflow.logging import InstanceLogger, get_instance_logger, remove_instance_logger
from psa_workflow.workflow.exceptions import WorkflowValidationError
from psa_workflow.workflow.issues import ValidationCode, ValidationIssue, ValidationResult
from psa_workflow.workflow.nodes.base import (
    NodeRegistry,
    fault_result,
    get_node_registry,
)
from psa_workflow.workflow.role_directory import RoleDirectory
from psa_workflow.workflow.workflow_model import NodeType, WorkflowDefinition
from psa_workflow.workflow.workflow_state import (
    FaultCode,
    InstanceState,
    InstanceStatus,
    SideEffect,
    SideEffectKind,
    StepFault,
    StepResult,
    StepSuccess,
    parse_event,
)
from psa_workflow.workflow.workflow_validator import validate

logger = getLogger(__name__)


# ============================================================================
# Routing engine
# ============================================================================


def start_instance(
    graph: WorkflowDefinition,
    instance_id: Optional[str] = None,
) -> InstanceState:
    """Create an instance sitting on the graph's start node.

    Raises:
        WorkflowValidationError: If the graph has no start node, or more
            than one.
    """
    starts = graph.nodes_of_type(NodeType.START)
    if len(starts) != 1:
        code = ValidationCode.MISSING_START if not starts else ValidationCode.MULTIPLE_START
        raise WorkflowValidationError(ValidationResult.from_issues([
            ValidationIssue.error(
                code,
                f"Cannot start workflow '{graph.name}': "
                f"expected one Start node, found {len(starts)}",
            ),
        ]))
    state = InstanceState.active(graph.id, starts[0].id, instance_id=instance_id)
    logger.info(
        f"[{state.instance_id}] Instance of '{graph.name}' started at '{starts[0].display_name}'"
    )
    return state


def step(
    graph: WorkflowDefinition,
    state: InstanceState,
    event: Any = None,
    registry: Optional[NodeRegistry] = None,
) -> StepResult:
    """Compute one transition for an instance.

    Args:
        graph: The workflow the instance runs.
        state: The instance's current state; left untouched.
        event: ``None``, an ``ApprovalDecisionEvent`` / ``FormSubmissionEvent``,
            or the equivalent mapping (``{"kind": "approval_decision", ...}``).
        registry: Node handler registry; defaults to the global one.

    Returns:
        ``StepSuccess`` with the new state and its side effects, or
        ``StepFault``. Fatal faults carry the instance in ``faulted``
        status; recoverable ones carry it unchanged.
    """
    if event is not None:
        try:
            event = parse_event(event)
        except ValidationError as e:
            return fault_result(
                state, FaultCode.EVENT_MISMATCH,
                f"Unrecognised event: {e.errors()[0]['msg']}",
                state.current_node_id,
            )

    if state.is_terminal:
        return fault_result(
            state, FaultCode.INSTANCE_TERMINATED,
            f"Instance is {state.status.value}; no further steps are possible",
            state.current_node_id,
        )

    node = graph.get_node(state.current_node_id) if state.current_node_id else None
    if node is None:
        return fault_result(
            state, FaultCode.MISSING_NODE,
            f"Current node {state.current_node_id} is not in workflow '{graph.name}'",
            state.current_node_id,
        )

    handler = (registry or get_node_registry()).require(node.type)
    return handler.advance(graph, node, state, event)


# ============================================================================
# Executor
# ============================================================================


class WorkflowExecutor:
    """Drive instances of one workflow.

    Usage::

        executor = WorkflowExecutor(workflow)
        state = executor.start()
        result = executor.advance(state)                  # runs until blocked
        result = executor.advance(result.state, {"kind": "approval_decision",
                                                 "decision": "approved"})
    """

    def __init__(
        self,
        workflow: WorkflowDefinition,
        config: Optional[EngineConfig] = None,
        instance_logger: Optional[InstanceLogger] = None,
        directory: Optional[RoleDirectory] = None,
        registry: Optional[NodeRegistry] = None,
    ) -> None:
        self._workflow = workflow
        self._config = config or get_engine_config()
        self._instance_logger = instance_logger
        self._directory = directory
        self._registry = registry or get_node_registry()

    @property
    def workflow(self) -> WorkflowDefinition:
        return self._workflow

    def check(self) -> ValidationResult:
        return validate(self._workflow, directory=self._directory, config=self._config)

    # ========================================================================
    # Lifecycle
    # ========================================================================

    def start(self, instance_id: Optional[str] = None) -> InstanceState:
        """Validate the workflow and create an instance on its start node.

        Raises:
            WorkflowValidationError: If validation finds errors.
        """
        self.check().raise_for_errors()
        state = start_instance(self._workflow, instance_id=instance_id)
        start = self._workflow.get_node(state.current_node_id)
        self._logger_for(state).log_node_enter(start.id, start.display_name, start.type.value)
        return state

    def step(self, state: InstanceState, event: Any = None) -> StepResult:
        """One transition, recorded in the instance log."""
        result = step(self._workflow, state, event, registry=self._registry)
        self._record(result)
        return result

    def advance(self, state: InstanceState, event: Any = None) -> StepResult:
        """Step until the instance blocks, completes, or faults.

        ``event`` is delivered to the first step only. The returned
        success carries the side effects of every step taken.
        """
        result = self.step(state, event)
        effects: List[SideEffect] = []
        steps = 1
        while isinstance(result, StepSuccess):
            effects.extend(result.side_effects)
            current = result.state
            if current.status != InstanceStatus.ACTIVE:
                return StepSuccess(state=current, side_effects=effects)
            if steps >= self._config.max_auto_steps:
                result = fault_result(
                    current, FaultCode.STEP_LIMIT_EXCEEDED,
                    f"Instance did not block or complete within "
                    f"{self._config.max_auto_steps} steps; check the workflow for loops",
                    current.current_node_id,
                )
                self._record(result)
                return result
            result = self.step(current)
            steps += 1
        return result

    # ========================================================================
    # Internal helpers
    # ========================================================================

    def _logger_for(self, state: InstanceState) -> InstanceLogger:
        return self._instance_logger or get_instance_logger(state.instance_id)

    def _record(self, result: StepResult) -> None:
        self._write_log(self._logger_for(result.state), result)
        # Registry loggers are released once the instance can no longer step.
        if self._instance_logger is None and result.state.is_terminal:
            remove_instance_logger(result.state.instance_id)

    def _write_log(self, inst_logger: InstanceLogger, result: StepResult) -> None:
        if isinstance(result, StepFault):
            fault = result.fault
            inst_logger.log_fault(
                fault.code.value, fault.message,
                node_id=fault.node_id, recoverable=fault.recoverable,
            )
            return

        entered = next(
            (e for e in result.side_effects if e.kind == SideEffectKind.ENTERED_NODE),
            None,
        )
        for effect in result.side_effects:
            if effect.kind == SideEffectKind.ENTERED_NODE:
                inst_logger.log_node_enter(
                    effect.node_id,
                    effect.detail.get("label") or effect.detail.get("node_type", ""),
                    effect.detail.get("node_type", ""),
                )
            elif effect.kind == SideEffectKind.DECISION_RECORDED and entered:
                inst_logger.log_edge_decision(
                    effect.node_id, effect.detail.get("decision", ""), entered.node_id,
                )
            elif effect.kind == SideEffectKind.BRANCH_SELECTED and entered:
                branch = effect.detail.get("branch_label") or effect.detail.get("branch_id", "")
                inst_logger.log_edge_decision(effect.node_id, branch, entered.node_id)
            elif effect.kind == SideEffectKind.AWAITING_APPROVAL:
                inst_logger.log_awaiting(effect.node_id, "approval decision")
            elif effect.kind == SideEffectKind.AWAITING_FORM:
                inst_logger.log_awaiting(effect.node_id, "form submission")
            elif effect.kind == SideEffectKind.COMPLETED:
                inst_logger.log_completed(effect.node_id, result.state.step_count)
