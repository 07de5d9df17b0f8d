"""
Routing engine tests.

``step`` is exercised directly against hand-built instance states;
``WorkflowExecutor`` is exercised end to end.
"""

import pytest

from psa_workflow.config import EngineConfig
from psa_workflow.logging import InstanceLogger
from psa_workflow.logging import instance_logger as logger_registry
from psa_workflow.logging.instance_logger import LogEvent
from psa_workflow.workflow.exceptions import WorkflowValidationError
from psa_workflow.workflow.workflow_executor import WorkflowExecutor, start_instance, step
from psa_workflow.workflow.workflow_model import ApprovalDecision, ConditionalConfig
from psa_workflow.workflow.workflow_state import (
    ApprovalDecisionEvent,
    FaultCode,
    FormSubmissionEvent,
    InstanceContext,
    InstanceState,
    InstanceStatus,
    SideEffectKind,
    StepFault,
    StepSuccess,
)
from psa_workflow.workflow.workflow_validator import validate

APPROVED = ApprovalDecisionEvent(decision=ApprovalDecision.APPROVED)
REJECTED = ApprovalDecisionEvent(decision=ApprovalDecision.REJECTED)
ROLE = {"roleId": "role-a"}
APPROVAL = {"approverRoleId": "manager"}


def at(workflow, node_id, **context):
    """An active instance sitting on ``node_id``."""
    state = InstanceState.active(workflow.id, node_id, instance_id="inst-test")
    if context:
        state = state.model_copy(update={"context": InstanceContext(**context)})
    return state


def scored_at_cond(workflow, score):
    return at(workflow, "cond", form_data={"form": {"score": score}})


# =============================================================================
# start_instance
# =============================================================================


class TestStartInstance:
    def test_starts_active_on_start_node(self, review_loop):
        state = start_instance(review_loop, instance_id="inst-1")
        assert state.instance_id == "inst-1"
        assert state.workflow_id == "wf-review"
        assert state.status == InstanceStatus.ACTIVE
        assert state.current_node_id == "start"
        assert state.context.history == ["start"]
        assert state.step_count == 0

    def test_generates_instance_id(self, review_loop):
        assert start_instance(review_loop).instance_id.startswith("inst-")

    def test_requires_a_single_start(self, make_graph):
        with pytest.raises(WorkflowValidationError):
            start_instance(make_graph([("end", "end")]))
        with pytest.raises(WorkflowValidationError):
            start_instance(make_graph([("s1", "start"), ("s2", "start")]))


# =============================================================================
# Start / role nodes
# =============================================================================


class TestAutoAdvance:
    def test_start_follows_its_edge(self, review_loop):
        result = step(review_loop, at(review_loop, "start"))
        assert isinstance(result, StepSuccess)
        assert result.ok
        assert result.state.current_node_id == "A"
        assert result.state.status == InstanceStatus.ACTIVE
        entered = result.side_effects[-1]
        assert entered.kind == SideEffectKind.ENTERED_NODE
        assert entered.node_id == "A"
        assert entered.detail["role_id"] == "role-a"

    def test_role_follows_its_edge(self, review_loop):
        result = step(review_loop, at(review_loop, "A"))
        assert result.state.current_node_id == "B"
        assert result.side_effects[-1].detail["approver_role_id"] == "manager"

    def test_step_does_not_mutate_input(self, review_loop):
        state = at(review_loop, "start")
        step(review_loop, state)
        assert state.current_node_id == "start"
        assert state.step_count == 0

    def test_same_input_same_output(self, review_loop):
        state = at(review_loop, "A")
        assert step(review_loop, state) == step(review_loop, state)

    def test_role_without_successor(self, make_graph):
        wf = make_graph([("start", "start"), ("a", "role", ROLE)], [("start", "a")])
        result = step(wf, at(wf, "a"))
        assert isinstance(result, StepFault)
        assert result.fault.code == FaultCode.NO_OUTGOING_EDGE
        assert result.state.status == InstanceStatus.FAULTED

    def test_role_with_two_successors(self, make_graph):
        wf = make_graph(
            [("start", "start"), ("a", "role", ROLE), ("e1", "end"), ("e2", "end")],
            [("start", "a"), ("a", "e1"), ("a", "e2")],
        )
        result = step(wf, at(wf, "a"))
        assert result.fault.code == FaultCode.AMBIGUOUS_ROUTE

    def test_role_rejects_events(self, review_loop):
        state = at(review_loop, "A")
        result = step(review_loop, state, APPROVED)
        assert result.fault.code == FaultCode.EVENT_MISMATCH
        assert result.fault.recoverable
        assert result.state == state

    def test_department_routes_like_role(self, make_graph):
        wf = make_graph(
            [("start", "start"), ("d", "department", {"departmentId": "ops"}), ("end", "end")],
            [("start", "d"), ("d", "end")],
        )
        result = step(wf, at(wf, "d"))
        assert result.state.current_node_id == "end"


# =============================================================================
# Approval nodes
# =============================================================================


class TestApproval:
    def test_blocks_without_decision(self, review_loop):
        result = step(review_loop, at(review_loop, "B"))
        assert result.ok
        assert result.state.status == InstanceStatus.AWAITING_APPROVAL
        assert result.state.current_node_id == "B"
        assert [e.kind for e in result.side_effects] == [SideEffectKind.AWAITING_APPROVAL]

    def test_waiting_again_is_a_no_op(self, review_loop):
        waiting = step(review_loop, at(review_loop, "B")).state
        result = step(review_loop, waiting)
        assert result.state == waiting
        assert result.side_effects == []

    def test_rejected_routes_to_rejected_target(self, review_loop):
        result = step(review_loop, at(review_loop, "B"), REJECTED)
        assert result.state.status == InstanceStatus.ACTIVE
        assert result.state.current_node_id == "A"

    def test_approved_routes_to_approved_target(self, review_loop):
        result = step(review_loop, at(review_loop, "B"), APPROVED)
        assert result.state.status == InstanceStatus.ACTIVE
        assert result.state.current_node_id == "end1"

    def test_decision_from_awaiting_state(self, review_loop):
        waiting = step(review_loop, at(review_loop, "B")).state
        result = step(review_loop, waiting, APPROVED)
        assert result.state.current_node_id == "end1"

    def test_decision_is_recorded(self, review_loop):
        event = ApprovalDecisionEvent(
            decision=ApprovalDecision.REJECTED, feedback="Needs estimates", actor_id="u2",
        )
        result = step(review_loop, at(review_loop, "B"), event)
        record = result.state.context.decisions[-1]
        assert record.node_id == "B"
        assert record.decision == ApprovalDecision.REJECTED
        assert record.feedback == "Needs estimates"
        assert record.actor_id == "u2"
        kinds = [e.kind for e in result.side_effects]
        assert kinds == [SideEffectKind.DECISION_RECORDED, SideEffectKind.ENTERED_NODE]

    def test_missing_route_is_a_fault(self, make_graph):
        wf = make_graph(
            [("start", "start"), ("b", "approval", APPROVAL), ("end", "end")],
            [("start", "b"), ("b", "end", "approved")],
        )
        result = step(wf, at(wf, "b"), REJECTED)
        assert isinstance(result, StepFault)
        assert not result.ok
        assert result.fault.code == FaultCode.NO_ROUTE_FOR_DECISION
        assert result.fault.node_id == "b"
        assert not result.fault.recoverable
        assert result.state.status == InstanceStatus.FAULTED
        assert result.state.fault == result.fault

    def test_decision_as_mapping(self, review_loop):
        result = step(
            review_loop, at(review_loop, "B"),
            {"kind": "approval_decision", "decision": "approved"},
        )
        assert result.state.current_node_id == "end1"

    def test_form_submission_is_the_wrong_event(self, review_loop):
        state = at(review_loop, "B")
        result = step(review_loop, state, FormSubmissionEvent(values={"x": 1}))
        assert result.fault.code == FaultCode.EVENT_MISMATCH
        assert result.state == state


# =============================================================================
# Form nodes
# =============================================================================


class TestForm:
    def test_blocks_without_submission(self, scored_routing):
        result = step(scored_routing, at(scored_routing, "form"))
        assert result.state.status == InstanceStatus.AWAITING_FORM_SUBMISSION
        effect = result.side_effects[0]
        assert effect.kind == SideEffectKind.AWAITING_FORM
        assert effect.detail["field_ids"] == ["score", "notes"]

    def test_submission_is_stored_under_form_node(self, scored_routing):
        waiting = step(scored_routing, at(scored_routing, "form")).state
        result = step(scored_routing, waiting, FormSubmissionEvent(values={"score": 12}))
        assert result.state.status == InstanceStatus.ACTIVE
        assert result.state.current_node_id == "cond"
        assert result.state.context.form_data == {"form": {"score": 12}}

    def test_missing_required_field_is_recoverable(self, scored_routing):
        waiting = step(scored_routing, at(scored_routing, "form")).state
        result = step(scored_routing, waiting, FormSubmissionEvent(values={"notes": "hi"}))
        assert result.fault.code == FaultCode.INVALID_SUBMISSION
        assert result.fault.recoverable
        assert "Score" in result.fault.message
        assert result.state == waiting

    def test_dropdown_value_must_be_an_option(self, make_graph):
        form = {
            "formName": "Pick",
            "formFields": [{"id": "p", "label": "Priority", "type": "dropdown",
                            "options": ["Low", "High"]}],
        }
        wf = make_graph(
            [("start", "start"), ("f", "form", form), ("end", "end")],
            [("start", "f"), ("f", "end")],
        )
        bad = step(wf, at(wf, "f"), FormSubmissionEvent(values={"p": "Urgent"}))
        assert bad.fault.code == FaultCode.INVALID_SUBMISSION
        good = step(wf, at(wf, "f"), FormSubmissionEvent(values={"p": "High"}))
        assert good.state.current_node_id == "end"

    def test_submission_as_mapping(self, scored_routing):
        result = step(
            scored_routing, at(scored_routing, "form"),
            {"kind": "form_submission", "values": {"score": 3}},
        )
        assert result.state.context.field_value("form", "score") == 3


# =============================================================================
# Conditional nodes
# =============================================================================


class TestConditional:
    def test_first_declared_match_wins(self, scored_routing):
        for _ in range(5):
            result = step(scored_routing, scored_at_cond(scored_routing, 20))
            assert result.state.current_node_id == "high"
            selected = result.side_effects[0]
            assert selected.kind == SideEffectKind.BRANCH_SELECTED
            assert selected.detail["branch_id"] == "B1"

    def test_second_branch(self, scored_routing):
        result = step(scored_routing, scored_at_cond(scored_routing, 7))
        assert result.state.current_node_id == "mid"

    def test_no_match_is_a_fault(self, scored_routing):
        result = step(scored_routing, scored_at_cond(scored_routing, 3))
        assert result.fault.code == FaultCode.NO_BRANCH_MATCHED
        assert result.state.status == InstanceStatus.FAULTED

    def test_missing_form_value_is_a_fault(self, scored_routing):
        result = step(scored_routing, at(scored_routing, "cond"))
        assert result.fault.code == FaultCode.NO_BRANCH_MATCHED

    def test_matched_branch_without_edge(self, scored_routing):
        scored_routing.remove_edge("e-b1")
        result = step(scored_routing, scored_at_cond(scored_routing, 20))
        assert result.fault.code == FaultCode.NO_ROUTE_FOR_BRANCH
        assert not result.fault.recoverable

    def test_zero_branches_is_a_fault(self, scored_routing):
        scored_routing.update_node_config(
            "cond", ConditionalConfig(source_form_node_id="form", source_form_field_id="score"),
        )
        result = step(scored_routing, scored_at_cond(scored_routing, 20))
        assert result.fault.code == FaultCode.NO_BRANCH_MATCHED

    def test_edge_routed_by_condition_value(self, make_graph):
        """Edges saved by older editors reference the branch through data only."""
        wf = make_graph(
            [
                ("start", "start"),
                ("f", "form", {"formName": "F", "formFields": [{"id": "tier", "label": "Tier"}]}),
                ("c", "conditional", {
                    "sourceFormNodeId": "f", "sourceFormFieldId": "tier",
                    "conditions": [{"id": "gold", "conditionType": "equals", "value": "Gold"}],
                }),
                ("end", "end"),
            ],
            [("start", "f"), ("f", "c")],
        )
        wf.add_edge("c", "end", data={"conditionValue": "gold"})
        state = at(wf, "c", form_data={"f": {"tier": "Gold"}})
        assert step(wf, state).state.current_node_id == "end"


# =============================================================================
# End / terminal / structural
# =============================================================================


class TestTermination:
    def test_end_completes(self, review_loop):
        result = step(review_loop, at(review_loop, "end1"))
        assert result.state.status == InstanceStatus.COMPLETED
        assert result.state.is_terminal
        assert result.side_effects[0].kind == SideEffectKind.COMPLETED

    def test_completed_instance_cannot_step(self, review_loop):
        done = step(review_loop, at(review_loop, "end1")).state
        result = step(review_loop, done)
        assert result.fault.code == FaultCode.INSTANCE_TERMINATED
        assert result.fault.recoverable
        assert result.state == done

    def test_faulted_instance_cannot_step(self, scored_routing):
        faulted = step(scored_routing, scored_at_cond(scored_routing, 3)).state
        result = step(scored_routing, faulted)
        assert result.fault.code == FaultCode.INSTANCE_TERMINATED

    def test_unknown_current_node(self, review_loop):
        result = step(review_loop, at(review_loop, "ghost"))
        assert result.fault.code == FaultCode.MISSING_NODE
        assert result.state.status == InstanceStatus.FAULTED

    def test_edge_to_missing_node(self, make_graph):
        wf = make_graph([("start", "start")], [("start", "ghost")])
        result = step(wf, at(wf, "start"))
        assert result.fault.code == FaultCode.MISSING_NODE

    def test_sync_cannot_run(self, make_graph):
        wf = make_graph(
            [("start", "start"), ("s", "sync"), ("end", "end")],
            [("start", "s"), ("s", "end")],
        )
        assert step(wf, at(wf, "s")).fault.code == FaultCode.UNSUPPORTED_NODE

    def test_malformed_event(self, review_loop):
        state = at(review_loop, "B")
        result = step(review_loop, state, {"kind": "approval_decision", "decision": "maybe"})
        assert result.fault.code == FaultCode.EVENT_MISMATCH
        assert result.state == state


# =============================================================================
# End-to-end scenario
# =============================================================================


class TestReviewLoopScenario:
    def test_graph_is_valid(self, review_loop):
        result = validate(review_loop)
        assert result.valid
        assert result.errors == []

    def test_approved_completes_in_two_steps(self, review_loop):
        state = at(review_loop, "B")
        first = step(review_loop, state, APPROVED)
        assert first.state.current_node_id == "end1"
        second = step(review_loop, first.state)
        assert second.state.status == InstanceStatus.COMPLETED

    def test_rejected_returns_to_role_and_can_continue(self, review_loop):
        result = step(review_loop, at(review_loop, "B"), REJECTED)
        assert result.state.status == InstanceStatus.ACTIVE
        assert result.state.current_node_id == "A"

        again = step(review_loop, result.state)
        assert again.state.current_node_id == "B"
        waiting = step(review_loop, again.state)
        assert waiting.state.status == InstanceStatus.AWAITING_APPROVAL

    def test_full_run(self, review_loop):
        state = start_instance(review_loop)
        for _ in range(3):
            state = step(review_loop, state).state
        assert state.status == InstanceStatus.AWAITING_APPROVAL
        state = step(review_loop, state, REJECTED).state
        state = step(review_loop, state).state
        state = step(review_loop, state).state
        state = step(review_loop, state, APPROVED).state
        state = step(review_loop, state).state
        assert state.status == InstanceStatus.COMPLETED
        assert state.context.history == ["start", "A", "B", "A", "B", "end1"]
        assert [d.decision for d in state.context.decisions] == [
            ApprovalDecision.REJECTED, ApprovalDecision.APPROVED,
        ]


# =============================================================================
# WorkflowExecutor
# =============================================================================


class TestWorkflowExecutor:
    def test_advance_runs_until_blocked(self, review_loop):
        inst_logger = InstanceLogger("inst-exec")
        executor = WorkflowExecutor(review_loop, instance_logger=inst_logger)
        state = executor.start(instance_id="inst-exec")

        result = executor.advance(state)

        assert result.state.status == InstanceStatus.AWAITING_APPROVAL
        assert result.state.current_node_id == "B"
        kinds = [e.kind for e in result.side_effects]
        assert kinds == [
            SideEffectKind.ENTERED_NODE,
            SideEffectKind.ENTERED_NODE,
            SideEffectKind.AWAITING_APPROVAL,
        ]

        done = executor.advance(result.state, {"kind": "approval_decision", "decision": "approved"})
        assert done.state.status == InstanceStatus.COMPLETED

        events = [e.event for e in inst_logger.entries]
        assert events[0] == LogEvent.NODE_ENTER
        assert LogEvent.AWAITING in events
        assert LogEvent.EDGE_DECISION in events
        assert events[-1] == LogEvent.COMPLETED

    def test_advance_on_blocked_instance_without_event(self, review_loop):
        executor = WorkflowExecutor(review_loop, instance_logger=InstanceLogger("x"))
        waiting = executor.advance(executor.start()).state
        again = executor.advance(waiting)
        assert again.state == waiting

    def test_advance_returns_recoverable_fault(self, scored_routing):
        executor = WorkflowExecutor(scored_routing, instance_logger=InstanceLogger("x"))
        waiting = executor.advance(executor.start()).state
        result = executor.advance(waiting, FormSubmissionEvent(values={}))
        assert result.fault.code == FaultCode.INVALID_SUBMISSION
        assert result.state == waiting

    def test_advance_through_conditional(self, scored_routing):
        executor = WorkflowExecutor(scored_routing, instance_logger=InstanceLogger("x"))
        waiting = executor.advance(executor.start()).state
        result = executor.advance(waiting, FormSubmissionEvent(values={"score": 7}))
        assert result.state.status == InstanceStatus.COMPLETED
        assert "mid" in result.state.context.history
        assert "high" not in result.state.context.history

    def test_fault_is_logged(self, scored_routing):
        inst_logger = InstanceLogger("x")
        executor = WorkflowExecutor(scored_routing, instance_logger=inst_logger)
        waiting = executor.advance(executor.start()).state
        result = executor.advance(waiting, FormSubmissionEvent(values={"score": 1}))
        assert result.fault.code == FaultCode.NO_BRANCH_MATCHED
        assert inst_logger.entries[-1].event == LogEvent.FAULT
        assert inst_logger.entries[-1].data["code"] == "no_branch_matched"

    def test_start_validates(self, make_graph):
        wf = make_graph([("start", "start"), ("a", "role")], [("start", "a")])
        with pytest.raises(WorkflowValidationError):
            WorkflowExecutor(wf).start()

    def test_step_limit(self, make_graph):
        wf = make_graph(
            [("start", "start"), ("A", "role", ROLE), ("B", "role", ROLE)],
            [("start", "A"), ("A", "B"), ("B", "A")],
        )
        executor = WorkflowExecutor(
            wf, config=EngineConfig(max_auto_steps=10), instance_logger=InstanceLogger("x"),
        )
        result = executor.advance(start_instance(wf))
        assert result.fault.code == FaultCode.STEP_LIMIT_EXCEEDED
        assert result.state.status == InstanceStatus.FAULTED
        assert result.state.step_count == 10

    def test_registry_loggers_released_after_completion(self, review_loop):
        before = len(logger_registry._loggers)
        executor = WorkflowExecutor(review_loop)
        for i in range(20):
            waiting = executor.advance(executor.start(instance_id=f"inst-done-{i}")).state
            assert waiting.status == InstanceStatus.AWAITING_APPROVAL
            assert f"inst-done-{i}" in logger_registry._loggers
            done = executor.advance(waiting, APPROVED)
            assert done.state.status == InstanceStatus.COMPLETED
        assert len(logger_registry._loggers) == before

    def test_registry_logger_released_after_fatal_fault(self, scored_routing):
        executor = WorkflowExecutor(scored_routing)
        waiting = executor.advance(executor.start(instance_id="inst-faulted")).state
        result = executor.advance(waiting, FormSubmissionEvent(values={"score": 1}))
        assert result.state.status == InstanceStatus.FAULTED
        assert "inst-faulted" not in logger_registry._loggers

    def test_explicit_logger_is_kept(self, review_loop):
        inst_logger = InstanceLogger("inst-kept")
        executor = WorkflowExecutor(review_loop, instance_logger=inst_logger)
        waiting = executor.advance(executor.start(instance_id="inst-kept")).state
        executor.advance(waiting, APPROVED)
        assert inst_logger.entries[-1].event == LogEvent.COMPLETED
        assert "inst-kept" not in logger_registry._loggers
