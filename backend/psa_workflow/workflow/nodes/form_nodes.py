"""
Form Nodes — collect structured data before the workflow continues.

A form node never branches. Its submitted values are stored under the
form node's id so that a downstream conditional node can route on them.
"""

from __future__ import annotations

from typing import Any, Dict, List

from psa_workflow.workflow.conditions import is_empty_value
from psa_workflow.workflow.issues import ValidationCode, ValidationIssue
from psa_workflow.workflow.nodes.base import (
    BaseNode,
    Event,
    ValidationContext,
    fault_result,
    register_node,
)
from psa_workflow.workflow.workflow_model import (
    FieldType,
    FormConfig,
    NodeType,
    WorkflowDefinition,
    WorkflowNode,
)
from psa_workflow.workflow.workflow_state import (
    FaultCode,
    FormSubmissionEvent,
    InstanceState,
    InstanceStatus,
    SideEffect,
    SideEffectKind,
    StepResult,
    StepSuccess,
)


def submission_problems(config: FormConfig, values: Dict[str, Any]) -> List[str]:
    """Check submitted values against the form's field definitions."""
    problems: List[str] = []
    for f in config.form_fields:
        value = values.get(f.id)
        name = f.label or f.id
        if is_empty_value(value):
            if f.required:
                problems.append(f'"{name}" is required')
            continue
        if f.options and f.type == FieldType.DROPDOWN and str(value) not in f.options:
            problems.append(f'"{name}" must be one of {f.options}')
        if f.options and f.type == FieldType.MULTISELECT:
            chosen = value if isinstance(value, (list, tuple)) else [value]
            unknown = [str(v) for v in chosen if str(v) not in f.options]
            if unknown:
                problems.append(f'"{name}" has unknown options {unknown}')
    return problems


@register_node
class FormNode(BaseNode):
    """Block until the form is submitted, then continue."""

    node_type = NodeType.FORM
    label = "Form"
    description = "Collect structured data via a form before continuing."
    category = "input"

    def entry_detail(self, node: WorkflowNode) -> Dict[str, Any]:
        return {
            "form_name": node.config.form_name,
            "field_ids": [f.id for f in node.config.form_fields],
        }

    def config_issues(self, node: WorkflowNode, ctx: ValidationContext) -> List[ValidationIssue]:
        missing = []
        if not node.config.form_name.strip():
            missing.append("a name")
        if not node.config.form_fields:
            missing.append("at least one field")
        if not missing:
            return []
        return [self.error(
            node, ValidationCode.UNCONFIGURED_FORM,
            f'Form node "{node.display_name}" needs {" and ".join(missing)}',
        )]

    def advance(
        self,
        graph: WorkflowDefinition,
        node: WorkflowNode,
        state: InstanceState,
        event: Event,
    ) -> StepResult:
        if event is None:
            if state.status == InstanceStatus.AWAITING_FORM_SUBMISSION:
                return StepSuccess(state=state)
            return StepSuccess(
                state=state.waiting(InstanceStatus.AWAITING_FORM_SUBMISSION),
                side_effects=[SideEffect(
                    kind=SideEffectKind.AWAITING_FORM,
                    node_id=node.id,
                    detail=self.entry_detail(node),
                )],
            )

        if not isinstance(event, FormSubmissionEvent):
            return self.reject_event(node, state, event)

        problems = submission_problems(node.config, event.values)
        if problems:
            return fault_result(
                state, FaultCode.INVALID_SUBMISSION,
                f'Submission for "{node.display_name}" rejected: ' + "; ".join(problems),
                node.id,
            )

        recorded = SideEffect(
            kind=SideEffectKind.FORM_RECORDED,
            node_id=node.id,
            detail={"field_ids": sorted(event.values)},
        )
        return self.follow_single_edge(
            graph, node, state,
            context=state.context.with_form(node.id, event.values),
            effects=[recorded],
        )
