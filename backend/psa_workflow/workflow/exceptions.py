"""
Workflow Exceptions — errors raised by graph mutation and compile paths.

Graph-content problems found by validation are *reported* (see
``ValidationResult``), and runtime routing problems are *returned* as
faults (see ``StepFault``). Only programmer-facing misuse of the graph
model raises.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from psa_workflow.workflow.issues import ValidationResult


class WorkflowError(Exception):
    """Base class for every workflow engine error."""


class InvalidConfig(WorkflowError, ValueError):
    """A node config does not match the shape required by its node type."""

    def __init__(self, node_type: str, detail: str) -> None:
        self.node_type = node_type
        self.detail = detail
        super().__init__(f"Invalid config for '{node_type}' node: {detail}")


class UnknownNode(WorkflowError, KeyError):
    """An operation referenced a node id absent from the graph."""

    def __init__(self, node_id: str) -> None:
        self.node_id = node_id
        super().__init__(node_id)

    def __str__(self) -> str:
        return f"Unknown node: {self.node_id}"


class DuplicateNode(WorkflowError, ValueError):
    """A node id is already used in the graph."""

    def __init__(self, node_id: str) -> None:
        self.node_id = node_id
        super().__init__(f"Node id already exists: {node_id}")


class DuplicateHandleTarget(WorkflowError, ValueError):
    """A named output already routes to a different destination."""

    def __init__(
        self,
        source_id: str,
        source_handle: Optional[str],
        existing_target: str,
        new_target: str,
    ) -> None:
        self.source_id = source_id
        self.source_handle = source_handle
        self.existing_target = existing_target
        self.new_target = new_target
        handle = source_handle or "default"
        super().__init__(
            f"Output '{handle}' of node {source_id} already routes to "
            f"{existing_target}; cannot also route to {new_target}"
        )


class WorkflowValidationError(WorkflowError, ValueError):
    """Raised when a caller demands a valid graph and it is not."""

    def __init__(self, result: "ValidationResult") -> None:
        self.result = result
        lines = "\n".join(f"  • {e.message}" for e in result.errors)
        super().__init__(f"Workflow validation failed:\n{lines}")
