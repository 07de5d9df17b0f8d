"""
Workflow Nodes Package.

Auto-registers every node type handler into the global NodeRegistry.
Import this package to ensure all handlers are available.
"""

from logging import getLogger

from psa_workflow.workflow.nodes.base import get_node_registry

# Import all node modules to trigger registration
from psa_workflow.workflow.nodes import flow_nodes        # noqa: F401
from psa_workflow.workflow.nodes import assignment_nodes  # noqa: F401
from psa_workflow.workflow.nodes import approval_nodes    # noqa: F401
from psa_workflow.workflow.nodes import form_nodes        # noqa: F401
from psa_workflow.workflow.nodes import logic_nodes       # noqa: F401


def register_all_nodes() -> None:
    """Ensure every node type has a registered handler.

    The module-level imports above trigger ``@register_node``; this
    function fails loudly if a ``NodeType`` was added without one.
    """
    registry = get_node_registry()
    missing = registry.missing_types()
    if missing:
        raise RuntimeError(
            "Node types without a handler: " + ", ".join(t.value for t in missing)
        )
    getLogger(__name__).debug(
        f"Workflow node handlers registered: {len(registry.list_all())} node types"
    )


register_all_nodes()

__all__ = ["register_all_nodes"]
