"""Graph and trace algorithms."""

from agentgraph.analysis.node_roles import (
    changed_roles,
    infer_node_roles,
)
from agentgraph.analysis.structure import build_agent_structure
from agentgraph.analysis.trace_assembly import (
    assemble_steps,
    order_entries,
)

__all__ = [
    # node_roles exports
    "changed_roles",
    "infer_node_roles",
    # structure exports
    "build_agent_structure",
    # trace_assembly exports
    "assemble_steps",
    "order_entries",
]
