"""agentgraph - execution graph model and trace assembly for AI agents."""

from agentgraph.analysis import (
    assemble_steps,
    build_agent_structure,
    infer_node_roles,
)
from agentgraph.errors import (
    AgentGraphError,
    AgentNotFound,
    CaptureDisabled,
    ConnectionNotFound,
    InconsistentGraph,
    NodeNotFound,
    NotFound,
    PartialWriteFailure,
    RunNotFound,
    SlugConflict,
)
from agentgraph.models import (
    Agent,
    AgentStructure,
    Connection,
    Node,
    NodeEntryLog,
    NodeType,
    OrderedStepSequence,
    RunLog,
    ToolCallLog,
)

__all__ = [
    # Graph models
    "Agent",
    "AgentStructure",
    "Connection",
    "Node",
    "NodeType",
    # Execution logs
    "NodeEntryLog",
    "OrderedStepSequence",
    "RunLog",
    "ToolCallLog",
    # Algorithms
    "assemble_steps",
    "build_agent_structure",
    "infer_node_roles",
    # Errors
    "AgentGraphError",
    "AgentNotFound",
    "CaptureDisabled",
    "ConnectionNotFound",
    "InconsistentGraph",
    "NodeNotFound",
    "NotFound",
    "PartialWriteFailure",
    "RunNotFound",
    "SlugConflict",
]
