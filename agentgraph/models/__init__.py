"""Core data models for agentgraph."""

from agentgraph.models.graph import (
    Agent,
    AgentStructure,
    Connection,
    ConnectionRef,
    Node,
    NodeRoles,
    NodeStructure,
    NodeType,
)
from agentgraph.models.run_log import (
    Environment,
    NodeEntryLog,
    RunLog,
    RunStatus,
    StepStatus,
    ToolCallLog,
)
from agentgraph.models.trace import (
    OrderedStepSequence,
    ToolCallDetail,
    TraceEdge,
    TraceStep,
)

__all__ = [
    # Graph
    "Agent",
    "AgentStructure",
    "Connection",
    "ConnectionRef",
    "Node",
    "NodeRoles",
    "NodeStructure",
    "NodeType",
    # Execution logs
    "Environment",
    "NodeEntryLog",
    "RunLog",
    "RunStatus",
    "StepStatus",
    "ToolCallLog",
    # Traces
    "OrderedStepSequence",
    "ToolCallDetail",
    "TraceEdge",
    "TraceStep",
]
