"""Output models for the execution visualizer."""

from typing import Any

from pydantic import BaseModel

from agentgraph.models.graph import NodeType
from agentgraph.models.run_log import RunStatus, StepStatus


class TraceStep(BaseModel):
    """a single step of an assembled run trace."""

    step_index: int
    log_id: int
    node_id: int
    display_node_id: int
    node_name: str | None = None
    node_type: NodeType | None = None
    operation_type: str
    status: StepStatus
    input: Any = None
    output: Any = None
    duration_ms: int | None = None
    created_at: str
    parent_log_id: int | None = None


class TraceEdge(BaseModel):
    """synthetic edge between two consecutive steps.

    These follow the actual causal order of the run and are not checked
    against the agent's declared connections.
    """

    source: int
    target: int
    step_index: int  # index of the source step


class ToolCallDetail(BaseModel):
    """a tool call log rendered for the visualizer."""

    log_id: int
    node_id: int
    display_node_id: int
    node_name: str | None = None
    input: Any = None
    output: Any = None
    status: StepStatus
    duration_ms: int | None = None
    created_at: str


class OrderedStepSequence(BaseModel):
    """an ordered, de-duplicated trace for one run."""

    run_log_id: int
    agent_id: int | None = None
    status: RunStatus | None = None
    steps: list[TraceStep] = []
    edges: list[TraceEdge] = []
    tool_calls: list[ToolCallDetail] = []

    @property
    def is_empty(self) -> bool:
        return not self.steps
