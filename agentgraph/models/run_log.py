"""Data models for execution logs.

A run is one invocation of an agent, rooted at a ``RunLog``. Each node
invocation inside the run is a ``NodeEntryLog``; ``parent_log_id`` points at
the step that causally preceded it, so a run's steps form a forest rather
than a pre-ordered list. ``ToolCallLog`` rows hang off the run directly.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel


class RunStatus(str, Enum):
    """Lifecycle of a run."""

    pending = "pending"
    processing = "processing"
    success = "success"
    failed = "failed"
    error = "error"


class Environment(str, Enum):
    production = "production"
    staging = "staging"


class StepStatus(str, Enum):
    """Outcome of a single node or tool invocation."""

    success = "success"
    error = "error"
    timeout = "timeout"


class RunLog(BaseModel):
    """root execution record for one agent invocation."""

    id: int
    agent_id: int
    status: RunStatus = RunStatus.pending
    environment: Environment = Environment.production
    started_at: str
    input: Any = None
    output: Any = None
    duration_ms: int | None = None
    ended_at: str | None = None
    external_id: str | None = None
    updated_at: str
    deleted_at: str | None = None


class NodeEntryLog(BaseModel):
    """one node invocation within a run."""

    id: int
    agent_id: int
    node_id: int
    run_log_id: int
    parent_log_id: int | None = None  # weak back-reference, may dangle
    input: Any = None
    output: Any = None
    operation_type: str = "node_operation"
    status: StepStatus = StepStatus.success
    duration_ms: int | None = None  # None while in flight or when never completed
    created_at: str
    updated_at: str
    deleted_at: str | None = None


class ToolCallLog(BaseModel):
    """leaf-level detail of a tool invocation, attached to the run."""

    id: int
    node_id: int
    run_log_id: int
    input: Any = None
    output: Any = None
    status: StepStatus = StepStatus.success
    duration_ms: int | None = None
    created_at: str
    updated_at: str
    deleted_at: str | None = None
