"""API routes for runs, step logs and traces."""

from typing import Any

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

from agentgraph.models.graph import NodeType
from agentgraph.models.run_log import (
    Environment,
    NodeEntryLog,
    RunLog,
    RunStatus,
    StepStatus,
    ToolCallLog,
)
from agentgraph.models.trace import OrderedStepSequence
from agentgraph_server import graph_db, log_db, trace_service

router = APIRouter()


class CreateRunRequest(BaseModel):
    """request body for opening a run."""

    agent_id: int
    environment: Environment = Environment.production
    status: RunStatus = RunStatus.processing
    input: Any = None
    external_id: str | None = None


class UpdateRunRequest(BaseModel):
    status: RunStatus | None = None
    output: Any = None
    duration_ms: int | None = None
    ended_at: str | None = None


class StepLogRequest(BaseModel):
    """request body for recording a step of a run directly."""

    node_id: int
    parent_log_id: int | None = None
    input: Any = None
    output: Any = None
    operation_type: str = "node_operation"
    status: StepStatus = StepStatus.success
    duration_ms: int | None = None


class ToolCallRequest(BaseModel):
    node_id: int
    input: Any = None
    output: Any = None
    status: StepStatus = StepStatus.success
    duration_ms: int | None = None


class TrackRequest(BaseModel):
    """request body sent by instrumented agents after each node call."""

    node_id: int
    input: Any = None
    output: Any = None
    duration_ms: int | None = None
    error: str | None = None
    run_log_id: int | None = None
    external_id: str | None = None
    environment: Environment = Environment.production
    operation_type: str | None = None


class CaptureRequest(BaseModel):
    """request body for tracking a call by node slug on an auto-capture agent."""

    slug: str
    name: str | None = None
    type: NodeType = NodeType.model
    input: Any = None
    output: Any = None
    duration_ms: int | None = None
    error: str | None = None
    run_log_id: int | None = None
    external_id: str | None = None
    environment: Environment = Environment.production
    operation_type: str | None = None


def _require_node_of_agent(node_id: int, agent_id: int) -> None:
    node = graph_db.get_node(node_id)
    if not node:
        raise HTTPException(status_code=404, detail=f"Node not found: {node_id}")
    if node.agent_id != agent_id:
        raise HTTPException(
            status_code=400,
            detail=f"Node {node_id} does not belong to agent {agent_id}",
        )


@router.post("/runs", status_code=201)
def create_run(request: CreateRunRequest) -> RunLog:
    if not graph_db.get_agent(request.agent_id):
        raise HTTPException(status_code=404, detail=f"Agent not found: {request.agent_id}")
    return log_db.create_run(**request.model_dump())


@router.get("/agents/{agent_id}/runs")
def list_runs(
    agent_id: int,
    environment: Environment | None = None,
    status: RunStatus | None = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
) -> list[RunLog]:
    """runs of an agent, newest first."""
    if not graph_db.get_agent(agent_id):
        raise HTTPException(status_code=404, detail=f"Agent not found: {agent_id}")
    return log_db.list_runs(agent_id, environment, status, limit, offset)


@router.get("/runs/{run_id}")
def get_run(run_id: int) -> RunLog:
    return trace_service.require_run(run_id)


@router.patch("/runs/{run_id}")
def update_run(run_id: int, request: UpdateRunRequest) -> RunLog:
    trace_service.require_run(run_id)
    fields = request.model_dump(exclude_unset=True)
    if fields.get("status", "") is None:
        fields.pop("status")
    return log_db.update_run(run_id, fields)


@router.delete("/runs/{run_id}")
def delete_run(run_id: int) -> dict:
    """soft-delete a run with its step and tool logs."""
    trace_service.require_run(run_id)
    log_db.delete_run(run_id)
    return {"deleted": run_id}


@router.post("/runs/{run_id}/steps", status_code=201)
def add_step(run_id: int, request: StepLogRequest) -> NodeEntryLog:
    """record a step with an explicit parent link."""
    run = trace_service.require_run(run_id)
    _require_node_of_agent(request.node_id, run.agent_id)
    return log_db.create_node_entry(
        agent_id=run.agent_id,
        run_log_id=run.id,
        **request.model_dump(),
    )


@router.post("/runs/{run_id}/tool-calls", status_code=201)
def add_tool_call(run_id: int, request: ToolCallRequest) -> ToolCallLog:
    run = trace_service.require_run(run_id)
    _require_node_of_agent(request.node_id, run.agent_id)
    return log_db.create_tool_call(run_log_id=run.id, **request.model_dump())


@router.get("/runs/{run_id}/trace")
def get_trace(run_id: int) -> OrderedStepSequence:
    """ordered step sequence of a run; empty when the run has no steps."""
    return trace_service.get_trace(run_id)


@router.get("/runs/{run_id}/last-node")
def get_last_node(run_id: int) -> dict:
    trace_service.require_run(run_id)
    return {"run_id": run_id, "node_id": trace_service.find_last_node_in_run(run_id)}


@router.post("/track", status_code=201)
def track(request: TrackRequest) -> NodeEntryLog:
    """record a node invocation and keep the owning run's status current."""
    return trace_service.track_step(**request.model_dump())


@router.post("/agents/{agent_id}/capture", status_code=201)
def capture(agent_id: int, request: CaptureRequest) -> NodeEntryLog:
    """record a call by node slug, learning nodes and connections as they appear."""
    fields = request.model_dump()
    node_type = fields.pop("type")
    return trace_service.capture_step(agent_id, node_type=node_type, **fields)
