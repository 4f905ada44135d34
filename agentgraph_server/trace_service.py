"""Run traces and step tracking."""

import logging
from datetime import datetime
from typing import Any

from agentgraph.analysis.trace_assembly import assemble_steps
from agentgraph.errors import (
    AgentNotFound,
    CaptureDisabled,
    InconsistentGraph,
    NodeNotFound,
    RunNotFound,
)
from agentgraph.models.graph import Node, NodeType
from agentgraph.models.run_log import (
    Environment,
    NodeEntryLog,
    RunLog,
    RunStatus,
    StepStatus,
)
from agentgraph.models.trace import OrderedStepSequence
from agentgraph.utils.identifiers import utc_timestamp
from agentgraph_server import graph_db, graph_service, log_db

logger = logging.getLogger(__name__)


def _resolve_nodes(node_ids: set[int]) -> dict[int, Node]:
    """Load the step nodes plus the nodes they map onto."""
    nodes = graph_db.get_nodes_by_ids(node_ids)
    mapped = {
        node.mapping_node_id
        for node in nodes.values()
        if node.mapping_node_id is not None and node.mapping_node_id not in nodes
    }
    nodes.update(graph_db.get_nodes_by_ids(mapped))
    return nodes


def get_trace(run_log_id: int) -> OrderedStepSequence:
    """Assemble the ordered step sequence of a run.

    A run without steps (including an unknown run id) yields an empty
    sequence rather than an error.
    """
    run = log_db.get_run(run_log_id)
    entries = log_db.list_node_entries(run_log_id)
    tool_calls = log_db.list_tool_calls(run_log_id)
    node_ids = {entry.node_id for entry in entries} | {call.node_id for call in tool_calls}
    nodes = _resolve_nodes(node_ids)
    return assemble_steps(run_log_id, entries, nodes, tool_calls, run)


def find_last_node_in_run(run_log_id: int) -> int | None:
    """node id of the most recent step recorded for a run."""
    entry = log_db.latest_node_entry(run_log_id)
    return entry.node_id if entry else None


def require_run(run_log_id: int) -> RunLog:
    run = log_db.get_run(run_log_id)
    if run is None:
        raise RunNotFound(run_log_id)
    return run


def _elapsed_ms(started_at: str, ended_at: str) -> int | None:
    try:
        delta = datetime.fromisoformat(ended_at) - datetime.fromisoformat(started_at)
    except (TypeError, ValueError):
        logger.warning("Cannot compute run duration from %r to %r", started_at, ended_at)
        return None
    return int(delta.total_seconds() * 1000)


def _check_run_agent(run: RunLog, agent_id: int) -> RunLog:
    if run.agent_id != agent_id:
        raise InconsistentGraph(
            f"Run {run.id} belongs to agent {run.agent_id}, not agent {agent_id}"
        )
    return run


def _resolve_run(
    node: Node,
    run_log_id: int | None,
    external_id: str | None,
    environment: Environment,
    input: Any,
    error: str | None,
) -> RunLog | None:
    """Find the run a tracked step belongs to, opening one at entry nodes."""
    if run_log_id is not None:
        return _check_run_agent(require_run(run_log_id), node.agent_id)
    if external_id:
        run = log_db.find_run_by_external_id(external_id)
        if run is not None:
            return _check_run_agent(run, node.agent_id)
    if node.is_entry:
        return log_db.create_run(
            node.agent_id,
            environment=environment,
            status=RunStatus.failed if error else RunStatus.processing,
            input=input,
            external_id=external_id,
        )
    return log_db.latest_processing_run(node.agent_id, environment)


def track_step(
    node_id: int,
    input: Any = None,
    output: Any = None,
    duration_ms: int | None = None,
    error: str | None = None,
    run_log_id: int | None = None,
    external_id: str | None = None,
    environment: Environment = Environment.production,
    operation_type: str | None = None,
) -> NodeEntryLog:
    """Record one node invocation reported by an instrumented agent.

    The step is chained after the run's latest step. A failing step marks
    the run as failed; reaching a terminal node closes the run when the
    agent has ``auto_stop`` enabled.

    Raises:
        NodeNotFound: the node does not exist.
        RunNotFound: an explicit ``run_log_id`` does not exist.
        InconsistentGraph: the resolved run belongs to another agent.
    """
    node = graph_db.get_node(node_id)
    if node is None:
        raise NodeNotFound(node_id)
    agent = graph_db.get_agent(node.agent_id)
    if agent is None:
        raise AgentNotFound(node.agent_id)

    run = _resolve_run(node, run_log_id, external_id, environment, input, error)
    if run is None:
        # steps must hang off a run; open one when the agent is mid-flight
        logger.info(
            "No open run for agent %s at node %s; opening a new one",
            agent.id,
            node_id,
        )
        run = log_db.create_run(
            agent.id,
            environment=environment,
            status=RunStatus.processing,
            input=input,
            external_id=external_id,
        )

    previous = log_db.latest_node_entry(run.id)
    entry = log_db.create_node_entry(
        agent_id=agent.id,
        node_id=node.id,
        run_log_id=run.id,
        parent_log_id=previous.id if previous else None,
        input=input,
        output=output if output is not None else {},
        operation_type=operation_type or f"{node.type.value}_operation",
        status=StepStatus.error if error else StepStatus.success,
        duration_ms=duration_ms,
    )

    now = utc_timestamp()
    if node.is_terminal and agent.auto_stop:
        log_db.update_run(
            run.id,
            {
                "status": RunStatus.failed if error else RunStatus.success,
                "output": output,
                "ended_at": now,
                "duration_ms": _elapsed_ms(run.started_at, now),
            },
        )
        logger.info("Closed run %s at terminal node %s", run.id, node.id)
    elif error:
        log_db.update_run(
            run.id,
            {
                "status": RunStatus.failed,
                "output": output,
                "duration_ms": _elapsed_ms(run.started_at, now),
            },
        )
    return entry


def _capture_run(
    agent_id: int,
    run_log_id: int | None,
    external_id: str | None,
    environment: Environment,
    input: Any,
) -> RunLog:
    if run_log_id is not None:
        return _check_run_agent(require_run(run_log_id), agent_id)
    if external_id:
        run = log_db.find_run_by_external_id(external_id)
        if run is not None:
            return _check_run_agent(run, agent_id)
    else:
        run = log_db.latest_processing_run(agent_id, environment)
        if run is not None:
            return run
    # an unseen external id always starts its own run
    return log_db.create_run(
        agent_id,
        environment=environment,
        status=RunStatus.processing,
        input=input,
        external_id=external_id,
    )


def capture_step(
    agent_id: int,
    slug: str,
    name: str | None = None,
    node_type: NodeType = NodeType.model,
    input: Any = None,
    output: Any = None,
    duration_ms: int | None = None,
    error: str | None = None,
    run_log_id: int | None = None,
    external_id: str | None = None,
    environment: Environment = Environment.production,
    operation_type: str | None = None,
) -> NodeEntryLog:
    """Track a call by node slug, growing the agent's graph from live traffic.

    The node is looked up by slug and created when it does not exist yet.
    The node of the run's previous step is then connected to it, which
    recomputes the agent's entry and terminal roles before the step is
    recorded through ``track_step``. Repeated calls of the same node do not
    add a self-loop.

    Raises:
        AgentNotFound: the agent does not exist.
        CaptureDisabled: the agent has ``auto_capture`` switched off.
        InconsistentGraph: the resolved run belongs to another agent.
    """
    agent = graph_db.get_agent(agent_id)
    if agent is None:
        raise AgentNotFound(agent_id)
    if not agent.auto_capture:
        raise CaptureDisabled(agent_id)

    run = _capture_run(agent.id, run_log_id, external_id, environment, input)

    node = graph_db.find_node_by_slug(agent.id, slug)
    if node is None:
        node = graph_db.create_node(agent.id, name or slug, node_type, slug=slug)
        logger.info("Captured new node %s (%s) for agent %s", node.id, slug, agent.id)

    last_node_id = find_last_node_in_run(run.id)
    if last_node_id is not None and last_node_id != node.id:
        if graph_db.get_node(last_node_id) is None:
            logger.warning(
                "Not connecting removed node %s to captured node %s in run %s",
                last_node_id,
                node.id,
                run.id,
            )
        else:
            graph_service.connect_nodes(agent.id, last_node_id, node.id)

    return track_step(
        node.id,
        input=input,
        output=output,
        duration_ms=duration_ms,
        error=error,
        run_log_id=run.id,
        environment=environment,
        operation_type=operation_type,
    )
