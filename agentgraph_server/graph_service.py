"""Graph mutations and the derived-role recompute.

Every connection mutation commits first and then calls
``recompute_node_roles`` for the owning agent. The recompute reads the
agent's nodes and connections and writes the changed flags inside a single
``BEGIN IMMEDIATE`` transaction. The write lock is taken before the read, so
two recomputes of the same agent cannot interleave and overwrite each
other's results.
"""

import logging
import os
import sqlite3
import time
from typing import Any

from agentgraph.analysis.node_roles import changed_roles, infer_node_roles
from agentgraph.analysis.structure import build_agent_structure
from agentgraph.errors import (
    AgentNotFound,
    ConnectionNotFound,
    NodeNotFound,
    PartialWriteFailure,
)
from agentgraph.models.graph import AgentStructure, Connection, NodeRoles
from agentgraph.models.run_log import Environment
from agentgraph_server import graph_db, log_db
from agentgraph_server.db import connect

logger = logging.getLogger(__name__)

RETRY_DELAY_SECONDS = 0.05


def _write_retries() -> int:
    return max(1, int(os.getenv("ROLE_WRITE_RETRIES", "3")))


def _write_roles(
    conn: sqlite3.Connection, agent_id: int, node_id: int, roles: NodeRoles
) -> None:
    """Write one node's flag pair, retrying that single write on failure."""
    attempts = _write_retries()
    for attempt in range(1, attempts + 1):
        try:
            graph_db.write_node_roles(conn, node_id, roles)
            return
        except sqlite3.OperationalError as exc:
            if attempt == attempts:
                raise PartialWriteFailure(agent_id, node_id, exc) from exc
            logger.warning(
                "Role write for node %s failed (attempt %d/%d): %s",
                node_id,
                attempt,
                attempts,
                exc,
            )
            time.sleep(RETRY_DELAY_SECONDS * attempt)


def recompute_node_roles(agent_id: int) -> list[int]:
    """Recompute is_entry / is_terminal for every node of an agent.

    Idempotent. A missing agent is logged and ignored.

    Returns:
        ids of the nodes whose flags changed.

    Raises:
        PartialWriteFailure: a node write kept failing; nothing was committed.
    """
    conn = connect(isolation_level=None)
    try:
        conn.execute("begin immediate")
        try:
            agent = graph_db.fetch_agent(conn, agent_id)
            if agent is None:
                logger.warning("Skipping role recompute: agent %s not found", agent_id)
                changed: dict[int, NodeRoles] = {}
            else:
                nodes = graph_db.fetch_nodes(conn, agent_id)
                connections = graph_db.fetch_connections(conn, agent_id)
                changed = changed_roles(nodes, infer_node_roles(nodes, connections))
                for node_id, roles in changed.items():
                    _write_roles(conn, agent_id, node_id, roles)
        except Exception:
            conn.execute("rollback")
            raise
        conn.execute("commit")
    finally:
        conn.close()

    if changed:
        logger.info(
            "Updated roles of %d node(s) for agent %s: %s",
            len(changed),
            agent_id,
            sorted(changed),
        )
    else:
        logger.debug("Roles for agent %s already up to date", agent_id)
    return sorted(changed)


def _require_agent(agent_id: int) -> None:
    if graph_db.get_agent(agent_id) is None:
        raise AgentNotFound(agent_id)


def connect_nodes(
    agent_id: int,
    from_node_id: int,
    to_node_id: int,
    output_name: str = "output",
    input_name: str = "input",
) -> Connection:
    """Connect two nodes, returning the existing connection if there is one."""
    _require_agent(agent_id)
    existing = graph_db.find_connection(agent_id, from_node_id, to_node_id)
    if existing is not None:
        return existing
    connection = graph_db.create_connection(
        agent_id, from_node_id, to_node_id, output_name, input_name
    )
    recompute_node_roles(agent_id)
    return connection


def update_connection(connection_id: int, fields: dict[str, Any]) -> Connection:
    connection = graph_db.update_connection(connection_id, fields)
    if connection is None:
        raise ConnectionNotFound(connection_id)
    recompute_node_roles(connection.agent_id)
    return connection


def remove_connection(connection_id: int) -> Connection:
    connection = graph_db.get_connection(connection_id)
    if connection is None:
        raise ConnectionNotFound(connection_id)
    graph_db.delete_connection(connection_id)
    recompute_node_roles(connection.agent_id)
    return connection


def restore_connection(connection_id: int) -> Connection:
    connection = graph_db.restore_connection(connection_id)
    if connection is None:
        raise ConnectionNotFound(connection_id)
    recompute_node_roles(connection.agent_id)
    return connection


def remove_node(node_id: int) -> list[int]:
    """Soft-delete a node together with its connections.

    Returns:
        ids of the connections removed with the node.
    """
    node = graph_db.get_node(node_id)
    if node is None:
        raise NodeNotFound(node_id)
    removed = graph_db.delete_node(node_id)
    recompute_node_roles(node.agent_id)
    return removed


def get_agent_structure(agent_id: int) -> AgentStructure:
    """Assemble the visual graph of an agent.

    Raises:
        AgentNotFound: the agent does not exist or is soft-deleted.
    """
    agent = graph_db.get_agent(agent_id)
    if agent is None:
        raise AgentNotFound(agent_id)
    nodes = graph_db.list_nodes(agent_id)
    connections = graph_db.list_connections(agent_id)
    last_run_at = log_db.latest_run_started_at(agent_id, Environment.production)
    return build_agent_structure(agent, nodes, connections, last_run_at)
