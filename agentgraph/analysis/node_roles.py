"""Infer each node's structural role from the live connection set.

A node is an entry point when it has outgoing but no incoming connections,
and a terminal point when it has incoming but no outgoing connections.
Nodes with both (mid-flow) or neither (isolated) are marked as neither.
"""

import logging
from collections.abc import Iterable

from agentgraph.models.graph import Connection, Node, NodeRoles

logger = logging.getLogger(__name__)


def _live_connections(
    node_ids: set[int], connections: Iterable[Connection]
) -> list[Connection]:
    """Drop connections whose endpoints are not in the node set."""
    live = []
    for conn in connections:
        if conn.from_node_id in node_ids and conn.to_node_id in node_ids:
            live.append(conn)
            continue
        logger.warning(
            "Inconsistent graph: connection %s (%s -> %s) references a node "
            "outside the agent's live node set; ignoring it",
            conn.id,
            conn.from_node_id,
            conn.to_node_id,
        )
    return live


def infer_node_roles(
    nodes: Iterable[Node], connections: Iterable[Connection]
) -> dict[int, NodeRoles]:
    """Compute is_entry / is_terminal for every node.

    Args:
        nodes: all live nodes of one agent.
        connections: all live connections of the same agent.

    Returns:
        Mapping of node id to its derived roles, one entry per node.
    """
    nodes = list(nodes)
    node_ids = {node.id for node in nodes}
    live = _live_connections(node_ids, connections)

    with_incoming = {conn.to_node_id for conn in live}
    with_outgoing = {conn.from_node_id for conn in live}

    roles: dict[int, NodeRoles] = {}
    for node in nodes:
        has_incoming = node.id in with_incoming
        has_outgoing = node.id in with_outgoing
        roles[node.id] = NodeRoles(
            is_entry=not has_incoming and has_outgoing,
            is_terminal=has_incoming and not has_outgoing,
        )
    return roles


def changed_roles(
    nodes: Iterable[Node], roles: dict[int, NodeRoles]
) -> dict[int, NodeRoles]:
    """Return only the roles that differ from what the nodes currently store."""
    changed = {}
    for node in nodes:
        new = roles.get(node.id)
        if new is None:
            continue
        if node.is_entry != new.is_entry or node.is_terminal != new.is_terminal:
            changed[node.id] = new
    return changed
