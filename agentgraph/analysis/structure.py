"""Build the presentable structure of an agent graph."""

import logging
from collections import defaultdict

from agentgraph.models.graph import (
    Agent,
    AgentStructure,
    Connection,
    ConnectionRef,
    Node,
    NodeStructure,
)

logger = logging.getLogger(__name__)


def build_agent_structure(
    agent: Agent,
    nodes: list[Node],
    connections: list[Connection],
    last_run_at: str | None = None,
) -> AgentStructure:
    """Resolve every node's incoming and outgoing connections.

    Peer names are looked up in an in-memory index of ``nodes``; connections
    whose peer is not among them are dropped and logged.
    """
    by_id = {node.id: node for node in nodes}
    incoming: dict[int, list[ConnectionRef]] = defaultdict(list)
    outgoing: dict[int, list[ConnectionRef]] = defaultdict(list)

    for conn in connections:
        source = by_id.get(conn.from_node_id)
        target = by_id.get(conn.to_node_id)
        if source is None or target is None:
            logger.warning(
                "Inconsistent graph: agent %s connection %s (%s -> %s) has a "
                "dangling endpoint; skipping it",
                agent.id,
                conn.id,
                conn.from_node_id,
                conn.to_node_id,
            )
            continue
        outgoing[source.id].append(
            ConnectionRef(
                connection_id=conn.id,
                peer_node_id=target.id,
                peer_node_name=target.name,
                output_name=conn.output_name,
                input_name=conn.input_name,
            )
        )
        incoming[target.id].append(
            ConnectionRef(
                connection_id=conn.id,
                peer_node_id=source.id,
                peer_node_name=source.name,
                output_name=conn.output_name,
                input_name=conn.input_name,
            )
        )

    node_structures = [
        NodeStructure(
            id=node.id,
            name=node.name,
            type=node.type,
            model_ref=node.model_ref,
            slug=node.slug,
            is_entry=node.is_entry,
            is_terminal=node.is_terminal,
            mapping_node_id=node.mapping_node_id,
            incoming=incoming.get(node.id, []),
            outgoing=outgoing.get(node.id, []),
        )
        for node in nodes
    ]

    return AgentStructure(
        id=agent.id,
        name=agent.name,
        description=agent.description,
        slug=agent.slug,
        nodes=node_structures,
        last_run_at=last_run_at,
    )
