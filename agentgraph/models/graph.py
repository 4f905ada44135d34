"""Data models for an agent's execution graph.

An agent is a directed graph of model and tool nodes. Connections carry
port labels so multi-output and multi-input nodes can be wired precisely.
The ``is_entry`` and ``is_terminal`` flags on a node are derived from the
live connection set and are never accepted from clients.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel


class NodeType(str, Enum):
    """Kinds of graph nodes."""

    model = "model"
    tool = "tool"


class Agent(BaseModel):
    """an agent, the root of one execution graph."""

    id: int
    name: str
    description: str | None = None
    slug: str
    company_id: int | None = None
    auto_capture: bool = False
    auto_stop: bool = False  # close the run when a terminal node is tracked
    created_at: str
    updated_at: str
    deleted_at: str | None = None


class Node(BaseModel):
    """a model call or tool call site inside an agent."""

    id: int
    agent_id: int
    name: str
    type: NodeType
    model_ref: str | None = None
    slug: str | None = None
    is_entry: bool = False
    is_terminal: bool = False
    mapping_node_id: int | None = None  # display alias, never an ownership link
    config: dict[str, Any] | None = None
    created_at: str
    updated_at: str
    deleted_at: str | None = None

    @property
    def display_id(self) -> int:
        """id used to draw this node, after mapping-node substitution."""
        return self.mapping_node_id or self.id


class Connection(BaseModel):
    """a directed edge between two nodes of the same agent."""

    id: int
    agent_id: int
    from_node_id: int
    to_node_id: int
    output_name: str = "output"
    input_name: str = "input"
    created_at: str
    updated_at: str
    deleted_at: str | None = None


class NodeRoles(BaseModel):
    """derived structural role of a node."""

    is_entry: bool = False
    is_terminal: bool = False


class ConnectionRef(BaseModel):
    """a connection as seen from one of its endpoints."""

    connection_id: int
    peer_node_id: int
    peer_node_name: str
    output_name: str
    input_name: str


class NodeStructure(BaseModel):
    """a node with its incoming and outgoing connections resolved."""

    id: int
    name: str
    type: NodeType
    model_ref: str | None = None
    slug: str | None = None
    is_entry: bool
    is_terminal: bool
    mapping_node_id: int | None = None
    incoming: list[ConnectionRef]
    outgoing: list[ConnectionRef]


class AgentStructure(BaseModel):
    """the full visual graph of an agent."""

    id: int
    name: str
    description: str | None = None
    slug: str
    nodes: list[NodeStructure]
    last_run_at: str | None = None
