"""API routes for agents, nodes and connections."""

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from agentgraph.models.graph import Agent, AgentStructure, Connection, Node, NodeType
from agentgraph_server import graph_db, graph_service

router = APIRouter()


class CreateAgentRequest(BaseModel):
    """request body for creating an agent."""

    name: str
    description: str | None = None
    slug: str | None = None
    company_id: int | None = None
    auto_capture: bool = False
    auto_stop: bool = False


class UpdateAgentRequest(BaseModel):
    name: str | None = None
    description: str | None = None
    slug: str | None = None
    auto_capture: bool | None = None
    auto_stop: bool | None = None


class CreateNodeRequest(BaseModel):
    """request body for adding a node; role flags are derived, not accepted."""

    name: str
    type: NodeType
    model_ref: str | None = None
    slug: str | None = None
    mapping_node_id: int | None = None
    config: dict | None = None


class UpdateNodeRequest(BaseModel):
    name: str | None = None
    type: NodeType | None = None
    model_ref: str | None = None
    slug: str | None = None
    mapping_node_id: int | None = None
    config: dict | None = None


class CreateConnectionRequest(BaseModel):
    """request body for connecting two nodes."""

    from_node_id: int
    to_node_id: int
    output_name: str = "output"
    input_name: str = "input"


class UpdateConnectionRequest(BaseModel):
    from_node_id: int | None = None
    to_node_id: int | None = None
    output_name: str | None = None
    input_name: str | None = None


def _changes(request: BaseModel, required: set[str]) -> dict:
    """fields the client sent; nulls are dropped for required columns only."""
    sent = request.model_dump(exclude_unset=True)
    return {
        key: value
        for key, value in sent.items()
        if value is not None or key not in required
    }


def _require_agent(agent_id: int) -> Agent:
    agent = graph_db.get_agent(agent_id)
    if not agent:
        raise HTTPException(status_code=404, detail=f"Agent not found: {agent_id}")
    return agent


# agents


@router.get("/agents")
def list_agents(company_id: int | None = None) -> list[Agent]:
    """list agents, optionally for one company."""
    return graph_db.list_agents(company_id)


@router.post("/agents", status_code=201)
def create_agent(request: CreateAgentRequest) -> Agent:
    """create an agent; a slug is generated from the name when omitted."""
    return graph_db.create_agent(**request.model_dump())


@router.get("/agents/{agent_id}")
def get_agent(agent_id: int) -> Agent:
    return _require_agent(agent_id)


@router.patch("/agents/{agent_id}")
def update_agent(agent_id: int, request: UpdateAgentRequest) -> Agent:
    _require_agent(agent_id)
    fields = _changes(request, {"name", "slug", "auto_capture", "auto_stop"})
    return graph_db.update_agent(agent_id, fields)


@router.delete("/agents/{agent_id}")
def delete_agent(agent_id: int) -> dict:
    """soft-delete an agent with its graph."""
    _require_agent(agent_id)
    graph_db.delete_agent(agent_id)
    return {"deleted": agent_id}


@router.get("/agents/{agent_id}/structure")
def get_agent_structure(agent_id: int) -> AgentStructure:
    """full visual graph of an agent with its last production run time."""
    return graph_service.get_agent_structure(agent_id)


@router.post("/agents/{agent_id}/recompute-roles")
def recompute_roles(agent_id: int) -> dict:
    """recompute entry and terminal flags from the current connections."""
    _require_agent(agent_id)
    changed = graph_service.recompute_node_roles(agent_id)
    return {"agent_id": agent_id, "changed_node_ids": changed}


# nodes


@router.get("/agents/{agent_id}/nodes")
def list_nodes(agent_id: int) -> list[Node]:
    _require_agent(agent_id)
    return graph_db.list_nodes(agent_id)


@router.post("/agents/{agent_id}/nodes", status_code=201)
def create_node(agent_id: int, request: CreateNodeRequest) -> Node:
    _require_agent(agent_id)
    return graph_db.create_node(
        agent_id,
        request.name,
        request.type,
        model_ref=request.model_ref,
        slug=request.slug,
        mapping_node_id=request.mapping_node_id,
        config=request.config,
    )


@router.get("/nodes/{node_id}")
def get_node(node_id: int) -> Node:
    node = graph_db.get_node(node_id)
    if not node:
        raise HTTPException(status_code=404, detail=f"Node not found: {node_id}")
    return node


@router.patch("/nodes/{node_id}")
def update_node(node_id: int, request: UpdateNodeRequest) -> Node:
    fields = _changes(request, {"name", "type"})
    node = graph_db.update_node(node_id, fields)
    if not node:
        raise HTTPException(status_code=404, detail=f"Node not found: {node_id}")
    return node


@router.delete("/nodes/{node_id}")
def delete_node(node_id: int) -> dict:
    """soft-delete a node and its connections, then recompute roles."""
    removed = graph_service.remove_node(node_id)
    return {"deleted": node_id, "removed_connection_ids": removed}


# connections


@router.get("/agents/{agent_id}/connections")
def list_connections(agent_id: int) -> list[Connection]:
    _require_agent(agent_id)
    return graph_db.list_connections(agent_id)


@router.post("/agents/{agent_id}/connections", status_code=201)
def create_connection(agent_id: int, request: CreateConnectionRequest) -> Connection:
    """connect two nodes; an identical live connection is returned as is."""
    return graph_service.connect_nodes(
        agent_id,
        request.from_node_id,
        request.to_node_id,
        output_name=request.output_name,
        input_name=request.input_name,
    )


@router.patch("/connections/{connection_id}")
def update_connection(connection_id: int, request: UpdateConnectionRequest) -> Connection:
    fields = _changes(request, set(UpdateConnectionRequest.model_fields))
    return graph_service.update_connection(connection_id, fields)


@router.delete("/connections/{connection_id}")
def delete_connection(connection_id: int) -> dict:
    graph_service.remove_connection(connection_id)
    return {"deleted": connection_id}


@router.post("/connections/{connection_id}/restore")
def restore_connection(connection_id: int) -> Connection:
    return graph_service.restore_connection(connection_id)
