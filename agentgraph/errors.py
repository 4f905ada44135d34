"""Error taxonomy for the agent graph.

NotFound errors are terminal and surface to API callers as 404s.
InconsistentGraph is raised when a mutation would break the same-agent
invariant; the read-side assemblers never raise it, they log and neutralise.
"""


class AgentGraphError(Exception):
    """Base class for all agentgraph errors."""


class NotFound(AgentGraphError):
    """A referenced record does not exist (or is soft-deleted)."""

    kind = "record"

    def __init__(self, record_id: int) -> None:
        self.record_id = record_id
        super().__init__(f"{self.kind.capitalize()} not found: {record_id}")


class AgentNotFound(NotFound):
    kind = "agent"


class NodeNotFound(NotFound):
    kind = "node"


class ConnectionNotFound(NotFound):
    kind = "connection"


class RunNotFound(NotFound):
    kind = "run"


class InconsistentGraph(AgentGraphError):
    """A connection or log chain violates the graph invariants."""


class PartialWriteFailure(AgentGraphError):
    """A node flag update kept failing; the batch was rolled back."""

    def __init__(self, agent_id: int, node_id: int, cause: Exception) -> None:
        self.agent_id = agent_id
        self.node_id = node_id
        self.cause = cause
        super().__init__(
            f"Failed to write roles for node {node_id} of agent {agent_id}: {cause}"
        )


class SlugConflict(AgentGraphError):
    """An agent slug is already taken."""

    def __init__(self, slug: str) -> None:
        self.slug = slug
        super().__init__(f"Slug already in use: {slug}")


class CaptureDisabled(AgentGraphError):
    """Graph capture from live traffic is switched off for the agent."""

    def __init__(self, agent_id: int) -> None:
        self.agent_id = agent_id
        super().__init__(f"Auto capture is disabled for agent {agent_id}")
