"""HTTP service and sqlite storage for agentgraph."""
