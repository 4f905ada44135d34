"""Utility functions for agentgraph."""

from agentgraph.utils.identifiers import (
    camel_case,
    generate_slug,
    generate_tool_slug,
    utc_timestamp,
)

__all__ = [
    "camel_case",
    "generate_slug",
    "generate_tool_slug",
    "utc_timestamp",
]
