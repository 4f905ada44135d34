"""Assemble one run's step logs into an ordered trace.

A run's ``NodeEntryLog`` rows are stored as a forest linked by
``parent_log_id``. This module walks that forest depth-first (roots and
siblings in creation order), emits every entry exactly once, and resolves
each step's display node through mapping-node substitution so that
repeated or equivalent call sites collapse onto one visual node while the
per-invocation timing and I/O stay intact.

Malformed parent links never make assembly fail: self-references and
dangling parents turn an entry into a root, and entries stuck in a parent
cycle are picked up afterwards, earliest first.
"""

import logging
from collections import defaultdict

from agentgraph.models.graph import Node
from agentgraph.models.run_log import NodeEntryLog, RunLog, ToolCallLog
from agentgraph.models.trace import (
    OrderedStepSequence,
    ToolCallDetail,
    TraceEdge,
    TraceStep,
)

logger = logging.getLogger(__name__)


def _order_key(entry: NodeEntryLog) -> tuple[str, int]:
    return (entry.created_at, entry.id)


def _is_root(entry: NodeEntryLog, by_id: dict[int, NodeEntryLog]) -> bool:
    parent = entry.parent_log_id
    return parent is None or parent == entry.id or parent not in by_id


def order_entries(entries: list[NodeEntryLog]) -> list[NodeEntryLog]:
    """Return the run's entries in causal order, each exactly once."""
    by_id: dict[int, NodeEntryLog] = {}
    for entry in entries:
        if entry.id in by_id:
            logger.warning("Duplicate step log %s in run; keeping the first", entry.id)
            continue
        by_id[entry.id] = entry

    children_of: dict[int, list[NodeEntryLog]] = defaultdict(list)
    roots: list[NodeEntryLog] = []
    for entry in by_id.values():
        if _is_root(entry, by_id):
            if entry.parent_log_id is not None:
                logger.warning(
                    "Inconsistent trace: step %s has parent %s which is itself "
                    "or outside the run; treating it as a root",
                    entry.id,
                    entry.parent_log_id,
                )
            roots.append(entry)
        else:
            children_of[entry.parent_log_id].append(entry)

    for siblings in children_of.values():
        siblings.sort(key=_order_key)
    roots.sort(key=_order_key)

    ordered: list[NodeEntryLog] = []
    visited: set[int] = set()

    def walk(start: NodeEntryLog) -> None:
        stack = [start]
        while stack:
            entry = stack.pop()
            if entry.id in visited:
                continue
            visited.add(entry.id)
            ordered.append(entry)
            # reversed so the earliest child is popped first
            stack.extend(reversed(children_of.get(entry.id, [])))

    for root in roots:
        walk(root)

    if len(visited) < len(by_id):
        stranded = sorted(
            (entry for entry in by_id.values() if entry.id not in visited),
            key=_order_key,
        )
        logger.warning(
            "Inconsistent trace: %d step(s) are part of a parent cycle (%s); "
            "breaking the cycle at the earliest step",
            len(stranded),
            ", ".join(str(entry.id) for entry in stranded),
        )
        for entry in stranded:
            walk(entry)

    return ordered


def _display_node(node_id: int, nodes: dict[int, Node]) -> tuple[int, Node | None]:
    """Resolve a node id to (display id, node used for name and type)."""
    node = nodes.get(node_id)
    if node is None:
        return node_id, None
    display_id = node.display_id
    return display_id, nodes.get(display_id, node)


def assemble_steps(
    run_log_id: int,
    entries: list[NodeEntryLog],
    nodes: dict[int, Node],
    tool_calls: list[ToolCallLog] | None = None,
    run: RunLog | None = None,
) -> OrderedStepSequence:
    """Build the ordered step sequence for a run.

    Args:
        run_log_id: id of the root execution log.
        entries: the run's step logs, in any order.
        nodes: node lookup by id; should include soft-deleted nodes so that
            historic steps keep their names.
        tool_calls: the run's tool call logs.
        run: the root log itself, when it exists.

    Returns:
        OrderedStepSequence; empty (not an error) when ``entries`` is empty.
    """
    steps: list[TraceStep] = []
    for index, entry in enumerate(order_entries(entries)):
        display_id, display_node = _display_node(entry.node_id, nodes)
        if display_node is None:
            logger.warning(
                "Step %s references unknown node %s", entry.id, entry.node_id
            )
        steps.append(
            TraceStep(
                step_index=index,
                log_id=entry.id,
                node_id=entry.node_id,
                display_node_id=display_id,
                node_name=display_node.name if display_node else None,
                node_type=display_node.type if display_node else None,
                operation_type=entry.operation_type,
                status=entry.status,
                input=entry.input,
                output=entry.output,
                duration_ms=entry.duration_ms,
                created_at=entry.created_at,
                parent_log_id=entry.parent_log_id,
            )
        )

    edges = [
        TraceEdge(
            source=current.display_node_id,
            target=following.display_node_id,
            step_index=current.step_index,
        )
        for current, following in zip(steps, steps[1:])
    ]

    details = []
    for call in sorted(tool_calls or [], key=lambda c: (c.created_at, c.id)):
        display_id, display_node = _display_node(call.node_id, nodes)
        details.append(
            ToolCallDetail(
                log_id=call.id,
                node_id=call.node_id,
                display_node_id=display_id,
                node_name=display_node.name if display_node else None,
                input=call.input,
                output=call.output,
                status=call.status,
                duration_ms=call.duration_ms,
                created_at=call.created_at,
            )
        )

    return OrderedStepSequence(
        run_log_id=run_log_id,
        agent_id=run.agent_id if run else None,
        status=run.status if run else None,
        steps=steps,
        edges=edges,
        tool_calls=details,
    )
