"""Tests for ordering a run's step logs into a trace."""

from agentgraph.analysis.trace_assembly import assemble_steps, order_entries
from agentgraph.models.graph import NodeType
from agentgraph.models.run_log import RunLog, RunStatus

from agentgraph.tests.factories import TS, make_entry, make_node, make_tool_call


def _ids(entries):
    return [entry.id for entry in entries]


def _nodes(*nodes):
    return {node.id: node for node in nodes}


class TestOrderEntries:
    """Depth-first ordering of the parent forest."""

    def test_empty_run(self):
        assert order_entries([]) == []

    def test_linear_chain_in_any_input_order(self):
        e1 = make_entry(1, node_id=10)
        e2 = make_entry(2, node_id=11, parent_log_id=1)
        e3 = make_entry(3, node_id=12, parent_log_id=2)

        assert _ids(order_entries([e3, e1, e2])) == [1, 2, 3]

    def test_children_visited_depth_first_in_creation_order(self):
        """a branch is exhausted before its later sibling starts."""
        root = make_entry(1, node_id=10)
        late_child = make_entry(2, node_id=11, parent_log_id=1, second=20)
        early_child = make_entry(3, node_id=12, parent_log_id=1, second=10)
        grandchild = make_entry(4, node_id=13, parent_log_id=3, second=30)

        ordered = order_entries([root, late_child, early_child, grandchild])

        assert _ids(ordered) == [1, 3, 4, 2]

    def test_roots_ordered_by_created_at(self):
        first = make_entry(5, node_id=10, second=1)
        second = make_entry(2, node_id=11, second=2)
        second_child = make_entry(3, node_id=12, parent_log_id=2, second=3)

        assert _ids(order_entries([second_child, second, first])) == [5, 2, 3]

    def test_same_timestamp_breaks_ties_by_id(self):
        a = make_entry(7, node_id=10, second=5)
        b = make_entry(4, node_id=11, second=5)

        assert _ids(order_entries([a, b])) == [4, 7]

    def test_self_parent_becomes_root(self):
        """a step pointing at itself is emitted once, as a root."""
        e1 = make_entry(1, node_id=10)
        e2 = make_entry(2, node_id=11, parent_log_id=1)
        e3 = make_entry(3, node_id=12, parent_log_id=3)

        ordered = order_entries([e1, e2, e3])

        assert _ids(ordered) == [1, 2, 3]

    def test_two_step_cycle_is_broken_at_earliest(self):
        e1 = make_entry(1, node_id=10, parent_log_id=2)
        e2 = make_entry(2, node_id=11, parent_log_id=1)

        assert _ids(order_entries([e2, e1])) == [1, 2]

    def test_cycle_below_a_real_root_is_still_emitted(self):
        root = make_entry(1, node_id=10)
        child = make_entry(2, node_id=11, parent_log_id=1)
        loop_a = make_entry(3, node_id=12, parent_log_id=4)
        loop_b = make_entry(4, node_id=13, parent_log_id=3)

        ordered = order_entries([loop_b, child, loop_a, root])

        assert _ids(ordered) == [1, 2, 3, 4]

    def test_parent_outside_run_becomes_root(self):
        orphan = make_entry(2, node_id=11, parent_log_id=999)
        root = make_entry(1, node_id=10)

        assert _ids(order_entries([orphan, root])) == [1, 2]

    def test_duplicate_ids_emitted_once(self):
        e1 = make_entry(1, node_id=10)
        dup = make_entry(1, node_id=10)
        e2 = make_entry(2, node_id=11, parent_log_id=1)

        assert _ids(order_entries([e1, dup, e2])) == [1, 2]

    def test_every_entry_appears_exactly_once(self):
        entries = [
            make_entry(1, node_id=10),
            make_entry(2, node_id=10, parent_log_id=1),
            make_entry(3, node_id=10, parent_log_id=1),
            make_entry(4, node_id=10, parent_log_id=6),
            make_entry(5, node_id=10, parent_log_id=5),
            make_entry(6, node_id=10, parent_log_id=4),
        ]

        ordered = _ids(order_entries(entries))

        assert sorted(ordered) == [1, 2, 3, 4, 5, 6]
        assert len(ordered) == len(set(ordered))


class TestAssembleSteps:
    """Rendering ordered entries into steps, edges and tool calls."""

    def test_empty_run_yields_empty_sequence(self):
        sequence = assemble_steps(42, [], {})

        assert sequence.run_log_id == 42
        assert sequence.is_empty
        assert sequence.steps == []
        assert sequence.edges == []
        assert sequence.tool_calls == []

    def test_steps_carry_entry_data(self):
        nodes = _nodes(make_node(10, "Planner"), make_node(11, "Search", type=NodeType.tool))
        entries = [
            make_entry(1, node_id=10),
            make_entry(2, node_id=11, parent_log_id=1),
        ]

        sequence = assemble_steps(1, entries, nodes)

        assert [step.step_index for step in sequence.steps] == [0, 1]
        first, second = sequence.steps
        assert first.node_name == "Planner"
        assert first.node_type == NodeType.model
        assert first.input == {"step": 1}
        assert first.duration_ms == 10
        assert second.node_name == "Search"
        assert second.node_type == NodeType.tool
        assert second.parent_log_id == 1

    def test_edges_link_consecutive_steps(self):
        nodes = _nodes(make_node(10), make_node(11), make_node(12))
        entries = [
            make_entry(1, node_id=10),
            make_entry(2, node_id=11, parent_log_id=1),
            make_entry(3, node_id=12, parent_log_id=2),
        ]

        sequence = assemble_steps(1, entries, nodes)

        assert [(e.source, e.target, e.step_index) for e in sequence.edges] == [
            (10, 11, 0),
            (11, 12, 1),
        ]

    def test_mapping_node_substitution(self):
        """two call sites mapped onto one node share its display id and name."""
        canonical = make_node(10, "Summarize")
        alias = make_node(11, "summarize-retry", mapping_node_id=10)
        entries = [
            make_entry(1, node_id=10, duration_ms=120, input={"text": "a"}),
            make_entry(2, node_id=11, parent_log_id=1, duration_ms=340, input={"text": "b"}),
        ]

        sequence = assemble_steps(1, entries, _nodes(canonical, alias))

        first, second = sequence.steps
        assert first.display_node_id == second.display_node_id == 10
        assert second.node_id == 11
        assert second.node_name == "Summarize"
        assert (first.duration_ms, second.duration_ms) == (120, 340)
        assert first.input != second.input
        assert sequence.edges[0].source == sequence.edges[0].target == 10

    def test_mapping_to_unloaded_node_keeps_alias_name(self):
        alias = make_node(11, "alias", mapping_node_id=99)
        sequence = assemble_steps(1, [make_entry(1, node_id=11)], _nodes(alias))

        step = sequence.steps[0]
        assert step.display_node_id == 99
        assert step.node_name == "alias"

    def test_unknown_node_has_no_name(self):
        sequence = assemble_steps(1, [make_entry(1, node_id=77)], {})

        step = sequence.steps[0]
        assert step.display_node_id == 77
        assert step.node_name is None
        assert step.node_type is None

    def test_missing_duration_is_preserved(self):
        entries = [make_entry(1, node_id=10, duration_ms=None)]

        sequence = assemble_steps(1, entries, _nodes(make_node(10)))

        assert sequence.steps[0].duration_ms is None

    def test_tool_calls_sorted_and_resolved(self):
        nodes = _nodes(
            make_node(20, "Lookup", type=NodeType.tool),
            make_node(21, "lookup-2", type=NodeType.tool, mapping_node_id=20),
        )
        calls = [
            make_tool_call(2, node_id=21, second=9, input={"q": "b"}),
            make_tool_call(1, node_id=20, second=3, input={"q": "a"}),
        ]

        sequence = assemble_steps(1, [], nodes, tool_calls=calls)

        assert [call.log_id for call in sequence.tool_calls] == [1, 2]
        assert all(call.display_node_id == 20 for call in sequence.tool_calls)
        assert sequence.tool_calls[1].node_name == "Lookup"
        assert sequence.is_empty

    def test_run_metadata_copied(self):
        run = RunLog(
            id=1,
            agent_id=5,
            status=RunStatus.success,
            started_at=TS,
            updated_at=TS,
        )

        sequence = assemble_steps(1, [], {}, run=run)

        assert sequence.agent_id == 5
        assert sequence.status == RunStatus.success

    def test_without_run_metadata_is_none(self):
        sequence = assemble_steps(1, [], {})

        assert sequence.agent_id is None
        assert sequence.status is None
