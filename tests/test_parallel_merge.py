"""Tests for merging parallel branch states."""

from datetime import datetime, timedelta

from taskgraph.graph.edge import MergeOrder, ParallelMergeConfig
from taskgraph.graph.merge import merge_parallel_states, order_branches
from taskgraph.schemas.state import (
    add_message,
    create_state,
    increment_tool_call,
    record_node_timing,
    update_state,
)


def branch(base, fn):
    return update_state(base, fn)


def test_order_branches():
    assert order_branches(["z", "y"], ParallelMergeConfig()) == ["z", "y"]
    assert order_branches(["z", "y"], ParallelMergeConfig(order=MergeOrder.SORTED)) == ["y", "z"]


def test_sorted_by_id_alias():
    assert ParallelMergeConfig(order="sorted-by-id").order == MergeOrder.SORTED


def test_message_suffixes_concatenate_in_merge_order():
    base = add_message(create_state("goal"), "user", "question")
    from_y = add_message(base, "assistant", "from Y")
    from_z = add_message(base, "assistant", "from Z")

    merged = merge_parallel_states(base, [from_y, from_z])

    assert [m.content for m in merged.conversation.messages] == ["question", "from Y", "from Z"]

    merged = merge_parallel_states(base, [from_z, from_y])

    assert [m.content for m in merged.conversation.messages] == ["question", "from Z", "from Y"]


def test_append_only_lists_merge_suffixes():
    base = create_state("goal")
    base.conversation.tool_results_summary = ["earlier"]
    base.memory.long_term_keys = ["k0"]

    def first(draft):
        draft.conversation.tool_results_summary.append("search: 3 hits")
        draft.memory.long_term_keys.append("k1")

    def second(draft):
        draft.memory.long_term_keys.extend(["k2", "k3"])

    merged = merge_parallel_states(base, [branch(base, first), branch(base, second)])

    assert merged.conversation.tool_results_summary == ["earlier", "search: 3 hits"]
    assert merged.memory.long_term_keys == ["k0", "k1", "k2", "k3"]


def test_key_value_union_later_branch_wins_on_collision():
    base = create_state("goal")
    base.artifacts = {"shared": "base"}

    def first(draft):
        draft.artifacts["shared"] = "first"
        draft.artifacts["only_first"] = 1
        draft.memory.short_term["topic"] = "billing"

    def second(draft):
        draft.artifacts["shared"] = "second"
        draft.memory.short_term["lang"] = "en"

    merged = merge_parallel_states(base, [branch(base, first), branch(base, second)])

    assert merged.artifacts == {"shared": "second", "only_first": 1}
    assert merged.memory.short_term == {"topic": "billing", "lang": "en"}


def test_later_branch_wins_even_with_base_value():
    base = create_state("goal")
    base.memory.short_term = {"status": "open"}
    base.artifacts = {"report": "draft"}

    def first(draft):
        draft.memory.short_term["status"] = "resolved"
        draft.artifacts["report"] = "final"

    merged = merge_parallel_states(base, [branch(base, first), branch(base, lambda d: None)])

    assert merged.memory.short_term == {"status": "open"}
    assert merged.artifacts == {"report": "draft"}

    merged = merge_parallel_states(base, [branch(base, lambda d: None), branch(base, first)])

    assert merged.memory.short_term == {"status": "resolved"}
    assert merged.artifacts == {"report": "final"}


def test_task_is_last_write_wins_and_earlier_branch_update_is_lost():
    base = create_state("goal")

    def first(draft):
        draft.task.progress = 80
        draft.task.plan = "plan from first"

    def second(draft):
        draft.task.progress = 30

    merged = merge_parallel_states(base, [branch(base, first), branch(base, second)])

    # The second branch replaced task wholesale, so the first branch's plan is gone.
    assert merged.task.progress == 30
    assert merged.task.plan is None


def test_telemetry_sums_deltas_against_base():
    base = create_state("goal")
    base = increment_tool_call(increment_tool_call(increment_tool_call(base)))
    base = record_node_timing(base, "router", 5)

    y = record_node_timing(increment_tool_call(base), "y", 10)
    z = record_node_timing(increment_tool_call(increment_tool_call(base)), "z", 20)
    z.telemetry.token_count = 7

    merged = merge_parallel_states(base, [y, z])

    assert merged.telemetry.tool_call_count == 3 + 1 + 2
    assert merged.telemetry.token_count == 7
    assert merged.telemetry.total_duration_ms == 5 + 10 + 20
    assert merged.telemetry.node_timings == {"router": 5, "y": 10, "z": 20}


def test_node_timings_merge_additively_for_same_node():
    base = record_node_timing(create_state("goal"), "worker", 1)

    first = record_node_timing(base, "worker", 4)
    second = record_node_timing(base, "worker", 6)

    merged = merge_parallel_states(base, [first, second])

    assert merged.telemetry.node_timings == {"worker": 11}


def test_updated_at_is_latest_branch_time():
    base = create_state("goal")
    early = branch(base, lambda d: None)
    late = branch(base, lambda d: None)
    late.updated_at = datetime.now() + timedelta(seconds=30)

    merged = merge_parallel_states(base, [late, early])

    assert merged.updated_at == late.updated_at


def test_inputs_are_not_mutated_or_aliased():
    base = create_state("goal")
    y = add_message(base, "assistant", "from Y")

    merged = merge_parallel_states(base, [y])
    merged.conversation.messages[0].content = "changed"

    assert base.conversation.messages == []
    assert y.conversation.messages[0].content == "from Y"
    assert merged.id == base.id
    assert merged.policy == base.policy
