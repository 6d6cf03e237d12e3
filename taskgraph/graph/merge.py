"""
Parallel state merge - fold fan-out branch states back into one.

Each branch starts from an independent copy of the same pre-fan-out state.
After the branches finish, their results are merged field group by field
group, in merge order (never completion order):

- Append-only lists (messages, tool result summaries, long-term memory keys):
  each branch's suffix beyond the base length is concatenated.
- Key-value maps (short-term memory, artifacts): shallow union of every
  branch map in merge order; on collision the later branch wins, even when
  it still holds the base value.
- ``task``: replaced wholesale by the last branch. A branch that updated
  ``task`` earlier in merge order loses its change.
- ``telemetry``: per-branch deltas against the base are summed onto the base,
  so budget spent before the fork is counted once.
- ``updated_at``: latest across branches.
"""

from typing import Any

from taskgraph.graph.edge import MergeOrder, ParallelMergeConfig
from taskgraph.schemas.state import Conversation, Memory, State, Telemetry


def order_branches(node_ids: list[str], config: ParallelMergeConfig) -> list[str]:
    """Return branch ids in merge order."""
    if config.order == MergeOrder.SORTED:
        return sorted(node_ids)
    return list(node_ids)


def merge_parallel_states(
    base: State,
    branch_states: list[State],
    config: ParallelMergeConfig | None = None,
) -> State:
    """
    Merge branch results into a single state.

    Args:
        base: The pre-fan-out snapshot every branch started from
        branch_states: Branch results, already in merge order
        config: Merge configuration (conflict strategy)

    Returns:
        New merged State; ``base`` and the branch states are left untouched
    """
    config = config or ParallelMergeConfig()

    merged = base.model_copy(deep=True)
    merged.conversation = _merge_conversation(base.conversation, branch_states)
    merged.memory = _merge_memory(base.memory, branch_states)
    merged.artifacts = _merge_key_value(base.artifacts, [s.artifacts for s in branch_states])
    merged.telemetry = _merge_telemetry(base.telemetry, [s.telemetry for s in branch_states])

    # last-write-wins is the only conflict strategy
    if branch_states:
        merged.task = branch_states[-1].task

    merged.updated_at = max([base.updated_at, *(s.updated_at for s in branch_states)])

    # Suffix items and map values still reference branch objects
    return merged.model_copy(deep=True)


def _append_suffixes(base: list[Any], branches: list[list[Any]]) -> list[Any]:
    result = list(base)
    for items in branches:
        result.extend(items[len(base) :])
    return result


def _merge_key_value(base: dict[str, Any], branches: list[dict[str, Any]]) -> dict[str, Any]:
    result = dict(base)
    for values in branches:
        result.update(values)
    return result


def _merge_conversation(base: Conversation, states: list[State]) -> Conversation:
    merged = base.model_copy(deep=True)
    merged.messages = _append_suffixes(
        merged.messages, [s.conversation.messages for s in states]
    )
    merged.tool_results_summary = _append_suffixes(
        merged.tool_results_summary, [s.conversation.tool_results_summary for s in states]
    )
    return merged


def _merge_memory(base: Memory, states: list[State]) -> Memory:
    return Memory(
        short_term=_merge_key_value(base.short_term, [s.memory.short_term for s in states]),
        long_term_keys=_append_suffixes(
            base.long_term_keys, [s.memory.long_term_keys for s in states]
        ),
    )


def _telemetry_delta(base: Telemetry, after: Telemetry) -> Telemetry:
    timings = {
        node_id: duration - base.node_timings.get(node_id, 0)
        for node_id, duration in after.node_timings.items()
        if duration != base.node_timings.get(node_id, 0)
    }
    return Telemetry(
        total_duration_ms=after.total_duration_ms - base.total_duration_ms,
        token_count=after.token_count - base.token_count,
        tool_call_count=after.tool_call_count - base.tool_call_count,
        error_count=after.error_count - base.error_count,
        retry_count=after.retry_count - base.retry_count,
        node_timings=timings,
    )


def _merge_telemetry(base: Telemetry, branches: list[Telemetry]) -> Telemetry:
    merged = base.model_copy(deep=True)
    for delta in (_telemetry_delta(base, t) for t in branches):
        merged.total_duration_ms += delta.total_duration_ms
        merged.token_count += delta.token_count
        merged.tool_call_count += delta.tool_call_count
        merged.error_count += delta.error_count
        merged.retry_count += delta.retry_count
        for node_id, duration in delta.node_timings.items():
            merged.node_timings[node_id] = merged.node_timings.get(node_id, 0) + duration
    return merged
