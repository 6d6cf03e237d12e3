"""
Next-node resolution.

Given the node that just ran and the state it produced, decide where the
loop goes next:

1. An explicit ``NodeResult.next_node`` wins and bypasses the edges entirely.
2. A parallel edge leaving the node is taken wherever it was declared.
3. Otherwise single-target edges are scanned in declaration order; a
   sequential edge always matches, a conditional edge matches when its
   predicate holds for the current state. First match wins.
4. No match means the run is finished.
"""

import logging
from dataclasses import dataclass

from taskgraph.graph.edge import (
    ConditionalEdge,
    ConditionErrorStrategy,
    GraphSpec,
    ParallelEdge,
    SequentialEdge,
)
from taskgraph.schemas.state import State

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SingleTransition:
    node_id: str


@dataclass(frozen=True)
class ParallelTransition:
    node_ids: list[str]
    join: str


Transition = SingleTransition | ParallelTransition


def resolve_next_node(
    graph: GraphSpec,
    current_node_id: str,
    state: State,
    explicit_next: str | None = None,
) -> Transition | None:
    """
    Resolve the transition out of ``current_node_id``.

    Returns:
        SingleTransition, ParallelTransition, or None when no edge matches
    """
    if explicit_next:
        logger.debug(f"   → Explicit next node from '{current_node_id}': {explicit_next}")
        return SingleTransition(explicit_next)

    outgoing = graph.get_outgoing_edges(current_node_id)

    for edge in outgoing:
        if isinstance(edge, ParallelEdge):
            return ParallelTransition(node_ids=list(edge.targets), join=edge.join)

    for edge in outgoing:
        if isinstance(edge, SequentialEdge):
            return SingleTransition(edge.target)

        if isinstance(edge, ConditionalEdge):
            if _evaluate_predicate(graph, edge, state):
                return SingleTransition(edge.target)

    return None


def _evaluate_predicate(graph: GraphSpec, edge: ConditionalEdge, state: State) -> bool:
    try:
        return bool(edge.predicate(state))
    except Exception as e:
        if graph.condition_error_strategy == ConditionErrorStrategy.THROW:
            raise
        logger.warning(
            f"      ⚠ Condition on edge {edge.source} → {edge.target} failed, "
            f"treating as not matched: {e}"
        )
        return False
