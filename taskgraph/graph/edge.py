"""
Edge Protocol - How nodes connect in a graph.

Edge Types:
- sequential: always traverse after the source completes
- conditional: traverse only if the predicate holds for the current state
- parallel: fan out to several targets at once and continue at a join node

Declaration order matters. Single-target edges leaving a node are evaluated
in the order they were declared and the first match wins. A parallel edge
leaving the node is taken regardless of position.
"""

import logging
from collections.abc import Callable
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from taskgraph.schemas.state import State

logger = logging.getLogger(__name__)

Predicate = Callable[[State], bool]


class EdgeType(StrEnum):
    SEQUENTIAL = "sequential"
    CONDITIONAL = "conditional"
    PARALLEL = "parallel"


class SequentialEdge(BaseModel):
    """
    Unconditional transition.

    Example:
        SequentialEdge(source="planner", target="executor")
    """

    source: str = Field(description="Source node ID")
    target: str = Field(description="Target node ID")
    edge_type: Literal[EdgeType.SEQUENTIAL] = EdgeType.SEQUENTIAL

    model_config = {"frozen": True}


class ConditionalEdge(BaseModel):
    """
    Transition gated by a predicate over the current state.

    Example:
        ConditionalEdge(
            source="executor",
            target="confirm",
            predicate=lambda s: s.task.pending_tool_call is not None,
        )
    """

    source: str = Field(description="Source node ID")
    target: str = Field(description="Target node ID")
    predicate: Predicate | None = None
    edge_type: Literal[EdgeType.CONDITIONAL] = EdgeType.CONDITIONAL

    model_config = {"frozen": True, "arbitrary_types_allowed": True}


class ParallelEdge(BaseModel):
    """
    Fan-out to ``targets`` concurrently, then continue at ``join``.

    Example:
        ParallelEdge(source="router", targets=["search", "lookup"], join="summarize")
    """

    source: str = Field(description="Source node ID")
    targets: list[str] = Field(description="Branch node IDs")
    join: str = Field(description="Node that receives the merged state")
    edge_type: Literal[EdgeType.PARALLEL] = EdgeType.PARALLEL

    model_config = {"frozen": True}


Edge = SequentialEdge | ConditionalEdge | ParallelEdge


class MergeOrder(StrEnum):
    """Order in which branch results are folded together."""

    DEFINED = "defined"  # Order of ParallelEdge.targets
    SORTED = "sorted"  # Alphabetical by node id


class ConflictStrategy(StrEnum):
    LAST_WRITE_WINS = "last-write-wins"


class ConditionErrorStrategy(StrEnum):
    """What to do when an edge predicate raises."""

    FALSE = "false"  # Log and treat the edge as not matching
    THROW = "throw"  # Propagate the exception out of the step loop


class ParallelMergeConfig(BaseModel):
    order: MergeOrder = MergeOrder.DEFINED
    conflict: ConflictStrategy = ConflictStrategy.LAST_WRITE_WINS

    model_config = {"frozen": True}

    @field_validator("order", mode="before")
    @classmethod
    def _accept_sorted_alias(cls, value: Any) -> Any:
        if value == "sorted-by-id":
            return MergeOrder.SORTED
        return value


class GraphSpec(BaseModel):
    """
    Complete, immutable description of a task graph.

    Example:
        GraphSpec(
            id="support-graph",
            entry_node="planner",
            nodes=[planner, executor, reviewer],
            edges=[
                SequentialEdge(source="planner", target="executor"),
                ConditionalEdge(
                    source="executor", target="executor", predicate=steps_remaining
                ),
                SequentialEdge(source="executor", target="reviewer"),
            ],
        )
    """

    id: str = "graph"

    # Graph structure
    entry_node: str = Field(description="ID of the first node to execute")
    nodes: list[Any] = Field(  # NodeProtocol implementations
        default_factory=list, description="All nodes"
    )
    edges: list[Edge] = Field(default_factory=list, description="All edges, in declaration order")

    # Execution limits
    max_steps: int = Field(default=100, description="Maximum steps before the loop stops")
    checkpoint_interval: int | None = Field(
        default=None, description="Steps between checkpoints; falls back to runner config"
    )

    parallel_merge: ParallelMergeConfig = Field(default_factory=ParallelMergeConfig)
    condition_error_strategy: ConditionErrorStrategy = ConditionErrorStrategy.FALSE

    # Graph-level RunnerHooks, composed before call-level hooks
    hooks: Any = None

    description: str = ""

    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    def get_node(self, node_id: str) -> Any | None:
        """Get a node by ID."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def get_outgoing_edges(self, node_id: str) -> list[Edge]:
        """Get all edges leaving a node, in declaration order."""
        return [e for e in self.edges if e.source == node_id]

    def get_incoming_edges(self, node_id: str) -> list[Edge]:
        """Get all edges entering a node (parallel edges count for each target and the join)."""
        incoming: list[Edge] = []
        for edge in self.edges:
            if isinstance(edge, ParallelEdge):
                if node_id in edge.targets or node_id == edge.join:
                    incoming.append(edge)
            elif edge.target == node_id:
                incoming.append(edge)
        return incoming

    def validate(self) -> list[str]:
        """Validate the graph structure. Returns every problem found."""
        errors = []

        # Check node ids are unique
        seen: set[str] = set()
        for node in self.nodes:
            if node.id in seen:
                errors.append(f"Duplicate node ID: '{node.id}'")
            seen.add(node.id)

        # Check entry node exists
        if self.entry_node not in seen:
            errors.append(f"Entry node '{self.entry_node}' not found")

        # Check edge references
        for index, edge in enumerate(self.edges):
            label = f"Edge #{index} ({edge.edge_type}) from '{edge.source}'"

            if edge.source not in seen:
                errors.append(f"{label} references missing source '{edge.source}'")

            if isinstance(edge, ParallelEdge):
                if not edge.targets:
                    errors.append(f"{label} has no targets")
                for target in edge.targets:
                    if target not in seen:
                        errors.append(f"{label} references missing target '{target}'")
                if edge.join not in seen:
                    errors.append(f"{label} references missing join '{edge.join}'")
                continue

            if edge.target not in seen:
                errors.append(f"{label} references missing target '{edge.target}'")

            if isinstance(edge, ConditionalEdge) and edge.predicate is None:
                errors.append(f"{label} has no predicate")

        if self.max_steps < 1:
            errors.append(f"max_steps must be at least 1 (got {self.max_steps})")

        if self.checkpoint_interval is not None and self.checkpoint_interval < 1:
            errors.append(
                f"checkpoint_interval must be at least 1 (got {self.checkpoint_interval})"
            )

        return errors
