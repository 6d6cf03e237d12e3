"""
Declarative graph configuration.

Lets a graph's shape live in JSON while node implementations and predicates
stay in code. Conditional edges name a predicate from a condition registry:

    {
        "id": "plan-execute",
        "nodes": ["planner", "executor", "reviewer"],
        "entry_node": "planner",
        "edges": [
            {"from": "planner", "to": "executor"},
            {"from": "executor", "to": "executor", "condition": "steps_remaining"},
            {"from": "executor", "to": "reviewer"}
        ]
    }
"""

import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, Field, ValidationError

from taskgraph.errors import GraphConfigError
from taskgraph.graph.edge import (
    ConditionalEdge,
    ConditionErrorStrategy,
    Edge,
    GraphSpec,
    ParallelEdge,
    ParallelMergeConfig,
    Predicate,
    SequentialEdge,
)
from taskgraph.schemas.state import State

logger = logging.getLogger(__name__)


class SequentialEdgeConfig(BaseModel):
    source: str = Field(validation_alias=AliasChoices("source", "from"))
    target: str = Field(validation_alias=AliasChoices("target", "to"))
    type: Literal["sequential"] = "sequential"


class ConditionalEdgeConfig(BaseModel):
    source: str = Field(validation_alias=AliasChoices("source", "from"))
    target: str = Field(validation_alias=AliasChoices("target", "to"))
    condition: str = Field(description="Name of a predicate in the condition registry")
    type: Literal["conditional"] = "conditional"


class ParallelEdgeConfig(BaseModel):
    source: str = Field(validation_alias=AliasChoices("source", "from"))
    targets: list[str] = Field(validation_alias=AliasChoices("targets", "to"))
    join: str
    type: Literal["parallel"] = "parallel"


EdgeConfig = ParallelEdgeConfig | ConditionalEdgeConfig | SequentialEdgeConfig


class GraphConfig(BaseModel):
    """Serializable description of a graph's shape."""

    id: str = "graph"
    nodes: list[str] = Field(description="Node IDs, resolved against a node registry")
    edges: list[EdgeConfig] = Field(default_factory=list)
    entry_node: str = Field(validation_alias=AliasChoices("entry_node", "entryNode"))
    max_steps: int = Field(default=100, validation_alias=AliasChoices("max_steps", "maxSteps"))
    checkpoint_interval: int | None = None
    parallel_merge: ParallelMergeConfig = Field(default_factory=ParallelMergeConfig)
    condition_error_strategy: ConditionErrorStrategy = ConditionErrorStrategy.FALSE


def _pending_tool_confirmation(state: State) -> bool:
    pending = state.task.pending_tool_call
    return pending is not None and pending.status == "pending"


def _steps_complete(state: State) -> bool:
    return state.task.current_step_index >= len(state.task.steps)


def _steps_remaining(state: State) -> bool:
    return state.task.current_step_index < len(state.task.steps)


def _plan_and_execute(state: State) -> bool:
    return getattr(state.policy, "plan_and_execute", False) is True and _steps_remaining(state)


DEFAULT_CONDITIONS: dict[str, Predicate] = {
    "pending_tool_confirmation": _pending_tool_confirmation,
    "steps_complete": _steps_complete,
    "steps_remaining": _steps_remaining,
    "plan_and_execute": _plan_and_execute,
}


def build_graph_from_config(
    config: GraphConfig,
    nodes_by_id: Mapping[str, Any],
    conditions: Mapping[str, Predicate] | None = None,
    hooks: Any = None,
) -> GraphSpec:
    """
    Turn a GraphConfig into a GraphSpec.

    Args:
        config: Declarative graph shape
        nodes_by_id: Node implementations keyed by id
        conditions: Predicate registry (DEFAULT_CONDITIONS if omitted)
        hooks: Graph-level RunnerHooks

    Raises:
        GraphConfigError: On an unknown node id or unregistered condition
    """
    conditions = DEFAULT_CONDITIONS if conditions is None else conditions

    nodes = []
    for node_id in config.nodes:
        node = nodes_by_id.get(node_id)
        if node is None:
            raise GraphConfigError(f"Graph config node '{node_id}' is not registered")
        nodes.append(node)

    edges: list[Edge] = []
    for edge in config.edges:
        if isinstance(edge, ParallelEdgeConfig):
            edges.append(ParallelEdge(source=edge.source, targets=edge.targets, join=edge.join))
        elif isinstance(edge, ConditionalEdgeConfig):
            predicate = conditions.get(edge.condition)
            if predicate is None:
                raise GraphConfigError(
                    f"Graph config condition '{edge.condition}' is not registered"
                )
            edges.append(
                ConditionalEdge(source=edge.source, target=edge.target, predicate=predicate)
            )
        else:
            edges.append(SequentialEdge(source=edge.source, target=edge.target))

    logger.debug(f"Built graph '{config.id}' with {len(nodes)} nodes and {len(edges)} edges")

    return GraphSpec(
        id=config.id,
        nodes=nodes,
        edges=edges,
        entry_node=config.entry_node,
        max_steps=config.max_steps,
        checkpoint_interval=config.checkpoint_interval,
        parallel_merge=config.parallel_merge,
        condition_error_strategy=config.condition_error_strategy,
        hooks=hooks,
    )


def load_graph_config(path: Path | str) -> GraphConfig:
    """
    Load a GraphConfig from a JSON file.

    Raises:
        GraphConfigError: If the file cannot be read or does not validate
    """
    path = Path(path)
    try:
        with open(path, encoding="utf-8-sig") as f:
            data = json.load(f)
        return GraphConfig.model_validate(data)
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        raise GraphConfigError(f"Invalid graph config {path}: {e}") from e
