"""Graph structures and execution."""

from taskgraph.graph.checkpoint_config import (
    DEFAULT_CHECKPOINT_CONFIG,
    DISABLED_CHECKPOINT_CONFIG,
    CheckpointConfig,
)
from taskgraph.graph.checkpoint_manager import CheckpointManager
from taskgraph.graph.edge import (
    ConditionalEdge,
    ConditionErrorStrategy,
    ConflictStrategy,
    Edge,
    EdgeType,
    GraphSpec,
    MergeOrder,
    ParallelEdge,
    ParallelMergeConfig,
    SequentialEdge,
)
from taskgraph.graph.executor import ExecutionResult, GraphExecutor, TerminationReason
from taskgraph.graph.graph_config import (
    DEFAULT_CONDITIONS,
    GraphConfig,
    build_graph_from_config,
    load_graph_config,
)
from taskgraph.graph.hooks import HookErrorStrategy, RunnerHooks, compose_hooks
from taskgraph.graph.merge import merge_parallel_states, order_branches
from taskgraph.graph.node import FunctionNode, NodeContext, NodeEvent, NodeProtocol, NodeResult
from taskgraph.graph.node_executor import NodeExecutor
from taskgraph.graph.resolver import ParallelTransition, SingleTransition, resolve_next_node
from taskgraph.graph.validator import ValidationResult, check_graph, validate_graph

__all__ = [
    # Graph model
    "GraphSpec",
    "Edge",
    "EdgeType",
    "SequentialEdge",
    "ConditionalEdge",
    "ParallelEdge",
    "ParallelMergeConfig",
    "MergeOrder",
    "ConflictStrategy",
    "ConditionErrorStrategy",
    # Nodes
    "NodeProtocol",
    "NodeContext",
    "NodeResult",
    "NodeEvent",
    "FunctionNode",
    # Validation
    "validate_graph",
    "check_graph",
    "ValidationResult",
    # Resolution & merge
    "resolve_next_node",
    "SingleTransition",
    "ParallelTransition",
    "merge_parallel_states",
    "order_branches",
    # Execution
    "GraphExecutor",
    "ExecutionResult",
    "TerminationReason",
    "NodeExecutor",
    # Hooks
    "RunnerHooks",
    "HookErrorStrategy",
    "compose_hooks",
    # Checkpointing
    "CheckpointConfig",
    "CheckpointManager",
    "DEFAULT_CHECKPOINT_CONFIG",
    "DISABLED_CHECKPOINT_CONFIG",
    # Declarative config
    "GraphConfig",
    "DEFAULT_CONDITIONS",
    "build_graph_from_config",
    "load_graph_config",
]
