"""
taskgraph - a task-graph execution engine for multi-step agent workflows.

Walks a graph of nodes and edges (sequential, conditional, parallel),
enforcing budgets, retrying failed nodes with backoff, checkpointing, and
supporting cooperative abort and resume.
"""

from taskgraph.config import RunnerConfig
from taskgraph.errors import (
    AbortError,
    AgentError,
    CheckpointNotFoundError,
    ErrorType,
    GraphConfigError,
    GraphValidationError,
    NodeNotFoundError,
)
from taskgraph.graph import (
    ConditionalEdge,
    ExecutionResult,
    FunctionNode,
    GraphExecutor,
    GraphSpec,
    NodeContext,
    NodeResult,
    ParallelEdge,
    ParallelMergeConfig,
    RunnerHooks,
    SequentialEdge,
)
from taskgraph.runtime import AbortController, EventStream
from taskgraph.runtime.run_controller import RunController, RunOutcome
from taskgraph.schemas import Checkpoint, State, create_state
from taskgraph.storage import CheckpointStore, InMemoryCheckpointStore

__version__ = "0.1.0"

__all__ = [
    # Graph
    "GraphSpec",
    "SequentialEdge",
    "ConditionalEdge",
    "ParallelEdge",
    "ParallelMergeConfig",
    "FunctionNode",
    "NodeContext",
    "NodeResult",
    # Execution
    "GraphExecutor",
    "ExecutionResult",
    "RunnerHooks",
    "RunnerConfig",
    "RunController",
    "RunOutcome",
    "AbortController",
    "EventStream",
    # State
    "State",
    "Checkpoint",
    "create_state",
    # Storage
    "CheckpointStore",
    "InMemoryCheckpointStore",
    # Errors
    "AgentError",
    "ErrorType",
    "AbortError",
    "GraphValidationError",
    "GraphConfigError",
    "NodeNotFoundError",
    "CheckpointNotFoundError",
]
