"""
Graph Executor - Runs a task graph.

The executor:
1. Checks the state's budget before every step
2. Runs the current node through the NodeExecutor (retries, timing)
3. Checkpoints on the configured cadence
4. Resolves the next node, fanning out to parallel branches when an edge asks
5. Stops when no edge matches, a budget is exhausted, or max_steps is reached

Budget exhaustion and max_steps are normal terminations reported through the
event stream. Any other failure is reported as an ``error`` event, passed to
``on_error`` and re-raised.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from taskgraph.config import RunnerConfig
from taskgraph.errors import (
    AbortError,
    ErrorType,
    NodeNotFoundError,
    create_error,
    rollback_to_checkpoint,
)
from taskgraph.graph.checkpoint_config import CheckpointConfig
from taskgraph.graph.checkpoint_manager import CheckpointManager
from taskgraph.graph.edge import GraphSpec
from taskgraph.graph.hooks import HookErrorStrategy, RunnerHooks, compose_hooks, invoke_hook
from taskgraph.graph.merge import merge_parallel_states, order_branches
from taskgraph.graph.node import NodeEvent, NodeProtocol
from taskgraph.graph.node_executor import NodeExecutor
from taskgraph.graph.resolver import ParallelTransition, resolve_next_node
from taskgraph.graph.validator import validate_graph
from taskgraph.observability import set_trace_context
from taskgraph.runtime.abort import AbortController
from taskgraph.runtime.event_stream import Event, EventStatus, EventStream, EventType
from taskgraph.schemas.state import State, check_budget, set_current_node
from taskgraph.storage.base import PersistenceAdapter


class TerminationReason(StrEnum):
    COMPLETED = "completed"  # No outgoing edge matched
    MAX_STEPS = "max_steps"  # Step limit reached
    BUDGET_EXCEEDED = "budget_exceeded"  # Policy budget exhausted


@dataclass
class ExecutionResult:
    """Result of executing a graph."""

    state: State
    events: list[Event] = field(default_factory=list)
    step_count: int = 0  # Transitions taken; a parallel step counts once per branch
    path: list[str] = field(default_factory=list)  # Node IDs executed
    termination: TerminationReason = TerminationReason.COMPLETED

    @property
    def completed(self) -> bool:
        return self.termination == TerminationReason.COMPLETED


class GraphExecutor:
    """
    Executes a GraphSpec against a State.

    Example:
        executor = GraphExecutor(graph, persistence=InMemoryCheckpointStore())
        result = await executor.execute(create_state("Summarize the ticket"))
    """

    def __init__(
        self,
        graph: GraphSpec,
        persistence: PersistenceAdapter | None = None,
        hooks: RunnerHooks | None = None,
        config: RunnerConfig | None = None,
        checkpoint_config: CheckpointConfig | None = None,
        abort_controller: AbortController | None = None,
        event_stream: EventStream | None = None,
    ):
        """
        Initialize the executor. The graph is validated here.

        Args:
            graph: Graph to execute
            persistence: Checkpoint storage; checkpointing is off without it
            hooks: Call-level hooks, run after the graph's own hooks
            config: Runner configuration (defaults from the config file)
            checkpoint_config: Overrides the cadence derived from graph/config
            abort_controller: Cancellation token to observe
            event_stream: Event log to write to (a fresh one by default)

        Raises:
            GraphValidationError: If the graph is structurally invalid
        """
        validate_graph(graph)

        self._graph = graph
        self.config = config or RunnerConfig()
        self.logger = logging.getLogger(__name__)

        self.checkpoint_config = checkpoint_config or CheckpointConfig(
            checkpoint_interval=graph.checkpoint_interval or self.config.checkpoint_interval
        )
        self.hook_error_strategy = HookErrorStrategy(self.config.hook_error_strategy)
        self.hooks = compose_hooks(graph.hooks, hooks)
        self.abort_controller = abort_controller
        self.event_stream = event_stream or EventStream(max_events=self.config.max_events)

        self.node_executor = NodeExecutor(
            event_stream=self.event_stream,
            hooks=self.hooks,
            backoff_base_ms=self.config.backoff_base_ms,
            backoff_multiplier=self.config.backoff_multiplier,
            abort_controller=abort_controller,
            hook_error_strategy=self.hook_error_strategy,
        )
        self.checkpoint_manager = CheckpointManager(
            persistence=persistence,
            event_stream=self.event_stream,
            hooks=self.hooks,
            hook_error_strategy=self.hook_error_strategy,
        )

        # Most recent state seen by the loop (the failed node's state after a failure)
        self.last_state: State | None = None

    @property
    def graph(self) -> GraphSpec:
        return self._graph

    def get_event_stream(self) -> EventStream:
        return self.event_stream

    async def execute(self, initial_state: State, start_node: str | None = None) -> ExecutionResult:
        """
        Run the graph from ``start_node`` (default: the entry node).

        Returns:
            ExecutionResult with the final state and termination reason

        Raises:
            AbortError: If the abort controller fires
            Exception: The first unrecovered node or structural error
        """
        graph = self._graph
        set_trace_context(run_id=uuid.uuid4().hex, graph_id=graph.id)

        state = initial_state
        current_node_id = start_node or graph.entry_node
        step = 0
        path: list[str] = []
        termination = TerminationReason.COMPLETED

        self.last_state = state
        self.node_executor.last_failure = None

        self.logger.info(f"🚀 Starting graph: {graph.id}")
        self.logger.info(f"   Entry node: {current_node_id}")

        try:
            while step < graph.max_steps:
                self._throw_if_aborted()

                budget = check_budget(state)
                if budget.exceeded:
                    self.logger.warning(f"⚠ {budget.reason}, stopping")
                    self.event_stream.emit(
                        EventType.BUDGET_EXCEEDED,
                        EventStatus.FAILURE,
                        budget.reason or "Budget exceeded",
                        metadata={
                            "metric": budget.metric,
                            "current": budget.current,
                            "limit": budget.limit,
                        },
                    )
                    await self._hook(
                        "on_budget_warning", budget.metric, budget.current, budget.limit
                    )
                    termination = TerminationReason.BUDGET_EXCEEDED
                    break

                node = self._get_node(current_node_id)
                self.logger.info(f"▶ Step {step}: {node.name}")

                state = set_current_node(state, current_node_id)
                self.last_state = state
                path.append(current_node_id)

                result = await self.node_executor.run(node, state)
                state = result.state
                self.last_state = state
                self._emit_node_events(node.id, result.events)

                await self._maybe_checkpoint(state, step, node.id)

                transition = resolve_next_node(graph, current_node_id, state, result.next_node)
                if transition is None:
                    self.logger.info("   → No more edges, ending execution")
                    break

                if isinstance(transition, ParallelTransition):
                    state = await self._execute_parallel_branches(transition, state, path)
                    self.last_state = state
                    step += len(transition.node_ids)
                    current_node_id = transition.join
                    await self._maybe_checkpoint(state, step, transition.join)
                    self.logger.info(f"   ⑃ Fan-in: converging at {transition.join}")
                    continue

                self.logger.info(f"   → Next: {transition.node_id}")
                current_node_id = transition.node_id
                step += 1

            if step >= graph.max_steps:
                termination = TerminationReason.MAX_STEPS
                self.logger.warning(f"⚠ Max steps ({graph.max_steps}) reached")
                self.event_stream.emit(
                    EventType.BUDGET_EXCEEDED,
                    EventStatus.WARNING,
                    f"Max steps reached ({graph.max_steps})",
                    metadata={"metric": "steps", "current": step, "limit": graph.max_steps},
                )

            telemetry = state.telemetry
            self.event_stream.emit(
                EventType.HEALTH_METRICS,
                EventStatus.INFO,
                "Run finished",
                metadata={
                    "total_duration_ms": telemetry.total_duration_ms,
                    "token_count": telemetry.token_count,
                    "tool_call_count": telemetry.tool_call_count,
                    "error_count": telemetry.error_count,
                    "termination": termination.value,
                },
            )

            self.logger.info("✓ Execution complete!")
            self.logger.info(f"   Steps: {step}")
            self.logger.info(f"   Path: {' → '.join(path)}")

            return ExecutionResult(
                state=state,
                events=self.event_stream.get_events(),
                step_count=step,
                path=path,
                termination=termination,
            )

        except AbortError as e:
            self.logger.info(f"⏹ Execution aborted: {e.reason}")
            raise

        except Exception as e:
            failed_node_id = current_node_id
            if self.node_executor.last_failure is not None:
                failed_node_id, self.last_state = self.node_executor.last_failure

            error = create_error(
                ErrorType.EXECUTION,
                str(e) or type(e).__name__,
                node_id=failed_node_id,
                original_error=e,
            )
            self.logger.error(f"✗ Execution failed at {failed_node_id}: {error.message}")
            self.event_stream.emit(
                EventType.ERROR,
                EventStatus.FAILURE,
                error.message,
                node_id=failed_node_id,
                payload=error.to_dict(),
            )
            await self._hook("on_error", error)
            raise

    async def resume(self, checkpoint_id: str, start_node: str | None = None) -> ExecutionResult:
        """
        Continue from a persisted checkpoint.

        Execution restarts at the entry node (or ``start_node``) with the
        checkpointed state.

        Raises:
            CheckpointNotFoundError: If the checkpoint cannot be loaded
        """
        checkpoint = await self.checkpoint_manager.load(checkpoint_id)
        self.logger.info(f"🔄 Resuming from checkpoint: {checkpoint.id}")
        self.event_stream.emit(
            EventType.RESUME,
            EventStatus.INFO,
            f"Resuming from checkpoint {checkpoint.id}",
            metadata={"checkpoint_id": checkpoint.id, "event_index": checkpoint.event_index},
        )
        return await self.execute(rollback_to_checkpoint(checkpoint), start_node=start_node)

    async def _execute_parallel_branches(
        self,
        transition: ParallelTransition,
        base_state: State,
        path: list[str],
    ) -> State:
        """
        Run every branch against its own copy of ``base_state`` and merge.

        A branch that fails (after its own retries) cancels its siblings and
        fails the whole step.
        """
        merge_config = self._graph.parallel_merge
        branch_ids = order_branches(transition.node_ids, merge_config)
        nodes = [self._get_node(node_id) for node_id in branch_ids]

        self.logger.info(f"   ⑂ Fan-out: {', '.join(branch_ids)} (join: {transition.join})")

        async def run_branch(node: NodeProtocol) -> State:
            result = await self.node_executor.run(node, set_current_node(base_state, node.id))
            self._emit_node_events(node.id, result.events)
            if result.next_node:
                self.logger.debug(
                    f"   Ignoring next_node '{result.next_node}' from branch {node.id}"
                )
            return result.state

        tasks = [asyncio.ensure_future(run_branch(node)) for node in nodes]
        try:
            branch_states = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        path.extend(branch_ids)
        return merge_parallel_states(base_state, list(branch_states), merge_config)

    def _get_node(self, node_id: str) -> NodeProtocol:
        node = self._graph.get_node(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        return node

    def _emit_node_events(self, node_id: str, events: list[NodeEvent]) -> None:
        for event in events:
            self.event_stream.emit(
                event.type,
                event.status,
                event.summary,
                node_id=node_id,
                payload=event.payload,
                metadata=event.metadata,
            )

    async def _maybe_checkpoint(self, state: State, step: int, node_id: str) -> None:
        if not self.checkpoint_config.should_checkpoint(step):
            return
        await self.checkpoint_manager.save(state, metadata={"step": step, "node_id": node_id})

    def _throw_if_aborted(self) -> None:
        if self.abort_controller is not None:
            self.abort_controller.throw_if_aborted()

    async def _hook(self, name: str, *args: Any) -> None:
        await invoke_hook(self.hooks, name, *args, strategy=self.hook_error_strategy)
