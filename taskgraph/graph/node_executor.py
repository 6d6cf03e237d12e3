"""
Node Executor - Runs a single node with retries and timing telemetry.

Per attempt:
    Attempting → Succeeded
               → Retrying → Attempting   (retryable error, retries left)
               → Failed                  (otherwise; the error is re-raised)

Retries are bounded by ``state.policy.max_retries`` and spaced with
exponential backoff: ``base_ms * multiplier ** retry``.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable
from typing import Any, TypeVar

from taskgraph.errors import classify_error, get_backoff_delay, get_error_strategy, is_abort_error
from taskgraph.graph.hooks import HookErrorStrategy, RunnerHooks, invoke_hook
from taskgraph.graph.node import NodeContext, NodeProtocol, NodeResult
from taskgraph.observability import set_trace_context
from taskgraph.runtime.abort import AbortController
from taskgraph.runtime.event_stream import EventStatus, EventStream, EventType
from taskgraph.schemas.state import State, increment_error, increment_retry, record_node_timing

logger = logging.getLogger(__name__)

T = TypeVar("T")


class NodeExecutor:
    """
    Executes nodes on behalf of the step loop.

    The executor owns the retry decision for a node: it either returns a
    successful NodeResult or re-raises the node's last error.
    """

    def __init__(
        self,
        event_stream: EventStream,
        hooks: RunnerHooks | None = None,
        backoff_base_ms: float = 1000,
        backoff_multiplier: float = 2,
        abort_controller: AbortController | None = None,
        hook_error_strategy: HookErrorStrategy = HookErrorStrategy.LOG,
    ):
        self.event_stream = event_stream
        self.hooks = hooks
        self.backoff_base_ms = backoff_base_ms
        self.backoff_multiplier = backoff_multiplier
        self.abort_controller = abort_controller
        self.hook_error_strategy = hook_error_strategy

        # (node_id, state) of the most recent terminal failure
        self.last_failure: tuple[str, State] | None = None

    async def run(self, node: NodeProtocol, state: State) -> NodeResult:
        """
        Execute ``node`` against ``state``, retrying transient failures.

        Returns:
            NodeResult whose state carries the node timing

        Raises:
            The node's last exception once retries are exhausted or the error
            is not retryable; AbortError if the run is aborted meanwhile
        """
        set_trace_context(node_id=node.id)
        max_retries = state.policy.max_retries
        retry_count = 0

        await self._hook("on_node_start", node.id, state)
        self.event_stream.emit(
            EventType.NODE_START,
            EventStatus.INFO,
            f"Starting node: {node.name}",
            node_id=node.id,
        )

        while True:
            started = time.perf_counter()
            try:
                result = await self._guard(node.execute(state, self._make_context(node)))
            except Exception as e:
                if is_abort_error(e):
                    raise

                error = classify_error(e, node_id=node.id)
                strategy = get_error_strategy(error, retry_count, max_retries)

                if strategy.should_retry:
                    delay_ms = get_backoff_delay(
                        retry_count, self.backoff_base_ms, self.backoff_multiplier
                    )
                    retry_count += 1
                    logger.warning(
                        f"   ↻ {node.id} failed ({error.message}), "
                        f"retry {retry_count}/{max_retries} in {delay_ms:.0f}ms"
                    )
                    self.event_stream.emit(
                        EventType.RETRY,
                        EventStatus.WARNING,
                        f"Retrying {node.name} ({retry_count}/{max_retries})",
                        node_id=node.id,
                        metadata={
                            "retry_count": retry_count,
                            "max_retries": max_retries,
                            "delay_ms": delay_ms,
                            "error": error.message,
                        },
                    )
                    state = increment_retry(state)
                    await self._guard(asyncio.sleep(delay_ms / 1000))
                    continue

                state = increment_error(state)
                self.last_failure = (node.id, state)
                logger.error(
                    f"   ✗ {node.id} failed after {retry_count} retries: {error.message}"
                )
                self.event_stream.emit(
                    EventType.NODE_END,
                    EventStatus.FAILURE,
                    f"Node failed: {node.name}",
                    node_id=node.id,
                    payload=error.to_dict(),
                    metadata={"retry_count": retry_count, "error_type": error.type.value},
                )
                raise

            duration_ms = (time.perf_counter() - started) * 1000
            result.state = record_node_timing(result.state, node.id, duration_ms)

            await self._hook("on_node_end", node.id, result)
            self.event_stream.emit(
                EventType.NODE_END,
                EventStatus.SUCCESS,
                f"Completed node: {node.name}",
                node_id=node.id,
                metadata={"duration_ms": duration_ms, "retry_count": retry_count},
            )
            logger.info(f"   ✓ {node.id} completed in {duration_ms:.1f}ms")
            return result

    def _make_context(self, node: NodeProtocol) -> NodeContext:
        controller = self.abort_controller

        async def tool_call(tool_name: str, input: Any) -> None:
            await self._hook("on_tool_call", tool_name, input)

        async def tool_result(tool_name: str, output: Any) -> None:
            await self._hook("on_tool_result", tool_name, output)

        return NodeContext(
            node_id=node.id,
            emit=self.event_stream.emit,
            tool_call_hook=tool_call,
            tool_result_hook=tool_result,
            abort_check=controller.throw_if_aborted if controller else None,
            is_aborted=(lambda: controller.aborted) if controller else None,
        )

    async def _guard(self, awaitable: Awaitable[T]) -> T:
        if self.abort_controller is None:
            return await awaitable
        return await self.abort_controller.wrap_with_abort(awaitable)

    async def _hook(self, name: str, *args: Any) -> None:
        await invoke_hook(self.hooks, name, *args, strategy=self.hook_error_strategy)
