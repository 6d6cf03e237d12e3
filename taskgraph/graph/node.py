"""
Node Protocol - The single capability every graph node implements.

The engine never inspects node internals. A node receives the current State
and a NodeContext and returns a NodeResult:

    class Planner:
        id = "planner"
        name = "Planner"

        async def execute(self, state: State, ctx: NodeContext) -> NodeResult:
            ctx.emit_event("custom", "info", "Planning")
            return NodeResult(state=update_progress(state, 10))

Plain callables can be adapted with FunctionNode.
"""

import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from taskgraph.schemas.state import State

logger = logging.getLogger(__name__)


@dataclass
class NodeEvent:
    """An event produced by a node, re-emitted into the shared log by the executor."""

    type: str
    status: str
    summary: str
    payload: Any = None
    metadata: dict[str, Any] | None = None


@dataclass
class NodeResult:
    """
    Outcome of a node execution.

    ``next_node`` overrides the edge-derived transition when set.
    """

    state: State
    events: list[NodeEvent] = field(default_factory=list)
    next_node: str | None = None


@dataclass
class NodeContext:
    """
    Per-execution context handed to a node.

    ``emit_event`` writes straight into the run's event stream, tagged with the
    node id. Tool hooks are forwarded to the configured RunnerHooks.
    """

    node_id: str
    emit: Callable[..., Any]
    tool_call_hook: Callable[[str, Any], Awaitable[None]] | None = None
    tool_result_hook: Callable[[str, Any], Awaitable[None]] | None = None
    abort_check: Callable[[], None] | None = None
    is_aborted: Callable[[], bool] | None = None

    def emit_event(
        self,
        type: str,
        status: str,
        summary: str,
        payload: Any = None,
        metadata: dict[str, Any] | None = None,
    ) -> Any:
        return self.emit(
            type, status, summary, node_id=self.node_id, payload=payload, metadata=metadata
        )

    async def on_tool_call(self, tool_name: str, input: Any) -> None:
        if self.tool_call_hook:
            await self.tool_call_hook(tool_name, input)

    async def on_tool_result(self, tool_name: str, output: Any) -> None:
        if self.tool_result_hook:
            await self.tool_result_hook(tool_name, output)

    @property
    def aborted(self) -> bool:
        return bool(self.is_aborted and self.is_aborted())

    def throw_if_aborted(self) -> None:
        if self.abort_check:
            self.abort_check()


@runtime_checkable
class NodeProtocol(Protocol):
    """Anything with an id, a name and an async execute(state, ctx)."""

    id: str
    name: str

    async def execute(self, state: State, ctx: NodeContext) -> NodeResult: ...


NodeFunction = Callable[[State, NodeContext], Any]


class FunctionNode:
    """
    Adapt a plain function into a node.

    The function may be sync or async and may return either a State or a
    NodeResult.
    """

    def __init__(self, id: str, fn: NodeFunction, name: str | None = None):
        self.id = id
        self.name = name or id
        self.fn = fn

    async def execute(self, state: State, ctx: NodeContext) -> NodeResult:
        result = self.fn(state, ctx)
        if inspect.isawaitable(result):
            result = await result

        if isinstance(result, NodeResult):
            return result
        if isinstance(result, State):
            return NodeResult(state=result)

        raise TypeError(
            f"Node '{self.id}' returned {type(result).__name__}, expected State or NodeResult"
        )

    def __repr__(self) -> str:
        return f"FunctionNode(id={self.id!r})"
