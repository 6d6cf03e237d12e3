"""Tests for RunController: abort, resume and checkpoint tracking."""

import asyncio

import pytest

from taskgraph.config import RunnerConfig
from taskgraph.errors import CheckpointNotFoundError
from taskgraph.graph.edge import GraphSpec, SequentialEdge
from taskgraph.graph.node import FunctionNode, NodeResult
from taskgraph.runtime.event_stream import EventType
from taskgraph.runtime.run_controller import RunController
from taskgraph.schemas.state import add_message, create_state
from taskgraph.storage import InMemoryCheckpointStore


def make_config() -> RunnerConfig:
    return RunnerConfig(
        checkpoint_interval=1,
        backoff_base_ms=10,
        backoff_multiplier=2,
        max_events=1000,
        hook_error_strategy="log",
    )


def say(node_id: str) -> FunctionNode:
    return FunctionNode(
        node_id, lambda state, ctx: add_message(state, "assistant", f"from {node_id}")
    )


class BlockingNode:
    """Blocks on its first execution until cancelled; passes through afterwards."""

    def __init__(self, node_id: str):
        self.id = node_id
        self.name = node_id
        self.started = asyncio.Event()
        self.cancelled = False
        self.calls = 0

    async def execute(self, state, ctx):
        self.calls += 1
        if self.calls == 1:
            self.started.set()
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                self.cancelled = True
                raise
        approved = state.artifacts.get("approved", False)
        return NodeResult(state=add_message(state, "assistant", f"from {self.id} ({approved})"))


def two_step_graph(blocking: BlockingNode) -> GraphSpec:
    return GraphSpec(
        entry_node="a",
        nodes=[say("a"), blocking],
        edges=[SequentialEdge(source="a", target=blocking.id)],
    )


async def run_until_blocked(controller: RunController, blocking: BlockingNode):
    task = asyncio.create_task(controller.run(create_state("goal")))
    await blocking.started.wait()
    return task


@pytest.mark.asyncio
async def test_abort_mid_run_returns_aborted_outcome():
    blocking = BlockingNode("b")
    controller = RunController(two_step_graph(blocking), config=make_config())
    task = await run_until_blocked(controller, blocking)

    assert controller.is_running is True
    assert controller.abort("user pressed stop") is True

    outcome = await task

    assert outcome.aborted is True
    assert outcome.abort_reason == "user pressed stop"
    assert outcome.state.task.current_node == "b"
    assert controller.is_running is False

    # The node task sees its cancellation a few loop iterations later
    for _ in range(5):
        await asyncio.sleep(0)
    assert blocking.cancelled is True

    abort_events = controller.event_stream.get_events(EventType.ABORT)
    assert [e.summary for e in abort_events] == ["user pressed stop"]


def test_abort_when_idle_is_a_no_op():
    controller = RunController(GraphSpec(entry_node="a", nodes=[say("a")]), config=make_config())

    assert controller.abort() is False
    assert controller.event_stream.get_events(EventType.ABORT) == []


@pytest.mark.asyncio
async def test_resume_from_latest_checkpoint_after_abort():
    blocking = BlockingNode("b")
    store = InMemoryCheckpointStore()
    controller = RunController(two_step_graph(blocking), persistence=store, config=make_config())
    task = await run_until_blocked(controller, blocking)
    controller.abort()
    assert (await task).aborted is True

    outcome = await controller.resume(start_node="b")

    assert outcome.aborted is False
    assert outcome.result.completed
    assert outcome.result.path == ["b"]
    assert [m.content for m in outcome.state.conversation.messages] == [
        "from a",
        "from b (False)",
    ]
    assert controller.event_stream.get_events(EventType.RESUME)


@pytest.mark.asyncio
async def test_resume_applies_modified_state():
    blocking = BlockingNode("b")
    controller = RunController(
        two_step_graph(blocking), persistence=InMemoryCheckpointStore(), config=make_config()
    )
    task = await run_until_blocked(controller, blocking)
    controller.abort()
    await task

    outcome = await controller.resume(
        modified_state={"artifacts": {"approved": True}}, start_node="b"
    )

    assert outcome.state.conversation.messages[-1].content == "from b (True)"
    assert outcome.state.artifacts == {"approved": True}


@pytest.mark.asyncio
async def test_resume_without_persistence_uses_last_state():
    blocking = BlockingNode("b")
    controller = RunController(two_step_graph(blocking), config=make_config())
    task = await run_until_blocked(controller, blocking)
    controller.abort()
    await task

    assert controller.list_checkpoints() == []

    outcome = await controller.resume(start_node="b")

    assert [m.content for m in outcome.state.conversation.messages] == [
        "from a",
        "from b (False)",
    ]


@pytest.mark.asyncio
async def test_list_checkpoints_newest_first():
    graph = GraphSpec(
        entry_node="a",
        nodes=[say("a"), say("b"), say("c")],
        edges=[SequentialEdge(source="a", target="b"), SequentialEdge(source="b", target="c")],
    )
    controller = RunController(graph, persistence=InMemoryCheckpointStore(), config=make_config())

    await controller.run(create_state("goal"))

    assert [cp.state.task.current_node for cp in controller.list_checkpoints()] == ["c", "b", "a"]


@pytest.mark.asyncio
async def test_resume_explicit_checkpoint_from_shared_store():
    store = InMemoryCheckpointStore()
    graph = GraphSpec(
        entry_node="a",
        nodes=[say("a"), say("b")],
        edges=[SequentialEdge(source="a", target="b")],
    )
    first = RunController(graph, persistence=store, config=make_config())
    await first.run(create_state("goal"))
    oldest = first.list_checkpoints()[-1]

    second = RunController(graph, persistence=store, config=make_config())
    outcome = await second.resume(oldest.id, start_node="b")

    assert [m.content for m in outcome.state.conversation.messages] == ["from a", "from b"]


@pytest.mark.asyncio
async def test_resume_with_nothing_to_resume_from():
    controller = RunController(GraphSpec(entry_node="a", nodes=[say("a")]), config=make_config())

    with pytest.raises(CheckpointNotFoundError):
        await controller.resume()

    with pytest.raises(CheckpointNotFoundError):
        await controller.resume("cp_unknown")


@pytest.mark.asyncio
async def test_concurrent_run_is_rejected():
    blocking = BlockingNode("b")
    controller = RunController(two_step_graph(blocking), config=make_config())
    task = await run_until_blocked(controller, blocking)

    with pytest.raises(RuntimeError, match="already in progress"):
        await controller.run(create_state("other goal"))

    controller.abort()
    assert (await task).aborted is True


@pytest.mark.asyncio
async def test_non_abort_errors_propagate():
    def denied(state, ctx):
        raise PermissionError("tool not allowed")

    controller = RunController(
        GraphSpec(entry_node="a", nodes=[FunctionNode("a", denied)]), config=make_config()
    )

    with pytest.raises(PermissionError):
        await controller.run(create_state("goal"))

    assert controller.is_running is False
    assert controller.last_state.telemetry.error_count == 1


@pytest.mark.asyncio
async def test_run_can_be_repeated_after_abort():
    blocking = BlockingNode("b")
    controller = RunController(two_step_graph(blocking), config=make_config())
    task = await run_until_blocked(controller, blocking)
    controller.abort()
    await task

    outcome = await controller.run(create_state("goal"))

    assert outcome.aborted is False
    assert outcome.result.path == ["a", "b"]
