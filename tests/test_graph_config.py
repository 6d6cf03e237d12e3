"""Tests for declarative graph configs."""

import json

import pytest

from taskgraph.errors import GraphConfigError
from taskgraph.graph.edge import ConditionalEdge, MergeOrder, ParallelEdge, SequentialEdge
from taskgraph.graph.executor import GraphExecutor
from taskgraph.graph.graph_config import (
    DEFAULT_CONDITIONS,
    GraphConfig,
    build_graph_from_config,
    load_graph_config,
)
from taskgraph.graph.node import FunctionNode
from taskgraph.schemas.state import PendingToolCall, TaskStep, create_state

PLAN_EXECUTE = {
    "id": "plan-execute",
    "nodes": ["planner", "executor", "reviewer"],
    "entryNode": "planner",
    "maxSteps": 20,
    "edges": [
        {"from": "planner", "to": "executor"},
        {"from": "executor", "to": "executor", "condition": "steps_remaining"},
        {"from": "executor", "to": "reviewer"},
    ],
}


def registry(*node_ids: str) -> dict[str, FunctionNode]:
    return {n: FunctionNode(n, lambda state, ctx: state) for n in node_ids}


def test_build_graph_from_dict():
    config = GraphConfig.model_validate(PLAN_EXECUTE)

    graph = build_graph_from_config(config, registry("planner", "executor", "reviewer"))

    assert graph.id == "plan-execute"
    assert graph.entry_node == "planner"
    assert graph.max_steps == 20
    assert isinstance(graph.edges[0], SequentialEdge)
    assert isinstance(graph.edges[1], ConditionalEdge)
    assert graph.edges[1].predicate is DEFAULT_CONDITIONS["steps_remaining"]
    assert graph.edges[2].target == "reviewer"


def test_parallel_edge_config():
    config = GraphConfig.model_validate(
        {
            "nodes": ["x", "y", "z", "w"],
            "entry_node": "x",
            "edges": [{"from": "x", "to": ["y", "z"], "join": "w"}],
            "parallel_merge": {"order": "sorted-by-id"},
        }
    )

    graph = build_graph_from_config(config, registry("x", "y", "z", "w"))

    edge = graph.edges[0]
    assert isinstance(edge, ParallelEdge)
    assert edge.targets == ["y", "z"]
    assert edge.join == "w"
    assert graph.parallel_merge.order == MergeOrder.SORTED


def test_unregistered_node():
    config = GraphConfig.model_validate(PLAN_EXECUTE)

    with pytest.raises(GraphConfigError, match="node 'reviewer' is not registered"):
        build_graph_from_config(config, registry("planner", "executor"))


def test_unregistered_condition():
    config = GraphConfig.model_validate(PLAN_EXECUTE)

    with pytest.raises(GraphConfigError, match="condition 'steps_remaining' is not registered"):
        build_graph_from_config(
            config, registry("planner", "executor", "reviewer"), conditions={}
        )


def test_custom_conditions():
    config = GraphConfig.model_validate(
        {
            "nodes": ["a", "b"],
            "entry_node": "a",
            "edges": [{"from": "a", "to": "b", "condition": "escalate"}],
        }
    )

    def escalate(state):
        return state.artifacts.get("escalate", False)

    graph = build_graph_from_config(config, registry("a", "b"), conditions={"escalate": escalate})

    assert graph.edges[0].predicate is escalate


class TestDefaultConditions:
    def test_steps_remaining_and_complete(self):
        state = create_state("goal")
        state.task.steps = [TaskStep(id="s1", description="search")]

        assert DEFAULT_CONDITIONS["steps_remaining"](state) is True
        assert DEFAULT_CONDITIONS["steps_complete"](state) is False

        state.task.current_step_index = 1

        assert DEFAULT_CONDITIONS["steps_remaining"](state) is False
        assert DEFAULT_CONDITIONS["steps_complete"](state) is True

    def test_pending_tool_confirmation(self):
        state = create_state("goal")
        assert DEFAULT_CONDITIONS["pending_tool_confirmation"](state) is False

        state.task.pending_tool_call = PendingToolCall(tool_name="send_email")
        assert DEFAULT_CONDITIONS["pending_tool_confirmation"](state) is True

        state.task.pending_tool_call.status = "approved"
        assert DEFAULT_CONDITIONS["pending_tool_confirmation"](state) is False

    def test_plan_and_execute_requires_policy_flag(self):
        state = create_state("goal")
        state.task.steps = [TaskStep(id="s1", description="search")]
        assert DEFAULT_CONDITIONS["plan_and_execute"](state) is False

        flagged = create_state("goal", plan_and_execute=True)
        flagged.task.steps = [TaskStep(id="s1", description="search")]
        assert DEFAULT_CONDITIONS["plan_and_execute"](flagged) is True


class TestLoadGraphConfig:
    def test_load_from_file(self, tmp_path):
        path = tmp_path / "graph.json"
        path.write_text(json.dumps(PLAN_EXECUTE), encoding="utf-8")

        config = load_graph_config(path)
        graph = build_graph_from_config(config, registry("planner", "executor", "reviewer"))

        GraphExecutor(graph)
        assert config.nodes == ["planner", "executor", "reviewer"]

    def test_malformed_json(self, tmp_path):
        path = tmp_path / "graph.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(GraphConfigError, match="Invalid graph config"):
            load_graph_config(path)

    def test_missing_required_field(self, tmp_path):
        path = tmp_path / "graph.json"
        path.write_text(json.dumps({"nodes": ["a"]}), encoding="utf-8")

        with pytest.raises(GraphConfigError):
            load_graph_config(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(GraphConfigError):
            load_graph_config(tmp_path / "absent.json")
