"""Tests for graph validation at construction time."""

import pytest

from taskgraph.errors import GraphValidationError
from taskgraph.graph.edge import ConditionalEdge, GraphSpec, ParallelEdge, SequentialEdge
from taskgraph.graph.executor import GraphExecutor
from taskgraph.graph.node import FunctionNode, NodeResult
from taskgraph.graph.validator import check_graph, validate_graph


class RecordingNode:
    """Counts executions so tests can prove nothing ran."""

    def __init__(self, node_id: str):
        self.id = node_id
        self.name = node_id
        self.calls = 0

    async def execute(self, state, ctx):
        self.calls += 1
        return NodeResult(state=state)


def node(node_id: str) -> FunctionNode:
    return FunctionNode(node_id, lambda state, ctx: state)


def test_valid_graph_passes():
    graph = GraphSpec(
        entry_node="a",
        nodes=[node("a"), node("b"), node("c"), node("d")],
        edges=[
            SequentialEdge(source="a", target="b"),
            ConditionalEdge(source="b", target="a", predicate=lambda s: False),
            ParallelEdge(source="b", targets=["c", "d"], join="a"),
        ],
    )

    validate_graph(graph)
    assert check_graph(graph).success is True


def test_edge_to_unknown_node_fails_before_any_execution():
    entry = RecordingNode("a")
    graph = GraphSpec(
        entry_node="a",
        nodes=[entry],
        edges=[SequentialEdge(source="a", target="ghost")],
    )

    with pytest.raises(GraphValidationError) as exc_info:
        GraphExecutor(graph)

    assert "ghost" in str(exc_info.value)
    assert entry.calls == 0


def test_duplicate_node_ids():
    graph = GraphSpec(entry_node="a", nodes=[node("a"), node("a")])

    with pytest.raises(GraphValidationError, match="Duplicate node ID"):
        validate_graph(graph)


def test_missing_entry_node():
    graph = GraphSpec(entry_node="start", nodes=[node("a")])

    with pytest.raises(GraphValidationError, match="Entry node 'start' not found"):
        validate_graph(graph)


def test_unknown_edge_source():
    graph = GraphSpec(
        entry_node="a",
        nodes=[node("a")],
        edges=[SequentialEdge(source="ghost", target="a")],
    )

    with pytest.raises(GraphValidationError, match="missing source 'ghost'"):
        validate_graph(graph)


def test_parallel_edge_with_unknown_join():
    graph = GraphSpec(
        entry_node="a",
        nodes=[node("a"), node("b"), node("c")],
        edges=[ParallelEdge(source="a", targets=["b", "c"], join="w")],
    )

    with pytest.raises(GraphValidationError, match="missing join 'w'"):
        validate_graph(graph)


def test_parallel_edge_with_unknown_target():
    graph = GraphSpec(
        entry_node="a",
        nodes=[node("a"), node("b")],
        edges=[ParallelEdge(source="a", targets=["b", "z"], join="b")],
    )

    with pytest.raises(GraphValidationError, match="missing target 'z'"):
        validate_graph(graph)


def test_parallel_edge_without_targets():
    graph = GraphSpec(
        entry_node="a",
        nodes=[node("a"), node("b")],
        edges=[ParallelEdge(source="a", targets=[], join="b")],
    )

    with pytest.raises(GraphValidationError, match="no targets"):
        validate_graph(graph)


def test_conditional_edge_without_predicate():
    graph = GraphSpec(
        entry_node="a",
        nodes=[node("a"), node("b")],
        edges=[ConditionalEdge(source="a", target="b")],
    )

    with pytest.raises(GraphValidationError, match="no predicate"):
        validate_graph(graph)


def test_all_problems_are_reported():
    graph = GraphSpec(
        entry_node="start",
        nodes=[node("a")],
        edges=[
            SequentialEdge(source="a", target="x"),
            SequentialEdge(source="a", target="y"),
        ],
    )

    result = check_graph(graph)

    assert result.success is False
    assert len(result.errors) == 3

    with pytest.raises(GraphValidationError) as exc_info:
        validate_graph(graph)
    assert exc_info.value.errors == result.errors


def test_invalid_limits():
    graph = GraphSpec(entry_node="a", nodes=[node("a")], max_steps=0, checkpoint_interval=0)

    errors = check_graph(graph).errors

    assert any("max_steps" in e for e in errors)
    assert any("checkpoint_interval" in e for e in errors)


def test_edge_lookups_keep_declaration_order():
    edges = [
        SequentialEdge(source="a", target="b"),
        ConditionalEdge(source="a", target="c", predicate=lambda s: True),
        ParallelEdge(source="b", targets=["c"], join="a"),
    ]
    graph = GraphSpec(entry_node="a", nodes=[node("a"), node("b"), node("c")], edges=edges)

    assert graph.get_outgoing_edges("a") == edges[:2]
    assert graph.get_incoming_edges("c") == [edges[1], edges[2]]
    assert graph.get_incoming_edges("a") == [edges[2]]
    assert graph.get_node("b").id == "b"
    assert graph.get_node("ghost") is None
