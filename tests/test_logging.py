"""Tests for structured logging and trace context propagation."""

import asyncio
import json
import logging

import pytest

from taskgraph.observability import (
    HumanReadableFormatter,
    StructuredFormatter,
    clear_trace_context,
    configure_logging,
    get_trace_context,
    set_trace_context,
)


@pytest.fixture(autouse=True)
def clean_context():
    clear_trace_context()
    yield
    clear_trace_context()


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


def make_record(message: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord("taskgraph.test", logging.INFO, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_structured_formatter_includes_trace_context():
    set_trace_context(run_id="run123", graph_id="support")
    set_trace_context(node_id="planner")

    entry = json.loads(StructuredFormatter().format(make_record("▶ Step 0", step=0)))

    assert entry["message"] == "▶ Step 0"
    assert entry["level"] == "info"
    assert entry["run_id"] == "run123"
    assert entry["graph_id"] == "support"
    assert entry["node_id"] == "planner"
    assert entry["step"] == 0


def test_structured_formatter_strips_ansi():
    entry = json.loads(StructuredFormatter().format(make_record("\033[32mok\033[0m")))

    assert entry["message"] == "ok"


def test_human_formatter_prefix():
    set_trace_context(run_id="0123456789abcdef", graph_id="support", node_id="planner")

    line = HumanReadableFormatter().format(make_record("hello"))

    assert "[run:01234567 | graph:support | node:planner] hello" in line


def test_human_formatter_without_context():
    line = HumanReadableFormatter().format(make_record("hello"))

    assert "run:" not in line
    assert line.endswith("hello")


def test_clear_trace_context():
    set_trace_context(run_id="r1")
    assert get_trace_context() == {"run_id": "r1"}

    clear_trace_context()

    assert get_trace_context() == {}


@pytest.mark.asyncio
async def test_context_is_isolated_between_tasks():
    set_trace_context(run_id="shared")

    async def branch(node_id: str) -> dict:
        set_trace_context(node_id=node_id)
        await asyncio.sleep(0)
        return get_trace_context()

    first, second = await asyncio.gather(branch("y"), branch("z"))

    assert first == {"run_id": "shared", "node_id": "y"}
    assert second == {"run_id": "shared", "node_id": "z"}
    assert get_trace_context() == {"run_id": "shared"}


def test_configure_logging_json(restore_root_logger):
    configure_logging(level="DEBUG", format="json")

    assert len(restore_root_logger.handlers) == 1
    assert isinstance(restore_root_logger.handlers[0].formatter, StructuredFormatter)
    assert restore_root_logger.level == logging.DEBUG


def test_configure_logging_auto_uses_env(restore_root_logger, monkeypatch):
    monkeypatch.setenv("LOG_FORMAT", "json")
    configure_logging(format="auto")
    assert isinstance(restore_root_logger.handlers[0].formatter, StructuredFormatter)

    monkeypatch.delenv("LOG_FORMAT")
    monkeypatch.setenv("ENV", "development")
    configure_logging(format="auto")
    assert isinstance(restore_root_logger.handlers[0].formatter, HumanReadableFormatter)
