"""Schemas for state and checkpoints."""

from taskgraph.schemas.checkpoint import Checkpoint, CheckpointIndex, CheckpointSummary
from taskgraph.schemas.state import (
    BudgetCheck,
    Conversation,
    Memory,
    Message,
    PendingToolCall,
    Policy,
    State,
    Task,
    TaskStep,
    Telemetry,
    add_message,
    add_token_usage,
    check_budget,
    create_state,
    deserialize_state,
    increment_error,
    increment_retry,
    increment_tool_call,
    record_node_timing,
    serialize_state,
    set_current_node,
    update_progress,
    update_state,
)

__all__ = [
    # State
    "State",
    "Conversation",
    "Message",
    "Task",
    "TaskStep",
    "PendingToolCall",
    "Memory",
    "Telemetry",
    "Policy",
    "BudgetCheck",
    # State helpers
    "create_state",
    "update_state",
    "serialize_state",
    "deserialize_state",
    "add_message",
    "update_progress",
    "set_current_node",
    "increment_tool_call",
    "increment_error",
    "increment_retry",
    "record_node_timing",
    "add_token_usage",
    "check_budget",
    # Checkpoint
    "Checkpoint",
    "CheckpointSummary",
    "CheckpointIndex",
]
