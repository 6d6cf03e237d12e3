"""
State Schema - The value that flows through the graph.

Every step consumes one State and produces a new one. Helpers in this module
never mutate their input: they deep-copy, apply the change, and bump
``updated_at``. Telemetry counters only ever grow during a run.
"""

import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


class Message(BaseModel):
    """A single conversation message."""

    role: Literal["user", "assistant", "system", "tool"]
    content: str
    timestamp: datetime = Field(default_factory=datetime.now)
    metadata: dict[str, Any] = Field(default_factory=dict)


class Conversation(BaseModel):
    messages: list[Message] = Field(default_factory=list)
    system_prompt: str | None = None
    tool_results_summary: list[str] = Field(default_factory=list)


class TaskStep(BaseModel):
    """A sub-step of the task, usually produced by a planner node."""

    id: str
    description: str
    status: Literal["pending", "running", "completed", "failed"] = "pending"
    result: Any = None
    error: str | None = None


class PendingToolCall(BaseModel):
    """A tool call awaiting human confirmation."""

    tool_name: str
    input: Any = None
    step_id: str = ""
    step_description: str = ""
    permissions: list[str] = Field(default_factory=list)
    confirmation_message: str | None = None
    requested_at: datetime = Field(default_factory=datetime.now)
    status: Literal["pending", "approved", "denied"] = "pending"
    decision_reason: str | None = None
    decided_at: datetime | None = None


class Task(BaseModel):
    goal: str = ""
    plan: str | None = None
    steps: list[TaskStep] = Field(default_factory=list)
    current_node: str = ""
    current_step_index: int = 0
    progress: float = 0
    pending_tool_call: PendingToolCall | None = None


class Memory(BaseModel):
    short_term: dict[str, Any] = Field(default_factory=dict)
    long_term_keys: list[str] = Field(default_factory=list)


class Telemetry(BaseModel):
    """Monotonically accumulating counters for a run."""

    total_duration_ms: float = 0
    token_count: int = 0
    tool_call_count: int = 0
    error_count: int = 0
    retry_count: int = 0
    node_timings: dict[str, float] = Field(default_factory=dict)


class Policy(BaseModel):
    """Budget ceilings enforced by the step loop."""

    max_tool_calls: int = 20
    max_duration_ms: float = 300_000
    max_retries: int = 3
    allowed_tools: list[str] | None = None
    permissions: dict[str, bool] = Field(default_factory=dict)

    model_config = {"extra": "allow"}


class State(BaseModel):
    """Complete execution state passed between nodes."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    conversation: Conversation = Field(default_factory=Conversation)
    task: Task = Field(default_factory=Task)
    memory: Memory = Field(default_factory=Memory)
    artifacts: dict[str, Any] = Field(default_factory=dict)
    telemetry: Telemetry = Field(default_factory=Telemetry)
    policy: Policy = Field(default_factory=Policy)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


def create_state(goal: str, **policy: Any) -> State:
    """Create a fresh state for ``goal``; keyword arguments override policy defaults."""
    now = datetime.now()
    return State(
        task=Task(goal=goal),
        policy=Policy(**policy),
        created_at=now,
        updated_at=now,
    )


def update_state(state: State, updater: Callable[[State], State | None]) -> State:
    """
    Apply ``updater`` to a deep copy of ``state``.

    The updater may mutate the draft in place or return a replacement.
    """
    draft = state.model_copy(deep=True)
    result = updater(draft)
    new_state = result if result is not None else draft
    new_state.updated_at = datetime.now()
    return new_state


def serialize_state(state: State) -> str:
    return state.model_dump_json()


def deserialize_state(data: str) -> State:
    return State.model_validate_json(data)


# === CONVENIENCE UPDATES ===


def add_message(
    state: State, role: Literal["user", "assistant", "system", "tool"], content: str
) -> State:
    def _apply(draft: State) -> None:
        draft.conversation.messages.append(Message(role=role, content=content))

    return update_state(state, _apply)


def update_progress(state: State, progress: float) -> State:
    def _apply(draft: State) -> None:
        draft.task.progress = min(100, max(0, progress))

    return update_state(state, _apply)


def set_current_node(state: State, node_id: str) -> State:
    def _apply(draft: State) -> None:
        draft.task.current_node = node_id

    return update_state(state, _apply)


def increment_tool_call(state: State) -> State:
    def _apply(draft: State) -> None:
        draft.telemetry.tool_call_count += 1

    return update_state(state, _apply)


def increment_error(state: State) -> State:
    def _apply(draft: State) -> None:
        draft.telemetry.error_count += 1

    return update_state(state, _apply)


def increment_retry(state: State) -> State:
    def _apply(draft: State) -> None:
        draft.telemetry.retry_count += 1

    return update_state(state, _apply)


def record_node_timing(state: State, node_id: str, duration_ms: float) -> State:
    """Add ``duration_ms`` to the node's timing and to the run's total duration."""

    def _apply(draft: State) -> None:
        timings = draft.telemetry.node_timings
        timings[node_id] = timings.get(node_id, 0) + duration_ms
        draft.telemetry.total_duration_ms += duration_ms

    return update_state(state, _apply)


def add_token_usage(
    state: State,
    prompt: int | None = None,
    completion: int | None = None,
    total: int | None = None,
) -> State:
    """Record token usage; ``total`` is only used when no split is given."""

    def _apply(draft: State) -> None:
        if prompt:
            draft.telemetry.token_count += prompt
        if completion:
            draft.telemetry.token_count += completion
        if not prompt and not completion and total:
            draft.telemetry.token_count += total

    return update_state(state, _apply)


# === BUDGET ===


@dataclass
class BudgetCheck:
    """Outcome of comparing telemetry against policy ceilings."""

    exceeded: bool
    reason: str | None = None
    metric: str | None = None
    current: float = 0
    limit: float = 0


def check_budget(state: State) -> BudgetCheck:
    """Check tool calls, duration and retries against the policy, in that order."""
    telemetry, policy = state.telemetry, state.policy

    if telemetry.tool_call_count >= policy.max_tool_calls:
        return BudgetCheck(
            exceeded=True,
            reason=(
                f"Tool call budget exceeded "
                f"({telemetry.tool_call_count}/{policy.max_tool_calls})"
            ),
            metric="tool_calls",
            current=telemetry.tool_call_count,
            limit=policy.max_tool_calls,
        )

    if telemetry.total_duration_ms >= policy.max_duration_ms:
        return BudgetCheck(
            exceeded=True,
            reason=(
                f"Duration budget exceeded "
                f"({telemetry.total_duration_ms:.0f}ms/{policy.max_duration_ms:.0f}ms)"
            ),
            metric="duration",
            current=telemetry.total_duration_ms,
            limit=policy.max_duration_ms,
        )

    # max_retries == 0 disables retries, so there is no retry budget to exhaust
    if policy.max_retries > 0 and telemetry.retry_count >= policy.max_retries:
        return BudgetCheck(
            exceeded=True,
            reason=f"Retry budget exceeded ({telemetry.retry_count}/{policy.max_retries})",
            metric="retries",
            current=telemetry.retry_count,
            limit=policy.max_retries,
        )

    return BudgetCheck(exceeded=False)
