"""
Error taxonomy for graph execution.

Errors are classified into a small set of kinds. The kind decides whether a
failing node attempt is retried:

- network / timeout / execution: transient, retried with exponential backoff
- permission / validation / budget_exceeded: policy decisions, never retried

Budget exhaustion during a run is a normal (early) termination of the step
loop, not an exception. ``ErrorType.BUDGET_EXCEEDED`` exists so that nodes and
tools can report a budget violation of their own.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import ValidationError

if TYPE_CHECKING:
    from taskgraph.schemas.checkpoint import Checkpoint
    from taskgraph.schemas.state import State

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorType(StrEnum):
    """Kinds of errors that can occur while running a graph."""

    NETWORK = "network"
    TIMEOUT = "timeout"
    PERMISSION = "permission"
    VALIDATION = "validation"
    EXECUTION = "execution"
    EMPTY_RESULT = "empty_result"
    UNTRUSTED_RESULT = "untrusted_result"
    BUDGET_EXCEEDED = "budget_exceeded"
    UNKNOWN = "unknown"


_RETRYABLE = {ErrorType.NETWORK, ErrorType.TIMEOUT, ErrorType.EXECUTION}


def is_retryable(error_type: ErrorType) -> bool:
    """Default retryability for an error kind."""
    return error_type in _RETRYABLE


class AgentError(Exception):
    """
    A classified error.

    Nodes may raise AgentError directly to control classification (for
    example ``ErrorType.PERMISSION`` to stop retries). Any other exception
    raised by a node is classified with ``classify_error``.
    """

    def __init__(
        self,
        type: ErrorType,
        message: str,
        node_id: str | None = None,
        tool_name: str | None = None,
        retryable: bool | None = None,
        original_error: BaseException | None = None,
    ):
        super().__init__(message)
        self.type = ErrorType(type)
        self.message = message
        self.node_id = node_id
        self.tool_name = tool_name
        self.retryable = is_retryable(self.type) if retryable is None else retryable
        self.original_error = original_error
        self.timestamp = time.time()

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "message": self.message,
            "node_id": self.node_id,
            "tool_name": self.tool_name,
            "retryable": self.retryable,
            "original_error": repr(self.original_error) if self.original_error else None,
            "timestamp": self.timestamp,
        }


class GraphValidationError(ValueError):
    """Raised when a graph definition is structurally invalid."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__(f"Invalid graph: {'; '.join(self.errors)}")


class GraphConfigError(ValueError):
    """Raised when a declarative graph config cannot be turned into a graph."""


class NodeNotFoundError(RuntimeError):
    """Raised when the step loop reaches a node id that is not in the graph."""

    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Node not found: {node_id}")


class CheckpointNotFoundError(LookupError):
    """Raised when a checkpoint cannot be loaded for resume."""


class AbortError(Exception):
    """Raised at a suspension point once the owning run has been aborted."""

    def __init__(self, reason: str | None = None):
        self.reason = reason or "Operation aborted"
        super().__init__(self.reason)


def is_abort_error(error: BaseException) -> bool:
    """True for cooperative aborts and asyncio task cancellation."""
    return isinstance(error, AbortError | asyncio.CancelledError)


def create_error(
    type: ErrorType,
    message: str,
    node_id: str | None = None,
    tool_name: str | None = None,
    retryable: bool | None = None,
    original_error: BaseException | None = None,
) -> AgentError:
    """Build an AgentError, defaulting retryability from the error kind."""
    return AgentError(
        type=type,
        message=message,
        node_id=node_id,
        tool_name=tool_name,
        retryable=retryable,
        original_error=original_error,
    )


def classify_error(error: BaseException, node_id: str | None = None) -> AgentError:
    """Map an arbitrary exception onto the error taxonomy."""
    if isinstance(error, AgentError):
        if node_id and not error.node_id:
            error.node_id = node_id
        return error

    if isinstance(error, TimeoutError):
        error_type = ErrorType.TIMEOUT
    elif isinstance(error, ConnectionError):
        error_type = ErrorType.NETWORK
    elif isinstance(error, PermissionError):
        error_type = ErrorType.PERMISSION
    elif isinstance(error, ValidationError):
        error_type = ErrorType.VALIDATION
    else:
        error_type = ErrorType.EXECUTION

    return create_error(
        error_type,
        str(error) or type(error).__name__,
        node_id=node_id,
        original_error=error,
    )


@dataclass
class ErrorStrategy:
    """What to do about a classified error."""

    should_retry: bool
    should_degrade: bool = False
    should_terminate: bool = False
    suggestion: str = ""


def get_backoff_delay(retry_count: int, base_ms: float = 1000, multiplier: float = 2) -> float:
    """Exponential backoff delay in milliseconds: base_ms * multiplier^retry_count."""
    return base_ms * (multiplier**retry_count)


def get_error_strategy(error: AgentError, retry_count: int, max_retries: int) -> ErrorStrategy:
    """Decide how to handle ``error`` given the retries already spent."""
    if error.type == ErrorType.BUDGET_EXCEEDED:
        return ErrorStrategy(
            should_retry=False,
            should_terminate=True,
            suggestion="Budget limit reached; check the policy or reduce tool calls",
        )

    if error.type == ErrorType.PERMISSION:
        return ErrorStrategy(
            should_retry=False,
            should_terminate=True,
            suggestion="Permission denied; check tool permission configuration",
        )

    if error.type == ErrorType.VALIDATION:
        return ErrorStrategy(
            should_retry=False,
            should_degrade=True,
            should_terminate=not error.retryable,
            suggestion="Input or output validation failed; check the tool contract",
        )

    if error.retryable and retry_count < max_retries:
        return ErrorStrategy(
            should_retry=True,
            suggestion=(
                f"Retrying in {get_backoff_delay(retry_count):.0f}ms "
                f"({retry_count + 1}/{max_retries})"
            ),
        )

    if retry_count >= max_retries:
        return ErrorStrategy(
            should_retry=False,
            should_degrade=True,
            suggestion="Retries exhausted",
        )

    return ErrorStrategy(
        should_retry=False,
        should_terminate=True,
        suggestion="Unrecoverable error",
    )


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    max_retries: int,
    base_ms: float = 1000,
    multiplier: float = 2,
) -> T:
    """Call ``fn`` up to ``max_retries + 1`` times, sleeping between failures."""
    last_error: Exception | None = None

    for attempt in range(max_retries + 1):
        try:
            return await fn()
        except Exception as e:
            last_error = e
            if attempt < max_retries:
                delay = get_backoff_delay(attempt, base_ms, multiplier)
                logger.debug(f"Attempt {attempt + 1} failed ({e}), retrying in {delay}ms")
                await asyncio.sleep(delay / 1000)

    assert last_error is not None
    raise last_error


def rollback_to_checkpoint(checkpoint: "Checkpoint") -> "State":
    """Return a private copy of the state captured by ``checkpoint``."""
    return checkpoint.state.model_copy(deep=True)


def format_error_message(error: AgentError) -> str:
    """Format an error for display: ``[TYPE] message (node: x) (tool: y)``."""
    parts = [f"[{error.type.value.upper()}]", error.message]
    if error.node_id:
        parts.append(f"(node: {error.node_id})")
    if error.tool_name:
        parts.append(f"(tool: {error.tool_name})")
    return " ".join(parts)
