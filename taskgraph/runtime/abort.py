"""
Abort Controller - Cooperative cancellation for a graph run.

The controller owns a one-shot cancellation token (an ``asyncio.Event``).
Aborting is idempotent: the first reason wins until ``reset()`` issues a
fresh token. Cancellation is observed only at suspension points:

- ``throw_if_aborted()`` for synchronous checks (the step loop, node code)
- ``wrap_with_abort()`` to race an awaitable against the token

It also keeps a local index of checkpoints taken during the run so that a
resume can target an explicit checkpoint or the most recent one.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Any, TypeVar

from taskgraph.errors import AbortError
from taskgraph.schemas.checkpoint import Checkpoint

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_ABORT_REASON = "User initiated abort"


@dataclass
class AbortState:
    """Snapshot of the controller's abort status."""

    aborted: bool = False
    reason: str | None = None
    timestamp: float | None = None
    checkpoint: Checkpoint | None = None


class AbortController:
    """
    One-shot cancellation token plus a checkpoint index.

    Example:
        controller = AbortController()

        result = await controller.wrap_with_abort(call_llm())

        # elsewhere
        controller.abort("user pressed stop")
    """

    def __init__(self):
        self._token = asyncio.Event()
        self._state = AbortState()
        self._checkpoints: dict[str, Checkpoint] = {}
        self._latest_checkpoint_id: str | None = None

    @property
    def aborted(self) -> bool:
        return self._token.is_set()

    @property
    def reason(self) -> str | None:
        return self._state.reason

    def abort(self, reason: str | None = None) -> None:
        """Trigger cancellation. Calls after the first are no-ops until reset()."""
        if self._token.is_set():
            return

        self._state = AbortState(
            aborted=True,
            reason=reason or DEFAULT_ABORT_REASON,
            timestamp=time.time(),
            checkpoint=self.get_latest_checkpoint(),
        )
        self._token.set()
        logger.info(f"⏹ Abort requested: {self._state.reason}")

    def reset(self) -> None:
        """Issue a fresh token. Required before re-running after an abort."""
        self._token = asyncio.Event()
        self._state = AbortState()

    def get_abort_state(self) -> AbortState:
        return AbortState(
            aborted=self._state.aborted,
            reason=self._state.reason,
            timestamp=self._state.timestamp,
            checkpoint=self._state.checkpoint,
        )

    def throw_if_aborted(self) -> None:
        """Raise AbortError if the token has fired."""
        if self._token.is_set():
            raise AbortError(self._state.reason)

    async def wrap_with_abort(self, awaitable: Awaitable[T]) -> T:
        """
        Race ``awaitable`` against the cancellation token.

        If the token fires first, the wrapped task is cancelled and AbortError
        is raised, even when the task itself would never finish. The waiter
        on the token is released on either outcome.
        """
        if self._token.is_set():
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise AbortError(self._state.reason)

        token = self._token
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(token.wait())

        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)

            if task.done():
                return task.result()

            task.cancel()
            # Retrieve the outcome so a late failure is not reported as unhandled
            task.add_done_callback(_consume_result)
            raise AbortError(self._state.reason)
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()

    # === CHECKPOINT INDEX ===

    def save_checkpoint(self, checkpoint: Checkpoint) -> None:
        self._checkpoints[checkpoint.id] = checkpoint
        self._latest_checkpoint_id = checkpoint.id

    def get_checkpoint(self, checkpoint_id: str) -> Checkpoint | None:
        return self._checkpoints.get(checkpoint_id)

    def get_latest_checkpoint(self) -> Checkpoint | None:
        if self._latest_checkpoint_id is None:
            return None
        return self._checkpoints.get(self._latest_checkpoint_id)

    def list_checkpoints(self) -> list[Checkpoint]:
        """All indexed checkpoints, newest first."""
        return list(reversed(self._checkpoints.values()))

    def clear_checkpoints(self) -> None:
        self._checkpoints.clear()
        self._latest_checkpoint_id = None


def _consume_result(task: "asyncio.Future[Any]") -> None:
    if not task.cancelled():
        task.exception()
