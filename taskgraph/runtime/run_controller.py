"""
Run Controller - Abort/resume surface around a GraphExecutor.

The controller owns one AbortController and one GraphExecutor. It tracks
checkpoints taken during the run, turns an abort into a normal outcome
(``RunOutcome.aborted``), and can resume from an explicit checkpoint, the
latest one, or the last state it saw.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from taskgraph.config import RunnerConfig
from taskgraph.errors import CheckpointNotFoundError, is_abort_error
from taskgraph.graph.edge import GraphSpec
from taskgraph.graph.executor import ExecutionResult, GraphExecutor
from taskgraph.graph.hooks import RunnerHooks, compose_hooks
from taskgraph.runtime.abort import DEFAULT_ABORT_REASON, AbortController
from taskgraph.runtime.event_stream import EventStatus, EventStream, EventType
from taskgraph.schemas.checkpoint import Checkpoint
from taskgraph.schemas.state import State
from taskgraph.storage.base import PersistenceAdapter

logger = logging.getLogger(__name__)


@dataclass
class RunOutcome:
    """How a controlled run ended."""

    state: State | None
    aborted: bool = False
    abort_reason: str | None = None
    result: ExecutionResult | None = None


class RunController:
    """
    Run, abort and resume a graph.

    Example:
        controller = RunController(graph, persistence=CheckpointStore(run_dir))

        task = asyncio.create_task(controller.run(create_state("Triage inbox")))
        ...
        controller.abort("user pressed stop")
        outcome = await task            # outcome.aborted is True

        outcome = await controller.resume()   # picks up from the latest checkpoint
    """

    def __init__(
        self,
        graph: GraphSpec,
        persistence: PersistenceAdapter | None = None,
        hooks: RunnerHooks | None = None,
        config: RunnerConfig | None = None,
    ):
        self.persistence = persistence
        self.abort_controller = AbortController()
        self.executor = GraphExecutor(
            graph,
            persistence=persistence,
            hooks=compose_hooks(hooks, RunnerHooks(on_checkpoint=self._index_checkpoint)),
            config=config,
            abort_controller=self.abort_controller,
        )
        self.last_state: State | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def event_stream(self) -> EventStream:
        return self.executor.get_event_stream()

    async def run(self, state: State, start_node: str | None = None) -> RunOutcome:
        """
        Execute the graph, reporting an abort as ``RunOutcome.aborted``.

        Raises:
            RuntimeError: If a run is already in progress
            Exception: Any non-abort failure from the executor
        """
        if self._running:
            raise RuntimeError("A run is already in progress. Call abort() first.")

        self.abort_controller.reset()
        return await self._run(state, start_node)

    def abort(self, reason: str | None = None) -> bool:
        """
        Abort the current run.

        Returns:
            False if nothing is running, True otherwise
        """
        if not self._running:
            logger.warning("Nothing is running, nothing to abort")
            return False

        self.abort_controller.abort(reason)
        self.event_stream.emit(
            EventType.ABORT,
            EventStatus.WARNING,
            reason or DEFAULT_ABORT_REASON,
        )
        return True

    async def resume(
        self,
        checkpoint_id: str | None = None,
        modified_state: dict[str, Any] | None = None,
        start_node: str | None = None,
    ) -> RunOutcome:
        """
        Resume from a checkpoint (or the last known state).

        Args:
            checkpoint_id: Explicit checkpoint; looked up locally, then in persistence
            modified_state: Top-level State fields to override before resuming
            start_node: Node to restart at (default: the entry node)

        Raises:
            RuntimeError: If a run is already in progress
            CheckpointNotFoundError: If there is nothing to resume from
        """
        if self._running:
            raise RuntimeError("A run is already in progress.")

        state = await self._find_resume_state(checkpoint_id)

        if modified_state:
            state = State.model_validate(
                {**state.model_dump(), **modified_state, "updated_at": datetime.now()}
            )

        self.abort_controller.reset()
        logger.info(f"🔄 Resuming run (checkpoint: {checkpoint_id or 'latest'})")
        self.event_stream.emit(
            EventType.RESUME,
            EventStatus.INFO,
            "Resuming from checkpoint",
            metadata={"checkpoint_id": checkpoint_id},
        )
        return await self._run(state, start_node)

    def list_checkpoints(self) -> list[Checkpoint]:
        """Checkpoints taken by this controller, newest first."""
        return self.abort_controller.list_checkpoints()

    async def _run(self, state: State, start_node: str | None) -> RunOutcome:
        self._running = True
        try:
            result = await self.abort_controller.wrap_with_abort(
                self.executor.execute(state, start_node=start_node)
            )
            self.last_state = result.state
            return RunOutcome(state=result.state, result=result)
        except Exception as e:
            self.last_state = self.executor.last_state or self.last_state
            if is_abort_error(e):
                return RunOutcome(
                    state=self.last_state,
                    aborted=True,
                    abort_reason=self.abort_controller.get_abort_state().reason,
                )
            raise
        finally:
            self._running = False

    async def _find_resume_state(self, checkpoint_id: str | None) -> State:
        if checkpoint_id:
            checkpoint = self.abort_controller.get_checkpoint(checkpoint_id)
            if checkpoint is None and self.persistence is not None:
                checkpoint = await self.persistence.load_checkpoint(checkpoint_id)
            if checkpoint is None:
                raise CheckpointNotFoundError(f"Checkpoint not found: {checkpoint_id}")
            return checkpoint.state.model_copy(deep=True)

        latest = self.abort_controller.get_latest_checkpoint()
        if latest is not None:
            return latest.state.model_copy(deep=True)
        if self.last_state is not None:
            return self.last_state.model_copy(deep=True)

        raise CheckpointNotFoundError("No checkpoint or state available to resume from")

    def _index_checkpoint(self, checkpoint: Checkpoint) -> None:
        self.abort_controller.save_checkpoint(checkpoint)
