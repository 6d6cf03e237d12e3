"""
Checkpoint Manager - Builds, persists and loads checkpoints for a run.

Without a persistence adapter, saving is a silent no-op and loading fails.
"""

import logging
from typing import Any

from taskgraph.errors import CheckpointNotFoundError
from taskgraph.graph.hooks import HookErrorStrategy, RunnerHooks, invoke_hook
from taskgraph.runtime.event_stream import EventStatus, EventStream, EventType
from taskgraph.schemas.checkpoint import Checkpoint
from taskgraph.schemas.state import State
from taskgraph.storage.base import PersistenceAdapter

logger = logging.getLogger(__name__)


class CheckpointManager:
    def __init__(
        self,
        persistence: PersistenceAdapter | None,
        event_stream: EventStream,
        hooks: RunnerHooks | None = None,
        hook_error_strategy: HookErrorStrategy = HookErrorStrategy.LOG,
    ):
        self.persistence = persistence
        self.event_stream = event_stream
        self.hooks = hooks
        self.hook_error_strategy = hook_error_strategy

    @property
    def enabled(self) -> bool:
        return self.persistence is not None

    async def save(self, state: State, metadata: dict[str, Any] | None = None) -> Checkpoint | None:
        """
        Snapshot ``state`` at the current event log position.

        Returns:
            The persisted Checkpoint, or None when no persistence is configured
        """
        if self.persistence is None:
            return None

        checkpoint = Checkpoint.create(
            state,
            event_index=self.event_stream.position,
            metadata=metadata,
        )
        await self.persistence.save_checkpoint(checkpoint)

        self.event_stream.emit(
            EventType.CHECKPOINT,
            EventStatus.SUCCESS,
            f"Checkpoint saved: {checkpoint.id}",
            node_id=state.task.current_node or None,
            metadata={"checkpoint_id": checkpoint.id, **(metadata or {})},
        )
        logger.debug(
            f"💾 Checkpoint saved: {checkpoint.id}", extra={"checkpoint_id": checkpoint.id}
        )

        await invoke_hook(
            self.hooks, "on_checkpoint", checkpoint, strategy=self.hook_error_strategy
        )
        return checkpoint

    async def load(self, checkpoint_id: str) -> Checkpoint:
        """
        Load a checkpoint by id.

        Raises:
            CheckpointNotFoundError: if persistence is missing or the id is unknown
        """
        if self.persistence is None:
            raise CheckpointNotFoundError(
                f"Cannot load checkpoint {checkpoint_id}: no persistence adapter configured"
            )

        checkpoint = await self.persistence.load_checkpoint(checkpoint_id)
        if checkpoint is None:
            raise CheckpointNotFoundError(f"Checkpoint not found: {checkpoint_id}")
        return checkpoint
