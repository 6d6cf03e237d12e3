"""
Checkpoint Schema - State snapshots for resumability.

A checkpoint pairs a State with a position in the event log, which is
enough to restart a run from that point after a failure or an abort.
"""

import time
import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from taskgraph.schemas.state import State


class Checkpoint(BaseModel):
    """Single checkpoint in a run's timeline."""

    # Identity
    id: str  # Format: cp_{node_id}_{timestamp}_{suffix}
    state_id: str

    # Snapshot
    state: State
    event_index: int = 0  # Event log position at checkpoint time

    # Unix timestamp (seconds)
    timestamp: float = Field(default_factory=time.time)

    metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = {"extra": "allow"}

    @classmethod
    def create(
        cls,
        state: State,
        event_index: int,
        metadata: dict[str, Any] | None = None,
    ) -> "Checkpoint":
        """
        Create a checkpoint with a generated ID and timestamp.

        Args:
            state: State to snapshot (copied, never aliased)
            event_index: Event log position at checkpoint time
            metadata: Extra data such as the step count

        Returns:
            New Checkpoint instance
        """
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        node = state.task.current_node or "start"
        return cls(
            id=f"cp_{node}_{stamp}_{uuid.uuid4().hex[:6]}",
            state_id=state.id,
            state=state.model_copy(deep=True),
            event_index=event_index,
            metadata=metadata or {},
        )


class CheckpointSummary(BaseModel):
    """
    Lightweight checkpoint metadata for index listings.

    Lets the file store list and filter checkpoints without loading
    full state snapshots.
    """

    id: str
    state_id: str
    timestamp: float
    current_node: str = ""
    event_index: int = 0

    @classmethod
    def from_checkpoint(cls, checkpoint: Checkpoint) -> "CheckpointSummary":
        return cls(
            id=checkpoint.id,
            state_id=checkpoint.state_id,
            timestamp=checkpoint.timestamp,
            current_node=checkpoint.state.task.current_node,
            event_index=checkpoint.event_index,
        )


class CheckpointIndex(BaseModel):
    """Manifest of all checkpoints held by a store."""

    checkpoints: list[CheckpointSummary] = Field(default_factory=list)
    latest_checkpoint_id: str | None = None
    total_checkpoints: int = 0

    def add_checkpoint(self, checkpoint: Checkpoint) -> None:
        self.checkpoints.append(CheckpointSummary.from_checkpoint(checkpoint))
        self.latest_checkpoint_id = checkpoint.id
        self.total_checkpoints = len(self.checkpoints)

    def remove_checkpoint(self, checkpoint_id: str) -> None:
        self.checkpoints = [cp for cp in self.checkpoints if cp.id != checkpoint_id]
        self.total_checkpoints = len(self.checkpoints)
        if self.latest_checkpoint_id == checkpoint_id:
            self.latest_checkpoint_id = self.checkpoints[-1].id if self.checkpoints else None

    def get_checkpoint_summary(self, checkpoint_id: str) -> CheckpointSummary | None:
        for summary in self.checkpoints:
            if summary.id == checkpoint_id:
                return summary
        return None

    def filter_by_state(self, state_id: str) -> list[CheckpointSummary]:
        return [cp for cp in self.checkpoints if cp.state_id == state_id]
