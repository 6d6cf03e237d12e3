"""
Checkpoint Configuration - Controls checkpoint cadence during execution.
"""

from dataclasses import dataclass


@dataclass
class CheckpointConfig:
    """
    Configuration for checkpoint behavior during graph execution.

    A checkpoint is taken after the node at step N completes whenever
    N is a multiple of ``checkpoint_interval`` (so step 0 always counts).
    """

    # Enable/disable checkpointing
    enabled: bool = True

    # When to checkpoint
    checkpoint_interval: int = 1

    def should_checkpoint(self, step: int) -> bool:
        """Check if the step that just completed should be checkpointed."""
        if not self.enabled or self.checkpoint_interval < 1:
            return False
        return step % self.checkpoint_interval == 0


# Checkpoint after every step
DEFAULT_CHECKPOINT_CONFIG = CheckpointConfig(enabled=True, checkpoint_interval=1)


# Disabled configuration (no checkpointing)
DISABLED_CHECKPOINT_CONFIG = CheckpointConfig(enabled=False)
