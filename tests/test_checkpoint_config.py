"""Tests for checkpoint cadence."""

from taskgraph.graph.checkpoint_config import (
    DEFAULT_CHECKPOINT_CONFIG,
    DISABLED_CHECKPOINT_CONFIG,
    CheckpointConfig,
)


def test_default_checkpoints_every_step():
    assert all(DEFAULT_CHECKPOINT_CONFIG.should_checkpoint(step) for step in range(5))


def test_disabled_never_checkpoints():
    assert not any(DISABLED_CHECKPOINT_CONFIG.should_checkpoint(step) for step in range(5))


def test_interval():
    config = CheckpointConfig(checkpoint_interval=3)

    assert [s for s in range(10) if config.should_checkpoint(s)] == [0, 3, 6, 9]


def test_non_positive_interval_disables():
    assert CheckpointConfig(checkpoint_interval=0).should_checkpoint(0) is False
