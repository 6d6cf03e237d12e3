"""Shared runner configuration utilities.

Reads ~/.taskgraph/configuration.json so every embedding application picks up
the same engine defaults. Explicit constructor arguments always win.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

# ---------------------------------------------------------------------------
# Low-level config file access
# ---------------------------------------------------------------------------

TASKGRAPH_CONFIG_FILE = Path.home() / ".taskgraph" / "configuration.json"


def get_taskgraph_config() -> dict[str, Any]:
    """Load configuration from ~/.taskgraph/configuration.json."""
    if not TASKGRAPH_CONFIG_FILE.exists():
        return {}
    try:
        with open(TASKGRAPH_CONFIG_FILE, encoding="utf-8-sig") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


def _runner_setting(key: str, default: Any) -> Any:
    runner = get_taskgraph_config().get("runner", {})
    if not isinstance(runner, dict):
        return default
    return runner.get(key, default)


# ---------------------------------------------------------------------------
# Derived helpers
# ---------------------------------------------------------------------------


def get_checkpoint_interval() -> int:
    return int(_runner_setting("checkpoint_interval", 1))


def get_backoff_base_ms() -> float:
    return float(_runner_setting("backoff_base_ms", 1000))


def get_backoff_multiplier() -> float:
    return float(_runner_setting("backoff_multiplier", 2.0))


def get_max_events() -> int:
    return int(_runner_setting("max_events", 1000))


def get_hook_error_strategy() -> str:
    """Return "log" (hook failures are logged) or "raise" (they fail the step)."""
    return str(_runner_setting("hook_error_strategy", "log"))


# ---------------------------------------------------------------------------
# RunnerConfig
# ---------------------------------------------------------------------------


@dataclass
class RunnerConfig:
    """Engine configuration loaded from ~/.taskgraph/configuration.json."""

    checkpoint_interval: int = field(default_factory=get_checkpoint_interval)
    backoff_base_ms: float = field(default_factory=get_backoff_base_ms)
    backoff_multiplier: float = field(default_factory=get_backoff_multiplier)
    max_events: int = field(default_factory=get_max_events)
    hook_error_strategy: str = field(default_factory=get_hook_error_strategy)
