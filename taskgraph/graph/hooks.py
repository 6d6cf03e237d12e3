"""
Runner hooks - optional observers of a graph run.

Every hook may be a plain function or a coroutine function. Hook sets are
composed so that graph-level hooks run before call-level hooks.

A failing hook is logged and the run continues, unless the executor is
configured with ``HookErrorStrategy.RAISE``, in which case the exception
fails the current step.
"""

import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass, fields
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)

Hook = Callable[..., Any]


class HookErrorStrategy(StrEnum):
    LOG = "log"
    RAISE = "raise"


@dataclass
class RunnerHooks:
    """
    Observer callbacks for a run.

    Signatures:
        on_node_start(node_id, state)
        on_node_end(node_id, result)
        on_tool_call(tool_name, input)
        on_tool_result(tool_name, output)
        on_error(error)
        on_checkpoint(checkpoint)
        on_budget_warning(metric, current, limit)
    """

    on_node_start: Hook | None = None
    on_node_end: Hook | None = None
    on_tool_call: Hook | None = None
    on_tool_result: Hook | None = None
    on_error: Hook | None = None
    on_checkpoint: Hook | None = None
    on_budget_warning: Hook | None = None


HOOK_NAMES = tuple(f.name for f in fields(RunnerHooks))


def compose_hooks(*hook_sets: RunnerHooks | None) -> RunnerHooks:
    """
    Combine hook sets into one that calls each set in order.

    A composed hook stops at the first failing member; the failure then goes
    through the caller's error strategy like any single hook failure.
    """
    sets = [h for h in hook_sets if h is not None]
    if len(sets) == 1:
        return sets[0]

    composed: dict[str, Hook] = {}
    for name in HOOK_NAMES:
        callbacks = [getattr(h, name) for h in sets if getattr(h, name) is not None]
        if callbacks:
            composed[name] = _sequence(callbacks)

    return RunnerHooks(**composed)


def _sequence(callbacks: list[Hook]) -> Hook:
    async def run_all(*args: Any) -> None:
        for callback in callbacks:
            result = callback(*args)
            if inspect.isawaitable(result):
                await result

    return run_all


async def invoke_hook(
    hooks: RunnerHooks | None,
    name: str,
    *args: Any,
    strategy: HookErrorStrategy = HookErrorStrategy.LOG,
) -> None:
    """Call hook ``name`` if it is set, applying the hook error strategy."""
    if hooks is None:
        return
    callback = getattr(hooks, name, None)
    if callback is None:
        return

    try:
        result = callback(*args)
        if inspect.isawaitable(result):
            await result
    except Exception as e:
        if strategy == HookErrorStrategy.RAISE:
            raise
        logger.error(f"Hook {name} failed: {e}", exc_info=True)
