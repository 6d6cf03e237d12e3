"""Runtime support: event log and cooperative cancellation."""

from taskgraph.runtime.abort import AbortController, AbortState
from taskgraph.runtime.event_stream import Event, EventStatus, EventStream, EventType

__all__ = [
    "Event",
    "EventStatus",
    "EventStream",
    "EventType",
    "AbortController",
    "AbortState",
]
