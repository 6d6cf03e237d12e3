"""
Event Stream - Append-only, bounded event log for a graph run.

The stream:
- Records every event emitted by the executor, node executor and nodes
- Stores large payloads in a side table keyed by ``payload_ref``
- Notifies type-specific and wildcard ("*") listeners synchronously
- Drops the oldest events (and their payloads) past ``max_events``
"""

import logging
import time
import uuid
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)

WILDCARD = "*"


class EventType(StrEnum):
    """Event types emitted by the engine. Nodes may use other strings too."""

    # Node lifecycle
    NODE_START = "node_start"
    NODE_END = "node_end"

    # Tool lifecycle
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    CONFIRMATION_REQUIRED = "confirmation_required"
    CONFIRMATION_RESULT = "confirmation_result"

    # Failure handling
    ERROR = "error"
    RETRY = "retry"

    # Checkpointing / budgets
    CHECKPOINT = "checkpoint"
    BUDGET_EXCEEDED = "budget_exceeded"

    # Streaming output
    STREAM_CHUNK = "stream_chunk"

    # Run control
    ABORT = "abort"
    RESUME = "resume"
    HEALTH_METRICS = "health_metrics"

    CUSTOM = "custom"


class EventStatus(StrEnum):
    SUCCESS = "success"
    FAILURE = "failure"
    WARNING = "warning"
    INFO = "info"


@dataclass
class Event:
    """A single entry in the event log."""

    type: str
    status: str
    summary: str
    node_id: str | None = None
    payload_ref: str | None = None
    metadata: dict[str, Any] | None = None
    id: str = field(default_factory=lambda: f"evt_{uuid.uuid4().hex[:12]}")
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "type": str(self.type),
            "status": str(self.status),
            "summary": self.summary,
            "node_id": self.node_id,
            "payload_ref": self.payload_ref,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Event":
        return cls(
            id=data["id"],
            timestamp=data["timestamp"],
            type=data["type"],
            status=data["status"],
            summary=data["summary"],
            node_id=data.get("node_id"),
            payload_ref=data.get("payload_ref"),
            metadata=data.get("metadata"),
        )


EventListener = Callable[[Event], Any]


class EventStream:
    """
    Bounded event log with a payload side table.

    Example:
        stream = EventStream()

        unsubscribe = stream.on("node_end", lambda event: print(event.summary))

        stream.emit("node_end", "success", "Finished planner", node_id="planner")

        unsubscribe()
    """

    def __init__(self, max_events: int = 1000):
        """
        Initialize event stream.

        Args:
            max_events: Maximum events to retain; older ones are evicted
        """
        self._events: deque[Event] = deque()
        self._payloads: dict[str, Any] = {}
        self._listeners: dict[str, list[EventListener]] = {}
        self._max_events = max_events
        self._position = 0

    @property
    def position(self) -> int:
        """Total number of events emitted, unaffected by eviction."""
        return self._position

    def emit(
        self,
        type: str,
        status: str,
        summary: str,
        node_id: str | None = None,
        payload: Any = None,
        metadata: dict[str, Any] | None = None,
    ) -> Event:
        """
        Append an event and notify listeners.

        Args:
            type: Event type (an EventType or any custom string)
            status: success, failure, warning or info
            summary: Short human-readable description
            node_id: Node that produced the event
            payload: Large data stored out-of-line under ``payload_ref``
            metadata: Small structured data kept on the event itself

        Returns:
            The recorded Event
        """
        event = Event(
            type=type,
            status=status,
            summary=summary,
            node_id=node_id,
            metadata=metadata,
        )

        if payload is not None:
            payload_ref = f"payload_{event.id}"
            self._payloads[payload_ref] = payload
            event.payload_ref = payload_ref

        self._events.append(event)
        self._position += 1
        self._evict()

        self._notify(str(type), event)
        self._notify(WILDCARD, event)

        return event

    def on(self, type: str, listener: EventListener) -> Callable[[], None]:
        """
        Subscribe to events of ``type`` (or ``"*"`` for all events).

        Returns:
            A function that removes the subscription
        """
        key = str(type)
        self._listeners.setdefault(key, []).append(listener)
        logger.debug(f"Listener registered for {key}")

        def unsubscribe() -> None:
            listeners = self._listeners.get(key, [])
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    def get_events(self, event_type: str | None = None) -> list[Event]:
        """Return retained events in emission order, optionally filtered by type."""
        if event_type is None:
            return list(self._events)
        return [e for e in self._events if e.type == event_type]

    def get_payload(self, payload_ref: str) -> Any:
        return self._payloads.get(payload_ref)

    def clear(self) -> None:
        self._events.clear()
        self._payloads.clear()

    def export_data(self) -> dict[str, Any]:
        """Export events and payloads (e.g. for a debug bundle)."""
        return {
            "events": [e.to_dict() for e in self._events],
            "payloads": dict(self._payloads),
        }

    def import_data(self, data: dict[str, Any]) -> None:
        """Replace the log with previously exported data."""
        self._events = deque(Event.from_dict(e) for e in data.get("events", []))
        self._payloads = dict(data.get("payloads", {}))
        self._position = len(self._events)
        self._evict()

    def get_stats(self) -> dict[str, Any]:
        type_counts: dict[str, int] = {}
        for event in self._events:
            type_counts[str(event.type)] = type_counts.get(str(event.type), 0) + 1

        return {
            "total_events": len(self._events),
            "emitted": self._position,
            "payloads": len(self._payloads),
            "listeners": sum(len(v) for v in self._listeners.values()),
            "events_by_type": type_counts,
        }

    def __len__(self) -> int:
        return len(self._events)

    def _evict(self) -> None:
        while len(self._events) > self._max_events:
            evicted = self._events.popleft()
            if evicted.payload_ref:
                self._payloads.pop(evicted.payload_ref, None)

    def _notify(self, key: str, event: Event) -> None:
        # Copy so listeners may unsubscribe while being notified
        for listener in list(self._listeners.get(key, [])):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Listener error for {event.type}: {e}")
