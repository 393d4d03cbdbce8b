"""
Workflow event channel.

Workflows publish progress and terminal-state notifications through an
EventEmitter instead of calling UI callbacks directly. Subscribers receive
events synchronously; consumers that prefer pull-style iteration can use
``stream()`` which yields events from an internal queue.
"""

import asyncio
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from loguru import logger

# =============================================================================
# ENUMS
# =============================================================================


class EventLevel(str, Enum):
    """Severity of a notification."""

    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


class EventType(str, Enum):
    """Types of workflow events."""

    PROGRESS = "progress"
    STATUS = "status"
    UNIT_STARTED = "unit_started"
    UNIT_COMPLETED = "unit_completed"
    UNIT_FAILED = "unit_failed"
    ITEM_FOUND = "item_found"
    STALLED = "stalled"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"


# =============================================================================
# EVENT
# =============================================================================


@dataclass
class WorkflowEvent:
    """Event emitted during a workflow run."""

    event_type: EventType
    message: str
    level: EventLevel = EventLevel.INFO
    subject_id: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "event_type": self.event_type.value,
            "message": self.message,
            "level": self.level.value,
            "subject_id": self.subject_id,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
        }


# Type for event callbacks
EventCallback = Callable[[WorkflowEvent], Any]


_CLOSED = object()


class EventEmitter:
    """
    Fan-out publisher for workflow events.

    Example:
        >>> emitter = EventEmitter()
        >>> emitter.subscribe(lambda e: print(e.message))
        >>> emitter.emit(EventType.PROGRESS, "Generating sprint: FMEA...")
        Generating sprint: FMEA...
    """

    def __init__(self) -> None:
        self._callbacks: list[EventCallback] = []
        self._queues: list[asyncio.Queue] = []
        self.history: list[WorkflowEvent] = []

    def subscribe(self, callback: EventCallback) -> None:
        """Add a callback for workflow events."""
        self._callbacks.append(callback)

    def unsubscribe(self, callback: EventCallback) -> None:
        """Remove a callback."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def emit(
        self,
        event_type: EventType,
        message: str,
        level: EventLevel = EventLevel.INFO,
        subject_id: str | None = None,
        **data: Any,
    ) -> WorkflowEvent:
        """Publish an event to every subscriber and open stream.

        Subscriber failures are logged and swallowed so that reporting can
        never fail the workflow that produced the event.
        """
        event = WorkflowEvent(
            event_type=event_type,
            message=message,
            level=level,
            subject_id=subject_id,
            data=data,
        )
        self.history.append(event)

        for callback in list(self._callbacks):
            try:
                callback(event)
            except Exception as e:
                logger.warning(f"Event callback error: {e}")

        for queue in self._queues:
            queue.put_nowait(event)

        return event

    async def stream(self) -> AsyncIterator[WorkflowEvent]:
        """Iterate over events emitted after this call until ``close()``."""
        queue: asyncio.Queue = asyncio.Queue()
        self._queues.append(queue)
        try:
            while True:
                item = await queue.get()
                if item is _CLOSED:
                    break
                yield item
        finally:
            self._queues.remove(queue)

    def close(self) -> None:
        """Terminate all open streams."""
        for queue in self._queues:
            queue.put_nowait(_CLOSED)

    def events_of(self, event_type: EventType) -> list[WorkflowEvent]:
        """Get emitted events of one type."""
        return [e for e in self.history if e.event_type == event_type]
