"""Event channel for the LUTWright pipeline.

An ``EventChannel`` is a thread-safe publish/subscribe surface owned by the
orchestrator and injected into whatever wants to observe the queue (a CLI,
a UI, a log sink). There is no process-wide instance: each orchestrator
gets its own channel, which keeps tests isolated.

Example usage:

    >>> from lutwright.core.events import EventChannel, EventType
    >>>
    >>> channel = EventChannel()
    >>>
    >>> def on_status(event):
    ...     print(event.data["id"], event.data["status"])
    >>>
    >>> channel.subscribe(EventType.ITEM_STATUS, on_status)
    >>>
    >>> # Or consume events from async code
    >>> async def follow():
    ...     async with channel.stream() as events:
    ...         async for event in events:
    ...             print(event)
"""

from __future__ import annotations

import asyncio
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Union

from .types import ProcessedRecord, WorkItem, WorkStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Event Types
# =============================================================================


class EventType(Enum):
    """Notifications published by the orchestrator."""

    ITEM_QUEUED = "item-queued"
    ITEM_STATUS = "item-status"
    ITEM_PROCESSED = "item-processed"
    QUEUE_CLEARED = "queue-cleared"
    WATCH_STARTED = "watch-started"
    WATCH_STOPPED = "watch-stopped"


# =============================================================================
# Event Classes
# =============================================================================


@dataclass
class Event:
    """Base event with metadata.

    Attributes:
        event_type: Type of the event.
        source: Name of the component that emitted the event.
        data: Event-specific payload.
        timestamp: When the event was created.
        event_id: Unique identifier for the event.
    """

    event_type: EventType
    source: str
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)
    event_id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])

    def __str__(self) -> str:
        return f"Event({self.event_type.value}, source={self.source}, data={self.data})"

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary."""
        return {
            "event_type": self.event_type.value,
            "source": self.source,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
            "event_id": self.event_id,
        }


class ItemQueuedEvent(Event):
    """A work item entered the queue.

    Data fields:
        id: Work item id.
        fileName: Source file name.
        sourcePath: Full source path.
    """

    def __init__(self, source: str, item: WorkItem, **kwargs: Any) -> None:
        super().__init__(
            event_type=EventType.ITEM_QUEUED,
            source=source,
            data={
                "id": item.id,
                "fileName": item.file_name,
                "sourcePath": str(item.source_path),
            },
            **kwargs,
        )


class ItemStatusEvent(Event):
    """A work item changed status or progress.

    Data fields:
        id: Work item id.
        status: One of Waiting, Processing, Completed, Failed.
        progress: Fraction in [0, 1].
        errorReason: Present only for failed items.
    """

    def __init__(self, source: str, item: WorkItem, **kwargs: Any) -> None:
        data: Dict[str, Any] = {
            "id": item.id,
            "status": item.status.value,
            "progress": item.progress,
        }
        if item.status is WorkStatus.FAILED:
            data["errorReason"] = item.error_reason
        super().__init__(event_type=EventType.ITEM_STATUS, source=source, data=data, **kwargs)


class ItemProcessedEvent(Event):
    """A transform finished and was appended to the history."""

    def __init__(self, source: str, record: ProcessedRecord, **kwargs: Any) -> None:
        params = record.parameters
        super().__init__(
            event_type=EventType.ITEM_PROCESSED,
            source=source,
            data={
                "sourcePath": str(record.source_path),
                "destPath": str(record.dest_path),
                "lutName": params.lut_name,
                "strength": params.strength,
                "quality": params.quality,
                "dither": params.dither_mode.value,
                "completedAt": record.completed_at,
            },
            **kwargs,
        )


# =============================================================================
# Callback Type
# =============================================================================

EventCallback = Callable[[Event], None]


# =============================================================================
# Async Stream
# =============================================================================


class EventStream:
    """Async iterator over events delivered by an ``EventChannel``.

    Events are handed over with ``call_soon_threadsafe`` so emitters on any
    thread can feed a consumer running on an event loop. When the buffer is
    full the newest event is dropped and a warning is logged.
    """

    _CLOSED = object()

    def __init__(
        self,
        channel: "EventChannel",
        event_types: Optional[Set[EventType]],
        loop: asyncio.AbstractEventLoop,
        maxsize: int,
    ) -> None:
        self._channel = channel
        self._event_types = event_types
        self._loop = loop
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        # Set on the loop once close() is processed, even if the sentinel did not fit
        self._ended = False

    def _deliver(self, event: Event) -> None:
        if self._closed:
            return
        if self._event_types is not None and event.event_type not in self._event_types:
            return
        try:
            self._loop.call_soon_threadsafe(self._put, event)
        except RuntimeError:
            # Loop already closed
            self._closed = True

    def _put(self, item: Any) -> None:
        try:
            self._queue.put_nowait(item)
        except asyncio.QueueFull:
            logger.warning(f"Event stream full, dropping {item}")

    def _finish(self) -> None:
        self._ended = True
        if not self._queue.full():
            self._queue.put_nowait(self._CLOSED)

    def close(self) -> None:
        """Stop receiving events and end the iteration."""
        if self._closed:
            return
        self._closed = True
        self._channel.unsubscribe(None, self._deliver)
        if not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._finish)

    def __aiter__(self) -> "EventStream":
        return self

    async def __anext__(self) -> Event:
        if self._ended and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is self._CLOSED:
            raise StopAsyncIteration
        return item

    async def __aenter__(self) -> "EventStream":
        return self

    async def __aexit__(self, *args: Any) -> None:
        self.close()


# =============================================================================
# Event Channel
# =============================================================================


class EventChannel:
    """Thread-safe pub/sub channel.

    Supports per-type and wildcard subscriptions, isolates subscriber
    errors, and optionally keeps a bounded history of emitted events.
    """

    def __init__(self, enable_history: bool = False, history_size: int = 1000) -> None:
        """Initialize the channel.

        Args:
            enable_history: Whether to keep emitted events.
            history_size: Maximum events kept in history.
        """
        self._subscribers: Dict[EventType, List[EventCallback]] = {}
        self._wildcard_subscribers: List[EventCallback] = []
        self._lock = threading.RLock()

        self._enable_history = enable_history
        self._history_size = history_size
        self._history: List[Event] = []

        self._events_emitted = 0
        self._events_by_type: Dict[EventType, int] = {}

    def subscribe(self, event_type: Union[EventType, None], callback: EventCallback) -> None:
        """Subscribe to one event type, or to all events with ``None``."""
        with self._lock:
            if event_type is None:
                if callback not in self._wildcard_subscribers:
                    self._wildcard_subscribers.append(callback)
            else:
                subscribers = self._subscribers.setdefault(event_type, [])
                if callback not in subscribers:
                    subscribers.append(callback)

    def unsubscribe(self, event_type: Union[EventType, None], callback: EventCallback) -> bool:
        """Remove a subscription.

        Returns:
            True if the callback was found and removed.
        """
        with self._lock:
            if event_type is None:
                if callback in self._wildcard_subscribers:
                    self._wildcard_subscribers.remove(callback)
                    return True
            elif callback in self._subscribers.get(event_type, []):
                self._subscribers[event_type].remove(callback)
                return True
            return False

    def emit(self, event: Event) -> None:
        """Deliver an event to all matching subscribers in the calling thread.

        Errors raised by callbacks are logged and do not stop delivery to
        the remaining subscribers.
        """
        with self._lock:
            self._events_emitted += 1
            self._events_by_type[event.event_type] = (
                self._events_by_type.get(event.event_type, 0) + 1
            )

            if self._enable_history:
                self._history.append(event)
                if len(self._history) > self._history_size:
                    self._history = self._history[-self._history_size:]

            subscribers = list(self._subscribers.get(event.event_type, []))
            wildcards = list(self._wildcard_subscribers)

        for callback in subscribers + wildcards:
            self._safe_call(callback, event)

    def _safe_call(self, callback: EventCallback, event: Event) -> None:
        try:
            callback(event)
        except Exception as e:
            logger.error(
                f"Error in event callback for {event.event_type.value}: {e}",
                exc_info=True,
            )

    def stream(
        self,
        event_types: Optional[Iterable[EventType]] = None,
        maxsize: int = 1000,
    ) -> EventStream:
        """Open an async subscription on the running event loop.

        Args:
            event_types: Types to receive, or None for all.
            maxsize: Buffered events before new ones are dropped.
        """
        loop = asyncio.get_running_loop()
        stream = EventStream(
            self,
            set(event_types) if event_types is not None else None,
            loop,
            maxsize,
        )
        self.subscribe(None, stream._deliver)
        return stream

    def clear_subscribers(self, event_type: Optional[EventType] = None) -> None:
        """Clear subscribers of one type, or all with ``None``."""
        with self._lock:
            if event_type is None:
                self._subscribers.clear()
                self._wildcard_subscribers.clear()
            elif event_type in self._subscribers:
                self._subscribers[event_type].clear()

    def get_subscriber_count(self, event_type: Optional[EventType] = None) -> int:
        with self._lock:
            if event_type is None:
                count = len(self._wildcard_subscribers)
                for subscribers in self._subscribers.values():
                    count += len(subscribers)
                return count
            return len(self._subscribers.get(event_type, []))

    def get_history(
        self,
        event_type: Optional[EventType] = None,
        limit: Optional[int] = None,
    ) -> List[Event]:
        """Return past events, oldest first."""
        if not self._enable_history:
            return []

        with self._lock:
            history = list(self._history)

        if event_type is not None:
            history = [e for e in history if e.event_type == event_type]
        if limit is not None:
            history = history[-limit:]
        return history

    def get_statistics(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "total_events_emitted": self._events_emitted,
                "events_by_type": {t.value: c for t, c in self._events_by_type.items()},
                "subscriber_count": self.get_subscriber_count(),
                "history_size": len(self._history) if self._enable_history else 0,
            }


__all__ = [
    "EventType",
    "Event",
    "ItemQueuedEvent",
    "ItemStatusEvent",
    "ItemProcessedEvent",
    "EventCallback",
    "EventStream",
    "EventChannel",
]
