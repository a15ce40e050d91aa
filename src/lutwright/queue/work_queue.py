"""Work queue and processed-image history.

``WorkQueue`` holds the active items keyed by id in insertion order and is
the only place item status changes. Every transition goes through
``WorkItem.with_status`` so an illegal move raises instead of silently
corrupting the lifecycle. ``ProcessedHistory`` keeps the most recent
finished transforms, newest first.

Both classes are guarded by a lock so snapshots can be taken from any
thread while the orchestrator mutates them on its event loop.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict, deque
from typing import Dict, Iterable, Iterator, List, Optional

from ..core.config import DEFAULT_HISTORY_CAPACITY
from ..core.types import ProcessedRecord, WorkItem, WorkStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Work Queue
# =============================================================================


class WorkQueue:
    """Ordered collection of active work items.

    Example:
        >>> queue = WorkQueue()
        >>> item = queue.add(WorkItem(source_path="in/a.jpg", dest_path="out/a.jpg"))
        >>> queue.transition(item.id, WorkStatus.PROCESSING, progress=0.0)
        >>> [i.status for i in queue.snapshot()]
        [<WorkStatus.PROCESSING: 'Processing'>]
    """

    def __init__(self) -> None:
        self._items: "OrderedDict[str, WorkItem]" = OrderedDict()
        self._lock = threading.RLock()

    def add(self, item: WorkItem) -> WorkItem:
        """Append a new item.

        Raises:
            ValueError: If an item with the same id is already queued.
        """
        with self._lock:
            if item.id in self._items:
                raise ValueError(f"Duplicate work item id: {item.id}")
            self._items[item.id] = item
        logger.debug(f"Queued {item.file_name} as {item.id}")
        return item

    def get(self, item_id: str) -> Optional[WorkItem]:
        with self._lock:
            return self._items.get(item_id)

    def transition(
        self,
        item_id: str,
        status: WorkStatus,
        progress: Optional[float] = None,
        error_reason: Optional[str] = None,
    ) -> Optional[WorkItem]:
        """Move an item to ``status`` and return the updated item.

        Returns None when the item is no longer queued (cleared or pruned).

        Raises:
            StateTransitionError: If the move is not allowed from the
                item's current status.
        """
        with self._lock:
            current = self._items.get(item_id)
            if current is None:
                return None
            updated = current.with_status(status, progress=progress, error_reason=error_reason)
            self._items[item_id] = updated
        return updated

    def remove(self, item_id: str) -> Optional[WorkItem]:
        with self._lock:
            return self._items.pop(item_id, None)

    def remove_if(self, item_id: str, status: WorkStatus) -> bool:
        """Remove an item only while it still has ``status``."""
        with self._lock:
            current = self._items.get(item_id)
            if current is None or current.status is not status:
                return False
            del self._items[item_id]
            return True

    def clear(self) -> int:
        """Drop every item. Returns how many were removed."""
        with self._lock:
            count = len(self._items)
            self._items.clear()
        return count

    def snapshot(self) -> List[WorkItem]:
        """Items in insertion order. The items themselves are immutable."""
        with self._lock:
            return list(self._items.values())

    def counts(self) -> Dict[str, int]:
        """Number of items per status value."""
        result = {status.value: 0 for status in WorkStatus}
        with self._lock:
            for item in self._items.values():
                result[item.status.value] += 1
        return result

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __contains__(self, item_id: object) -> bool:
        with self._lock:
            return item_id in self._items

    def __iter__(self) -> Iterator[WorkItem]:
        return iter(self.snapshot())


# =============================================================================
# Processed History
# =============================================================================


class ProcessedHistory:
    """Bounded log of finished transforms, newest first."""

    def __init__(self, capacity: int = DEFAULT_HISTORY_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("History capacity must be at least 1")
        self.capacity = capacity
        self._records: "deque[ProcessedRecord]" = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def record(self, record: ProcessedRecord) -> None:
        with self._lock:
            self._records.appendleft(record)

    def replace(self, records: Iterable[ProcessedRecord]) -> None:
        """Swap in ``records`` (newest first), keeping at most ``capacity``."""
        with self._lock:
            self._records = deque(list(records)[:self.capacity], maxlen=self.capacity)

    def snapshot(self) -> List[ProcessedRecord]:
        with self._lock:
            return list(self._records)

    def latest(self) -> Optional[ProcessedRecord]:
        with self._lock:
            return self._records[0] if self._records else None

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


__all__ = ["WorkQueue", "ProcessedHistory"]
