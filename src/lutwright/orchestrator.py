"""Orchestrator: turn file arrivals and manual batches into tracked work.

The orchestrator owns the ``WorkQueue`` and the ``ProcessedHistory`` and
is their only writer. Every status change is published on its
``EventChannel``; observers read immutable snapshots.

Two triggers feed the queue:

- Detection (``on_file_detected``): the item waits ``settle_delay`` so a
  file still being copied can finish, then fails with "source missing"
  if the file is gone, otherwise it is processed. At most
  ``max_concurrent_detections`` detected items are processed at a time.
- Manual batch (``submit_batch``): all items are queued at once, then
  processed strictly one after another with batch progress
  ``index / total``.

A failure is recorded on its own item and never stops the watch or the
rest of a batch. Completed items are pruned from the queue after
``completed_grace`` seconds; failed items stay until ``clear()``.
``clear()`` only empties the queue view; work already triggered still runs
to the end and lands in the history.

Example:
    >>> config = PipelineConfig(output_dir="out", lut_path="film.cube")
    >>> orchestrator = Orchestrator.create(config)
    >>> items = asyncio.run(orchestrator.submit_batch(["a.jpg", "b.jpg"]))
    >>> [item.status.value for item in items]
    ['Completed', 'Completed']
"""

import asyncio
import logging
import os
import time
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Set, Union

from .core.config import PipelineConfig
from .core.errors import (
    LutwrightError,
    ProcessingTimeoutError,
    SourceMissingError,
    failure_reason,
)
from .core.events import (
    Event,
    EventChannel,
    EventType,
    ItemProcessedEvent,
    ItemQueuedEvent,
    ItemStatusEvent,
)
from .core.types import (
    DitherMode,
    ProcessedRecord,
    RunParameters,
    WorkItem,
    WorkStatus,
)
from .lut.lattice import LatticeCache, LatticeTable
from .processors.engine import ColorTransformEngine
from .queue.work_queue import ProcessedHistory, WorkQueue
from .utils.files import batch_output_path, list_output_images, watch_output_path
from .utils.logging import get_logger
from .watch import FileEventSource

logger = logging.getLogger(__name__)


SOURCE_MISSING_REASON = "source missing"

EVENT_SOURCE = "orchestrator"

EngineFactory = Callable[[LatticeTable, RunParameters], ColorTransformEngine]


class Orchestrator:
    """Single writer of the work queue and history for one processing run.

    All public methods must be called from the event loop thread that
    runs the orchestrator's tasks.
    """

    def __init__(
        self,
        config: PipelineConfig,
        table: LatticeTable,
        channel: Optional[EventChannel] = None,
        engine_factory: Optional[EngineFactory] = None,
    ) -> None:
        self.config = config
        self.table = table
        self.channel = channel or EventChannel()
        self._engine_factory: EngineFactory = engine_factory or ColorTransformEngine
        self._log = get_logger("orchestrator")

        self._queue = WorkQueue()
        self._history = ProcessedHistory(config.history_capacity)
        self._tasks: Set[asyncio.Task] = set()
        self._prune_handles: Dict[str, asyncio.TimerHandle] = {}

        # Created lazily so they bind to the loop that runs the work
        self._detection_slots: Optional[asyncio.Semaphore] = None
        self._batch_lock: Optional[asyncio.Lock] = None

    @classmethod
    def create(
        cls,
        config: PipelineConfig,
        channel: Optional[EventChannel] = None,
        engine_factory: Optional[EngineFactory] = None,
        require_watch_dir: bool = False,
        cache: Optional[LatticeCache] = None,
    ) -> "Orchestrator":
        """Validate the configuration and load the LUT.

        Raises:
            ConfigError: If the output directory or LUT selection is
                missing or invalid.
            FormatError: If the LUT file cannot be parsed. Nothing is
                queued in either case.
        """
        config.validate(require_watch_dir=require_watch_dir)
        table = cache.get(config.lut_path) if cache is not None else LatticeTable.load(config.lut_path)
        logger.debug(f"Using LUT {table!r} for {config.output_dir}")
        return cls(config, table, channel=channel, engine_factory=engine_factory)

    # =========================================================================
    # Views
    # =========================================================================

    def snapshot(self) -> List[WorkItem]:
        """Active queue items in insertion order."""
        return self._queue.snapshot()

    def history(self) -> List[ProcessedRecord]:
        """Finished transforms, newest first."""
        return self._history.snapshot()

    def get_item(self, item_id: str) -> Optional[WorkItem]:
        return self._queue.get(item_id)

    @property
    def in_flight(self) -> int:
        """Number of item tasks not yet finished."""
        return len(self._tasks)

    def run_parameters(self) -> RunParameters:
        """Parameters a dispatch started now would use."""
        return self.config.run_parameters()

    def update_parameters(
        self,
        strength: Optional[int] = None,
        quality: Optional[int] = None,
        dither: Optional[Union[str, DitherMode]] = None,
    ) -> RunParameters:
        """Change blend/encode settings for items dispatched from now on.

        Items already processing keep the parameters they started with.

        Raises:
            ConfigError: If a value is out of range.
        """
        current = self.config.run_parameters()
        updated = RunParameters(
            strength=current.strength if strength is None else strength,
            quality=current.quality if quality is None else quality,
            dither_mode=current.dither_mode if dither is None else DitherMode.parse(dither),
            lut_name=current.lut_name,
        )
        self.config.strength = updated.strength
        self.config.quality = updated.quality
        self.config.dither = updated.dither_mode
        return updated

    # =========================================================================
    # Triggers
    # =========================================================================

    def on_file_detected(self, path: Union[str, Path]) -> WorkItem:
        """Queue a newly arrived file and schedule its processing.

        Returns:
            The queued item, still ``Waiting``.
        """
        path = Path(path)
        item = self._enqueue(WorkItem(
            source_path=path,
            dest_path=watch_output_path(self.config.output_dir, path),
        ))
        self._spawn(self._run_detected(item), name=f"lutwright-detect-{item.id}")
        return item

    async def submit_batch(self, paths: Iterable[Union[str, Path]]) -> List[WorkItem]:
        """Queue every path, then process them one at a time in order.

        Returns:
            The final state of each item, in submission order.
        """
        items = [
            self._enqueue(WorkItem(
                source_path=Path(path),
                dest_path=batch_output_path(self.config.output_dir, path),
            ))
            for path in paths
        ]
        total = len(items)
        if total == 0:
            return []

        self._log.info(f"Processing batch of {total} image(s)", total=total)
        results: List[WorkItem] = []
        async with self._get_batch_lock():
            for index, item in enumerate(items):
                self._log.batch_progress(index + 1, total, item_id=item.id)
                results.append(await self._dispatch(
                    item,
                    start_progress=index / total,
                    done_progress=(index + 1) / total,
                ))

        failed = sum(1 for r in results if r.status is WorkStatus.FAILED)
        self._log.info(
            f"Batch finished: {total - failed} completed, {failed} failed",
            total=total,
            failed=failed,
        )
        return results

    def start_batch(self, paths: Iterable[Union[str, Path]]) -> "asyncio.Task[List[WorkItem]]":
        """Run ``submit_batch`` as a background task tracked by ``drain``."""
        return self._spawn(self.submit_batch(list(paths)), name="lutwright-batch")

    async def watch(self, source: FileEventSource) -> None:
        """Feed detected files from ``source`` until it ends or is cancelled.

        Cancelling this coroutine stops the source but leaves items already
        detected to finish.
        """
        source.start()
        self.channel.emit(Event(EventType.WATCH_STARTED, EVENT_SOURCE))
        try:
            async for path in source:
                self.on_file_detected(path)
        finally:
            source.stop()
            self.channel.emit(Event(EventType.WATCH_STOPPED, EVENT_SOURCE))

    # =========================================================================
    # Queue management
    # =========================================================================

    def clear(self) -> int:
        """Remove every queue entry immediately, whatever its status.

        Work already triggered still runs to the end: the image is written,
        the history is updated and ``item-processed`` is published. Only the
        status events of the removed entries stop.

        Returns:
            Number of items removed.
        """
        for handle in self._prune_handles.values():
            handle.cancel()
        self._prune_handles.clear()

        removed = self._queue.clear()
        self.channel.emit(Event(EventType.QUEUE_CLEARED, EVENT_SOURCE, data={"removed": removed}))
        self._log.info(f"Cleared {removed} item(s) from the queue", removed=removed)
        return removed

    def clear_history(self) -> None:
        self._history.clear()

    def refresh_history(self) -> List[ProcessedRecord]:
        """Rebuild the history from the images already in the output directory.

        Files are listed newest first by modification time. Their sources
        are unknown, so each record carries ``source_path=None`` and the
        current run parameters.

        Returns:
            The rebuilt history, newest first.
        """
        params = self.run_parameters()
        records = [
            ProcessedRecord(
                source_path=None,
                dest_path=path,
                parameters=params,
                completed_at=os.path.getmtime(path),
            )
            for path in list_output_images(self.config.output_dir)
        ]
        self._history.replace(records)
        self._log.info(f"Loaded {len(records)} processed image(s) from {self.config.output_dir}")
        return self._history.snapshot()

    async def drain(self) -> None:
        """Wait for every in-flight item task, including ones spawned meanwhile."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # =========================================================================
    # Internals
    # =========================================================================

    def _get_detection_slots(self) -> asyncio.Semaphore:
        if self._detection_slots is None:
            self._detection_slots = asyncio.Semaphore(self.config.max_concurrent_detections)
        return self._detection_slots

    def _get_batch_lock(self) -> asyncio.Lock:
        if self._batch_lock is None:
            self._batch_lock = asyncio.Lock()
        return self._batch_lock

    def _spawn(self, coro, name: Optional[str] = None) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _enqueue(self, item: WorkItem) -> WorkItem:
        self._queue.add(item)
        self.channel.emit(ItemQueuedEvent(EVENT_SOURCE, item))
        self._log.item_queued(item.id, item.file_name)
        return item

    def _advance(
        self,
        item: WorkItem,
        status: WorkStatus,
        progress: Optional[float] = None,
        error_reason: Optional[str] = None,
    ) -> WorkItem:
        """Move ``item`` to ``status`` and return the new snapshot.

        Entries still queued are updated and announced. An entry removed
        by ``clear`` only advances the task's own copy.
        """
        updated = self._queue.transition(item.id, status, progress=progress, error_reason=error_reason)
        if updated is None:
            return item.with_status(status, progress=progress, error_reason=error_reason)
        self.channel.emit(ItemStatusEvent(EVENT_SOURCE, updated))
        return updated

    def _fail(self, item: WorkItem, error: BaseException) -> WorkItem:
        reason = failure_reason(error)
        self._log.item_failed(item.id, item.file_name, reason)
        return self._advance(item, WorkStatus.FAILED, error_reason=reason)

    async def _run_detected(self, item: WorkItem) -> WorkItem:
        await asyncio.sleep(self.config.settle_delay)
        async with self._get_detection_slots():
            if not item.source_path.exists():
                return self._fail(item, SourceMissingError(SOURCE_MISSING_REASON, path=item.source_path))
            return await self._dispatch(item)

    async def _dispatch(
        self,
        item: WorkItem,
        start_progress: float = 0.0,
        done_progress: float = 1.0,
    ) -> WorkItem:
        """Process one item and return its terminal snapshot.

        The work runs whether or not the item is still queued.
        """
        params = self.run_parameters()
        item = self._advance(item, WorkStatus.PROCESSING, progress=start_progress)
        loop = asyncio.get_running_loop()
        started = time.monotonic()
        self._log.debug(f"Processing {item.file_name} -> {item.dest_path}", item_id=item.id)

        try:
            engine = self._engine_factory(self.table, params)
            work = loop.run_in_executor(None, engine.process_image, item.source_path, item.dest_path)
            if self.config.process_timeout is not None:
                await asyncio.wait_for(work, self.config.process_timeout)
            else:
                await work
        except asyncio.TimeoutError as e:
            # The worker thread cannot be interrupted; its result is discarded
            return self._fail(item, ProcessingTimeoutError(
                f"Processing exceeded {self.config.process_timeout:g}s",
                path=item.source_path,
                stage="process",
                cause=e,
            ))
        except (LutwrightError, OSError, ValueError) as e:
            return self._fail(item, e)
        except Exception as e:
            self._log.error(f"Unexpected error processing {item.file_name}: {e}", exc_info=True)
            return self._fail(item, e)

        final = self._advance(item, WorkStatus.COMPLETED, progress=done_progress)
        if final.id in self._queue:
            self._schedule_prune(final.id)

        record = ProcessedRecord(source_path=item.source_path, dest_path=item.dest_path, parameters=params)
        self._history.record(record)
        self.channel.emit(ItemProcessedEvent(EVENT_SOURCE, record))
        self._log.item_completed(item.id, item.file_name, duration_seconds=time.monotonic() - started)
        return final

    def _schedule_prune(self, item_id: str) -> None:
        loop = asyncio.get_running_loop()
        self._prune_handles[item_id] = loop.call_later(
            self.config.completed_grace, self._prune_completed, item_id,
        )

    def _prune_completed(self, item_id: str) -> None:
        self._prune_handles.pop(item_id, None)
        if self._queue.remove_if(item_id, WorkStatus.COMPLETED):
            self._log.debug(f"Pruned completed item {item_id}", item_id=item_id)


__all__ = [
    "Orchestrator",
    "EngineFactory",
    "SOURCE_MISSING_REASON",
]
