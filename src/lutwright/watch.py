"""Watch mode sources for LUTWright.

A file event source yields paths of newly arrived images as an async
iterator. ``DirectoryWatcher`` bridges a watchdog ``Observer`` thread into
the event loop; ``QueueFileSource`` is fed by hand, for hosts that learn
about new files some other way and for tests.

Example:
    >>> watcher = DirectoryWatcher("./incoming")
    >>> task = asyncio.create_task(orchestrator.watch(watcher))
    >>> ...
    >>> watcher.stop()  # ends the iteration; in-flight items keep running
"""

import asyncio
import logging
import threading
from pathlib import Path
from typing import AsyncIterator, Iterable, List, Optional, Protocol, Union

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .core.config import DEFAULT_IMAGE_PATTERNS
from .utils.files import is_image_file

logger = logging.getLogger(__name__)


class FileEventSource(Protocol):
    """Cancellable async stream of file arrival notifications."""

    def start(self) -> None:
        ...

    def stop(self) -> None:
        ...

    def __aiter__(self) -> AsyncIterator[Path]:
        ...


class _AsyncPathQueue:
    """Loop-bound queue of paths, fed and closed from any thread.

    Items put before the consuming loop binds are held in a backlog.
    """

    _CLOSED = object()

    def __init__(self) -> None:
        self._queue: Optional[asyncio.Queue] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._backlog: List[object] = []
        self._closed = False
        self._lock = threading.Lock()

    @property
    def bound(self) -> bool:
        return self._loop is not None

    def bind(self) -> None:
        """Attach to the running loop. Must be called from that loop."""
        with self._lock:
            if self._loop is not None:
                return
            self._loop = asyncio.get_running_loop()
            self._queue = asyncio.Queue()
            for item in self._backlog:
                self._queue.put_nowait(item)
            self._backlog.clear()
            if self._closed:
                self._queue.put_nowait(self._CLOSED)

    def put_threadsafe(self, item: object) -> None:
        with self._lock:
            if self._loop is None:
                self._backlog.append(item)
                return
            loop = self._loop
        if loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(self._queue.put_nowait, item)
        except RuntimeError:
            # Loop closed between the check and the call
            pass

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            bound = self._loop is not None
        if bound:
            self.put_threadsafe(self._CLOSED)

    async def iterate(self) -> AsyncIterator[Path]:
        self.bind()
        while True:
            item = await self._queue.get()
            if item is self._CLOSED:
                return
            yield item


class _ImageEventHandler(FileSystemEventHandler):
    """Forward created and moved-in image files to the watcher."""

    def __init__(self, watcher: "DirectoryWatcher") -> None:
        super().__init__()
        self._watcher = watcher

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._watcher._handle_new_file(Path(event.src_path))

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._watcher._handle_new_file(Path(event.dest_path))


class DirectoryWatcher:
    """Watch one directory (non-recursively) for new image files.

    Paths are delivered once per filesystem event; the same name written
    twice is reported twice.
    """

    def __init__(
        self,
        directory: Union[str, Path],
        patterns: Optional[Iterable[str]] = None,
    ) -> None:
        self.directory = Path(directory)
        self.patterns: List[str] = list(patterns or DEFAULT_IMAGE_PATTERNS)
        self._paths = _AsyncPathQueue()
        self._observer: Optional[Observer] = None

    @property
    def running(self) -> bool:
        return self._observer is not None and self._observer.is_alive()

    def _handle_new_file(self, path: Path) -> None:
        if not is_image_file(path, self.patterns):
            return
        logger.info(f"New image detected: {path.name}")
        self._paths.put_threadsafe(path)

    def start(self) -> None:
        """Start the observer. Must be called from the consuming event loop."""
        if self._observer is not None:
            logger.warning("Directory watcher already running")
            return
        self._paths.bind()
        self._observer = Observer()
        self._observer.schedule(_ImageEventHandler(self), str(self.directory), recursive=False)
        self._observer.start()
        logger.info(f"Watching {self.directory} for {', '.join(self.patterns)}")

    def stop(self) -> None:
        """Stop the observer and end the iteration."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            logger.info("Directory watcher stopped")
        self._paths.close()

    def __aiter__(self) -> AsyncIterator[Path]:
        return self._paths.iterate()


class QueueFileSource:
    """File event source fed through ``push``.

    Paths pushed before the consumer starts are delivered once it does.
    """

    def __init__(self) -> None:
        self._paths = _AsyncPathQueue()

    def start(self) -> None:
        self._paths.bind()

    def push(self, path: Union[str, Path]) -> None:
        """Report a new file. Safe to call from any thread."""
        self._paths.put_threadsafe(Path(path))

    def stop(self) -> None:
        self._paths.close()

    def __aiter__(self) -> AsyncIterator[Path]:
        return self._paths.iterate()


__all__ = [
    "FileEventSource",
    "DirectoryWatcher",
    "QueueFileSource",
]
