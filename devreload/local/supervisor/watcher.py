import os
import time
import asyncio
import logging
import contextlib
from pathlib import Path
from typing import Callable, Optional, Tuple

from watchdog.observers import Observer
from watchdog.events import (
    EVENT_TYPE_CLOSED,
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)

from devreload.local.config import MergedSettings, effective_settings

log = logging.getLogger(__name__)

WRITE_EVENT_TYPES = {EVENT_TYPE_CREATED, EVENT_TYPE_MODIFIED, EVENT_TYPE_MOVED, EVENT_TYPE_CLOSED}


def _normalize(path) -> str:
    return os.path.normcase(os.path.abspath(os.fsdecode(path)))


class ArtifactEventHandler(FileSystemEventHandler):
    """A watchdog event handler that forwards writes and removals of a single file."""

    def __init__(self, watcher: "ArtifactWatcher"):
        super().__init__()
        self.watcher = watcher
        self.target = _normalize(watcher.path)

    def _is_target(self, path) -> bool:
        return bool(path) and _normalize(path) == self.target

    def on_any_event(self, event: FileSystemEvent) -> None:
        """Runs on the observer thread; hands matching events to the loop."""
        if event.is_directory:
            return

        if event.event_type == EVENT_TYPE_DELETED and self._is_target(event.src_path):
            log.debug(f"Watchdog event: deleted {event.src_path}")
            self.watcher.notify_deleted_threadsafe()
            return

        if event.event_type not in WRITE_EVENT_TYPES:
            return

        if event.event_type == EVENT_TYPE_MOVED:
            # Moving the artifact away removes it; moving onto it writes it.
            if self._is_target(event.src_path) and not self._is_target(event.dest_path):
                log.debug(f"Watchdog event: moved {event.src_path} away")
                self.watcher.notify_deleted_threadsafe()
                return
            path = event.dest_path
        else:
            path = event.src_path
        if not self._is_target(path):
            return

        log.debug(f"Watchdog event: {event.event_type} on {path}")
        self.watcher.notify_threadsafe()


class ArtifactWatcher:
    """
    Watches one file and reports `add`/`change` once each write has settled.

    The observer watches the artifact's parent directory. Its events arrive on
    a background thread and are marshalled onto the asyncio loop, where a
    single settle task waits until size and mtime stop changing before calling
    `on_event`. A file already present at subscribe time is not reported.
    """

    def __init__(
        self,
        path: Path,
        on_event: Callable[[str], None],
        config: Optional[MergedSettings] = None,
    ) -> None:
        self.path = Path(path)
        self.on_event = on_event
        self.config = config or effective_settings
        self.closed = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._observer: Optional[Observer] = None
        self._settle_task: Optional[asyncio.Task] = None
        self._pending_kind: Optional[str] = None
        self._last_snapshot: Optional[Tuple[int, int]] = None

    async def start(self) -> None:
        """Subscribes to the artifact's directory and starts the observer thread."""
        self._loop = asyncio.get_running_loop()
        self._last_snapshot = self._snapshot()

        watch_dir = self.path.parent
        if not watch_dir.exists():
            log.info(f"Creating missing watch directory {watch_dir}")
            watch_dir.mkdir(parents=True, exist_ok=True)

        log.info(f"Watching {self.path}")
        observer = Observer()
        observer.schedule(ArtifactEventHandler(self), str(watch_dir), recursive=False)
        observer.start()
        self._observer = observer

    def notify_threadsafe(self) -> None:
        """Schedules a write notification on the loop. Safe from any thread."""
        self._call_soon_threadsafe(self._on_write)

    def notify_deleted_threadsafe(self) -> None:
        """Schedules a removal notification on the loop. Safe from any thread."""
        self._call_soon_threadsafe(self._on_delete)

    def _call_soon_threadsafe(self, callback: Callable[[], None]) -> None:
        if self.closed or self._loop is None:
            return
        try:
            self._loop.call_soon_threadsafe(callback)
        except RuntimeError:
            # The loop closed between the check and the call.
            log.debug("Dropping watch event: event loop is closed.")

    def _on_write(self) -> None:
        if self.closed:
            return
        if self._pending_kind is None:
            self._pending_kind = "add" if self._last_snapshot is None else "change"
        if self._settle_task is None:
            self._settle_task = self._loop.create_task(self._await_write_finish())

    def _on_delete(self) -> None:
        """The next settled write of the artifact is reported as `add`."""
        if self.closed:
            return
        self._last_snapshot = None
        if self._pending_kind is not None:
            self._pending_kind = "add"

    def _snapshot(self) -> Optional[Tuple[int, int]]:
        try:
            stat = self.path.stat()
        except FileNotFoundError:
            return None
        return stat.st_size, stat.st_mtime_ns

    async def _await_write_finish(self) -> None:
        """Polls the file until it has held still for the stability threshold."""
        threshold = self.config.WRITE_STABILITY_THRESHOLD_SECONDS
        interval = self.config.WRITE_POLL_INTERVAL_SECONDS
        last = None
        stable_since = time.monotonic()
        try:
            while True:
                snapshot = self._snapshot()
                if snapshot is None:
                    log.debug(f"{self.path} disappeared before its write settled.")
                    self._pending_kind = None
                    self._last_snapshot = None
                    return

                now = time.monotonic()
                if snapshot != last:
                    last, stable_since = snapshot, now
                elif now - stable_since >= threshold:
                    break
                await asyncio.sleep(interval)
        finally:
            self._settle_task = None

        kind, self._pending_kind = self._pending_kind, None
        if snapshot == self._last_snapshot:
            # Reads (e.g. by the installer) touch atime and surface as modify events.
            log.debug(f"Ignoring metadata-only change to {self.path}")
            return
        self._last_snapshot = snapshot
        log.debug(f"Artifact {kind}: {self.path}")
        self.on_event(kind)

    async def close(self) -> None:
        """Stops the observer and drops any pending notification. Idempotent."""
        if self.closed:
            return
        self.closed = True

        settle_task = self._settle_task
        if settle_task is not None:
            settle_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await settle_task

        if self._observer is not None:
            self._observer.stop()
            await asyncio.get_running_loop().run_in_executor(None, self._observer.join)
            self._observer = None
        log.info("Watcher closed.")
