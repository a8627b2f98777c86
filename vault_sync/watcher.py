"""Source change watcher for Vault Sync.

Uses the watchdog library to monitor each enabled task's source and
runs the task once its source has been quiet for a while, so a burst
of writes produces a single sync.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from collections.abc import Callable, Iterable
from typing import Any

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from vault_sync.config import SyncTask
from vault_sync.exclusion import is_excluded, relative_posix

logger = logging.getLogger(__name__)


class _QuietTracker:
    """Tracks task ids until no change has been seen for a given duration."""

    def __init__(
        self,
        quiet_seconds: float,
        on_quiet: Callable[[str], None],
        poll_seconds: float = 1.0,
    ):
        self._quiet_seconds = quiet_seconds
        self._on_quiet = on_quiet
        self._poll_seconds = poll_seconds
        # task_id -> time of the latest change
        self._pending: dict[str, float] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._poll, daemon=True, name="QuietTracker"
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()

    def touch(self, task_id: str, now: float | None = None) -> None:
        """Record a change for *task_id*."""
        with self._lock:
            self._pending[task_id] = time.monotonic() if now is None else now

    @property
    def pending(self) -> list[str]:
        with self._lock:
            return list(self._pending)

    def collect_quiet(self, now: float | None = None) -> list[str]:
        """Remove and return the task ids that have been quiet long enough."""
        now = time.monotonic() if now is None else now
        with self._lock:
            ready = [
                task_id
                for task_id, last in self._pending.items()
                if now - last >= self._quiet_seconds
            ]
            for task_id in ready:
                del self._pending[task_id]
        return ready

    def _poll(self) -> None:
        while not self._stop.is_set():
            for task_id in self.collect_quiet():
                logger.info("Source quiet, syncing task %s", task_id)
                try:
                    self._on_quiet(task_id)
                except Exception:
                    logger.exception("Error in on_quiet callback for %s", task_id)
            self._stop.wait(timeout=self._poll_seconds)


class TaskEventHandler(FileSystemEventHandler):
    """Watchdog handler that maps events under one task's source to that task."""

    def __init__(
        self,
        task: SyncTask,
        tracker: _QuietTracker,
        exclude_patterns: Iterable[str] = (),
    ):
        super().__init__()
        self._task = task
        self._tracker = tracker
        self._exclude_patterns = tuple(exclude_patterns)
        self._source = os.path.normpath(task.source_path)
        self._single_file = os.path.isfile(self._source)

    def is_relevant(self, path: str) -> bool:
        path = os.path.normpath(path)
        if self._single_file:
            return path == self._source
        try:
            rel = relative_posix(self._source, path)
        except ValueError:
            return False
        if rel.startswith("../") or rel == "..":
            return False
        # A change inside an excluded folder has an excluded ancestor
        parts = rel.split("/") if rel else []
        for i in range(1, len(parts) + 1):
            if is_excluded("/".join(parts[:i]), self._exclude_patterns):
                return False
        return True

    def on_any_event(self, event: FileSystemEvent) -> None:
        """Feed created/modified/moved/deleted events into the tracker."""
        if event.event_type in ("opened", "closed_no_write"):
            return
        paths = [event.src_path]
        dest = getattr(event, "dest_path", "")
        if dest:
            paths.append(dest)
        if any(self.is_relevant(os.fsdecode(p)) for p in paths):
            logger.debug("Change in %s: %s", self._task.label, event.src_path)
            self._tracker.touch(self._task.id)


class SourceWatcher:
    """High-level watcher that combines watchdog + quiet-period tracking.

    Usage:
        watcher = SourceWatcher(tasks, on_task_changed, quiet_seconds=5)
        watcher.start()
        ...
        watcher.stop()
    """

    def __init__(
        self,
        tasks: Iterable[SyncTask],
        on_task_changed: Callable[[str], None],
        quiet_seconds: float = 5,
        exclude_patterns: Iterable[str] = (),
    ):
        self._tasks = [t for t in tasks if t.enabled and t.source_path.strip()]
        self._exclude_patterns = tuple(exclude_patterns)
        self._tracker = _QuietTracker(quiet_seconds, on_task_changed)
        self._observer: Any | None = None

    # ---- lifecycle ----

    def start(self) -> None:
        """Start watching every enabled task source that exists."""
        observer = Observer()
        watched = 0
        for task in self._tasks:
            source = os.path.normpath(task.source_path)
            if not os.path.exists(source):
                logger.warning("Not watching %s: source does not exist", task.label)
                continue
            handler = TaskEventHandler(task, self._tracker, self._exclude_patterns)
            if os.path.isdir(source):
                observer.schedule(handler, source, recursive=True)
            else:
                observer.schedule(handler, os.path.dirname(source), recursive=False)
            watched += 1

        observer.start()
        self._observer = observer
        self._tracker.start()
        logger.info("Watching %d task source(s) for changes.", watched)

    def stop(self) -> None:
        """Stop watching and release resources."""
        if self._observer:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None
        self._tracker.stop()
        logger.info("Watcher stopped.")

    @property
    def is_running(self) -> bool:
        """Return whether the watcher is currently active."""
        return self._observer is not None and self._observer.is_alive()

    @property
    def pending_tasks(self) -> list[str]:
        """Return ids of tasks waiting for their source to go quiet."""
        return self._tracker.pending

    def requeue(self, task_id: str) -> None:
        """Track *task_id* again, e.g. after its run had to be skipped."""
        self._tracker.touch(task_id)
