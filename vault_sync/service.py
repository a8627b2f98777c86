"""
Headless service for Vault Sync.

Runs the scheduler (and, when enabled, the source watcher) in the
foreground until SIGINT/SIGTERM:

    python -m vault_sync run

The config file is polled for changes; an edit reloads the settings,
re-arms the schedule and restarts the watcher.
"""

from __future__ import annotations

import logging
import logging.handlers
import signal
import sys
import threading
from pathlib import Path

from vault_sync import __app_name__, __version__
from vault_sync.config import Config, get_log_path
from vault_sync.runner import RunSummary, run_configured
from vault_sync.scheduler import Scheduler
from vault_sync.watcher import SourceWatcher

logger = logging.getLogger(__name__)

_CONFIG_POLL_SECONDS = 1.0


def setup_logging(config: Config, log_path: Path | None = None) -> None:
    """Configure rotating file log and stderr handler."""
    log_path = log_path or get_log_path()
    level = getattr(logging, config.log_level.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    fmt = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    # Rotating file handler
    fh = logging.handlers.RotatingFileHandler(
        str(log_path),
        maxBytes=config.max_log_size_mb * 1024 * 1024,
        backupCount=config.log_backup_count,
        encoding="utf-8",
    )
    fh.setLevel(level)
    fh.setFormatter(fmt)
    root_logger.addHandler(fh)

    sh = logging.StreamHandler(sys.stderr)
    sh.setLevel(level)
    sh.setFormatter(fmt)
    root_logger.addHandler(sh)


class SyncService:
    """
    Ties together configuration, the scheduler and the source watcher.

    Only one sync run is in flight at a time.  A scheduled trigger that
    arrives while a run is in progress is skipped; a watcher trigger is
    handed back to the watcher and retried.
    """

    def __init__(self, config: Config, scheduler: Scheduler | None = None):
        self.config = config
        self.scheduler = scheduler or Scheduler(self.sync_all)
        self.watcher: SourceWatcher | None = None
        self._run_lock = threading.Lock()
        self._stop = threading.Event()
        self._config_mtime = self._read_config_mtime()

    # ---- triggers ----

    def sync_all(self) -> RunSummary | None:
        """Run every enabled task, unless a run is already in progress."""
        return self._run(None)

    def sync_task(self, task_id: str) -> RunSummary | None:
        """
        Run one task (used by the watcher).

        If another run is in progress the task goes back to the watcher,
        so the change is synced once the source is quiet again.
        """
        return self._run(task_id, on_busy=self._requeue)

    def _requeue(self, task_id: str) -> None:
        watcher = self.watcher
        if watcher is None:
            logger.info("Sync already in progress; trigger skipped.")
            return
        logger.info("Sync already in progress; task %s requeued.", task_id)
        watcher.requeue(task_id)

    def _run(self, task_id: str | None, on_busy=None) -> RunSummary | None:
        if not self._run_lock.acquire(blocking=False):
            if on_busy is not None:
                on_busy(task_id)
            else:
                logger.info("Sync already in progress; trigger skipped.")
            return None
        try:
            summary = run_configured(self.config.snapshot(), task_id)
        except RuntimeError as exc:
            logger.error("Cannot sync: %s", exc)
            return None
        except KeyError:
            logger.warning("Task %s no longer exists; skipped.", task_id)
            return None
        finally:
            self._run_lock.release()
        return summary

    # ---- lifecycle ----

    def start(self) -> None:
        """Arm the schedule, start the watcher and run the on-start sync."""
        logger.info("%s %s starting.", __app_name__, __version__)
        settings = self.config.snapshot()
        self.scheduler.apply(settings)
        self._restart_watcher()
        if settings.auto_sync_on_start:
            threading.Thread(
                target=self.sync_all, daemon=True, name="SyncOnStart"
            ).start()

    def request_stop(self) -> None:
        """Make run_forever() return.  Safe to call from a signal handler."""
        self._stop.set()

    def stop(self) -> None:
        """Tear down the timer and the watcher."""
        self._stop.set()
        self.scheduler.stop()
        if self.watcher:
            self.watcher.stop()
            self.watcher = None
        logger.info("%s stopped.", __app_name__)

    def reload(self) -> None:
        """Reload settings from disk and re-arm everything that depends on them."""
        self.config.load()
        self.scheduler.apply(self.config.snapshot())
        self._restart_watcher()
        logger.info("Settings reloaded.")

    def check_config_changed(self) -> bool:
        """Reload if the config file changed on disk.  Returns True on reload."""
        mtime = self._read_config_mtime()
        if mtime == self._config_mtime:
            return False
        self._config_mtime = mtime
        self.reload()
        return True

    def run_forever(self) -> None:
        """Block until stop() is called, polling the config file."""
        while not self._stop.wait(timeout=_CONFIG_POLL_SECONDS):
            try:
                self.check_config_changed()
            except Exception:
                logger.exception("Failed to reload settings.")

    # ---- internals ----

    def _restart_watcher(self) -> None:
        if self.watcher:
            self.watcher.stop()
            self.watcher = None
        settings = self.config.snapshot()
        if not settings.watch_sources:
            return
        watcher = SourceWatcher(
            settings.tasks,
            on_task_changed=self.sync_task,
            quiet_seconds=settings.watch_quiet_seconds,
            exclude_patterns=settings.exclude_patterns,
        )
        watcher.start()
        self.watcher = watcher

    def _read_config_mtime(self) -> int | None:
        try:
            return self.config.path.stat().st_mtime_ns
        except OSError:
            return None


def run_foreground(config: Config) -> None:
    """Run the service in the foreground until SIGINT/SIGTERM."""
    setup_logging(config)
    service = SyncService(config)

    def _handler(sig, frame):
        service.request_stop()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)

    service.start()
    print(f"{__app_name__} running (press Ctrl-C to stop)…")
    service.run_forever()
    service.stop()
    print(f"{__app_name__} stopped.")
