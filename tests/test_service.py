import json
import os
import threading

import pytest

from conftest import write_file
from vault_sync.config import Config
from vault_sync.scheduler import STATE_DAILY_ARMED, STATE_IDLE, STATE_INTERVAL_ARMED, Scheduler
from vault_sync.service import SyncService
from vault_sync.watcher import SourceWatcher


class _NullTimer:
    def __init__(self, delay, function):
        self.delay = delay

    def start(self):
        pass

    def cancel(self):
        pass


def _write_config(path, **values):
    path.write_text(json.dumps(values), encoding="utf-8")


@pytest.fixture
def configured(tmp_path, vault):
    src = write_file(tmp_path / "ext" / "notes.md", "# notes")
    path = tmp_path / "config.json"
    _write_config(
        path,
        vault_path=str(vault),
        tasks=[{"id": "t1", "name": "notes", "source_path": str(src), "target_path": "Inbox/"}],
        schedule_enabled=True,
        schedule_mode="interval",
        interval_minutes=10,
    )
    return Config(path)


def _service(config):
    service = SyncService(config)
    service.scheduler = Scheduler(service.sync_all, timer_factory=_NullTimer)
    return service


def test_sync_all_copies_configured_tasks(configured, vault):
    summary = _service(configured).sync_all()
    assert summary.success_count == 1
    assert (vault / "Inbox" / "notes.md").exists()


def test_sync_task_runs_one(configured, vault):
    assert _service(configured).sync_task("t1").success_count == 1
    assert _service(configured).sync_task("gone") is None


def test_unconfigured_vault_is_logged_not_raised(tmp_path, caplog):
    service = _service(Config(tmp_path / "config.json"))
    assert service.sync_all() is None
    assert "Vault folder is not configured" in caplog.text


def test_overlapping_trigger_is_skipped(configured):
    service = _service(configured)
    service._run_lock.acquire()
    try:
        assert service.sync_all() is None
    finally:
        service._run_lock.release()


def test_start_arms_schedule_and_stop_tears_down(configured):
    service = _service(configured)
    service.start()
    assert service.scheduler.state == STATE_INTERVAL_ARMED
    service.stop()
    assert service.scheduler.state == STATE_IDLE


def test_auto_sync_on_start(tmp_path, vault):
    src = write_file(tmp_path / "ext" / "a.txt", "a")
    path = tmp_path / "config.json"
    _write_config(
        path,
        vault_path=str(vault),
        auto_sync_on_start=True,
        tasks=[{"id": "t1", "source_path": str(src), "target_path": "a.txt"}],
    )
    service = _service(Config(path))
    done = threading.Event()
    real_sync_all = service.sync_all

    def _sync_all():
        try:
            return real_sync_all()
        finally:
            done.set()

    service.sync_all = _sync_all
    service.start()
    assert done.wait(timeout=10)
    assert (vault / "a.txt").exists()
    service.stop()


def test_config_change_rearms_schedule(configured):
    service = _service(configured)
    service.start()
    assert not service.check_config_changed()

    data = json.loads(configured.path.read_text(encoding="utf-8"))
    data.update(schedule_mode="daily", daily_time="06:30")
    configured.path.write_text(json.dumps(data), encoding="utf-8")
    st = configured.path.stat()
    os.utime(configured.path, ns=(st.st_atime_ns, st.st_mtime_ns + 5_000_000_000))

    assert service.check_config_changed()
    assert service.scheduler.state == STATE_DAILY_ARMED
    service.stop()


def test_watch_sources_starts_watcher(configured):
    data = json.loads(configured.path.read_text(encoding="utf-8"))
    data["watch_sources"] = True
    configured.path.write_text(json.dumps(data), encoding="utf-8")
    configured.load()

    service = _service(configured)
    service.start()
    try:
        assert service.watcher is not None and service.watcher.is_running
    finally:
        service.stop()
    assert service.watcher is None


def test_watcher_trigger_during_run_is_requeued(configured):
    service = _service(configured)
    service.watcher = SourceWatcher(configured.snapshot().tasks, service.sync_task, quiet_seconds=60)
    service._run_lock.acquire()
    try:
        assert service.sync_task("t1") is None
    finally:
        service._run_lock.release()
    assert service.watcher.pending_tasks == ["t1"]


def test_scheduled_trigger_during_run_is_not_requeued(configured):
    service = _service(configured)
    service.watcher = SourceWatcher(configured.snapshot().tasks, service.sync_task, quiet_seconds=60)
    service._run_lock.acquire()
    try:
        assert service.sync_all() is None
    finally:
        service._run_lock.release()
    assert service.watcher.pending_tasks == []


def test_requeued_task_runs_once_source_is_quiet(configured, vault):
    service = _service(configured)
    watcher = SourceWatcher(configured.snapshot().tasks, service.sync_task, quiet_seconds=0)
    service.watcher = watcher
    service._run_lock.acquire()
    try:
        service.sync_task("t1")
    finally:
        service._run_lock.release()
    assert not (vault / "Inbox" / "notes.md").exists()

    for task_id in watcher._tracker.collect_quiet():
        service.sync_task(task_id)
    assert (vault / "Inbox" / "notes.md").exists()
