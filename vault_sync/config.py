"""Configuration management for Vault Sync.

Stores and retrieves sync tasks and engine settings from a JSON config
file in the platform-appropriate application data directory.  Stored
values are always merged over the defaults and normalised, so a
partial or stale file still yields a usable configuration.
"""

from __future__ import annotations

import copy
import json
import logging
import math
import threading
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from vault_sync.platform_utils import get_config_dir as _platform_config_dir
from vault_sync.platform_utils import get_log_path as _platform_log_path

logger = logging.getLogger(__name__)

# Comparison modes
COMPARE_MTIME = "mtime"
COMPARE_HASH = "hash"

# Schedule modes
SCHEDULE_INTERVAL = "interval"
SCHEDULE_DAILY = "daily"

DEFAULT_EXCLUDE_PATTERNS = ["**/node_modules/**", "**/.DS_Store"]
DEFAULT_DAILY_TIME = "09:00"
DEFAULT_INTERVAL_MINUTES = 60

DEFAULT_CONFIG: dict[str, Any] = {
    "vault_path": "",  # destination root every target path is resolved against
    "tasks": [],
    "auto_sync_on_start": False,
    "exclude_patterns": list(DEFAULT_EXCLUDE_PATTERNS),
    "compare_mode": COMPARE_MTIME,  # mtime | hash
    # ---- schedule ----
    "schedule_enabled": False,
    "schedule_mode": SCHEDULE_INTERVAL,  # interval | daily
    "interval_minutes": DEFAULT_INTERVAL_MINUTES,
    "daily_time": DEFAULT_DAILY_TIME,  # HH:MM, 24-hour clock
    # ---- change-triggered runs ----
    "watch_sources": False,
    "watch_quiet_seconds": 5,
    # ---- logging ----
    "log_level": "INFO",
    "max_log_size_mb": 10,
    "log_backup_count": 3,
}


class SettingsImportError(ValueError):
    """Raised when imported settings JSON is rejected."""


def get_config_path() -> Path:
    """Return the path to the configuration file."""
    return _platform_config_dir() / "config.json"


def get_log_path() -> Path:
    """Return the path to the log file."""
    return _platform_log_path()


@dataclass(frozen=True)
class SyncTask:
    """One configured source -> destination synchronisation unit."""

    id: str
    name: str = ""
    source_path: str = ""
    target_path: str = ""  # relative to the vault root
    enabled: bool = True

    @property
    def label(self) -> str:
        """Name used in reports; falls back to the id for unnamed tasks."""
        return self.name or self.id

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "source_path": self.source_path,
            "target_path": self.target_path,
            "enabled": self.enabled,
        }


@dataclass(frozen=True)
class SyncSettings:
    """Read-only snapshot of the settings handed to one sync run."""

    vault_path: str = ""
    tasks: tuple[SyncTask, ...] = ()
    exclude_patterns: tuple[str, ...] = field(
        default_factory=lambda: tuple(DEFAULT_EXCLUDE_PATTERNS)
    )
    compare_mode: str = COMPARE_MTIME
    schedule_enabled: bool = False
    schedule_mode: str = SCHEDULE_INTERVAL
    interval_minutes: float = DEFAULT_INTERVAL_MINUTES
    daily_time: str = DEFAULT_DAILY_TIME
    auto_sync_on_start: bool = False
    watch_sources: bool = False
    watch_quiet_seconds: float = 5

    def get_task(self, task_id: str) -> SyncTask | None:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None


# ---- normalisation ------------------------------------------------------


def new_task_id() -> str:
    """Return a fresh random task identifier."""
    return str(uuid.uuid4())


def parse_daily_time(value: str) -> tuple[int, int]:
    """
    Split ``HH:MM`` into clamped ``(hour, minute)``.

    Unparseable components become 0; hours clamp to 0-23 and minutes
    to 0-59, so ``"25:75"`` yields ``(23, 59)`` and ``"abc"`` ``(0, 0)``.
    """
    hour_str, _, minute_str = (value or "").partition(":")

    def _num(text: str) -> int:
        try:
            return int(text.strip())
        except ValueError:
            return 0

    hour = min(23, max(0, _num(hour_str)))
    minute = min(59, max(0, _num(minute_str)))
    return hour, minute


def _finite_number(value: Any, default: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    if not math.isfinite(value):
        return default
    return value


def _normalize_task(raw: Any) -> SyncTask | None:
    if not isinstance(raw, dict):
        return None
    task_id = raw.get("id")
    return SyncTask(
        id=str(task_id) if task_id else new_task_id(),
        name=str(raw.get("name") or ""),
        source_path=str(raw.get("source_path") or ""),
        target_path=str(raw.get("target_path") or ""),
        enabled=bool(raw.get("enabled", True)),
    )


def normalize_settings(raw: dict[str, Any]) -> dict[str, Any]:
    """
    Merge *raw* over the defaults and coerce every field to its legal form.

    Booleans are coerced, enums constrained to their two legal values,
    numbers validated finite, and array fields defaulted to empty lists.
    Returns a new dict; *raw* is not modified.
    """
    data = {**copy.deepcopy(DEFAULT_CONFIG), **raw}

    tasks = data["tasks"] if isinstance(data["tasks"], list) else []
    data["tasks"] = [
        t.to_dict() for t in (_normalize_task(item) for item in tasks) if t is not None
    ]

    patterns = data["exclude_patterns"]
    if not isinstance(patterns, list):
        patterns = []
    data["exclude_patterns"] = [p for p in patterns if isinstance(p, str)]

    data["vault_path"] = data["vault_path"] if isinstance(data["vault_path"], str) else ""
    data["compare_mode"] = (
        COMPARE_HASH if data["compare_mode"] == COMPARE_HASH else COMPARE_MTIME
    )
    data["schedule_mode"] = (
        SCHEDULE_DAILY if data["schedule_mode"] == SCHEDULE_DAILY else SCHEDULE_INTERVAL
    )
    for key in ("auto_sync_on_start", "schedule_enabled", "watch_sources"):
        data[key] = bool(data[key])

    interval = _finite_number(data["interval_minutes"], DEFAULT_INTERVAL_MINUTES)
    data["interval_minutes"] = max(1, interval)

    if isinstance(data["daily_time"], str):
        hour, minute = parse_daily_time(data["daily_time"])
        data["daily_time"] = f"{hour:02d}:{minute:02d}"
    else:
        data["daily_time"] = DEFAULT_DAILY_TIME

    quiet = _finite_number(data["watch_quiet_seconds"], 5)
    data["watch_quiet_seconds"] = max(0, quiet)

    if not isinstance(data["log_level"], str):
        data["log_level"] = "INFO"
    data["max_log_size_mb"] = max(1, int(_finite_number(data["max_log_size_mb"], 10)))
    data["log_backup_count"] = max(0, int(_finite_number(data["log_backup_count"], 3)))
    return data


class Config:
    """Thread-safe configuration manager backed by a JSON file."""

    def __init__(self, path: Path | None = None):
        """Load config from *path*, falling back to the platform default."""
        self._path = path or get_config_path()
        self._lock = threading.RLock()
        self._data: dict[str, Any] = normalize_settings({})
        self.load()

    @property
    def path(self) -> Path:
        return self._path

    # ---- persistence ----

    def load(self) -> None:
        """Load configuration from disk, applying defaults for missing keys."""
        with self._lock:
            if self._path.exists():
                try:
                    with open(self._path, encoding="utf-8") as fh:
                        stored = json.load(fh)
                    if not isinstance(stored, dict):
                        raise ValueError("top-level JSON value is not an object")
                    self._data = normalize_settings(stored)
                    logger.info("Configuration loaded from %s", self._path)
                except (ValueError, OSError) as exc:
                    logger.warning("Could not read config (%s); using defaults.", exc)
                    self._data = normalize_settings({})
            else:
                self._data = normalize_settings({})
                self.save()
                logger.info("Created default configuration at %s", self._path)

    def save(self) -> None:
        """Persist the current configuration to disk."""
        with self._lock:
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                with open(self._path, "w", encoding="utf-8") as fh:
                    json.dump(self._data, fh, indent=2)
                logger.info("Configuration saved.")
            except OSError as exc:
                logger.error("Failed to save configuration: %s", exc)

    def export_json(self) -> str:
        """Return the current settings as pretty-printed JSON."""
        with self._lock:
            return json.dumps(self._data, indent=2)

    def import_json(self, text: str) -> None:
        """
        Replace the current settings with those in *text* and save.

        Raises SettingsImportError (leaving the current settings as they
        were) when *text* is not a JSON object.
        """
        try:
            parsed = json.loads(text)
        except ValueError as exc:
            raise SettingsImportError(f"Invalid settings JSON: {exc}") from exc
        if not isinstance(parsed, dict):
            raise SettingsImportError("Settings JSON must be an object.")
        with self._lock:
            self._data = normalize_settings(parsed)
            self.save()
        logger.info("Imported settings with %d task(s).", len(self._data["tasks"]))

    def snapshot(self) -> SyncSettings:
        """Return an immutable view of the current settings."""
        with self._lock:
            d = self._data
            return SyncSettings(
                vault_path=d["vault_path"],
                tasks=tuple(SyncTask(**t) for t in d["tasks"]),
                exclude_patterns=tuple(d["exclude_patterns"]),
                compare_mode=d["compare_mode"],
                schedule_enabled=d["schedule_enabled"],
                schedule_mode=d["schedule_mode"],
                interval_minutes=d["interval_minutes"],
                daily_time=d["daily_time"],
                auto_sync_on_start=d["auto_sync_on_start"],
                watch_sources=d["watch_sources"],
                watch_quiet_seconds=d["watch_quiet_seconds"],
            )

    # ---- tasks ----

    @property
    def tasks(self) -> list[SyncTask]:
        """Return the configured tasks in order."""
        with self._lock:
            return [SyncTask(**t) for t in self._data["tasks"]]

    def get_task(self, task_id: str) -> SyncTask | None:
        """Return the task with *task_id*, or None."""
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def add_task(
        self, name: str, source_path: str, target_path: str, enabled: bool = True
    ) -> SyncTask:
        """Append a new task with a freshly generated id."""
        task = SyncTask(
            id=new_task_id(),
            name=name,
            source_path=source_path,
            target_path=target_path,
            enabled=enabled,
        )
        with self._lock:
            self._data["tasks"].append(task.to_dict())
        return task

    def remove_task(self, task_id: str) -> bool:
        """Remove the task with *task_id*.  Returns False if it was unknown."""
        with self._lock:
            before = len(self._data["tasks"])
            self._data["tasks"] = [t for t in self._data["tasks"] if t["id"] != task_id]
            return len(self._data["tasks"]) != before

    def set_task_enabled(self, task_id: str, enabled: bool) -> bool:
        """Enable or disable a task.  Returns False if it was unknown."""
        with self._lock:
            for t in self._data["tasks"]:
                if t["id"] == task_id:
                    t["enabled"] = bool(enabled)
                    return True
        return False

    # ---- accessors ----

    @property
    def vault_path(self) -> str:
        """Return the destination root folder."""
        return self._data["vault_path"]

    @vault_path.setter
    def vault_path(self, value: str) -> None:
        """Set the destination root folder."""
        self._data["vault_path"] = value

    @property
    def exclude_patterns(self) -> list[str]:
        """Return glob patterns used to skip source entries."""
        return list(self._data["exclude_patterns"])

    @exclude_patterns.setter
    def exclude_patterns(self, value: list[str]) -> None:
        """Set glob patterns used to skip source entries."""
        self._data["exclude_patterns"] = [p.strip() for p in value if p.strip()]

    @property
    def compare_mode(self) -> str:
        """Return the comparison mode (``mtime`` or ``hash``)."""
        return self._data["compare_mode"]

    @compare_mode.setter
    def compare_mode(self, value: str) -> None:
        """Set the comparison mode; unknown values fall back to mtime."""
        self._data["compare_mode"] = COMPARE_HASH if value == COMPARE_HASH else COMPARE_MTIME

    @property
    def schedule_enabled(self) -> bool:
        return bool(self._data["schedule_enabled"])

    @schedule_enabled.setter
    def schedule_enabled(self, value: bool) -> None:
        self._data["schedule_enabled"] = bool(value)

    @property
    def schedule_mode(self) -> str:
        return self._data["schedule_mode"]

    @schedule_mode.setter
    def schedule_mode(self, value: str) -> None:
        self._data["schedule_mode"] = (
            SCHEDULE_DAILY if value == SCHEDULE_DAILY else SCHEDULE_INTERVAL
        )

    @property
    def interval_minutes(self) -> float:
        """Return the schedule interval in minutes."""
        return self._data["interval_minutes"]

    @interval_minutes.setter
    def interval_minutes(self, value: float) -> None:
        """Set the schedule interval (minimum 1 minute)."""
        self._data["interval_minutes"] = max(1, _finite_number(value, 1))

    @property
    def daily_time(self) -> str:
        """Return the daily fire time as ``HH:MM``."""
        return self._data["daily_time"]

    @daily_time.setter
    def daily_time(self, value: str) -> None:
        """Set the daily fire time, clamping to a valid 24-hour clock value."""
        hour, minute = parse_daily_time(value)
        self._data["daily_time"] = f"{hour:02d}:{minute:02d}"

    @property
    def auto_sync_on_start(self) -> bool:
        return bool(self._data["auto_sync_on_start"])

    @auto_sync_on_start.setter
    def auto_sync_on_start(self, value: bool) -> None:
        self._data["auto_sync_on_start"] = bool(value)

    @property
    def log_level(self) -> str:
        """Return the current logging level name."""
        return self._data.get("log_level", "INFO")

    @property
    def max_log_size_mb(self) -> int:
        """Return the maximum log file size in MB before rotation."""
        return int(self._data["max_log_size_mb"])

    @property
    def log_backup_count(self) -> int:
        """Return the number of rotated log backups to keep."""
        return int(self._data["log_backup_count"])
