"""
Task runner for Vault Sync.

Runs configured tasks one after another and aggregates their outcomes
into success/failure counts plus ``"<task>: <reason>"`` messages that a
caller can show or copy to the clipboard.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from vault_sync.config import SyncSettings, SyncTask
from vault_sync.copier import REASON_SYNC_FAILED, SyncEngine, SyncOutcome

logger = logging.getLogger(__name__)


@dataclass
class RunSummary:
    """Aggregated result of one run over a set of tasks."""

    success_count: int = 0
    failure_count: int = 0
    failure_messages: list[str] = field(default_factory=list)
    outcomes: list[tuple[SyncTask, SyncOutcome]] = field(default_factory=list)

    @property
    def tasks_run(self) -> int:
        return self.success_count + self.failure_count

    @property
    def nothing_to_run(self) -> bool:
        """True when there were no enabled tasks (not a failure)."""
        return self.tasks_run == 0

    @property
    def message(self) -> str:
        """One-line human-readable summary."""
        if self.nothing_to_run:
            return "No enabled sync tasks."
        if self.success_count > 0:
            return (
                f"Sync complete: {self.success_count} succeeded, "
                f"{self.failure_count} failed."
            )
        return f"Sync failed: {self.failure_count} failed."

    def failure_report(self) -> str:
        """Failure messages joined one per line."""
        return "\n".join(self.failure_messages)

    def add(self, task: SyncTask, outcome: SyncOutcome) -> None:
        self.outcomes.append((task, outcome))
        if outcome.ok:
            self.success_count += 1
        else:
            self.failure_count += 1
            self.failure_messages.append(f"{task.label}: {outcome.reason}")


class TaskRunner:
    """Runs sync tasks sequentially through a SyncEngine."""

    def __init__(self, engine: SyncEngine | None = None):
        self.engine = engine or SyncEngine()

    @classmethod
    def from_settings(cls, settings: SyncSettings) -> TaskRunner:
        return cls(SyncEngine(settings.exclude_patterns, settings.compare_mode))

    def run_one(self, task: SyncTask, vault_root: str) -> SyncOutcome:
        """Run a single task regardless of its enabled flag."""
        try:
            return self.engine.sync(task, vault_root)
        except Exception:
            logger.exception("Unexpected error syncing task %s", task.label)
            return SyncOutcome.failure(REASON_SYNC_FAILED)

    def run_all(self, tasks: Iterable[SyncTask], vault_root: str) -> RunSummary:
        """Run every enabled task in order; one failure never stops the rest."""
        summary = RunSummary()
        enabled = [t for t in tasks if t.enabled]
        if not enabled:
            logger.info("No enabled sync tasks.")
            return summary

        for task in enabled:
            summary.add(task, self.run_one(task, vault_root))

        logger.info(summary.message)
        if summary.failure_messages:
            logger.warning("Sync failures:\n%s", summary.failure_report())
        return summary


def run_configured(settings: SyncSettings, task_id: str | None = None) -> RunSummary:
    """
    Run the tasks in *settings* against its vault folder.

    With *task_id*, only that task runs (even if disabled).  Raises
    RuntimeError when no vault folder is configured and KeyError for an
    unknown task id.
    """
    if not settings.vault_path:
        raise RuntimeError("Vault folder is not configured.")
    runner = TaskRunner.from_settings(settings)
    if task_id is None:
        return runner.run_all(settings.tasks, settings.vault_path)

    task = settings.get_task(task_id)
    if task is None:
        raise KeyError(task_id)
    summary = RunSummary()
    summary.add(task, runner.run_one(task, settings.vault_path))
    return summary
