"""
Copy engine for Vault Sync.

Copies a task's source (a single file or a whole folder tree) into the
vault.  Every entry is first checked against the exclusion rules (an
excluded folder prunes its whole subtree), then files are checked for
changes so unchanged files are left alone.  Copied files keep their
source modification time, which is what makes the next mtime
comparison see them as unchanged.
"""

from __future__ import annotations

import logging
import os
import shutil
import time
from collections.abc import Sequence
from dataclasses import dataclass, field

from vault_sync.compare import needs_copy
from vault_sync.config import COMPARE_MTIME, DEFAULT_EXCLUDE_PATTERNS, SyncTask
from vault_sync.exclusion import is_excluded, relative_posix
from vault_sync.validator import validate_task

logger = logging.getLogger(__name__)

REASON_SYNC_FAILED = "sync failed"
REASON_TARGET_IN_SOURCE = "target path must not be inside the source"


def _overlaps(source: str, target: str) -> bool:
    """True when *target* is *source* itself or lies inside it."""
    src = os.path.realpath(source)
    dst = os.path.realpath(target)
    if src == dst:
        return True
    if not os.path.isdir(src):
        return False
    try:
        return os.path.commonpath([src, dst]) == src
    except ValueError:
        # different drives
        return False


@dataclass
class SyncOutcome:
    """Result of synchronising one task."""

    ok: bool
    reason: str = ""
    source: str = ""
    target: str = ""
    copied: int = 0
    unchanged: int = 0
    excluded: int = 0
    copied_files: list[str] = field(default_factory=list)
    started: float = 0.0
    finished: float = 0.0

    @property
    def duration(self) -> float:
        if self.finished and self.started:
            return self.finished - self.started
        return 0.0

    @classmethod
    def failure(cls, reason: str) -> SyncOutcome:
        return cls(ok=False, reason=reason)


class SyncEngine:
    """
    Synchronises one task at a time into a vault folder.

    Parameters
    ----------
    exclude_patterns : sequence of str
        Glob patterns matched against source-relative POSIX paths.
    compare_mode : str
        ``mtime`` (size + modification time) or ``hash`` (SHA-256).
    """

    def __init__(
        self,
        exclude_patterns: Sequence[str] = tuple(DEFAULT_EXCLUDE_PATTERNS),
        compare_mode: str = COMPARE_MTIME,
    ):
        self.exclude_patterns = tuple(exclude_patterns)
        self.compare_mode = compare_mode

    def sync(self, task: SyncTask, vault_root: str) -> SyncOutcome:
        """Validate *task* and copy its source into *vault_root*."""
        validation = validate_task(task, vault_root)
        if not validation.ok:
            logger.info("Task %s rejected: %s", task.label, validation.reason)
            return SyncOutcome.failure(validation.reason)
        if _overlaps(validation.source, validation.target):
            logger.info("Task %s rejected: %s", task.label, REASON_TARGET_IN_SOURCE)
            return SyncOutcome.failure(REASON_TARGET_IN_SOURCE)

        out = SyncOutcome(
            ok=False,
            source=validation.source,
            target=validation.target,
            started=time.time(),
        )
        try:
            os.makedirs(os.path.dirname(validation.target), exist_ok=True)
            if os.path.isdir(validation.source):
                self._copy_tree(validation.source, validation.target, validation.source, out)
            else:
                self._copy_file(validation.source, validation.target, "", out)
            out.ok = True
        except OSError:
            # shutil.Error is an OSError subclass
            logger.exception(
                "Sync failed for task %s (%s -> %s)",
                task.label, validation.source, validation.target,
            )
            out.reason = REASON_SYNC_FAILED
        out.finished = time.time()

        if out.ok:
            logger.info(
                "Task %s synced in %.1fs: %d copied, %d unchanged, %d excluded",
                task.label, out.duration, out.copied, out.unchanged, out.excluded,
            )
        return out

    # ---- tree walk ----

    def _copy_tree(self, src_dir: str, dst_dir: str, root: str, out: SyncOutcome) -> None:
        os.makedirs(dst_dir, exist_ok=True)
        with os.scandir(src_dir) as it:
            entries = sorted(it, key=lambda e: e.name)

        for entry in entries:
            rel = relative_posix(root, entry.path)
            if is_excluded(rel, self.exclude_patterns):
                logger.debug("Excluded %s", rel)
                out.excluded += 1
                continue

            dst = os.path.join(dst_dir, entry.name)
            if entry.is_dir(follow_symlinks=False):
                self._copy_tree(entry.path, dst, root, out)
            elif entry.is_symlink() and entry.is_dir():
                logger.warning("Not following symlinked folder %s", entry.path)
            else:
                self._copy_file(entry.path, dst, rel, out)

    def _copy_file(self, src: str, dst: str, rel: str, out: SyncOutcome) -> None:
        if not needs_copy(src, dst, self.compare_mode):
            out.unchanged += 1
            return
        logger.debug("Copying %s -> %s", src, dst)
        shutil.copy2(src, dst)
        out.copied += 1
        out.copied_files.append(rel or os.path.basename(dst))
