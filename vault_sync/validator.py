"""
Task path validation for Vault Sync.

Checks a task's source and target before anything is written: the
source must exist, the target must be a vault-relative path that stays
inside the vault, and file/folder types must be compatible.  Also
decides whether a single-file source is copied *into* a folder or *as*
the named file.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from vault_sync.config import SyncTask

REASON_SOURCE_EMPTY = "source path is empty"
REASON_TARGET_EMPTY = "target path is empty"
REASON_SOURCE_MISSING = "source path does not exist"
REASON_TARGET_ABSOLUTE = "target path must be relative to the vault"
REASON_TARGET_OUTSIDE = "target path must stay inside the vault"
REASON_DIR_ONTO_FILE = "cannot copy a directory onto an existing file"


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating one task against a vault root."""

    ok: bool
    source: str = ""
    target: str = ""
    reason: str = ""

    @classmethod
    def success(cls, source: str, target: str) -> ValidationResult:
        return cls(ok=True, source=source, target=target)

    @classmethod
    def failure(cls, reason: str) -> ValidationResult:
        return cls(ok=False, reason=reason)


def _escapes_root(rel: str) -> bool:
    return rel == os.pardir or rel.startswith(os.pardir + os.sep)


def _ends_with_separator(path: str) -> bool:
    return path.endswith("/") or path.endswith(os.sep)


def validate_task(task: SyncTask, vault_root: str) -> ValidationResult:
    """
    Validate *task* and resolve its concrete destination under *vault_root*.

    Rules are checked in order and the first failure wins.  On success
    ``source`` is the normalised source path and ``target`` the final
    destination path (a file path for file sources, a folder for
    folder sources).
    """
    if not task.source_path.strip():
        return ValidationResult.failure(REASON_SOURCE_EMPTY)
    if not task.target_path.strip():
        return ValidationResult.failure(REASON_TARGET_EMPTY)

    source = os.path.normpath(task.source_path)
    if not os.path.exists(source):
        return ValidationResult.failure(REASON_SOURCE_MISSING)

    if os.path.isabs(task.target_path):
        return ValidationResult.failure(REASON_TARGET_ABSOLUTE)

    root = os.path.abspath(vault_root)
    target_abs = os.path.normpath(os.path.join(root, task.target_path))
    if _escapes_root(os.path.relpath(target_abs, root)):
        return ValidationResult.failure(REASON_TARGET_OUTSIDE)

    final_target = target_abs
    if os.path.isfile(source):
        if _ends_with_separator(task.target_path) or os.path.isdir(target_abs):
            final_target = os.path.join(target_abs, os.path.basename(source))
    elif os.path.isdir(source):
        if os.path.isfile(target_abs):
            return ValidationResult.failure(REASON_DIR_ONTO_FILE)

    return ValidationResult.success(source, final_target)
