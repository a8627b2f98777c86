"""Glob-based exclusion rules for Vault Sync.

Patterns are matched against the POSIX-style path of an entry relative
to the task's source root:

  *    matches within one path segment
  **   matches across any number of segments
  ?    matches one character

Wildcards also match dotfiles.  A pattern ending in ``/**`` excludes the
folder itself as well as everything below it, so the whole subtree is
pruned.  An entry is excluded when it matches *any* pattern.
"""

from __future__ import annotations

import functools
import glob
import logging
import os
import re
from collections.abc import Iterable

from vault_sync.config import SyncTask

logger = logging.getLogger(__name__)


@functools.lru_cache(maxsize=256)
def _compile(pattern: str) -> re.Pattern[str] | None:
    """Compile *pattern* to a regex, or None (with a warning) if malformed."""
    try:
        regex = glob.translate(pattern, recursive=True, include_hidden=True, seps="/")
        if pattern.endswith("/**"):
            parent = glob.translate(
                pattern[:-3], recursive=True, include_hidden=True, seps="/"
            )
            regex = f"(?:{regex})|(?:{parent})"
        return re.compile(regex)
    except (re.error, ValueError) as exc:
        logger.warning("Ignoring malformed exclude pattern %r: %s", pattern, exc)
        return None


def is_excluded(rel_path: str, patterns: Iterable[str]) -> bool:
    """
    Return True when *rel_path* matches any of *patterns*.

    The root entry (``""``) is never excluded.  Malformed patterns match
    nothing.
    """
    if not rel_path:
        return False
    for pattern in patterns:
        if not isinstance(pattern, str):
            logger.warning("Ignoring malformed exclude pattern %r", pattern)
            continue
        compiled = _compile(pattern)
        if compiled is not None and compiled.match(rel_path):
            return True
    return False


def relative_posix(root: str, path: str) -> str:
    """Return *path* relative to *root* with ``/`` separators (``""`` for the root)."""
    rel = os.path.relpath(path, root)
    if rel == os.curdir:
        return ""
    return rel.replace(os.sep, "/")


def resolve_test_path(value: str, task: SyncTask | None = None) -> str:
    """
    Turn a user-supplied path into the form the exclusion rules see.

    Absolute paths inside *task*'s source are made relative to it (to
    its parent folder when the source is a single file).  Anything else
    is returned as-is, with separators normalised to ``/``.
    """
    value = value.strip()
    if task is None or not task.source_path or not os.path.isabs(value):
        return value.replace(os.sep, "/")

    base = os.path.normpath(task.source_path)
    try:
        if os.path.isfile(base):
            base = os.path.dirname(base)
        elif not os.path.exists(base):
            return value.replace(os.sep, "/")
        rel = os.path.relpath(value, base)
    except (OSError, ValueError):
        return value.replace(os.sep, "/")
    if rel == os.pardir or rel.startswith(os.pardir + os.sep):
        return value.replace(os.sep, "/")
    return relative_posix(base, value)
