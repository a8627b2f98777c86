"""
Change detection for Vault Sync.

Decides whether an existing destination file is already up to date
with its source, either by size + modification time or by SHA-256
content digest.
"""

from __future__ import annotations

import hashlib
import logging
import os
from pathlib import Path

from vault_sync.config import COMPARE_HASH

logger = logging.getLogger(__name__)

_HASH_CHUNK = 256 * 1024  # 256 KiB read chunks for hashing
_NS_PER_MS = 1_000_000


def file_digest(filepath: str | Path) -> str:
    """Return the hex SHA-256 digest of *filepath*, read in chunks."""
    h = hashlib.sha256()
    with open(filepath, "rb") as fh:
        while chunk := fh.read(_HASH_CHUNK):
            h.update(chunk)
    return h.hexdigest()


def same_mtime_and_size(src_stat: os.stat_result, dst_stat: os.stat_result) -> bool:
    """True when sizes match and mtimes agree to the whole millisecond."""
    if src_stat.st_size != dst_stat.st_size:
        return False
    return src_stat.st_mtime_ns // _NS_PER_MS == dst_stat.st_mtime_ns // _NS_PER_MS


def needs_copy(source: str | Path, destination: str | Path, mode: str) -> bool:
    """
    Return True unless *destination* already holds an up-to-date copy of *source*.

    Folders always return True (they are descended, never compared).  A
    missing destination, or a destination that is not a regular file,
    needs a copy.  Any I/O error while comparing is logged and treated
    as "needs copy" so the copy itself reports the real problem.
    """
    try:
        src_stat = os.stat(source)
        if not os.path.isfile(source):
            return True
        try:
            dst_stat = os.stat(destination)
        except FileNotFoundError:
            return True
        if not os.path.isfile(destination):
            return True

        if mode == COMPARE_HASH:
            # Different sizes can never have equal digests
            if src_stat.st_size != dst_stat.st_size:
                return True
            return file_digest(source) != file_digest(destination)
        return not same_mtime_and_size(src_stat, dst_stat)
    except OSError as exc:
        logger.warning("Could not compare %s with %s: %s", source, destination, exc)
        return True
