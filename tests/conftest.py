"""Shared test fixtures for Vault Sync."""

import os

import pytest

from vault_sync.config import SyncTask


def write_file(path, content="data", mtime=None):
    """Create *path* (and parents) with *content*; optionally pin its mtime."""
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, bytes):
        path.write_bytes(content)
    else:
        path.write_text(content, encoding="utf-8")
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


def make_task(source, target, name="task", enabled=True, task_id=None):
    return SyncTask(
        id=task_id or f"id-{name}",
        name=name,
        source_path=str(source),
        target_path=str(target),
        enabled=enabled,
    )


@pytest.fixture
def vault(tmp_path):
    root = tmp_path / "vault"
    root.mkdir()
    return root


@pytest.fixture
def source_tree(tmp_path):
    """An external project folder with some noise that should be excluded."""
    src = tmp_path / "ext" / "project"
    write_file(src / "README.md", "# readme")
    write_file(src / "src" / "index.js", "console.log(1)")
    write_file(src / "src" / "lib" / "util.js", "export {}")
    write_file(src / ".DS_Store", "junk")
    write_file(src / "src" / ".DS_Store", "junk")
    write_file(src / "node_modules" / "react" / "index.js", "react")
    write_file(src / "node_modules" / "react" / "lib" / "deep" / "x.js", "deep")
    return src
