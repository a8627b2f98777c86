import hashlib
import logging
import os

import pytest

from conftest import write_file
from vault_sync import compare
from vault_sync.compare import file_digest, needs_copy, same_mtime_and_size

T0 = 1_700_000_000


@pytest.fixture
def pair(tmp_path):
    src = write_file(tmp_path / "src" / "a.txt", "same bytes", mtime=T0)
    dst = write_file(tmp_path / "dst" / "a.txt", "same bytes", mtime=T0)
    return src, dst


def test_missing_destination_needs_copy(tmp_path):
    src = write_file(tmp_path / "a.txt", "x")
    assert needs_copy(src, tmp_path / "missing.txt", "mtime")
    assert needs_copy(src, tmp_path / "missing.txt", "hash")


def test_mtime_unchanged(pair):
    src, dst = pair
    assert not needs_copy(src, dst, "mtime")


def test_mtime_size_differs(pair):
    src, dst = pair
    write_file(dst, "other length!", mtime=T0)
    assert needs_copy(src, dst, "mtime")


def test_mtime_equal_size_different_timestamp_needs_copy(pair):
    src, dst = pair
    os.utime(dst, (T0 + 5, T0 + 5))
    assert needs_copy(src, dst, "mtime")


def test_mtime_sub_millisecond_difference_is_ignored(pair):
    src, dst = pair
    base_ns = T0 * 1_000_000_000 + 123_000_000
    os.utime(src, ns=(base_ns + 100, base_ns + 100))
    os.utime(dst, ns=(base_ns + 900, base_ns + 900))
    assert same_mtime_and_size(os.stat(src), os.stat(dst))


def test_hash_ignores_timestamps(pair):
    src, dst = pair
    os.utime(dst, (T0 + 3600, T0 + 3600))
    assert not needs_copy(src, dst, "hash")
    assert needs_copy(src, dst, "mtime")


def test_hash_detects_same_size_content_change(pair):
    src, dst = pair
    write_file(dst, "SAME BYTES", mtime=T0)
    assert needs_copy(src, dst, "hash")
    # size and mtime agree, so mtime mode is fooled
    assert not needs_copy(src, dst, "mtime")


def test_destination_directory_needs_copy(tmp_path):
    src = write_file(tmp_path / "a.txt", "x")
    (tmp_path / "dst").mkdir()
    assert needs_copy(src, tmp_path / "dst", "mtime")


def test_source_directory_is_never_compared(tmp_path):
    (tmp_path / "s").mkdir()
    (tmp_path / "d").mkdir()
    assert needs_copy(tmp_path / "s", tmp_path / "d", "hash")


def test_file_digest_streams_large_files(tmp_path):
    data = os.urandom(compare._HASH_CHUNK * 3 + 17)
    path = write_file(tmp_path / "big.bin", data)
    assert file_digest(path) == hashlib.sha256(data).hexdigest()


def test_read_error_means_needs_copy(pair, monkeypatch, caplog):
    src, dst = pair

    def _boom(path):
        raise PermissionError("denied")

    monkeypatch.setattr(compare, "file_digest", _boom)
    caplog.set_level(logging.WARNING, logger="vault_sync.compare")
    assert needs_copy(src, dst, "hash")
    assert "Could not compare" in caplog.text
