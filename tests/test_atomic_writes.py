"""
Tests for atomic file writing with fsync, which keeps the bundle, the account
key and challenge artifacts from ever being observed half-written.
"""
from __future__ import annotations

import concurrent.futures
import os
import stat

import pytest

from acme_client.http_challenge import remove_challenge_file, write_challenge_file
from storage import atomic
from storage.atomic import atomic_write_bytes, atomic_write_text
from storage.bundle import bundle_path, write_bundle

from conftest import KEY_AUTHORIZATION


class TestAtomicWrite:

    def test_creates_file_and_parent_dirs(self, tmp_path):
        path = tmp_path / "subdir" / "nested" / "test.txt"
        atomic_write_text(path, "content")
        assert path.read_text() == "content"

    def test_overwrites_existing(self, tmp_path):
        path = tmp_path / "test.bin"
        path.write_bytes(b"old content")
        atomic_write_bytes(path, b"new content")
        assert path.read_bytes() == b"new content"

    def test_no_temp_file_left(self, tmp_path):
        path = tmp_path / "test.bin"
        atomic_write_bytes(path, b"content")
        assert [p.name for p in tmp_path.iterdir()] == ["test.bin"]

    def test_failed_replace_keeps_previous_file(self, tmp_path, monkeypatch):
        """A crash between write and rename must leave the old bundle readable."""
        path = tmp_path / "renew.example.com.pfx"
        path.write_bytes(b"previous bundle")

        def failing_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr(atomic.os, "replace", failing_replace)
        with pytest.raises(OSError, match="disk full"):
            atomic_write_bytes(path, b"new bundle")

        assert path.read_bytes() == b"previous bundle"
        assert [p.name for p in tmp_path.iterdir()] == [path.name]

    def test_concurrent_writes_to_different_files(self, tmp_path):
        def write_file(i):
            path = tmp_path / f"concurrent{i}.txt"
            atomic_write_text(path, f"content {i}")
            return path

        with concurrent.futures.ThreadPoolExecutor(max_workers=4) as executor:
            paths = list(executor.map(write_file, range(10)))

        for i, path in enumerate(paths):
            assert path.read_text() == f"content {i}"
        assert list(tmp_path.glob(".*.tmp")) == []


class TestArtifacts:
    """File modes of the artifacts written through the atomic helpers."""

    def test_bundle_is_private(self, tmp_path):
        path = write_bundle(bundle_path(str(tmp_path), "renew.example.com"), b"pfx")
        assert path.name == "renew.example.com.pfx"
        assert stat.S_IMODE(os.stat(path).st_mode) == 0o600

    def test_challenge_file_is_world_readable(self, tmp_path):
        path = write_challenge_file(str(tmp_path), KEY_AUTHORIZATION)
        assert path == tmp_path / "abc123"
        assert path.read_text() == KEY_AUTHORIZATION
        assert stat.S_IMODE(os.stat(path).st_mode) == 0o644

    def test_remove_challenge_file_is_idempotent(self, tmp_path):
        write_challenge_file(str(tmp_path), KEY_AUTHORIZATION)
        remove_challenge_file(str(tmp_path), KEY_AUTHORIZATION)
        remove_challenge_file(str(tmp_path), KEY_AUTHORIZATION)
        assert list(tmp_path.iterdir()) == []
