"""
Atomic file writing with fsync, used for the certificate bundle, the account
key and challenge artifacts.

Pattern:
  1. Write to a temporary file in the same directory
  2. fsync
  3. os.replace onto the target (atomic on POSIX filesystems)

A crash mid-write leaves the previous file intact, so the expiry check never
reads a truncated bundle.
"""
from __future__ import annotations

import os
import tempfile
from pathlib import Path


def atomic_write_bytes(path: Path, content: bytes) -> None:
    """Atomically replace *path* with *content*, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, temp_path = tempfile.mkstemp(
        prefix=f".{path.name}.",
        suffix=".tmp",
        dir=str(path.parent),
    )
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, path)
    except BaseException:
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise


def atomic_write_text(path: Path, content: str, encoding: str = "utf-8") -> None:
    """Text variant of atomic_write_bytes."""
    atomic_write_bytes(path, content.encode(encoding))
