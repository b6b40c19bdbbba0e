"""Durable file primitives shared by the segment log and the archive store."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Optional

from ..errors import StorageIOError


def _fsync_directory(directory: Path) -> None:
    """Flush a directory entry so a rename or new file survives a crash."""
    if os.name != "posix":
        return
    fd = os.open(str(directory), os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def ensure_directory(directory: Path) -> None:
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise StorageIOError(f"Cannot create directory {directory}: {e}", directory) from e


def atomic_write_text(path: Path, text: str) -> None:
    """Replace ``path`` with ``text`` so readers see either the old or the new content.

    Writes a temp file in the same directory, fsyncs it and renames it over the
    target.

    Raises:
        StorageIOError: if any step fails. The original file is left intact.
    """
    ensure_directory(path.parent)
    tmp_name = None
    try:
        fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
        tmp_name = None
        _fsync_directory(path.parent)
    except OSError as e:
        raise StorageIOError(f"Failed to write {path}: {e}", path) from e
    finally:
        if tmp_name is not None and os.path.exists(tmp_name):
            os.unlink(tmp_name)


def append_line(path: Path, line: str) -> None:
    """Append one line to ``path`` and flush it to disk before returning."""
    ensure_directory(path.parent)
    is_new = not path.exists()
    try:
        with open(path, "a", encoding="utf-8", newline="\n") as f:
            f.write(line.rstrip("\n") + "\n")
            f.flush()
            os.fsync(f.fileno())
        if is_new:
            _fsync_directory(path.parent)
    except OSError as e:
        raise StorageIOError(f"Failed to append to {path}: {e}", path) from e


def read_text(path: Path) -> Optional[str]:
    """Read a UTF-8 file, returning None when it does not exist."""
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError) as e:
        raise StorageIOError(f"Failed to read {path}: {e}", path) from e
