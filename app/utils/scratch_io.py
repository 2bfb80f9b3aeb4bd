"""OGA Convert Service - Scratch file I/O utilities.

Helpers for request-scoped temp files:
1. Full writes with flush + fsync (partial files are removed on failure)
2. Quiet removal of artifacts that may or may not exist
3. Startup sweep of orphan artifacts left by a crashed process
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from pathlib import Path

logger = logging.getLogger(__name__)


def _write_all(fd: int, data: bytes) -> None:
    """Write all bytes to a file descriptor, handling partial writes.

    Loops until all bytes are written, handling short writes and EINTR.

    Args:
        fd: File descriptor to write to.
        data: Bytes to write.

    Raises:
        OSError: If write fails or returns 0 bytes unexpectedly.
    """
    view = memoryview(data)
    total_written = 0
    data_len = len(view)

    while total_written < data_len:
        try:
            written = os.write(fd, view[total_written:])
            if written == 0:
                # os.write() should never return 0 for non-empty data
                raise OSError("os.write() returned 0 bytes unexpectedly")
            total_written += written
        except InterruptedError:
            continue


def write_scratch_file(path: str | Path, data: bytes) -> int:
    """Write bytes to a scratch file.

    The parent directory must already exist. On any write failure the
    partially written file is removed before the error propagates.

    Args:
        path: Destination path.
        data: Bytes to write.

    Returns:
        Number of bytes written.

    Raises:
        OSError: If open, write, or fsync fails.
    """
    path = Path(path)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o644)
    try:
        _write_all(fd, data)
        os.fsync(fd)
    except OSError:
        os.close(fd)
        remove_quietly(path)
        raise
    else:
        os.close(fd)

    return len(data)


def remove_quietly(*paths: str | Path) -> int:
    """Remove files, ignoring ones that do not exist.

    Other removal errors are logged, never raised.

    Args:
        *paths: Files to remove.

    Returns:
        Number of files actually removed.
    """
    removed = 0
    for path in paths:
        path = Path(path)
        try:
            path.unlink()
            removed += 1
            logger.debug("Removed %s", path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Failed to remove %s: %s", path, e)
    return removed


def ensure_directory(directory: str | Path) -> Path:
    """Create a directory (and parents) if it does not exist.

    Raises:
        OSError: If the directory cannot be created, or the path exists
            and is not a directory.
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    return directory


def cleanup_orphan_scratch_files(directory: str | Path, patterns: Iterable[str]) -> int:
    """Clean up orphan scratch files in a directory.

    Called during startup to remove artifacts of requests that never
    reached their cleanup step (process crash, kill -9).

    Args:
        directory: Directory to scan.
        patterns: Glob patterns of files to remove.

    Returns:
        Number of files removed.
    """
    directory = Path(directory)

    if not directory.exists():
        return 0

    removed = 0
    for pattern in patterns:
        for orphan in directory.glob(pattern):
            if orphan.is_file():
                removed += remove_quietly(orphan)

    return removed
