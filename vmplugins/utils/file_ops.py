"""File operations — cancellable copies, symlink swaps and atomic writes."""

from __future__ import annotations

import json
import os
import uuid
from pathlib import Path
from typing import Any, Optional, Protocol

from vmplugins.errors import CopyCancelledError

COPY_BUFFER_SIZE = 32 * 1024
EXECUTABLE_MODE = 0o755


class CancelToken(Protocol):
    """Anything that can report cancellation, e.g. ``threading.Event``."""

    def is_set(self) -> bool: ...


def copy_file(
    src: str | Path,
    dst: str | Path,
    cancel: Optional[CancelToken] = None,
    mode: int = EXECUTABLE_MODE,
) -> int:
    """Stream *src* into *dst* and return the number of bytes written.

    The copy goes to a temporary sibling that is renamed over *dst* only
    once it is complete, so an existing *dst* (file or symlink) survives a
    failed or cancelled copy. *cancel* is polled between buffer reads.
    """
    src, dst = Path(src), Path(dst)
    tmp = dst.with_name(f".{dst.name}.{uuid.uuid4().hex[:8]}.tmp")
    written = 0
    with open(src, "rb") as reader:
        try:
            with open(tmp, "wb") as writer:
                while True:
                    if cancel is not None and cancel.is_set():
                        raise CopyCancelledError(f"Copy of {src} cancelled")
                    chunk = reader.read(COPY_BUFFER_SIZE)
                    if not chunk:
                        break
                    writer.write(chunk)
                    written += len(chunk)
            os.chmod(tmp, mode)
            os.replace(tmp, dst)
        except BaseException:
            remove_path(tmp)
            raise
    return written


def remove_path(path: str | Path) -> bool:
    """Remove a file or symlink (dangling or not). Returns False if absent."""
    path = Path(path)
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    return True


def replace_symlink(target: str | Path, link_path: str | Path) -> None:
    """Point *link_path* at *target*, replacing whatever is there.

    The new link is created under a temporary name and renamed over the old
    one, so readers never observe a missing path.
    """
    link_path = Path(link_path)
    tmp = link_path.with_name(f".{link_path.name}.{uuid.uuid4().hex[:8]}.tmp")
    os.symlink(str(target), tmp)
    try:
        os.replace(tmp, link_path)
    except OSError:
        remove_path(tmp)
        raise


def write_json_atomic(path: str | Path, data: Any) -> None:
    """Serialize *data* to *path* via a temporary file and rename."""
    path = Path(path)
    tmp = path.with_name(f".{path.name}.{uuid.uuid4().hex[:8]}.tmp")
    try:
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
            f.write("\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except BaseException:
        remove_path(tmp)
        raise


def is_executable(path: str | Path) -> bool:
    return os.access(path, os.X_OK)
