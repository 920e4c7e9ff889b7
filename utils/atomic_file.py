from __future__ import annotations

import fcntl
import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

logger = logging.getLogger("isithot.files")


def stage_text(path: Path | str, text: str) -> Path:
    """Write *text* to a hidden temp file beside *path* and return the temp path."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
    except BaseException:
        discard_staged(tmp_name)
        raise
    return Path(tmp_name)


def discard_staged(tmp_path: Path | str) -> None:
    try:
        os.unlink(tmp_path)
    except FileNotFoundError:
        pass


def atomic_write_text(path: Path | str, text: str) -> None:
    """Write *text* to a sibling temp file, then rename it over *path*."""
    tmp_path = stage_text(path, text)
    try:
        os.replace(tmp_path, path)
    except BaseException:
        discard_staged(tmp_path)
        raise


@contextmanager
def exclusive_lock(path: Path | str) -> Iterator[None]:
    """Advisory lock on ``<path>.lock``, held for the duration of the block."""
    lock_path = Path(f"{path}.lock")
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    with open(lock_path, "a") as lock_file:
        fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
        logger.debug("Locked %s", lock_path)
        try:
            yield
        finally:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)
