"""Atomic file writes shared by the config store and the mapping store."""

from __future__ import annotations

import logging
import os
import secrets
import time
from pathlib import Path

from sysmcp.core.constants import SECURE_FILE_MODE

logger = logging.getLogger(__name__)


def temp_path_for(path: Path) -> Path:
    """Return a unique sibling temp path (same directory, so rename is atomic)."""
    suffix = f".{os.getpid()}.{time.time_ns()}.{secrets.token_hex(4)}.tmp"
    return path.with_name(path.name + suffix)


def atomic_write_text(path: Path, content: str, mode: int = SECURE_FILE_MODE) -> None:
    """
    Write *content* to *path* via temp file + rename.

    Readers never observe a partial file. On failure the temp file is
    removed and the original exception propagates; *path* is untouched.
    """
    path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
    tmp_path = temp_path_for(path)
    try:
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        try:
            tmp_path.chmod(mode)
        except OSError:
            # Not supported everywhere (e.g. some Windows filesystems)
            pass
        os.replace(tmp_path, path)
    except BaseException:
        try:
            tmp_path.unlink(missing_ok=True)
        except OSError as cleanup_exc:
            logger.warning("Could not remove temp file %s: %s", tmp_path, cleanup_exc)
        raise
