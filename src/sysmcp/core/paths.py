"""Storage path policy for the config store, audit log and mapping store."""

from __future__ import annotations

import os
from pathlib import Path

from sysmcp.core.constants import ALLOWED_STORAGE_EXTENSIONS
from sysmcp.core.exceptions import StoragePathError


def validate_storage_path(raw_path: str | os.PathLike[str], label: str = "storage path") -> Path:
    """
    Canonicalize a storage path and reject unsafe ones.

    The traversal check runs on the raw input, before resolution, so that
    ``../`` sequences are rejected even when they would resolve somewhere
    harmless.

    Returns:
        The absolute, resolved path.

    Raises:
        StoragePathError: on traversal sequences or a non-JSON extension.
    """
    raw = os.fspath(raw_path)
    if not raw or not raw.strip():
        raise StoragePathError(f"Invalid {label}: path is empty")

    normalized = raw.replace("\\", "/")
    if "../" in normalized or "/.." in normalized:
        raise StoragePathError(f"Invalid {label}: path traversal is not allowed ({raw!r})")

    resolved = Path(raw).expanduser().resolve()
    if resolved.suffix not in ALLOWED_STORAGE_EXTENSIONS:
        allowed = ", ".join(sorted(ALLOWED_STORAGE_EXTENSIONS))
        raise StoragePathError(
            f"Invalid {label}: extension must be one of {allowed} (got {resolved.suffix!r})"
        )
    return resolved
