"""
ConfigStore — persistent access-control configuration.

Loads once at startup and saves the full document on every change. Saves
are atomic (temp file in the same directory + rename), so ``load()`` never
sees a half-written file. A file that fails to parse or validate is moved
aside to ``<path>.corrupt.<unixMillis>`` and ``load()`` returns ``None``;
the caller then falls back to secure defaults.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import time
from datetime import UTC, datetime
from typing import Any

from sysmcp.core.constants import CURRENT_SCHEMA_VERSION, SECURE_FILE_MODE
from sysmcp.core.fileio import atomic_write_text
from sysmcp.core.paths import validate_storage_path
from sysmcp.core.store.schema import ConfigDocument, validate_config

logger = logging.getLogger(__name__)


class ConfigStore:
    """
    JSON config file with atomic writes and corruption quarantine.

    Single-process, single-writer. Concurrent ``save()`` calls within the
    process are safe (each is individually atomic), but their order is only
    guaranteed when the caller serializes them.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = validate_storage_path(path, "config path")

    def exists(self) -> bool:
        return self.path.exists()

    # ------------------------------------------------------------------
    # Load
    # ------------------------------------------------------------------

    async def load(self) -> ConfigDocument | None:
        """
        Load and validate the persisted config.

        Returns ``None`` when the file is missing, or when it is corrupt (in
        which case it is quarantined first). Never raises for file content.
        """
        if not self.exists():
            return None
        try:
            text = await asyncio.to_thread(self.path.read_text, encoding="utf-8")
            data = json.loads(text)
            config = validate_config(data, source=str(self.path))
        except (OSError, ValueError, RecursionError) as exc:
            # json.JSONDecodeError and ConfigValidationError are ValueErrors;
            # RecursionError comes from pathologically nested JSON
            await self._quarantine(exc)
            return None
        logger.info("Loaded persisted configuration: %s (%d services)", self.path, len(config.services))
        return config

    async def _quarantine(self, reason: Exception) -> None:
        corrupt_path = self.path.with_name(f"{self.path.name}.corrupt.{int(time.time() * 1000)}")
        try:
            await asyncio.to_thread(os.replace, self.path, corrupt_path)
        except OSError as exc:
            logger.error("Config %s is corrupt and could not be moved aside: %s", self.path, exc)
            return
        logger.warning(
            "Config %s is corrupt (%s); moved to %s, falling back to defaults",
            self.path,
            reason,
            corrupt_path,
        )

    # ------------------------------------------------------------------
    # Save
    # ------------------------------------------------------------------

    async def save(self, config: ConfigDocument | dict[str, Any]) -> ConfigDocument:
        """
        Validate and atomically write *config*.

        Stamps ``version`` and ``lastModified``. Returns the document as
        written.

        Raises:
            ConfigValidationError: if *config* fails the schema.
            OSError: if the write or rename fails (temp file removed first).
        """
        validated = validate_config(config, source="config to save")
        stamped = validated.model_copy(
            update={
                "version": CURRENT_SCHEMA_VERSION,
                "last_modified": datetime.now(UTC).isoformat(),
            }
        )
        content = json.dumps(stamped.to_json_dict(), indent=2) + "\n"
        await asyncio.to_thread(atomic_write_text, self.path, content, SECURE_FILE_MODE)
        logger.debug("Config saved: %s", self.path)
        return stamped
