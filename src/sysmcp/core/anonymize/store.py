"""
Anonymization mapping store.

Keeps the literal -> token mapping on disk so tokens stay stable across
restarts. Writes are atomic (temp file + rename) with ``0600`` permissions.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import UTC, datetime
from pathlib import Path

from sysmcp.core.anonymize.engine import AnonymizationMapping
from sysmcp.core.constants import SECURE_FILE_MODE
from sysmcp.core.fileio import atomic_write_text
from sysmcp.core.paths import validate_storage_path

logger = logging.getLogger(__name__)

MAPPING_DOCUMENT_VERSION = "1.0"


class MappingStore:
    """File-backed store for one :class:`AnonymizationMapping`."""

    def __init__(self, path: str | Path, file_mode: int = SECURE_FILE_MODE) -> None:
        self.path = validate_storage_path(path, "mapping path")
        self.file_mode = file_mode

    async def save(self, mapping: AnonymizationMapping) -> None:
        document = mapping.to_dict()
        document["timestamp"] = datetime.now(UTC).isoformat()
        document["version"] = MAPPING_DOCUMENT_VERSION
        content = json.dumps(document, indent=2)
        await asyncio.to_thread(atomic_write_text, self.path, content, self.file_mode)
        logger.debug("Mapping store saved %d entries to %s", mapping.total(), self.path)

    async def load(self) -> AnonymizationMapping:
        """Load the stored mapping; read and parse errors propagate."""
        text = await asyncio.to_thread(self.path.read_text, encoding="utf-8")
        return AnonymizationMapping.from_dict(json.loads(text))

    async def load_or_empty(self) -> AnonymizationMapping:
        """Load the stored mapping, starting fresh when it is missing or unreadable."""
        if not self.exists():
            return AnonymizationMapping()
        try:
            return await self.load()
        except (OSError, ValueError, RecursionError) as exc:
            logger.warning("Ignoring unreadable anonymization mapping %s: %s", self.path, exc)
            return AnonymizationMapping()

    def exists(self) -> bool:
        return self.path.exists()

    async def delete(self) -> None:
        await asyncio.to_thread(self.path.unlink, missing_ok=True)

    def size(self) -> int:
        try:
            return self.path.stat().st_size
        except OSError:
            return 0
