"""
Audit log — append-only, hash-chained JSONL record of config changes.

One JSON object per line. Each line carries ``_previousHash`` (the
``_hash`` of the line before it, or 64 zeros for the first line) and
``_hash = sha256(previousHash + canonical_json(entry))``. Editing, deleting
or reordering lines breaks the chain, which :meth:`AuditLog.verify_integrity`
reports; nothing here ever repairs a damaged log.

Usage::

    audit = AuditLog(path)
    await audit.log(AuditEvent(AuditAction.SERVICE_ENABLE, "eventlog", before, after))
    report = await audit.verify_integrity()

Appends are serialized by a per-log :class:`asyncio.Lock`: reading the tip
hash, rotating and appending happen as one step, so concurrent ``log()``
calls cannot fork the chain. Not safe for multiple processes sharing a file.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import os
from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path
from typing import Any

from sysmcp.core.constants import (
    DEFAULT_AUDIT_MAX_FILE_SIZE,
    DEFAULT_AUDIT_MAX_FILES,
    DEFAULT_AUDIT_SOURCE,
    GENESIS_HASH,
)
from sysmcp.core.paths import validate_storage_path

logger = logging.getLogger(__name__)

HASH_FIELD = "_hash"
PREVIOUS_HASH_FIELD = "_previousHash"

_TAIL_CHUNK = 8192


class AuditAction(StrEnum):
    SERVICE_ENABLE = "service.enable"
    SERVICE_DISABLE = "service.disable"
    PERMISSION_CHANGE = "permission.change"
    PII_TOGGLE = "pii.toggle"
    CONFIG_RESET = "config.reset"


@dataclass(frozen=True)
class AuditEvent:
    """An audit entry before it is timestamped and chained."""

    action: AuditAction
    service_id: str
    previous_value: Any
    new_value: Any
    source: str = DEFAULT_AUDIT_SOURCE

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> AuditEvent:
        return cls(
            action=AuditAction(data["action"]),
            service_id=str(data["serviceId"]),
            previous_value=data.get("previousValue"),
            new_value=data.get("newValue"),
            source=str(data.get("source") or DEFAULT_AUDIT_SOURCE),
        )

    def to_record(self, timestamp: str) -> dict[str, Any]:
        """Business fields in on-disk key order."""
        return {
            "timestamp": timestamp,
            "action": AuditAction(self.action).value,
            "serviceId": self.service_id,
            "previousValue": self.previous_value,
            "newValue": self.new_value,
            "source": self.source,
        }


@dataclass(frozen=True)
class IntegrityReport:
    valid: bool
    entries: int
    error: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"valid": self.valid, "entries": self.entries}
        if self.error is not None:
            data["error"] = self.error
        return data


def canonical_json(record: Mapping[str, Any]) -> str:
    """Stable serialization used for hashing (sorted keys, compact separators)."""
    return json.dumps(record, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def compute_entry_hash(previous_hash: str, entry_json: str) -> str:
    return hashlib.sha256((previous_hash + entry_json).encode("utf-8")).hexdigest()


def _read_last_line(path: Path) -> str | None:
    """Return the last non-empty line of *path* without reading the whole file."""
    with open(path, "rb") as fh:
        fh.seek(0, os.SEEK_END)
        pos = fh.tell()
        buf = b""
        while pos > 0:
            step = min(_TAIL_CHUNK, pos)
            pos -= step
            fh.seek(pos)
            buf = fh.read(step) + buf
            stripped = buf.rstrip(b"\r\n")
            if b"\n" in stripped:
                return stripped.rsplit(b"\n", 1)[1].decode("utf-8")
        stripped = buf.strip()
        return stripped.decode("utf-8") if stripped else None


class AuditLog:
    """Hash-chained JSONL audit log with size-based rotation."""

    def __init__(
        self,
        path: str | os.PathLike[str],
        max_file_size: int = DEFAULT_AUDIT_MAX_FILE_SIZE,
        max_files: int = DEFAULT_AUDIT_MAX_FILES,
    ) -> None:
        if max_file_size <= 0:
            raise ValueError("max_file_size must be positive")
        if max_files < 0:
            raise ValueError("max_files must be zero or positive")
        self.path = validate_storage_path(path, "audit log path")
        self.max_file_size = max_file_size
        self.max_files = max_files
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Append
    # ------------------------------------------------------------------

    async def log(self, event: AuditEvent | Mapping[str, Any]) -> dict[str, Any]:
        """
        Timestamp, chain and append one entry. Returns the line as written.

        Raises:
            ValueError: if the action is not a known :class:`AuditAction`.
            OSError: if the directory cannot be created or the append fails.
        """
        if not isinstance(event, AuditEvent):
            event = AuditEvent.from_mapping(event)
        async with self._lock:
            return await asyncio.to_thread(self._append, event)

    def _append(self, event: AuditEvent) -> dict[str, Any]:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._rotate_if_needed()

        record = event.to_record(datetime.now(UTC).isoformat())
        previous_hash = self._tip_hash()
        record[PREVIOUS_HASH_FIELD] = previous_hash
        record[HASH_FIELD] = compute_entry_hash(previous_hash, canonical_json(_business_fields(record)))

        line = json.dumps(record, ensure_ascii=False) + "\n"
        with open(self.path, "a", encoding="utf-8") as fh:
            fh.write(line)
            fh.flush()
            os.fsync(fh.fileno())
        logger.debug("Audit entry appended: %s %s", record["action"], record["serviceId"])
        return record

    def _tip_hash(self) -> str:
        """Hash of the last line on disk, or the genesis hash for a new file."""
        if not self.path.exists():
            return GENESIS_HASH
        try:
            last = _read_last_line(self.path)
            if last is None:
                return GENESIS_HASH
            tip = json.loads(last).get(HASH_FIELD)
        except (ValueError, AttributeError, RecursionError):
            # UnicodeDecodeError is a ValueError
            tip = None
        if not isinstance(tip, str) or not tip:
            # The break stays visible to verify_integrity()
            logger.error("Audit log %s: last line has no usable hash; chaining to genesis", self.path)
            return GENESIS_HASH
        return tip

    # ------------------------------------------------------------------
    # Rotation
    # ------------------------------------------------------------------

    def rotated_path(self, n: int) -> Path:
        return self.path.with_name(f"{self.path.stem}.{n}{self.path.suffix}")

    def _rotate_if_needed(self) -> None:
        try:
            if not self.path.exists() or self.path.stat().st_size < self.max_file_size:
                return
            self._rotate()
        except OSError as exc:
            logger.warning("Audit log rotation failed for %s, continuing in place: %s", self.path, exc)

    def _rotate(self) -> None:
        if self.max_files == 0:
            self.path.unlink()
            return
        for i in range(self.max_files, 0, -1):
            src = self.rotated_path(i)
            if not src.exists():
                continue
            if i >= self.max_files:
                src.unlink()
            else:
                os.replace(src, self.rotated_path(i + 1))
        os.replace(self.path, self.rotated_path(1))

        # Leftovers from a larger max_files setting
        for i in range(self.max_files + 1, self.max_files + 6):
            stale = self.rotated_path(i)
            try:
                stale.unlink(missing_ok=True)
            except OSError as exc:
                logger.debug("Could not remove stale rotated log %s: %s", stale, exc)
        logger.info("Audit log rotated: %s", self.path)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def get_recent_entries(self, count: int) -> list[dict[str, Any]]:
        """Return the last *count* entries (oldest first)."""
        if count <= 0:
            return []
        async with self._lock:
            return await asyncio.to_thread(self._tail, count)

    def _tail(self, count: int) -> list[dict[str, Any]]:
        if not self.path.exists():
            return []
        try:
            with open(self.path, encoding="utf-8") as fh:
                lines = deque((ln for ln in fh if ln.strip()), maxlen=count)
        except (OSError, UnicodeDecodeError) as exc:
            logger.error("Cannot read audit log %s: %s", self.path, exc)
            return []

        entries: list[dict[str, Any]] = []
        for line in lines:
            try:
                entries.append(json.loads(line))
            except (ValueError, RecursionError):
                continue
        return entries

    async def verify_integrity(self) -> IntegrityReport:
        """Walk the live file and report the first chain violation, if any."""
        async with self._lock:
            report = await asyncio.to_thread(self._verify)
        if not report.valid:
            logger.warning("Audit log integrity check failed for %s: %s", self.path, report.error)
        return report

    def _verify(self) -> IntegrityReport:
        if not self.path.exists():
            return IntegrityReport(valid=True, entries=0)
        try:
            with open(self.path, encoding="utf-8") as fh:
                lines = [ln for ln in fh if ln.strip()]
        except (OSError, UnicodeDecodeError) as exc:
            return IntegrityReport(valid=False, entries=0, error=f"Failed to read log: {exc}")

        total = len(lines)
        expected_previous = GENESIS_HASH
        for i, line in enumerate(lines):
            try:
                parsed = json.loads(line)
            except (ValueError, RecursionError):
                return IntegrityReport(False, total, f"Entry {i} is not valid JSON", {"index": i})
            if not isinstance(parsed, dict):
                return IntegrityReport(False, total, f"Entry {i} is not a JSON object", {"index": i})

            entry_hash = parsed.get(HASH_FIELD)
            previous_hash = parsed.get(PREVIOUS_HASH_FIELD)
            if not entry_hash or not previous_hash:
                return IntegrityReport(False, total, f"Entry {i} missing hash fields", {"index": i})
            if previous_hash != expected_previous:
                return IntegrityReport(
                    False, total, f"Entry {i} has broken previous hash chain", {"index": i}
                )
            if compute_entry_hash(previous_hash, canonical_json(_business_fields(parsed))) != entry_hash:
                return IntegrityReport(
                    False, total, f"Entry {i} has invalid hash (tampered)", {"index": i}
                )
            expected_previous = entry_hash

        return IntegrityReport(valid=True, entries=total)


def _business_fields(record: Mapping[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in record.items() if k not in (HASH_FIELD, PREVIOUS_HASH_FIELD)}
