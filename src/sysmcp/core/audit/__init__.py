"""Tamper-evident audit log of configuration changes."""

from sysmcp.core.audit.log import (
    AuditAction,
    AuditEvent,
    AuditLog,
    IntegrityReport,
    canonical_json,
    compute_entry_hash,
)

__all__ = [
    "AuditAction",
    "AuditEvent",
    "AuditLog",
    "IntegrityReport",
    "canonical_json",
    "compute_entry_hash",
]
