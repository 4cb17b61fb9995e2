"""
sysmcp — trust and audit layer for a local OS-resource host.

The host exposes event logs and file search to automated tool callers.
This package decides who may touch what, strips PII from what comes back,
persists the access-control configuration, and keeps a tamper-evident
record of every change to it.

Package layout (src/sysmcp/):
  core/anonymize/  — PII anonymization engine, mapping store, path anonymizer
  core/store/      — persisted config document: schema + atomic store
  core/audit/      — hash-chained JSONL audit log with rotation
  core/security/   — permission checker, admin-origin guard, request gate
  core/            — settings, service config managers, mutations, context
  cli/             — Click CLI for operators
"""

__version__ = "0.3.0"
__all__ = ["__version__"]
