"""sysmcp constants: filesystem layout, schema versions, limits."""

from __future__ import annotations

from enum import IntEnum

# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------


class ExitCode(IntEnum):
    SUCCESS = 0
    ERROR = 1
    CONFIG_ERROR = 2
    INTEGRITY_ERROR = 3
    PERMISSION_ERROR = 5


# ---------------------------------------------------------------------------
# Filesystem layout
# ---------------------------------------------------------------------------

SYSMCP_DIR_NAME = ".sysmcp"
SETTINGS_FILENAME = "settings.toml"
CONFIG_FILENAME = "sysmcp-config.json"
AUDIT_FILENAME = "audit.jsonl"
MAPPING_FILENAME = "anonymization-mapping.json"

ALLOWED_STORAGE_EXTENSIONS = frozenset({".json", ".jsonl"})
SECURE_FILE_MODE = 0o600

# ---------------------------------------------------------------------------
# Config document
# ---------------------------------------------------------------------------

CURRENT_SCHEMA_VERSION = 1

MAX_RESULTS_MIN = 1
MAX_RESULTS_MAX = 100_000
TIMEOUT_MS_MIN = 1_000
TIMEOUT_MS_MAX = 300_000

DEFAULT_MAX_RESULTS = 10_000
DEFAULT_TIMEOUT_MS = 30_000

# ---------------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------------

GENESIS_HASH = "0" * 64
DEFAULT_AUDIT_MAX_FILE_SIZE = 10 * 1024 * 1024  # 10 MB
DEFAULT_AUDIT_MAX_FILES = 5
DEFAULT_AUDIT_SOURCE = "admin-api"

# ---------------------------------------------------------------------------
# Known services
# ---------------------------------------------------------------------------

EVENTLOG_SERVICE_ID = "eventlog"
FILESEARCH_SERVICE_ID = "filesearch"
KNOWN_SERVICE_IDS: tuple[str, ...] = (EVENTLOG_SERVICE_ID, FILESEARCH_SERVICE_ID)
