"""sysmcp exception hierarchy.

Denials and integrity failures are values (``PermissionDecision``,
``IntegrityReport``), not exceptions. A corrupt config file is quarantined
and reported as ``None``. Everything below is for inputs that are invalid
outright or operations the caller must not retry blindly.
"""

from __future__ import annotations


class SysmcpError(Exception):
    """Base exception for all sysmcp errors."""


class ConfigError(SysmcpError):
    """Raised when settings or configuration cannot be read or are invalid."""


class ConfigValidationError(ConfigError, ValueError):
    """Raised when a config document fails schema validation."""


class StoragePathError(ConfigValidationError):
    """Raised when a storage path fails the path policy."""


class UnknownServiceError(SysmcpError, KeyError):
    """Raised when a mutation names a service that is not registered."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message
        return str(self.args[0]) if self.args else ""


class FrozenConfigError(SysmcpError):
    """Raised when registering or replacing a manager in a frozen service registry."""
