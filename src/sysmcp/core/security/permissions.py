"""
Permission checker — per-service read/write authorization.

A service is reachable only if its config provider says it is enabled and
its permission level admits the operation:

    disabled    → nothing
    read-only   → read
    read-write  → read, write

Anything the checker cannot establish (unknown service, provider error,
unrecognized level or operation) is a denial. Decisions are values, never
exceptions.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol

from sysmcp.core.store.schema import PermissionLevel

logger = logging.getLogger(__name__)

_UNSAFE_ID_CHARS = re.compile(r"[^A-Za-z0-9_-]")
_MAX_ID_LENGTH = 50


class OperationType(StrEnum):
    READ = "read"
    WRITE = "write"


_ALLOWED: dict[PermissionLevel, frozenset[OperationType]] = {
    PermissionLevel.DISABLED: frozenset(),
    PermissionLevel.READ_ONLY: frozenset({OperationType.READ}),
    PermissionLevel.READ_WRITE: frozenset({OperationType.READ, OperationType.WRITE}),
}


@dataclass(frozen=True)
class PermissionDecision:
    allowed: bool
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"allowed": self.allowed}
        if self.reason:
            data["reason"] = self.reason
        return data


class ServiceConfigProvider(Protocol):
    """What the checker needs from a service's live configuration."""

    def is_enabled(self) -> bool: ...

    def get_permission_level(self) -> PermissionLevel | str: ...


def sanitize_service_id(service_id: Any) -> str:
    """Truncate to 50 chars and drop anything outside ``[A-Za-z0-9_-]``."""
    return _UNSAFE_ID_CHARS.sub("", str(service_id)[:_MAX_ID_LENGTH])


@dataclass(frozen=True)
class _Override:
    enabled: bool
    permission_level: str


class PermissionChecker:
    """
    Decide whether *operation* on *service_id* is allowed.

    Args:
        providers:            service id → live config provider.
        allow_test_overrides: permit :meth:`set_test_overrides`. Off in
                              production; tests opt in explicitly.
    """

    def __init__(
        self,
        providers: Mapping[str, ServiceConfigProvider] | None = None,
        *,
        allow_test_overrides: bool = False,
    ) -> None:
        self._providers: dict[str, ServiceConfigProvider] = dict(providers or {})
        self._allow_test_overrides = allow_test_overrides
        self._overrides: dict[str, _Override] = {}

    def register(self, service_id: str, provider: ServiceConfigProvider) -> None:
        self._providers[service_id] = provider

    @property
    def service_ids(self) -> list[str]:
        return sorted(self._providers)

    # ------------------------------------------------------------------
    # Decision
    # ------------------------------------------------------------------

    def check(self, service_id: str, operation: OperationType | str) -> PermissionDecision:
        safe_id = sanitize_service_id(service_id)
        if not isinstance(service_id, str):
            return self._deny(f"Unknown service: {safe_id}")

        try:
            op = OperationType(operation)
        except ValueError:
            return self._deny(f"Unknown operation: {sanitize_service_id(operation)}")

        override = self._overrides.get(service_id)
        if override is not None:
            enabled, raw_level = override.enabled, override.permission_level
        else:
            provider = self._providers.get(service_id)
            if provider is None:
                return self._deny(f"Unknown service: {safe_id}")
            try:
                enabled = provider.is_enabled()
                raw_level = provider.get_permission_level()
            except Exception as exc:  # noqa: BLE001
                logger.warning("Config provider for %s failed: %s", safe_id, exc)
                return self._deny(f"Configuration unavailable for service '{safe_id}'")

        if enabled is not True:
            return self._deny(f"Service '{safe_id}' is disabled")

        try:
            level = PermissionLevel(raw_level)
        except ValueError:
            return self._deny(f"Service '{safe_id}' has an unknown permission level")

        if level is PermissionLevel.DISABLED:
            return self._deny(f"Service '{safe_id}' is disabled")
        if op in _ALLOWED[level]:
            return PermissionDecision(allowed=True)
        return self._deny(f"Service '{safe_id}' is read-only")

    @staticmethod
    def _deny(reason: str) -> PermissionDecision:
        logger.debug("Permission denied: %s", reason)
        return PermissionDecision(allowed=False, reason=reason)

    # ------------------------------------------------------------------
    # Test overrides
    # ------------------------------------------------------------------

    def set_test_overrides(self, overrides: Mapping[str, Mapping[str, Any]]) -> None:
        """
        Replace provider answers for the given services.

        Each value may carry ``enabled`` (default ``True``) and
        ``permissionLevel`` (default ``"read-only"``).

        Raises:
            RuntimeError: if the checker was built without
                ``allow_test_overrides=True``.
        """
        self._require_overrides_allowed()
        for service_id, values in overrides.items():
            self._overrides[service_id] = _Override(
                enabled=values.get("enabled", True),
                permission_level=values.get("permissionLevel", PermissionLevel.READ_ONLY.value),
            )

    def clear_test_overrides(self) -> None:
        self._require_overrides_allowed()
        self._overrides.clear()

    def has_test_overrides(self) -> bool:
        return bool(self._overrides)

    def _require_overrides_allowed(self) -> None:
        if not self._allow_test_overrides:
            raise RuntimeError("Test overrides are not enabled on this PermissionChecker")
