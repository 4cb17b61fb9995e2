"""
Admin-origin guard and request gate.

Admin operations (service registration and configuration mutations) are
accepted only from the loopback address. Resource operations are passed to
the :class:`~sysmcp.core.security.permissions.PermissionChecker`.

Usage::

    gate = RequestGate(checker)
    decision = gate.authorize(["eventLogs"], remote_address="127.0.0.1")
    if not decision.allowed:
        ...

The gate fails closed: if the requested operation names cannot be extracted
(``None``, a bare string, non-string items), the whole request is denied.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from sysmcp.core.constants import EVENTLOG_SERVICE_ID, FILESEARCH_SERVICE_ID
from sysmcp.core.security.permissions import OperationType, PermissionChecker, PermissionDecision

logger = logging.getLogger(__name__)

LOCALHOST_ADDRESSES = frozenset({"127.0.0.1", "::1", "::ffff:127.0.0.1"})

ADMIN_OPERATIONS = frozenset(
    {
        "registerService",
        "startService",
        "stopService",
        "restartService",
        "enableService",
        "disableService",
        "setPermissionLevel",
        "setPiiAnonymization",
        "resetServiceConfig",
    }
)

# Read-only meta queries: no service-level check
BYPASS_OPERATIONS = frozenset(
    {
        "services",
        "service",
        "health",
        "serviceConfig",
        "allServiceConfigs",
        "__schema",
        "__type",
    }
)

OPERATION_TO_SERVICE: dict[str, tuple[str, OperationType]] = {
    "eventLogs": (EVENTLOG_SERVICE_ID, OperationType.READ),
    "fileSearch": (FILESEARCH_SERVICE_ID, OperationType.READ),
}


def is_localhost_address(remote_address: str | None) -> bool:
    """True only for an exact (trimmed) loopback address. No DNS, no ranges."""
    if not remote_address or not isinstance(remote_address, str):
        return False
    return remote_address.strip() in LOCALHOST_ADDRESSES


def _extract_operations(operations: object) -> list[str] | None:
    if operations is None or isinstance(operations, (str, bytes)):
        return None
    if not isinstance(operations, Iterable):
        return None
    names = list(operations)
    if not all(isinstance(name, str) for name in names):
        return None
    return names


class RequestGate:
    """Authorize one request's top-level operations."""

    def __init__(self, checker: PermissionChecker) -> None:
        self.checker = checker

    def authorize(self, operations: Iterable[str] | None, remote_address: str | None) -> PermissionDecision:
        names = _extract_operations(operations)
        if names is None:
            logger.warning("Denying request: operation list could not be extracted")
            return PermissionDecision(False, "Permission denied: unable to parse request")

        if any(name in ADMIN_OPERATIONS for name in names) and not is_localhost_address(remote_address):
            logger.warning("Denying admin operation from non-local address %r", remote_address)
            return PermissionDecision(False, "Permission denied: admin operations require a local origin")

        for name in names:
            if name in BYPASS_OPERATIONS or name in ADMIN_OPERATIONS:
                continue
            mapping = OPERATION_TO_SERVICE.get(name)
            if mapping is None:
                continue
            service_id, op = mapping
            decision = self.checker.check(service_id, op)
            if not decision.allowed:
                return decision

        return PermissionDecision(allowed=True)
