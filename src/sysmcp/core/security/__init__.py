"""Authorization: per-service permission checks and the admin-origin guard."""

from sysmcp.core.security.admin import (
    ADMIN_OPERATIONS,
    BYPASS_OPERATIONS,
    OPERATION_TO_SERVICE,
    RequestGate,
    is_localhost_address,
)
from sysmcp.core.security.permissions import (
    OperationType,
    PermissionChecker,
    PermissionDecision,
    ServiceConfigProvider,
    sanitize_service_id,
)

__all__ = [
    "ADMIN_OPERATIONS",
    "BYPASS_OPERATIONS",
    "OPERATION_TO_SERVICE",
    "OperationType",
    "PermissionChecker",
    "PermissionDecision",
    "RequestGate",
    "ServiceConfigProvider",
    "is_localhost_address",
    "sanitize_service_id",
]
