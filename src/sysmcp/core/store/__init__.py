"""Persisted access-control configuration: schema and atomic store."""

from sysmcp.core.store.config_store import ConfigStore
from sysmcp.core.store.schema import (
    ConfigDocument,
    PermissionLevel,
    ServiceConfig,
    default_config,
    validate_config,
)

__all__ = [
    "ConfigDocument",
    "ConfigStore",
    "PermissionLevel",
    "ServiceConfig",
    "default_config",
    "validate_config",
]
