"""
Config mutation coordinator.

Every administrative change follows the same sequence, under one write lock:

    1. resolve the service manager (UnknownServiceError if absent)
    2. capture the previous value
    3. apply the change in memory
    4. persist the full document, rebuilt from all managers
    5. append the audit entry

If step 4 fails the in-memory change is rolled back and the error
propagates; no audit entry is written for a change that never reached
disk. The lock covers the whole sequence, so audit order matches save order.

Usage::

    coordinator = ConfigMutationCoordinator(registry, store, audit_log)
    await coordinator.enable_service("eventlog")
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from sysmcp.core.audit.log import AuditAction, AuditEvent, AuditLog
from sysmcp.core.constants import DEFAULT_AUDIT_SOURCE
from sysmcp.core.exceptions import ConfigValidationError
from sysmcp.core.services import ServiceConfigManager, ServiceRegistry
from sysmcp.core.store.config_store import ConfigStore
from sysmcp.core.store.schema import ConfigDocument, PermissionLevel, ServiceConfig

logger = logging.getLogger(__name__)


class WriteLock:
    """
    The single lock that serializes config persistence.

    Constructed once per trust context and passed by reference to whatever
    needs to write the config file.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()

    async def __aenter__(self) -> WriteLock:
        await self._lock.acquire()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self._lock.release()

    def locked(self) -> bool:
        return self._lock.locked()

    def reset(self) -> None:
        """Drop any holder and start with a fresh lock. Tests only."""
        self._lock = asyncio.Lock()


class ConfigMutationCoordinator:
    def __init__(
        self,
        registry: ServiceRegistry,
        store: ConfigStore,
        audit_log: AuditLog,
        write_lock: WriteLock | None = None,
        *,
        source: str = DEFAULT_AUDIT_SOURCE,
    ) -> None:
        self.registry = registry
        self.store = store
        self.audit_log = audit_log
        self.write_lock = write_lock or WriteLock()
        self.source = source

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def enable_service(self, service_id: str, *, source: str | None = None) -> ServiceConfig:
        """Enable *service_id* at ``read-only``."""

        def change(manager: ServiceConfigManager) -> tuple[Any, Any]:
            before = _state(manager)
            manager.update(enabled=True, permission_level=PermissionLevel.READ_ONLY)
            return before, _state(manager)

        return await self._mutate(service_id, AuditAction.SERVICE_ENABLE, change, source)

    async def disable_service(self, service_id: str, *, source: str | None = None) -> ServiceConfig:
        def change(manager: ServiceConfigManager) -> tuple[Any, Any]:
            before = _state(manager)
            manager.update(enabled=False, permission_level=PermissionLevel.DISABLED)
            return before, _state(manager)

        return await self._mutate(service_id, AuditAction.SERVICE_DISABLE, change, source)

    async def set_permission_level(
        self,
        service_id: str,
        level: PermissionLevel | str,
        *,
        source: str | None = None,
    ) -> ServiceConfig:
        """Set the level; the service is enabled iff the level is not ``disabled``."""
        try:
            new_level = PermissionLevel(level)
        except ValueError:
            raise ConfigValidationError(f"Invalid permission level: {level!r}") from None

        def change(manager: ServiceConfigManager) -> tuple[Any, Any]:
            before = manager.get_permission_level().value
            manager.update(
                enabled=new_level is not PermissionLevel.DISABLED,
                permission_level=new_level,
            )
            return before, new_level.value

        return await self._mutate(service_id, AuditAction.PERMISSION_CHANGE, change, source)

    async def set_pii_anonymization(
        self,
        service_id: str,
        enabled: bool,
        *,
        source: str | None = None,
    ) -> ServiceConfig:
        if not isinstance(enabled, bool):
            raise ConfigValidationError(f"enabled must be a boolean (got {type(enabled).__name__})")

        def change(manager: ServiceConfigManager) -> tuple[Any, Any]:
            before = manager.is_anonymization_enabled()
            manager.update(enable_anonymization=enabled)
            return before, enabled

        return await self._mutate(service_id, AuditAction.PII_TOGGLE, change, source)

    async def reset_service_config(self, service_id: str, *, source: str | None = None) -> ServiceConfig:
        """Return *service_id* to its secure defaults."""

        def change(manager: ServiceConfigManager) -> tuple[Any, Any]:
            before = _state(manager, with_anonymization=True)
            manager.reset_to_defaults()
            return before, _state(manager, with_anonymization=True)

        return await self._mutate(service_id, AuditAction.CONFIG_RESET, change, source)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def persist(self) -> ConfigDocument:
        """Write the current state of all managers to the config store."""
        async with self.write_lock:
            return await self._flush()

    async def _flush(self) -> ConfigDocument:
        return await self.store.save(self.registry.snapshot())

    async def _mutate(self, service_id, action, change, source) -> ServiceConfig:
        manager = self.registry.get(service_id)
        async with self.write_lock:
            snapshot = manager.to_service_config()
            previous_value, new_value = change(manager)
            try:
                await self._flush()
            except BaseException:
                manager.apply(snapshot)
                logger.error("Persisting %s for %s failed; change rolled back", action, service_id)
                raise
            await self.audit_log.log(
                AuditEvent(
                    action=action,
                    service_id=service_id,
                    previous_value=previous_value,
                    new_value=new_value,
                    source=source or self.source,
                )
            )
        logger.info("%s applied to %s", action, service_id)
        return manager.to_service_config()


def _state(manager: ServiceConfigManager, *, with_anonymization: bool = False) -> dict[str, Any]:
    state: dict[str, Any] = {
        "enabled": manager.is_enabled(),
        "permissionLevel": manager.get_permission_level().value,
    }
    if with_anonymization:
        state["enableAnonymization"] = manager.is_anonymization_enabled()
    return state
