"""
Trust context — one explicitly wired instance of the trust layer.

Holds the service registry, permission checker, request gate, config store,
audit log, anonymizers and mutation coordinator. Nothing here is a global:
tests and the CLI each build their own context.

Usage::

    ctx = await TrustContext.create(load_settings())
    ctx.gate.authorize(["eventLogs"], "127.0.0.1")
    await ctx.coordinator.enable_service("eventlog")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sysmcp.core.anonymize import MappingStore, PathAnonymizer, PiiAnonymizer
from sysmcp.core.audit import AuditLog
from sysmcp.core.config import Settings
from sysmcp.core.mutations import ConfigMutationCoordinator, WriteLock
from sysmcp.core.security import PermissionChecker, RequestGate
from sysmcp.core.services import ServiceRegistry
from sysmcp.core.store import ConfigStore

logger = logging.getLogger(__name__)


@dataclass
class TrustContext:
    settings: Settings
    registry: ServiceRegistry
    checker: PermissionChecker
    gate: RequestGate
    store: ConfigStore
    audit_log: AuditLog
    write_lock: WriteLock
    coordinator: ConfigMutationCoordinator
    mapping_store: MappingStore
    anonymizer: PiiAnonymizer
    path_anonymizer: PathAnonymizer

    @classmethod
    async def create(
        cls,
        settings: Settings | None = None,
        *,
        machine_name: str | None = None,
        allow_test_overrides: bool = False,
        source: str | None = None,
    ) -> TrustContext:
        """
        Build the trust layer and load persisted state into it.

        A missing or corrupt config file leaves every service at its secure
        default (disabled). The registry is frozen before returning.

        Raises:
            StoragePathError: if a configured path fails the path policy.
        """
        settings = settings or Settings()

        registry = ServiceRegistry.with_defaults()
        store = ConfigStore(settings.resolved_config_path)
        audit_log = AuditLog(
            settings.resolved_audit_path,
            max_file_size=settings.audit.max_file_size,
            max_files=settings.audit.max_files,
        )
        mapping_store = MappingStore(settings.resolved_mapping_path)

        persisted = await store.load()
        if persisted is None:
            logger.info("No persisted configuration; all services start disabled")
        else:
            applied = registry.apply_document(persisted)
            logger.info("Applied persisted configuration for: %s", ", ".join(applied) or "(none)")
        registry.freeze()

        anonymizer = PiiAnonymizer(await mapping_store.load_or_empty(), machine_name=machine_name)

        checker = PermissionChecker(
            {m.service_id: m for m in registry},
            allow_test_overrides=allow_test_overrides,
        )
        write_lock = WriteLock()
        coordinator_kwargs = {"source": source} if source else {}
        coordinator = ConfigMutationCoordinator(
            registry, store, audit_log, write_lock, **coordinator_kwargs
        )

        return cls(
            settings=settings,
            registry=registry,
            checker=checker,
            gate=RequestGate(checker),
            store=store,
            audit_log=audit_log,
            write_lock=write_lock,
            coordinator=coordinator,
            mapping_store=mapping_store,
            anonymizer=anonymizer,
            path_anonymizer=PathAnonymizer(anonymizer),
        )

    async def save_mapping(self) -> None:
        """Persist the anonymizer's mapping so tokens survive restarts."""
        await self.mapping_store.save(self.anonymizer.mapping)
