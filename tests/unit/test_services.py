"""Unit tests for service config managers and the service registry."""

from __future__ import annotations

import pytest

from sysmcp.core.exceptions import ConfigValidationError, FrozenConfigError, UnknownServiceError
from sysmcp.core.services import ServiceConfigManager, ServiceRegistry, default_service_config
from sysmcp.core.store import ConfigDocument, PermissionLevel, ServiceConfig


class TestServiceConfigManager:
    def test_secure_defaults(self) -> None:
        manager = ServiceConfigManager("eventlog")
        assert manager.is_enabled() is False
        assert manager.get_permission_level() is PermissionLevel.DISABLED
        assert manager.is_anonymization_enabled() is True
        assert manager.get_max_results() == 10_000
        assert manager.get_timeout_ms() == 30_000

    def test_setters(self) -> None:
        manager = ServiceConfigManager("eventlog")
        manager.set_permission_level("read-write")
        manager.set_enabled(True)
        manager.set_max_results(250)
        manager.set_timeout_ms(2_000)
        manager.set_anonymization_enabled(False)
        cfg = manager.to_service_config()
        assert cfg == ServiceConfig(
            enabled=True,
            permission_level=PermissionLevel.READ_WRITE,
            enable_anonymization=False,
            max_results=250,
            timeout_ms=2_000,
        )

    def test_invalid_values_rejected_and_state_kept(self) -> None:
        manager = ServiceConfigManager("eventlog")
        before = manager.to_service_config()
        with pytest.raises(ConfigValidationError):
            manager.set_permission_level("root")
        with pytest.raises(ConfigValidationError):
            manager.set_max_results(0)
        with pytest.raises(ConfigValidationError):
            manager.set_timeout_ms(500)
        assert manager.to_service_config() == before

    def test_cannot_enable_while_disabled_level(self) -> None:
        manager = ServiceConfigManager("eventlog")
        with pytest.raises(ConfigValidationError, match="cannot be enabled"):
            manager.set_enabled(True)

    def test_dropping_to_disabled_disables(self) -> None:
        manager = ServiceConfigManager("eventlog")
        manager.update(enabled=True, permission_level="read-only")
        manager.set_permission_level(PermissionLevel.DISABLED)
        assert manager.is_enabled() is False

    def test_apply_normalizes_inconsistent_state(self) -> None:
        manager = ServiceConfigManager("eventlog")
        manager.apply(ServiceConfig(enabled=True, permission_level="disabled", enable_anonymization=True))
        assert manager.is_enabled() is False

    def test_reset_to_defaults(self) -> None:
        manager = ServiceConfigManager("eventlog")
        manager.update(enabled=True, permission_level="read-write", enable_anonymization=False)
        assert manager.reset_to_defaults() == default_service_config()

    def test_reset_keeps_tuned_limits(self) -> None:
        manager = ServiceConfigManager("eventlog")
        manager.update(enabled=True, permission_level="read-write", max_results=500, timeout_ms=5000)
        cfg = manager.reset_to_defaults()
        assert (cfg.enabled, cfg.permission_level, cfg.enable_anonymization) == (
            False,
            PermissionLevel.DISABLED,
            True,
        )
        assert (cfg.max_results, cfg.timeout_ms) == (500, 5000)


class TestServiceRegistry:
    def test_with_defaults(self) -> None:
        registry = ServiceRegistry.with_defaults()
        assert registry.ids() == ["eventlog", "filesearch"]
        assert all(not m.is_enabled() for m in registry)

    def test_unknown_service(self) -> None:
        with pytest.raises(UnknownServiceError, match="Unknown service: bad"):
            ServiceRegistry.with_defaults().get("bad!")
        with pytest.raises(KeyError):
            ServiceRegistry.with_defaults().get("missing")

    def test_freeze_blocks_register(self) -> None:
        registry = ServiceRegistry.with_defaults()
        registry.freeze()
        assert registry.frozen
        with pytest.raises(FrozenConfigError):
            registry.register(ServiceConfigManager("eventlog"))

    def test_frozen_managers_still_mutable(self) -> None:
        registry = ServiceRegistry.with_defaults()
        registry.freeze()
        registry.get("eventlog").update(enabled=True, permission_level="read-only")
        assert registry.get("eventlog").is_enabled()

    def test_snapshot_and_apply_document(self) -> None:
        registry = ServiceRegistry.with_defaults()
        registry.get("filesearch").update(enabled=True, permission_level="read-write")
        snapshot = registry.snapshot()
        assert set(snapshot.services) == {"eventlog", "filesearch"}

        other = ServiceRegistry.with_defaults()
        applied = other.apply_document(snapshot)
        assert applied == ["eventlog", "filesearch"]
        assert other.get("filesearch").get_permission_level() is PermissionLevel.READ_WRITE

    def test_apply_document_ignores_unknown_services(self) -> None:
        registry = ServiceRegistry.with_defaults()
        doc = ConfigDocument.model_validate(
            {"services": {"rogue": {"enabled": True, "permissionLevel": "read-write", "enableAnonymization": False}}}
        )
        assert registry.apply_document(doc) == []
        assert "rogue" not in registry
