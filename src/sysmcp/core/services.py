"""
Service config managers — live, in-memory configuration per service.

Each :class:`ServiceConfigManager` holds one immutable
:class:`~sysmcp.core.store.schema.ServiceConfig` and swaps it on every
change, so readers never see a half-applied update. Managers are the
capability providers the permission checker consults.

A :class:`ServiceRegistry` owns the managers. Once the trust context has
loaded persisted state it freezes the registry: managers can still be
mutated, but none can be added or replaced.

Secure defaults: every service starts disabled with anonymization on.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from typing import Any

from pydantic import ValidationError

from sysmcp.core.constants import (
    DEFAULT_MAX_RESULTS,
    DEFAULT_TIMEOUT_MS,
    KNOWN_SERVICE_IDS,
)
from sysmcp.core.exceptions import ConfigValidationError, FrozenConfigError, UnknownServiceError
from sysmcp.core.security.permissions import sanitize_service_id
from sysmcp.core.store.schema import (
    ConfigDocument,
    PermissionLevel,
    ServiceConfig,
    format_validation_error,
)

logger = logging.getLogger(__name__)


def default_service_config() -> ServiceConfig:
    return ServiceConfig(
        enabled=False,
        permission_level=PermissionLevel.DISABLED,
        enable_anonymization=True,
        max_results=DEFAULT_MAX_RESULTS,
        timeout_ms=DEFAULT_TIMEOUT_MS,
    )


class ServiceConfigManager:
    """Mutable holder of one service's configuration."""

    def __init__(self, service_id: str, defaults: ServiceConfig | None = None) -> None:
        self.service_id = service_id
        self._defaults = defaults or default_service_config()
        self._config = self._defaults

    def __repr__(self) -> str:
        return f"ServiceConfigManager({self.service_id!r}, {self._config!r})"

    # ------------------------------------------------------------------
    # Provider interface
    # ------------------------------------------------------------------

    def is_enabled(self) -> bool:
        return self._config.enabled

    def get_permission_level(self) -> PermissionLevel:
        return self._config.permission_level

    # ------------------------------------------------------------------
    # Getters
    # ------------------------------------------------------------------

    def is_anonymization_enabled(self) -> bool:
        return self._config.enable_anonymization

    def get_max_results(self) -> int:
        return self._config.max_results or DEFAULT_MAX_RESULTS

    def get_timeout_ms(self) -> int:
        return self._config.timeout_ms or DEFAULT_TIMEOUT_MS

    def to_service_config(self) -> ServiceConfig:
        return self._config

    # ------------------------------------------------------------------
    # Setters
    # ------------------------------------------------------------------

    def set_enabled(self, enabled: bool) -> None:
        self.update(enabled=enabled)

    def set_permission_level(self, level: PermissionLevel | str) -> None:
        """Set the level. Dropping to ``disabled`` also disables the service."""
        changes: dict[str, Any] = {"permission_level": level}
        if level == PermissionLevel.DISABLED:
            changes["enabled"] = False
        self.update(**changes)

    def set_anonymization_enabled(self, enabled: bool) -> None:
        self.update(enable_anonymization=enabled)

    def set_max_results(self, max_results: int) -> None:
        self.update(max_results=max_results)

    def set_timeout_ms(self, timeout_ms: int) -> None:
        self.update(timeout_ms=timeout_ms)

    def update(self, **changes: Any) -> ServiceConfig:
        """
        Apply several field changes at once (snake_case field names).

        Raises:
            ConfigValidationError: if the result fails the schema, or would
                be enabled while its level is ``disabled``.
        """
        data = self._config.model_dump()
        data.update(changes)
        self._config = self._validate(data)
        return self._config

    def apply(self, config: ServiceConfig) -> None:
        """Replace the whole config, e.g. with the persisted one at startup."""
        if config.enabled and config.permission_level is PermissionLevel.DISABLED:
            logger.warning(
                "Service %s persisted as enabled with level 'disabled'; treating as disabled",
                self.service_id,
            )
            config = config.model_copy(update={"enabled": False})
        self._config = config

    def reset_to_defaults(self) -> ServiceConfig:
        """Restore the default access-control fields; tuned limits are kept."""
        self._config = self._config.model_copy(
            update={
                "enabled": self._defaults.enabled,
                "permission_level": self._defaults.permission_level,
                "enable_anonymization": self._defaults.enable_anonymization,
            }
        )
        return self._config

    def _validate(self, data: dict[str, Any]) -> ServiceConfig:
        try:
            config = ServiceConfig.model_validate(data)
        except ValidationError as exc:
            raise ConfigValidationError(format_validation_error(exc, self.service_id)) from exc
        if config.enabled and config.permission_level is PermissionLevel.DISABLED:
            raise ConfigValidationError(
                f"Service '{self.service_id}' cannot be enabled while its permission level is 'disabled'"
            )
        return config


class ServiceRegistry:
    """The set of service managers known to one trust context."""

    def __init__(self, managers: Iterable[ServiceConfigManager] = ()) -> None:
        self._managers: dict[str, ServiceConfigManager] = {}
        self._frozen = False
        for manager in managers:
            self.register(manager)

    @classmethod
    def with_defaults(cls, service_ids: Iterable[str] = KNOWN_SERVICE_IDS) -> ServiceRegistry:
        return cls(ServiceConfigManager(sid) for sid in service_ids)

    def register(self, manager: ServiceConfigManager) -> None:
        """Add or replace a manager. Raises FrozenConfigError once frozen."""
        if self._frozen:
            raise FrozenConfigError(
                f"Service registry is frozen; cannot register '{sanitize_service_id(manager.service_id)}'"
            )
        self._managers[manager.service_id] = manager

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self, service_id: str) -> ServiceConfigManager:
        manager = self._managers.get(service_id) if isinstance(service_id, str) else None
        if manager is None:
            raise UnknownServiceError(f"Unknown service: {sanitize_service_id(service_id)}")
        return manager

    def __contains__(self, service_id: object) -> bool:
        return service_id in self._managers

    def __iter__(self) -> Iterator[ServiceConfigManager]:
        return iter(self._managers.values())

    def __len__(self) -> int:
        return len(self._managers)

    def ids(self) -> list[str]:
        return list(self._managers)

    def snapshot(self) -> ConfigDocument:
        """The persisted document as it should look right now."""
        return ConfigDocument(
            services={sid: m.to_service_config() for sid, m in self._managers.items()},
        )

    def apply_document(self, document: ConfigDocument) -> list[str]:
        """Load persisted services into their managers. Returns ids applied."""
        applied = []
        for sid, config in document.services.items():
            if sid not in self._managers:
                logger.warning("Ignoring persisted config for unknown service %r", sanitize_service_id(sid))
                continue
            self._managers[sid].apply(config)
            applied.append(sid)
        return applied
