"""
Persisted config document: Pydantic models and validation.

The on-disk format uses camelCase keys::

    {
      "version": 1,
      "lastModified": "2026-01-01T00:00:00+00:00",
      "services": {
        "eventlog": {"enabled": true, "permissionLevel": "read-only",
                     "enableAnonymization": true, "maxResults": 10000}
      }
    }

Unknown keys at any level are dropped from the sanitized result.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Annotated, Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    ValidationError,
)

from sysmcp.core.constants import (
    CURRENT_SCHEMA_VERSION,
    MAX_RESULTS_MAX,
    MAX_RESULTS_MIN,
    TIMEOUT_MS_MAX,
    TIMEOUT_MS_MIN,
)
from sysmcp.core.exceptions import ConfigValidationError


class PermissionLevel(StrEnum):
    """Per-service authorization tier."""

    DISABLED = "disabled"
    READ_ONLY = "read-only"
    READ_WRITE = "read-write"


MaxResults = Annotated[StrictInt, Field(ge=MAX_RESULTS_MIN, le=MAX_RESULTS_MAX)]
TimeoutMs = Annotated[StrictInt, Field(ge=TIMEOUT_MS_MIN, le=TIMEOUT_MS_MAX)]


class ServiceConfig(BaseModel):
    """Persisted configuration of one service."""

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    enabled: StrictBool
    permission_level: PermissionLevel = Field(alias="permissionLevel")
    enable_anonymization: StrictBool = Field(alias="enableAnonymization")
    max_results: MaxResults | None = Field(default=None, alias="maxResults")
    timeout_ms: TimeoutMs | None = Field(default=None, alias="timeoutMs")


class ConfigDocument(BaseModel):
    """Root of the persisted config file."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    version: StrictInt | StrictFloat = CURRENT_SCHEMA_VERSION
    last_modified: StrictStr | None = Field(default=None, alias="lastModified")
    services: dict[str, ServiceConfig]

    def to_json_dict(self) -> dict[str, Any]:
        """Serialize to the on-disk camelCase shape, omitting unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def default_config() -> ConfigDocument:
    """Secure default: no services persisted, so every service stays disabled."""
    return ConfigDocument(
        version=CURRENT_SCHEMA_VERSION,
        last_modified=datetime.now(UTC).isoformat(),
        services={},
    )


def format_validation_error(exc: ValidationError, source: str = "config") -> str:
    """Render Pydantic errors as one human-readable line per problem."""
    lines = [f"Config validation failed in {source}:"]
    for err in exc.errors():
        loc = " → ".join(str(x) for x in err["loc"]) if err["loc"] else "(root)"
        lines.append(f"  {loc}: {err['msg']}")
    return "\n".join(lines)


def validate_config(data: Any, source: str = "config") -> ConfigDocument:
    """
    Validate and sanitize a raw config document.

    Args:
        data:   Parsed JSON (or an already-built :class:`ConfigDocument`).
        source: Label for error messages.

    Returns:
        A :class:`ConfigDocument` containing only known keys.

    Raises:
        ConfigValidationError: on any schema violation.
    """
    if isinstance(data, ConfigDocument):
        data = data.to_json_dict()
    if not isinstance(data, dict):
        raise ConfigValidationError(
            f"Config {source} must be a JSON object (got {type(data).__name__})"
        )
    if "services" not in data:
        raise ConfigValidationError(f"Config {source} is missing 'services'")
    if not isinstance(data["services"], dict):
        raise ConfigValidationError(f"Config {source}: 'services' must be an object")

    try:
        return ConfigDocument.model_validate(data)
    except ValidationError as exc:
        raise ConfigValidationError(format_validation_error(exc, source)) from exc
