"""sysmcp settings: Pydantic model, load, and save."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from sysmcp.core.constants import (
    AUDIT_FILENAME,
    CONFIG_FILENAME,
    DEFAULT_AUDIT_MAX_FILE_SIZE,
    DEFAULT_AUDIT_MAX_FILES,
    MAPPING_FILENAME,
    SETTINGS_FILENAME,
    SYSMCP_DIR_NAME,
)
from sysmcp.core.exceptions import ConfigError
from sysmcp.core.fileio import atomic_write_text


def sysmcp_dir() -> Path:
    """Return the sysmcp data directory (~/.sysmcp). Not created here."""
    return Path.home() / SYSMCP_DIR_NAME


# ---------------------------------------------------------------------------
# Sub-models
# ---------------------------------------------------------------------------


class LoggingSettings(BaseModel):
    level: str = "INFO"
    format: str = "text"  # "text" | "json"

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of: {sorted(allowed)}")
        return v.upper()

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        if v.lower() not in ("text", "json"):
            raise ValueError("Log format must be 'text' or 'json'")
        return v.lower()


class AuditSettings(BaseModel):
    max_file_size: int = Field(default=DEFAULT_AUDIT_MAX_FILE_SIZE, gt=0)
    max_files: int = Field(default=DEFAULT_AUDIT_MAX_FILES, ge=0)


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------


class Settings(BaseModel):
    """
    Where sysmcp keeps its files and how it logs.

    Empty paths mean "use the default under ~/.sysmcp". Paths are checked
    against the storage path policy when the stores are built, not here.
    """

    config_path: str = ""
    audit_path: str = ""
    mapping_path: str = ""
    audit: AuditSettings = Field(default_factory=AuditSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    # Where these settings were read from (not stored)
    _settings_path: Path | None = None

    @property
    def resolved_config_path(self) -> Path:
        return _or_default(self.config_path, CONFIG_FILENAME)

    @property
    def resolved_audit_path(self) -> Path:
        return _or_default(self.audit_path, AUDIT_FILENAME)

    @property
    def resolved_mapping_path(self) -> Path:
        return _or_default(self.mapping_path, MAPPING_FILENAME)

    @property
    def settings_path(self) -> Path | None:
        return self._settings_path


def _or_default(value: str, filename: str) -> Path:
    if value:
        return Path(value).expanduser()
    return sysmcp_dir() / filename


# ---------------------------------------------------------------------------
# Load / save
# ---------------------------------------------------------------------------


def settings_file_path() -> Path:
    if env_path := os.environ.get("SYSMCP_SETTINGS"):
        return Path(env_path).expanduser()
    return sysmcp_dir() / SETTINGS_FILENAME


def load_settings(path: Path | None = None) -> Settings:
    """
    Load Settings from an optional TOML file, overlaid with environment variables.

    Priority (highest to lowest):
      1. Environment variables (SYSMCP_*)
      2. Settings file (SYSMCP_SETTINGS or ~/.sysmcp/settings.toml)
      3. Built-in defaults

    A missing settings file is not an error.
    """
    import tomllib

    cfg_path = path or settings_file_path()
    data: dict[str, Any] = {}

    if cfg_path.exists():
        try:
            with open(cfg_path, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as exc:
            raise ConfigError(f"Cannot read settings file {cfg_path}: {exc}") from exc

    _apply_env_overrides(data)

    try:
        settings = Settings.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid settings at {cfg_path}: {exc}") from exc

    settings._settings_path = cfg_path if cfg_path.exists() else None
    return settings


def _apply_env_overrides(data: dict[str, Any]) -> None:
    """Overlay SYSMCP_* environment variables onto the parsed TOML data."""
    if config_path := os.environ.get("SYSMCP_CONFIG_PATH"):
        data["config_path"] = config_path
    if audit_path := os.environ.get("SYSMCP_AUDIT_PATH"):
        data["audit_path"] = audit_path
    if mapping_path := os.environ.get("SYSMCP_MAPPING_PATH"):
        data["mapping_path"] = mapping_path
    if level := os.environ.get("SYSMCP_LOG_LEVEL"):
        data.setdefault("logging", {})["level"] = level
    if fmt := os.environ.get("SYSMCP_LOG_FORMAT"):
        data.setdefault("logging", {})["format"] = fmt


def save_settings(settings_data: dict[str, Any], path: Path | None = None) -> Path:
    """Validate and write a settings dict as TOML with secure permissions (0600)."""
    import tomli_w

    try:
        Settings.model_validate(settings_data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid settings: {exc}") from exc

    cfg_path = path or settings_file_path()

    try:
        atomic_write_text(cfg_path, tomli_w.dumps(settings_data))
    except OSError as exc:
        raise ConfigError(f"Cannot write settings to {cfg_path}: {exc}") from exc
    return cfg_path
