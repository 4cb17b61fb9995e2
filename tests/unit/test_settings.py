"""Unit tests for settings loading and logging setup."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from sysmcp.core.config import Settings, load_settings, save_settings, sysmcp_dir
from sysmcp.core.exceptions import ConfigError
from sysmcp.core.logging import JsonFormatter, configure_logging

_ENV_VARS = (
    "SYSMCP_SETTINGS",
    "SYSMCP_CONFIG_PATH",
    "SYSMCP_AUDIT_PATH",
    "SYSMCP_MAPPING_PATH",
    "SYSMCP_LOG_LEVEL",
    "SYSMCP_LOG_FORMAT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestLoadSettings:
    def test_defaults_without_file(self, tmp_path: Path) -> None:
        settings = load_settings(tmp_path / "settings.toml")
        assert settings.settings_path is None
        assert settings.resolved_config_path == sysmcp_dir() / "sysmcp-config.json"
        assert settings.resolved_audit_path == sysmcp_dir() / "audit.jsonl"
        assert settings.resolved_mapping_path == sysmcp_dir() / "anonymization-mapping.json"
        assert settings.audit.max_file_size == 10 * 1024 * 1024
        assert settings.audit.max_files == 5
        assert settings.logging.level == "INFO"

    def test_reads_toml(self, tmp_path: Path) -> None:
        path = tmp_path / "settings.toml"
        path.write_text(
            'config_path = "/srv/sysmcp/config.json"\n'
            "[audit]\nmax_files = 2\n"
            '[logging]\nlevel = "debug"\nformat = "json"\n'
        )
        settings = load_settings(path)
        assert settings.settings_path == path
        assert settings.resolved_config_path == Path("/srv/sysmcp/config.json")
        assert settings.audit.max_files == 2
        assert settings.logging.level == "DEBUG"
        assert settings.logging.format == "json"

    def test_env_overrides_file(self, tmp_path: Path, monkeypatch) -> None:
        path = tmp_path / "settings.toml"
        path.write_text('audit_path = "/from/file/audit.jsonl"\n[logging]\nlevel = "ERROR"\n')
        monkeypatch.setenv("SYSMCP_AUDIT_PATH", "/from/env/audit.jsonl")
        monkeypatch.setenv("SYSMCP_LOG_LEVEL", "warning")
        settings = load_settings(path)
        assert settings.resolved_audit_path == Path("/from/env/audit.jsonl")
        assert settings.logging.level == "WARNING"

    def test_settings_env_var_selects_file(self, tmp_path: Path, monkeypatch) -> None:
        path = tmp_path / "custom.toml"
        path.write_text('mapping_path = "/m/mapping.json"\n')
        monkeypatch.setenv("SYSMCP_SETTINGS", str(path))
        assert load_settings().resolved_mapping_path == Path("/m/mapping.json")

    def test_invalid_toml(self, tmp_path: Path) -> None:
        path = tmp_path / "settings.toml"
        path.write_text("config_path = ")
        with pytest.raises(ConfigError, match="Cannot read settings"):
            load_settings(path)

    def test_invalid_values(self, tmp_path: Path) -> None:
        path = tmp_path / "settings.toml"
        path.write_text('[logging]\nlevel = "LOUD"\n')
        with pytest.raises(ConfigError, match="Invalid settings"):
            load_settings(path)

    def test_negative_max_files_rejected(self) -> None:
        with pytest.raises(ValueError):
            Settings.model_validate({"audit": {"max_files": -1}})


class TestSaveSettings:
    def test_round_trip(self, tmp_path: Path) -> None:
        path = tmp_path / "nested" / "settings.toml"
        save_settings({"config_path": "/x/config.json", "logging": {"level": "DEBUG"}}, path)
        assert path.exists()
        assert (path.stat().st_mode & 0o777) == 0o600
        assert load_settings(path).resolved_config_path == Path("/x/config.json")

    def test_failed_write_keeps_existing_file(self, tmp_path: Path, monkeypatch) -> None:
        path = tmp_path / "settings.toml"
        save_settings({"logging": {"level": "DEBUG"}}, path)
        before = path.read_text()

        def fail_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr("sysmcp.core.fileio.os.replace", fail_replace)
        with pytest.raises(ConfigError, match="Cannot write settings"):
            save_settings({"logging": {"level": "ERROR"}}, path)

        assert path.read_text() == before
        assert [p.name for p in tmp_path.iterdir()] == ["settings.toml"]

    def test_rejects_invalid(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError):
            save_settings({"logging": {"format": "xml"}}, tmp_path / "settings.toml")
        assert not (tmp_path / "settings.toml").exists()


class TestLogging:
    def test_json_formatter(self) -> None:
        record = logging.LogRecord("sysmcp.test", logging.WARNING, __file__, 1, "hello %s", ("world",), None)
        payload = json.loads(JsonFormatter().format(record))
        assert payload["message"] == "hello world"
        assert payload["level"] == "WARNING"
        assert payload["logger"] == "sysmcp.test"

    def test_configure_replaces_handlers(self) -> None:
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            configure_logging("DEBUG", "json")
            configure_logging("DEBUG", "json")
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, JsonFormatter)
            configure_logging("info", "text")
            assert root.level == logging.INFO
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)
