"""
Tests for the persisted config document and ConfigStore.

Covers:
  - Schema rejections and unknown-key stripping
  - Atomic save (no temp files, 0600, destination intact on failure)
  - Parallel saves leave exactly one valid file
  - Corrupt files are quarantined and load() returns None
"""

from __future__ import annotations

import asyncio
import json
import os
import stat
import sys
from pathlib import Path

import pytest

from sysmcp.core.exceptions import ConfigValidationError, StoragePathError
from sysmcp.core.store import ConfigDocument, ConfigStore, PermissionLevel, default_config, validate_config


def _doc(**service) -> dict:
    base = {"enabled": True, "permissionLevel": "read-only", "enableAnonymization": True}
    base.update(service)
    return {"version": 1, "services": {"eventlog": base}}


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------


class TestValidateConfig:
    def test_valid_document(self) -> None:
        cfg = validate_config(_doc(maxResults=500, timeoutMs=5000))
        svc = cfg.services["eventlog"]
        assert svc.enabled is True
        assert svc.permission_level is PermissionLevel.READ_ONLY
        assert svc.max_results == 500
        assert svc.timeout_ms == 5000

    def test_strips_unknown_keys(self) -> None:
        data = _doc(maliciousField="x")
        data["__proto__"] = {"polluted": True}
        data["services"]["eventlog"]["__proto__"] = {"admin": True}
        out = validate_config(data).to_json_dict()
        assert "__proto__" not in out
        assert set(out["services"]["eventlog"]) == {"enabled", "permissionLevel", "enableAnonymization"}

    @pytest.mark.parametrize("data", [None, [], "config", 42])
    def test_rejects_non_object(self, data) -> None:
        with pytest.raises(ConfigValidationError, match="JSON object"):
            validate_config(data)

    def test_rejects_missing_services(self) -> None:
        with pytest.raises(ConfigValidationError, match="services"):
            validate_config({"version": 1})

    def test_rejects_non_object_services(self) -> None:
        with pytest.raises(ConfigValidationError, match="services"):
            validate_config({"version": 1, "services": []})

    def test_rejects_non_numeric_version(self) -> None:
        data = _doc()
        data["version"] = "1"
        with pytest.raises(ConfigValidationError):
            validate_config(data)

    @pytest.mark.parametrize(
        "field, value",
        [
            ("enabled", "yes"),
            ("enabled", 1),
            ("permissionLevel", "admin"),
            ("enableAnonymization", "true"),
            ("maxResults", 0),
            ("maxResults", 100_001),
            ("maxResults", 10.5),
            ("timeoutMs", 999),
            ("timeoutMs", 300_001),
        ],
    )
    def test_rejects_bad_service_fields(self, field: str, value) -> None:
        with pytest.raises(ConfigValidationError):
            validate_config(_doc(**{field: value}))

    def test_range_boundaries_accepted(self) -> None:
        validate_config(_doc(maxResults=1, timeoutMs=1000))
        validate_config(_doc(maxResults=100_000, timeoutMs=300_000))

    def test_error_names_the_field(self) -> None:
        with pytest.raises(ConfigValidationError, match="permissionLevel"):
            validate_config(_doc(permissionLevel="root"))

    def test_default_config_is_empty(self) -> None:
        cfg = default_config()
        assert cfg.services == {}
        assert cfg.version == 1


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class TestConfigStore:
    def test_rejects_unsafe_path(self) -> None:
        with pytest.raises(StoragePathError):
            ConfigStore("../../../etc/passwd.json")
        with pytest.raises(StoragePathError):
            ConfigStore("config.exe")

    @pytest.mark.asyncio
    async def test_load_missing_returns_none(self, tmp_path: Path) -> None:
        store = ConfigStore(tmp_path / "config.json")
        assert not store.exists()
        assert await store.load() is None

    @pytest.mark.asyncio
    async def test_save_then_load(self, tmp_path: Path) -> None:
        store = ConfigStore(tmp_path / "sub" / "config.json")
        written = await store.save(_doc(maxResults=50))
        assert written.version == 1
        assert written.last_modified

        loaded = await store.load()
        assert loaded is not None
        assert loaded.services["eventlog"].max_results == 50
        assert loaded.last_modified == written.last_modified

    @pytest.mark.asyncio
    async def test_saved_file_is_pretty_json(self, tmp_path: Path) -> None:
        store = ConfigStore(tmp_path / "config.json")
        await store.save(_doc())
        text = store.path.read_text()
        assert text.startswith('{\n  "version": 1,')
        assert json.loads(text)["services"]["eventlog"]["permissionLevel"] == "read-only"

    @pytest.mark.asyncio
    async def test_save_rejects_invalid(self, tmp_path: Path) -> None:
        store = ConfigStore(tmp_path / "config.json")
        with pytest.raises(ConfigValidationError):
            await store.save(_doc(permissionLevel="everything"))
        assert not store.exists()

    @pytest.mark.asyncio
    async def test_save_accepts_document_model(self, tmp_path: Path) -> None:
        store = ConfigStore(tmp_path / "config.json")
        await store.save(ConfigDocument.model_validate(_doc()))
        assert store.exists()

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    @pytest.mark.asyncio
    async def test_file_mode_0600(self, tmp_path: Path) -> None:
        store = ConfigStore(tmp_path / "config.json")
        await store.save(_doc())
        assert stat.S_IMODE(os.stat(store.path).st_mode) == 0o600

    @pytest.mark.asyncio
    async def test_parallel_saves_leave_one_valid_file(self, tmp_path: Path) -> None:
        store = ConfigStore(tmp_path / "config.json")
        await asyncio.gather(*(store.save(_doc(maxResults=i + 1)) for i in range(10)))

        assert [p.name for p in tmp_path.iterdir()] == ["config.json"]
        loaded = await store.load()
        assert loaded is not None
        assert 1 <= loaded.services["eventlog"].max_results <= 10

    @pytest.mark.asyncio
    async def test_failed_rename_keeps_destination(self, tmp_path: Path, monkeypatch) -> None:
        store = ConfigStore(tmp_path / "config.json")
        await store.save(_doc(maxResults=7))
        before = store.path.read_text()

        def fail_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr("sysmcp.core.fileio.os.replace", fail_replace)
        with pytest.raises(OSError, match="disk full"):
            await store.save(_doc(maxResults=8))

        assert store.path.read_text() == before
        assert [p.name for p in tmp_path.iterdir()] == ["config.json"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "content",
        ["{not json", "[]", '{"version": 1}', json.dumps(_doc(permissionLevel="root"))],
    )
    async def test_corrupt_file_is_quarantined(self, tmp_path: Path, content: str) -> None:
        path = tmp_path / "config.json"
        path.write_text(content)
        store = ConfigStore(path)

        assert await store.load() is None
        assert not path.exists()
        quarantined = list(tmp_path.glob("config.json.corrupt.*"))
        assert len(quarantined) == 1
        assert quarantined[0].read_text() == content
        assert quarantined[0].name.rsplit(".", 1)[1].isdigit()

    @pytest.mark.asyncio
    async def test_deeply_nested_file_is_quarantined(self, tmp_path: Path) -> None:
        path = tmp_path / "config.json"
        path.write_text("[" * 200_000)
        store = ConfigStore(path)

        assert await store.load() is None
        assert not path.exists()
        assert len(list(tmp_path.glob("config.json.corrupt.*"))) == 1
