"""Tests for the filesystem package manager: install, link, activation, uninstall."""

import json
import os
import tempfile
import threading
from pathlib import Path

import pytest

from vmplugins.errors import (
    CopyCancelledError,
    ManifestValidationError,
    PluginError,
    PluginNotFoundError,
    PluginVerificationError,
    RegistryError,
)
from vmplugins.ids import vmid
from vmplugins.manager import PackageManager
from vmplugins.packages.models import Manifest
from vmplugins.settings import PluginSettings

EVM_ID = vmid("Lux EVM")


def _manager(tmpdir: str) -> PackageManager:
    return PackageManager(PluginSettings(base_dir=Path(tmpdir) / "plugins"))


def _write_binary(tmpdir: str, name: str = "evm-build", content: bytes = b"evm v1") -> Path:
    path = Path(tmpdir) / name
    path.write_bytes(content)
    path.chmod(0o755)
    return path


def _manifest(version: str = "v1.0.0", **overrides) -> Manifest:
    fields = {"org": "luxfi", "name": "evm", "version": version, "vmid": EVM_ID, "binary": "evm"}
    fields.update(overrides)
    return Manifest(**fields)


def _registry(tmpdir: str) -> dict:
    return json.loads((Path(tmpdir) / "plugins" / "registry.json").read_text())


def test_new_manager_creates_layout():
    with tempfile.TemporaryDirectory() as tmpdir:
        pm = _manager(tmpdir)
        assert (Path(tmpdir) / "plugins" / "packages").is_dir()
        assert pm.current_dir == Path(tmpdir) / "plugins" / "current"
        assert pm.current_dir.is_dir()
        assert pm.list() == []
        assert pm.list_active() == {}


def test_install_end_to_end():
    with tempfile.TemporaryDirectory() as tmpdir:
        pm = _manager(tmpdir)
        pm.install(_manifest(), _write_binary(tmpdir))

        base = Path(tmpdir) / "plugins"
        binary = base / "packages" / "luxfi" / "evm" / "v1.0.0" / "evm"
        assert binary.is_file()
        assert os.access(binary, os.X_OK)

        manifest = json.loads((binary.parent / "manifest.json").read_text())
        assert manifest["vmid"] == EVM_ID
        assert manifest["size"] == len(b"evm v1")
        assert manifest["installed_at"]

        assert os.readlink(base / "packages" / "luxfi" / "evm" / "latest") == "v1.0.0"
        assert (base / "current" / EVM_ID).resolve() == binary.resolve()

        registry = _registry(tmpdir)
        assert "v1.0.0" in registry["plugins"]["luxfi/evm"]
        assert registry["active"][EVM_ID] == "luxfi/evm@v1.0.0"


def test_invalid_manifest_has_no_side_effects():
    with tempfile.TemporaryDirectory() as tmpdir:
        pm = _manager(tmpdir)
        with pytest.raises(ManifestValidationError):
            pm.install(_manifest(vmid=""), _write_binary(tmpdir))
        assert list(pm.store.root.iterdir()) == []
        assert list(pm.current_dir.iterdir()) == []
        assert not (Path(tmpdir) / "plugins" / "registry.json").exists()


def test_installing_new_version_reactivates():
    with tempfile.TemporaryDirectory() as tmpdir:
        pm = _manager(tmpdir)
        pm.install(_manifest("v1.0.0"), _write_binary(tmpdir, content=b"one"))
        pm.install(_manifest("v1.1.0"), _write_binary(tmpdir, content=b"two"))

        assert (pm.current_dir / EVM_ID).read_bytes() == b"two"
        assert pm.get_active(EVM_ID).version == "v1.1.0"
        assert _registry(tmpdir)["plugins"]["luxfi/evm"] == ["v1.0.0", "v1.1.0"]


def test_activate_switches_versions_and_is_idempotent():
    with tempfile.TemporaryDirectory() as tmpdir:
        pm = _manager(tmpdir)
        pm.install(_manifest("v1.0.0"), _write_binary(tmpdir, content=b"one"))
        pm.install(_manifest("v1.1.0"), _write_binary(tmpdir, content=b"two"))

        pm.activate("luxfi", "evm", "v1.0.0")
        pm.activate("luxfi", "evm", "v1.0.0")

        assert (pm.current_dir / EVM_ID).read_bytes() == b"one"
        assert _registry(tmpdir)["active"] == {EVM_ID: "luxfi/evm@v1.0.0"}
        assert sorted(p.name for p in pm.current_dir.iterdir()) == [EVM_ID]


def test_activate_unknown_version_raises():
    with tempfile.TemporaryDirectory() as tmpdir:
        pm = _manager(tmpdir)
        with pytest.raises(PluginNotFoundError):
            pm.activate("luxfi", "evm", "v9.9.9")


def test_activate_replaces_stale_file():
    with tempfile.TemporaryDirectory() as tmpdir:
        pm = _manager(tmpdir)
        (pm.current_dir / EVM_ID).write_bytes(b"stale")
        pm.install(_manifest(), _write_binary(tmpdir, content=b"fresh"))
        assert (pm.current_dir / EVM_ID).is_symlink()
        assert (pm.current_dir / EVM_ID).read_bytes() == b"fresh"


def test_uninstall_inactive_version_keeps_binding():
    with tempfile.TemporaryDirectory() as tmpdir:
        pm = _manager(tmpdir)
        pm.install(_manifest("v1.0.0"), _write_binary(tmpdir, content=b"one"))
        pm.install(_manifest("v1.1.0"), _write_binary(tmpdir, content=b"two"))

        pm.uninstall("luxfi", "evm", "v1.0.0")

        assert not pm.package_path("luxfi", "evm", "v1.0.0").exists()
        registry = _registry(tmpdir)
        assert registry["plugins"]["luxfi/evm"] == ["v1.1.0"]
        assert registry["active"][EVM_ID] == "luxfi/evm@v1.1.0"
        assert (pm.current_dir / EVM_ID).read_bytes() == b"two"


def test_uninstall_active_version_unbinds_without_promotion():
    with tempfile.TemporaryDirectory() as tmpdir:
        pm = _manager(tmpdir)
        pm.install(_manifest("v1.0.0"), _write_binary(tmpdir, content=b"one"))
        pm.install(_manifest("v1.1.0"), _write_binary(tmpdir, content=b"two"))

        pm.uninstall("luxfi", "evm", "v1.1.0")

        assert not os.path.lexists(pm.current_dir / EVM_ID)
        assert EVM_ID not in pm.list_active()
        assert pm.get_active(EVM_ID) is None
        registry = _registry(tmpdir)
        assert EVM_ID not in registry["active"]
        assert registry["plugins"]["luxfi/evm"] == ["v1.0.0"]

        # Explicit re-activation brings it back
        pm.activate("luxfi", "evm", "v1.0.0")
        assert pm.get_active(EVM_ID).version == "v1.0.0"


def test_uninstall_last_version_drops_package():
    with tempfile.TemporaryDirectory() as tmpdir:
        pm = _manager(tmpdir)
        pm.install(_manifest(), _write_binary(tmpdir))
        pm.uninstall("luxfi", "evm", "v1.0.0")

        registry = _registry(tmpdir)
        assert registry["plugins"] == {}
        assert registry["active"] == {}
        assert pm.list() == []


def test_uninstall_absent_version_is_noop():
    with tempfile.TemporaryDirectory() as tmpdir:
        pm = _manager(tmpdir)
        pm.uninstall("luxfi", "evm", "v1.0.0")
        assert pm.list() == []


def test_uninstall_with_corrupt_manifest_still_removes_package():
    with tempfile.TemporaryDirectory() as tmpdir:
        pm = _manager(tmpdir)
        pm.install(_manifest(), _write_binary(tmpdir))
        pm.store.manifest_path("luxfi", "evm", "v1.0.0").write_text("garbage")

        pm.uninstall("luxfi", "evm", "v1.0.0")

        assert not pm.package_path("luxfi", "evm", "v1.0.0").exists()
        assert "luxfi/evm" not in _registry(tmpdir)["plugins"]


def test_link_reflects_rebuilt_source_but_install_does_not():
    with tempfile.TemporaryDirectory() as tmpdir:
        pm = _manager(tmpdir)
        linked_src = _write_binary(tmpdir, "linked-build", b"build 1")
        copied_src = _write_binary(tmpdir, "copied-build", b"build 1")
        core_id = vmid("Core VM")

        pm.link(_manifest("dev"), linked_src)
        pm.install(_manifest("v1.0.0", name="corevm", vmid=core_id, binary="corevm"), copied_src)

        linked_src.write_bytes(b"build 2")
        copied_src.write_bytes(b"build 2")

        assert (pm.current_dir / EVM_ID).read_bytes() == b"build 2"
        assert os.readlink(pm.current_dir / EVM_ID) == str(linked_src)
        assert (pm.current_dir / core_id).read_bytes() == b"build 1"


def test_link_then_install_same_version_replaces_symlink():
    with tempfile.TemporaryDirectory() as tmpdir:
        pm = _manager(tmpdir)
        source = _write_binary(tmpdir, content=b"dev")
        pm.link(_manifest(), source)
        pm.install(_manifest(), _write_binary(tmpdir, "release", b"release"))

        binary = pm.package_path("luxfi", "evm", "v1.0.0") / "evm"
        assert not binary.is_symlink()
        assert source.read_bytes() == b"dev"
        assert (pm.current_dir / EVM_ID).read_bytes() == b"release"


def test_list_and_list_active():
    with tempfile.TemporaryDirectory() as tmpdir:
        pm = _manager(tmpdir)
        core_id = vmid("Core VM")
        pm.install(_manifest("v1.0.0"), _write_binary(tmpdir))
        pm.install(_manifest("v1.1.0"), _write_binary(tmpdir))
        pm.install(_manifest("v0.1.0", org="myuser", name="corevm", vmid=core_id), _write_binary(tmpdir))

        assert sorted(m.qualified_id for m in pm.list()) == [
            "luxfi/evm@v1.0.0",
            "luxfi/evm@v1.1.0",
            "myuser/corevm@v0.1.0",
        ]
        active = pm.list_active()
        assert {k: m.qualified_id for k, m in active.items()} == {
            EVM_ID: "luxfi/evm@v1.1.0",
            core_id: "myuser/corevm@v0.1.0",
        }


def test_registry_persists_across_managers():
    with tempfile.TemporaryDirectory() as tmpdir:
        _manager(tmpdir).install(_manifest(), _write_binary(tmpdir))
        pm = _manager(tmpdir)
        assert [m.qualified_id for m in pm.list()] == ["luxfi/evm@v1.0.0"]
        assert pm.get_active(EVM_ID).version == "v1.0.0"


def test_corrupt_registry_fails_construction():
    with tempfile.TemporaryDirectory() as tmpdir:
        base = Path(tmpdir) / "plugins"
        base.mkdir()
        (base / "registry.json").write_text("{")
        with pytest.raises(RegistryError):
            _manager(tmpdir)


def test_verify():
    with tempfile.TemporaryDirectory() as tmpdir:
        pm = _manager(tmpdir)
        with pytest.raises(PluginNotFoundError):
            pm.verify(EVM_ID)

        source = _write_binary(tmpdir)
        pm.link(_manifest(), source)
        assert pm.verify(EVM_ID) == source.resolve()

        source.chmod(0o644)
        with pytest.raises(PluginVerificationError):
            pm.verify(EVM_ID)

        source.unlink()
        with pytest.raises(PluginNotFoundError):
            pm.verify(EVM_ID)


def test_cancelled_reinstall_keeps_active_binary():
    with tempfile.TemporaryDirectory() as tmpdir:
        pm = _manager(tmpdir)
        pm.install(_manifest(), _write_binary(tmpdir, content=b"one"))
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(CopyCancelledError):
            pm.install(_manifest(), _write_binary(tmpdir, "rebuild", b"two"), cancel=cancel)

        assert (pm.current_dir / EVM_ID).read_bytes() == b"one"
        assert _registry(tmpdir)["active"][EVM_ID] == "luxfi/evm@v1.0.0"
        pm.verify(EVM_ID)


def test_failed_removal_still_persists_unbinding(monkeypatch):
    with tempfile.TemporaryDirectory() as tmpdir:
        pm = _manager(tmpdir)
        pm.install(_manifest(), _write_binary(tmpdir))

        def fail_remove(org, name, version):
            raise PluginError("disk full")

        monkeypatch.setattr(pm.store, "remove", fail_remove)
        with pytest.raises(PluginError):
            pm.uninstall("luxfi", "evm", "v1.0.0")

        assert not os.path.lexists(pm.current_dir / EVM_ID)
        assert EVM_ID not in _registry(tmpdir)["active"]
        assert _manager(tmpdir).get_active(EVM_ID) is None
