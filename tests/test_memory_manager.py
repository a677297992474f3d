"""Tests for the in-memory package manager."""

import tempfile
from pathlib import Path

import pytest

from vmplugins.errors import ManifestValidationError, PluginNotFoundError
from vmplugins.manager import InMemoryPackageManager, PluginPackageManager
from vmplugins.packages.models import Manifest


def _manifest(version: str = "v1.0.0", **overrides) -> Manifest:
    fields = {"org": "luxfi", "name": "evm", "version": version, "vmid": "vmid-evm"}
    fields.update(overrides)
    return Manifest(**fields)


def _write(tmpdir: str, name: str, content: bytes) -> Path:
    path = Path(tmpdir) / name
    path.write_bytes(content)
    return path


def test_is_a_plugin_package_manager():
    assert isinstance(InMemoryPackageManager(), PluginPackageManager)


def test_install_activates_and_copies():
    with tempfile.TemporaryDirectory() as tmpdir:
        pm = InMemoryPackageManager()
        source = _write(tmpdir, "evm", b"one")
        manifest = pm.install(_manifest(), source)

        assert manifest.size == 3
        source.write_bytes(b"changed")
        assert pm.read_binary("vmid-evm") == b"one"
        assert pm.registry.plugins == {"luxfi/evm": ["v1.0.0"]}
        assert pm.registry.active == {"vmid-evm": "luxfi/evm@v1.0.0"}


def test_link_follows_source():
    with tempfile.TemporaryDirectory() as tmpdir:
        pm = InMemoryPackageManager()
        source = _write(tmpdir, "evm", b"one")
        pm.link(_manifest("dev"), source)

        source.write_bytes(b"two")
        assert pm.read_binary("vmid-evm") == b"two"
        assert pm.get_manifest("luxfi", "evm", "dev").linked


def test_uninstall_rules_match_filesystem_manager():
    with tempfile.TemporaryDirectory() as tmpdir:
        pm = InMemoryPackageManager()
        pm.install(_manifest("v1.0.0"), _write(tmpdir, "a", b"one"))
        pm.install(_manifest("v1.1.0"), _write(tmpdir, "b", b"two"))

        pm.uninstall("luxfi", "evm", "v1.0.0")
        assert pm.get_active("vmid-evm").version == "v1.1.0"

        pm.uninstall("luxfi", "evm", "v1.1.0")
        assert pm.list_active() == {}
        assert pm.registry.plugins == {}
        with pytest.raises(PluginNotFoundError):
            pm.read_binary("vmid-evm")

        pm.uninstall("luxfi", "evm", "v1.1.0")


def test_validation_and_missing_manifest():
    with tempfile.TemporaryDirectory() as tmpdir:
        pm = InMemoryPackageManager()
        with pytest.raises(ManifestValidationError):
            pm.install(_manifest(org=""), _write(tmpdir, "a", b"x"))
        with pytest.raises(PluginNotFoundError):
            pm.activate("luxfi", "evm", "v1.0.0")
        with pytest.raises(PluginNotFoundError):
            pm.install(_manifest(), Path(tmpdir) / "missing")


def test_returned_manifests_are_copies():
    with tempfile.TemporaryDirectory() as tmpdir:
        pm = InMemoryPackageManager()
        pm.install(_manifest(), _write(tmpdir, "a", b"x"))
        pm.list()[0].version = "tampered"
        assert pm.get_manifest("luxfi", "evm", "v1.0.0").version == "v1.0.0"
