"""In-memory plugin package manager.

Mirrors :class:`PackageManager` without touching a package store: installed
binaries are held as bytes, linked ones as the source path. Useful for host
code that needs a manager in unit tests.
"""

from __future__ import annotations

import os
from dataclasses import replace
from pathlib import Path
from typing import Optional

from vmplugins.errors import CopyCancelledError, ManifestValidationError, PluginNotFoundError
from vmplugins.manager.base import PluginPackageManager
from vmplugins.packages.models import Manifest
from vmplugins.registry.models import RegistryDocument, format_ref, package_key, parse_ref
from vmplugins.utils.file_ops import CancelToken

_Key = tuple[str, str, str]


class InMemoryPackageManager(PluginPackageManager):
    """Dict-backed manager with the same install/activation rules."""

    def __init__(self, current_dir: str | Path = "/memory/current"):
        self._current_dir = Path(current_dir)
        self.registry = RegistryDocument()
        self._manifests: dict[_Key, Manifest] = {}
        self._binaries: dict[_Key, bytes] = {}
        self._links: dict[_Key, Path] = {}

    @property
    def current_dir(self) -> Path:
        return self._current_dir

    def install(
        self,
        manifest: Manifest,
        binary_path: str | Path,
        cancel: Optional[CancelToken] = None,
    ) -> Manifest:
        _validate(manifest)
        if cancel is not None and cancel.is_set():
            raise CopyCancelledError(f"Copy of {binary_path} cancelled")
        try:
            data = Path(binary_path).read_bytes()
        except FileNotFoundError as exc:
            raise PluginNotFoundError(f"Binary not found: {binary_path}") from exc
        key = _key(manifest)
        self._binaries[key] = data
        self._links.pop(key, None)
        manifest.linked = False
        manifest.stamp(len(data))
        return self._store(manifest)

    def link(self, manifest: Manifest, binary_path: str | Path) -> Manifest:
        _validate(manifest)
        source = Path(os.path.abspath(binary_path))
        if not source.exists():
            raise PluginNotFoundError(f"Binary not found: {source}")
        key = _key(manifest)
        self._links[key] = source
        self._binaries.pop(key, None)
        manifest.linked = True
        manifest.stamp(source.stat().st_size)
        return self._store(manifest)

    def activate(self, org: str, name: str, version: str) -> Manifest:
        manifest = self.get_manifest(org, name, version)
        self.registry.active[manifest.vmid] = format_ref(org, name, version)
        return manifest

    def uninstall(self, org: str, name: str, version: str) -> None:
        key = (org, name, version)
        manifest = self._manifests.pop(key, None)
        if manifest is not None and self.registry.active.get(manifest.vmid) == format_ref(*key):
            del self.registry.active[manifest.vmid]
        self._binaries.pop(key, None)
        self._links.pop(key, None)

        pkg = package_key(org, name)
        versions = [v for v in self.registry.plugins.get(pkg, []) if v != version]
        if versions:
            self.registry.plugins[pkg] = versions
        else:
            self.registry.plugins.pop(pkg, None)

    def get_manifest(self, org: str, name: str, version: str) -> Manifest:
        try:
            return replace(self._manifests[(org, name, version)])
        except KeyError:
            raise PluginNotFoundError(f"No manifest for {format_ref(org, name, version)}") from None

    def list(self) -> list[Manifest]:
        return [replace(m) for m in self._manifests.values()]

    def list_active(self) -> dict[str, Manifest]:
        active = {}
        for vmid, ref in self.registry.active.items():
            parsed = parse_ref(ref)
            active[vmid] = self.get_manifest(parsed.org, parsed.name, parsed.version)
        return active

    def read_binary(self, vmid: str) -> bytes:
        """Contents the host would load for *vmid*."""
        ref = self.registry.active.get(vmid)
        if ref is None:
            raise PluginNotFoundError(f"Plugin {vmid} is not active")
        parsed = parse_ref(ref)
        key = (parsed.org, parsed.name, parsed.version)
        if key in self._links:
            return self._links[key].read_bytes()
        return self._binaries[key]

    def _store(self, manifest: Manifest) -> Manifest:
        self._manifests[_key(manifest)] = replace(manifest)
        versions = self.registry.plugins.setdefault(manifest.package_key, [])
        if manifest.version not in versions:
            versions.append(manifest.version)
        return self.activate(manifest.org, manifest.name, manifest.version)


def _key(manifest: Manifest) -> _Key:
    return (manifest.org, manifest.name, manifest.version)


def _validate(manifest: Manifest) -> None:
    missing = manifest.missing_fields()
    if missing:
        raise ManifestValidationError(missing)
