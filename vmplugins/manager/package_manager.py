"""Filesystem-backed plugin package manager.

Layout under the configured base directory::

    packages/<org>/<name>/<version>/<binary>
    packages/<org>/<name>/<version>/manifest.json
    packages/<org>/<name>/latest -> <version>
    current/<vmid> -> packages/.../<binary>   (or the source binary when linked)
    registry.json

The registry is loaded once when the manager is built and written back after
every mutating call. Callers must not run two managers against the same base
directory concurrently.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from vmplugins.errors import PluginError, PluginVerificationError
from vmplugins.manager.activation import ActivationManager
from vmplugins.manager.base import PluginPackageManager
from vmplugins.migration.legacy import LegacyMigrator, MigrationReport
from vmplugins.packages.models import Manifest
from vmplugins.packages.store import PackageStore
from vmplugins.registry.local_registry import LocalRegistry
from vmplugins.registry.models import PackageRef
from vmplugins.settings import PluginSettings
from vmplugins.utils.file_ops import CancelToken, is_executable

LOGGER = logging.getLogger(__name__)


class PackageManager(PluginPackageManager):
    """Versioned plugin installs with one active binary per VM ID."""

    def __init__(self, settings: PluginSettings):
        self.settings = settings
        self.base_dir = settings.base_dir
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise PluginError(f"Failed to create plugin directory {self.base_dir}: {exc}") from exc
        self.store = PackageStore(self.base_dir)
        self.registry = LocalRegistry(self.base_dir)
        self.registry.load()
        self.activation = ActivationManager(settings.current_dir, self.store, self.registry)

    @property
    def current_dir(self) -> Path:
        return self.activation.current_dir

    def package_path(self, org: str, name: str, version: str) -> Path:
        return self.store.package_path(org, name, version)

    def active_path(self, vmid: str) -> Path:
        return self.activation.active_path(vmid)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def install(
        self,
        manifest: Manifest,
        binary_path: str | Path,
        cancel: Optional[CancelToken] = None,
    ) -> Manifest:
        LOGGER.info("Installing %s from %s", manifest.qualified_id, binary_path)
        self.store.install(manifest, binary_path, cancel=cancel)
        self._record(manifest)
        return self.activation.activate(manifest.org, manifest.name, manifest.version)

    def link(self, manifest: Manifest, binary_path: str | Path) -> Manifest:
        LOGGER.info("Linking %s to %s", manifest.qualified_id, binary_path)
        self.store.link(manifest, binary_path)
        self._record(manifest)
        return self.activation.activate(manifest.org, manifest.name, manifest.version)

    def activate(self, org: str, name: str, version: str) -> Manifest:
        return self.activation.activate(org, name, version)

    def uninstall(self, org: str, name: str, version: str) -> None:
        """Remove one version.

        The VM ID is deactivated only if it is bound to this exact version.
        A missing or unreadable manifest skips that step.
        """
        LOGGER.info("Uninstalling %s/%s@%s", org, name, version)
        try:
            manifest = self.store.get_manifest(org, name, version)
        except PluginError as exc:
            LOGGER.debug("Skipping VM ID cleanup for %s/%s@%s: %s", org, name, version, exc)
            manifest = None

        if manifest is not None and manifest.vmid:
            if self.registry.binding(manifest.vmid) == PackageRef(org, name, version):
                self.activation.deactivate(manifest.vmid)
                self.registry.save()

        self.store.remove(org, name, version)
        self.registry.remove_version(org, name, version)
        self.registry.save()

    def migrate_from_legacy(self, legacy_dir: Optional[str | Path] = None) -> MigrationReport:
        """Import a flat VM ID symlink directory. See :mod:`vmplugins.migration.legacy`."""
        source = legacy_dir or self.settings.legacy_dir
        if source is None:
            raise ValueError("No legacy directory given or configured")
        return LegacyMigrator(self).migrate(source)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_manifest(self, org: str, name: str, version: str) -> Manifest:
        return self.store.get_manifest(org, name, version)

    def list(self) -> list[Manifest]:
        manifests = []
        for ref in self.registry.packages():
            try:
                manifests.append(self.store.get_manifest(ref.org, ref.name, ref.version))
            except PluginError as exc:
                LOGGER.debug("Skipping %s: %s", ref, exc)
        return manifests

    def list_active(self) -> dict[str, Manifest]:
        active: dict[str, Manifest] = {}
        if not self.current_dir.is_dir():
            return active
        for entry in sorted(self.current_dir.iterdir()):
            ref = self.registry.binding(entry.name)
            if ref is None:
                continue
            try:
                active[entry.name] = self.store.get_manifest(ref.org, ref.name, ref.version)
            except PluginError as exc:
                LOGGER.debug("Skipping active %s: %s", entry.name, exc)
        return active

    def verify(self, vmid: str) -> Path:
        """Check that ``current/<vmid>`` resolves to an executable binary."""
        binary = self.activation.resolve(vmid)
        if not is_executable(binary):
            raise PluginVerificationError(f"Plugin {vmid} is not executable: {binary}")
        return binary

    def _record(self, manifest: Manifest) -> None:
        self.registry.record_version(manifest.org, manifest.name, manifest.version)
        self.registry.save()


