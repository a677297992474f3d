"""Activation — keeps ``current/<vmid>`` pointing at exactly one binary."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from vmplugins.errors import PluginError, PluginNotFoundError
from vmplugins.packages.models import Manifest
from vmplugins.packages.store import PackageStore
from vmplugins.registry.local_registry import LocalRegistry
from vmplugins.utils.file_ops import remove_path, replace_symlink

LOGGER = logging.getLogger(__name__)


class ActivationManager:
    """Swaps VM ID symlinks in ``current/`` and records the binding."""

    def __init__(self, current_dir: str | Path, store: PackageStore, registry: LocalRegistry):
        self.current_dir = Path(current_dir)
        self.current_dir.mkdir(parents=True, exist_ok=True)
        self._store = store
        self._registry = registry

    def active_path(self, vmid: str) -> Path:
        return self.current_dir / vmid

    def activate(self, org: str, name: str, version: str) -> Manifest:
        """Point ``current/<vmid>`` at the version's binary and save the binding.

        Linked packages are activated straight at their source binary,
        skipping the package-directory symlink. Re-activating the active
        version just rewrites the link.
        """
        manifest = self._store.get_manifest(org, name, version)
        target = self.target_for(manifest)
        link_path = self.active_path(manifest.vmid)
        try:
            replace_symlink(target, link_path)
        except OSError as exc:
            raise PluginError(f"Failed to create VM ID symlink {link_path}: {exc}") from exc

        self._registry.bind(manifest.vmid, org, name, version)
        self._registry.save()
        LOGGER.info("Activated %s as %s", manifest.qualified_id, manifest.vmid)
        return manifest

    def deactivate(self, vmid: str) -> None:
        """Remove ``current/<vmid>`` and its binding. Absent entries are fine."""
        link_path = self.active_path(vmid)
        try:
            remove_path(link_path)
        except OSError as exc:
            raise PluginError(f"Failed to remove VM ID symlink {link_path}: {exc}") from exc
        self._registry.unbind(vmid)
        LOGGER.info("Deactivated %s", vmid)

    def target_for(self, manifest: Manifest) -> Path:
        binary = self._store.binary_path(manifest)
        if manifest.linked and binary.is_symlink():
            return Path(os.readlink(binary))
        return binary

    def resolve(self, vmid: str) -> Path:
        """The binary ``current/<vmid>`` resolves to.

        Raises PluginNotFoundError when the entry is missing or dangling.
        """
        link_path = self.active_path(vmid)
        if not os.path.lexists(link_path):
            raise PluginNotFoundError(f"Plugin {vmid} is not active")
        resolved = link_path.resolve()
        if not resolved.exists():
            raise PluginNotFoundError(f"Plugin {vmid} symlink target missing: {resolved}")
        return resolved
