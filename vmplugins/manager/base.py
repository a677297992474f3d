"""Capability interface shared by the filesystem and in-memory managers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from vmplugins.packages.models import Manifest
from vmplugins.utils.file_ops import CancelToken


class PluginPackageManager(ABC):
    """Installs plugin package versions and binds VM IDs to one of them.

    Installing or linking a version always makes it the active binary for
    its VM ID. Uninstalling the active version leaves the VM ID unbound;
    no other version is promoted in its place.
    """

    @abstractmethod
    def install(
        self,
        manifest: Manifest,
        binary_path: str | Path,
        cancel: Optional[CancelToken] = None,
    ) -> Manifest:
        """Copy a binary into the store and activate it."""

    @abstractmethod
    def link(self, manifest: Manifest, binary_path: str | Path) -> Manifest:
        """Symlink a development binary into the store and activate it."""

    @abstractmethod
    def activate(self, org: str, name: str, version: str) -> Manifest:
        """Bind the version's VM ID to it."""

    @abstractmethod
    def uninstall(self, org: str, name: str, version: str) -> None:
        """Remove one installed version."""

    @abstractmethod
    def get_manifest(self, org: str, name: str, version: str) -> Manifest: ...

    @abstractmethod
    def list(self) -> list[Manifest]:
        """Manifests of every installed version."""

    @abstractmethod
    def list_active(self) -> dict[str, Manifest]:
        """Active manifest per VM ID."""

    @property
    @abstractmethod
    def current_dir(self) -> Path:
        """Directory of VM ID entries the host process loads."""

    def get_active(self, vmid: str) -> Optional[Manifest]:
        return self.list_active().get(vmid)
