"""Flat plugin directory — one ``<vmid>`` file or symlink per plugin.

This is the layout hosts used before versioned packages, and what
``current/`` still looks like from the host's side.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from vmplugins.errors import PluginError, PluginNotFoundError, PluginVerificationError
from vmplugins.ids import vmid as compute_vmid
from vmplugins.utils.file_ops import (
    CancelToken,
    copy_file,
    is_executable,
    remove_path,
    replace_symlink,
)

LOGGER = logging.getLogger(__name__)


@dataclass
class PluginInfo:
    """What the flat directory knows about one plugin entry."""

    vmid: str
    path: str
    installed: bool = False
    size: int = 0
    modified_at: str = ""  # ISO 8601


class FlatPluginDirectory:
    """Manage plugins stored directly as ``<plugin_dir>/<vmid>``."""

    def __init__(self, plugin_dir: str | Path):
        self.plugin_dir = Path(plugin_dir)

    def ensure_dir(self) -> None:
        self.plugin_dir.mkdir(parents=True, exist_ok=True)

    def path(self, vmid: str) -> Path:
        return self.plugin_dir / vmid

    def exists(self, vmid: str) -> bool:
        return self.path(vmid).is_file()

    def list(self) -> list[PluginInfo]:
        """Every non-directory entry; an absent directory lists as empty."""
        if not self.plugin_dir.is_dir():
            return []
        plugins = []
        for entry in sorted(self.plugin_dir.iterdir()):
            if entry.is_dir():
                continue
            plugins.append(self._info(entry))
        return plugins

    def get(self, vmid: str) -> PluginInfo:
        """Info for *vmid*; ``installed`` is False when nothing is there."""
        return self._info(self.path(vmid))

    def install(self, source: str | Path, vmid: str, cancel: Optional[CancelToken] = None) -> Path:
        """Copy *source* to ``<plugin_dir>/<vmid>``, honouring *cancel*."""
        source = Path(source)
        if not source.exists():
            raise PluginNotFoundError(f"Source file not found: {source}")
        if source.is_dir():
            raise PluginError(f"Source is a directory, expected a file: {source}")
        self.ensure_dir()
        dest = self.path(vmid)
        try:
            copy_file(source, dest, cancel=cancel)
        except OSError as exc:
            raise PluginError(f"Failed to install {source} as {vmid}: {exc}") from exc
        LOGGER.info("Installed %s into %s", vmid, self.plugin_dir)
        return dest

    def uninstall(self, vmid: str) -> bool:
        """Remove *vmid*. Returns False when it was already gone."""
        try:
            return remove_path(self.path(vmid))
        except OSError as exc:
            raise PluginError(f"Failed to remove plugin {vmid}: {exc}") from exc

    def link(self, vmid: str, binary_path: str | Path) -> Path:
        """Symlink ``<plugin_dir>/<vmid>`` to an executable development build."""
        self.ensure_dir()
        source = Path(os.path.abspath(binary_path))
        if not source.exists():
            raise PluginNotFoundError(f"Binary not found: {source}")
        if not is_executable(source):
            raise PluginVerificationError(f"Binary is not executable: {source}")
        link_path = self.path(vmid)
        try:
            replace_symlink(source, link_path)
        except OSError as exc:
            raise PluginError(f"Failed to create symlink {link_path}: {exc}") from exc
        return link_path

    def link_by_name(self, vm_name: str, binary_path: str | Path) -> Path:
        return self.link(compute_vmid(vm_name), binary_path)

    def is_symlink(self, vmid: str) -> bool:
        return self.path(vmid).is_symlink()

    def get_target(self, vmid: str) -> str:
        if not self.is_symlink(vmid):
            raise PluginError(f"Plugin {vmid} is not a symlink")
        return os.readlink(self.path(vmid))

    def verify(self, vmid: str) -> Path:
        """Check the plugin exists, its symlink target (if any) exists, and it is executable.

        Returns the path of the binary that was checked.
        """
        path = self.path(vmid)
        if not os.path.lexists(path):
            raise PluginNotFoundError(f"Plugin {vmid} not installed")
        if path.is_symlink():
            target = Path(os.readlink(path))
            if not target.is_absolute():
                target = path.parent / target
            if not target.exists():
                raise PluginNotFoundError(f"Plugin symlink target missing: {target}")
            path = target
        if not is_executable(path):
            raise PluginVerificationError(f"Plugin {vmid} is not executable")
        return path

    def _info(self, path: Path) -> PluginInfo:
        try:
            st = path.stat()
        except FileNotFoundError:
            return PluginInfo(vmid=path.name, path=str(path))
        return PluginInfo(
            vmid=path.name,
            path=str(path),
            installed=not path.is_dir(),
            size=st.st_size,
            modified_at=datetime.fromtimestamp(st.st_mtime, timezone.utc).isoformat(),
        )
