"""Legacy migration — import a flat ``<vmid> -> binary`` symlink directory.

Older hosts loaded plugins straight from one directory of VM ID symlinks with
no package metadata. Each such symlink becomes a ``legacy/<vmid[:8]>...``
package at version ``v0.0.0``, installed through the normal install path.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from vmplugins.errors import PluginError
from vmplugins.packages.models import Manifest

if TYPE_CHECKING:
    from vmplugins.manager.base import PluginPackageManager

LOGGER = logging.getLogger(__name__)

LEGACY_ORG = "legacy"
LEGACY_VERSION = "v0.0.0"
NAME_PREFIX_LEN = 8


@dataclass
class MigrationFailure:
    vmid: str
    target: str
    error: str


@dataclass
class MigrationReport:
    """Outcome of one legacy migration run."""

    migrated: list[Manifest] = field(default_factory=list)
    failed: list[MigrationFailure] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def summary(self) -> str:
        return (
            f"{len(self.migrated)} migrated, {len(self.failed)} failed, "
            f"{len(self.skipped)} skipped"
        )


def legacy_manifest(vmid: str, target: str | Path) -> Manifest:
    """Synthetic manifest for a legacy entry."""
    return Manifest(
        org=LEGACY_ORG,
        name=vmid[:NAME_PREFIX_LEN] + "...",
        version=LEGACY_VERSION,
        vmid=vmid,
        binary=Path(target).name,
    )


class LegacyMigrator:
    """Installs every VM ID symlink of a legacy directory as a package."""

    def __init__(self, manager: PluginPackageManager):
        self._manager = manager

    def migrate(self, legacy_dir: str | Path) -> MigrationReport:
        """Migrate each symlink in *legacy_dir*.

        A missing directory means there is nothing to migrate. Failures on
        individual entries are logged and reported, never raised.
        """
        report = MigrationReport()
        legacy_dir = Path(legacy_dir)
        if not legacy_dir.is_dir():
            LOGGER.info("No legacy plugin directory at %s", legacy_dir)
            return report

        for entry in sorted(os.scandir(legacy_dir), key=lambda e: e.name):
            if entry.is_dir() or not entry.is_symlink():
                # Directories (including symlinked ones) and plain files
                # are not legacy plugin entries.
                report.skipped.append(entry.name)
                continue

            vmid = entry.name
            target = Path(os.readlink(entry.path))
            if not target.is_absolute():
                target = legacy_dir / target

            try:
                manifest = self._manager.install(legacy_manifest(vmid, target), target)
            except PluginError as exc:
                LOGGER.warning("Failed to migrate legacy plugin %s: %s", vmid, exc)
                report.failed.append(MigrationFailure(vmid=vmid, target=str(target), error=str(exc)))
                continue
            LOGGER.info("Migrated legacy plugin %s from %s", vmid, target)
            report.migrated.append(manifest)

        LOGGER.info("Legacy migration of %s: %s", legacy_dir, report.summary())
        return report
