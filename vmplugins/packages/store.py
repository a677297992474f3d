"""On-disk package store.

Owns ``<base>/packages``. Knows nothing about activation or the registry;
the package manager composes it with those.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
from pathlib import Path
from typing import Optional

from vmplugins.errors import (
    CopyCancelledError,
    ManifestParseError,
    ManifestValidationError,
    PluginError,
    PluginNotFoundError,
)
from vmplugins.packages.models import Manifest, manifest_from_dict, manifest_to_dict
from vmplugins.utils.file_ops import (
    CancelToken,
    copy_file,
    remove_path,
    replace_symlink,
    write_json_atomic,
)

LOGGER = logging.getLogger(__name__)


class PackageStore:
    """Versioned package layout: ``packages/<org>/<name>/<version>/``."""

    PACKAGES_DIR = "packages"
    MANIFEST_FILE = "manifest.json"
    LATEST_LINK = "latest"

    def __init__(self, base_dir: str | Path):
        self.root = Path(base_dir) / self.PACKAGES_DIR
        self.root.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def package_dir(self, org: str, name: str) -> Path:
        return self.root / org / name

    def package_path(self, org: str, name: str, version: str) -> Path:
        return self.root / org / name / version

    def manifest_path(self, org: str, name: str, version: str) -> Path:
        return self.package_path(org, name, version) / self.MANIFEST_FILE

    def binary_path(self, manifest: Manifest) -> Path:
        return (
            self.package_path(manifest.org, manifest.name, manifest.version)
            / manifest.binary_name
        )

    def latest_path(self, org: str, name: str) -> Path:
        return self.package_dir(org, name) / self.LATEST_LINK

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def install(
        self,
        manifest: Manifest,
        source: str | Path,
        cancel: Optional[CancelToken] = None,
    ) -> Manifest:
        """Copy *source* into the store and write its manifest.

        The manifest is updated in place with the copied size and the
        install timestamp.
        """
        _validate(manifest)
        pkg_path = self.package_path(manifest.org, manifest.name, manifest.version)
        dest = pkg_path / manifest.binary_name
        created = not pkg_path.exists()
        try:
            pkg_path.mkdir(parents=True, exist_ok=True)
            size = copy_file(source, dest, cancel=cancel)
        except CopyCancelledError:
            _discard(pkg_path, created)
            raise
        except FileNotFoundError as exc:
            _discard(pkg_path, created)
            raise PluginNotFoundError(f"Binary not found: {source}") from exc
        except OSError as exc:
            _discard(pkg_path, created)
            raise PluginError(f"Failed to copy binary {source} to {dest}: {exc}") from exc

        manifest.linked = False
        manifest.stamp(size)
        self._write_manifest(manifest)
        self._update_latest(manifest)
        LOGGER.info("Stored %s (%d bytes) at %s", manifest.qualified_id, size, dest)
        return manifest

    def link(self, manifest: Manifest, source: str | Path) -> Manifest:
        """Symlink the package binary to *source* instead of copying it.

        Rebuilding the source in place is then immediately visible through
        the installed package.
        """
        _validate(manifest)
        abs_source = Path(os.path.abspath(source))
        try:
            size = abs_source.stat().st_size
        except FileNotFoundError as exc:
            raise PluginNotFoundError(f"Binary not found: {abs_source}") from exc

        pkg_path = self.package_path(manifest.org, manifest.name, manifest.version)
        dest = pkg_path / manifest.binary_name
        try:
            pkg_path.mkdir(parents=True, exist_ok=True)
            replace_symlink(abs_source, dest)
        except OSError as exc:
            raise PluginError(f"Failed to link {dest} -> {abs_source}: {exc}") from exc

        manifest.linked = True
        manifest.stamp(size)
        self._write_manifest(manifest)
        self._update_latest(manifest)
        LOGGER.info("Linked %s -> %s", manifest.qualified_id, abs_source)
        return manifest

    def remove(self, org: str, name: str, version: str) -> bool:
        """Delete a version's directory. Returns False if it was absent."""
        pkg_path = self.package_path(org, name, version)
        existed = pkg_path.exists()
        if existed:
            try:
                shutil.rmtree(pkg_path)
            except OSError as exc:
                raise PluginError(f"Failed to remove package {pkg_path}: {exc}") from exc
        self._repair_latest(org, name, version)
        return existed

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_manifest(self, org: str, name: str, version: str) -> Manifest:
        path = self.manifest_path(org, name, version)
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError as exc:
            raise PluginNotFoundError(
                f"No manifest for {org}/{name}@{version} at {path}"
            ) from exc
        except json.JSONDecodeError as exc:
            raise ManifestParseError(f"Malformed manifest {path}: {exc}") from exc
        try:
            return manifest_from_dict(data)
        except (KeyError, TypeError, AttributeError) as exc:
            raise ManifestParseError(f"Malformed manifest {path}: {exc}") from exc

    def list_versions(self, org: str, name: str) -> list[str]:
        """Version directories present on disk, sorted by name."""
        pkg_dir = self.package_dir(org, name)
        if not pkg_dir.is_dir():
            return []
        return sorted(
            p.name
            for p in pkg_dir.iterdir()
            if p.is_dir() and not p.is_symlink() and (p / self.MANIFEST_FILE).is_file()
        )

    def latest_version(self, org: str, name: str) -> Optional[str]:
        latest = self.latest_path(org, name)
        if not latest.is_symlink():
            return None
        return os.readlink(latest)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _write_manifest(self, manifest: Manifest) -> None:
        path = self.manifest_path(manifest.org, manifest.name, manifest.version)
        try:
            write_json_atomic(path, manifest_to_dict(manifest))
        except OSError as exc:
            raise PluginError(f"Failed to write manifest {path}: {exc}") from exc

    def _update_latest(self, manifest: Manifest) -> None:
        latest = self.latest_path(manifest.org, manifest.name)
        try:
            replace_symlink(manifest.version, latest)
        except OSError as exc:
            LOGGER.warning("Failed to update latest link for %s: %s", manifest.package_key, exc)

    def _repair_latest(self, org: str, name: str, removed: str) -> None:
        if self.latest_version(org, name) != removed:
            return
        latest = self.latest_path(org, name)
        remaining = self.list_versions(org, name)
        try:
            if remaining:
                replace_symlink(remaining[-1], latest)
            else:
                remove_path(latest)
                _prune_empty(self.package_dir(org, name), stop=self.root)
        except OSError as exc:
            LOGGER.warning("Failed to repair latest link for %s/%s: %s", org, name, exc)


def _validate(manifest: Manifest) -> None:
    missing = manifest.missing_fields()
    if missing:
        raise ManifestValidationError(missing)


def _prune_empty(path: Path, stop: Path) -> None:
    """Remove *path* and its empty parents up to (not including) *stop*."""
    while path != stop and path.is_dir() and not any(path.iterdir()):
        path.rmdir()
        path = path.parent


def _discard(pkg_path: Path, created: bool) -> None:
    if created:
        shutil.rmtree(pkg_path, ignore_errors=True)
