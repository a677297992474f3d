"""Local file-based registry implementation.

Stores the whole registry as one JSON document under the plugin base
directory. The document is loaded once, mutated in memory and rewritten in
full on every save; there is no append log and no cross-process locking.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from vmplugins.errors import PluginError, RegistryError
from vmplugins.registry.models import (
    PackageRef,
    RegistryDocument,
    document_from_dict,
    document_to_dict,
    format_ref,
    package_key,
    parse_ref,
)
from vmplugins.utils.file_ops import write_json_atomic

LOGGER = logging.getLogger(__name__)


class LocalRegistry:
    """File-backed registry of installed plugin versions and VM ID bindings."""

    REGISTRY_FILE = "registry.json"

    def __init__(self, base_dir: str | Path):
        self.base_dir = Path(base_dir)
        self.registry_path = self.base_dir / self.REGISTRY_FILE
        self._doc = RegistryDocument()

    @property
    def document(self) -> RegistryDocument:
        return self._doc

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> RegistryDocument:
        """Read the registry file, or start empty if it does not exist.

        A corrupt file is an error; it is never silently replaced.
        """
        if not self.registry_path.exists():
            self._doc = RegistryDocument(updated_at=_now())
            return self._doc
        try:
            with open(self.registry_path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as exc:
            raise RegistryError(f"Failed to parse registry {self.registry_path}: {exc}") from exc
        except OSError as exc:
            raise RegistryError(f"Failed to read registry {self.registry_path}: {exc}") from exc
        if not isinstance(data, dict):
            raise RegistryError(f"Failed to parse registry {self.registry_path}: not an object")
        try:
            self._doc = document_from_dict(data)
        except ValueError as exc:
            raise RegistryError(f"Failed to parse registry {self.registry_path}: {exc}") from exc
        return self._doc

    def save(self) -> None:
        self._doc.updated_at = _now()
        try:
            write_json_atomic(self.registry_path, document_to_dict(self._doc))
        except OSError as exc:
            raise PluginError(f"Failed to write registry {self.registry_path}: {exc}") from exc
        LOGGER.debug("Saved registry to %s", self.registry_path)

    # ------------------------------------------------------------------
    # Installed versions
    # ------------------------------------------------------------------

    def record_version(self, org: str, name: str, version: str) -> None:
        """Add *version* to the package's version list if it is not there."""
        versions = self._doc.plugins.setdefault(package_key(org, name), [])
        if version not in versions:
            versions.append(version)

    def remove_version(self, org: str, name: str, version: str) -> None:
        """Drop *version*; the package key goes once no versions remain."""
        key = package_key(org, name)
        versions = [v for v in self._doc.plugins.get(key, []) if v != version]
        if versions:
            self._doc.plugins[key] = versions
        else:
            self._doc.plugins.pop(key, None)

    def versions(self, org: str, name: str) -> list[str]:
        return list(self._doc.plugins.get(package_key(org, name), []))

    def packages(self) -> list[PackageRef]:
        """Every recorded package version, in insertion order."""
        refs = []
        for key, versions in self._doc.plugins.items():
            org, slash, name = key.partition("/")
            if not slash:
                LOGGER.debug("Skipping malformed package key %r", key)
                continue
            refs.extend(PackageRef(org=org, name=name, version=v) for v in versions)
        return refs

    # ------------------------------------------------------------------
    # Active bindings
    # ------------------------------------------------------------------

    def bind(self, vmid: str, org: str, name: str, version: str) -> None:
        self._doc.active[vmid] = format_ref(org, name, version)

    def unbind(self, vmid: str) -> None:
        self._doc.active.pop(vmid, None)

    def binding(self, vmid: str) -> Optional[PackageRef]:
        """The package version bound to *vmid*, if any."""
        ref = self._doc.active.get(vmid)
        if ref is None:
            return None
        try:
            return parse_ref(ref)
        except ValueError:
            LOGGER.debug("Ignoring malformed binding %s -> %r", vmid, ref)
            return None

    def bindings(self) -> dict[str, str]:
        return dict(self._doc.active)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()
