"""Package data models — the per-version manifest."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

REQUIRED_FIELDS = ("org", "name", "version", "vmid")


@dataclass
class Manifest:
    """Metadata stored alongside each installed package version."""

    # Identity
    org: str
    name: str
    version: str
    vmid: str

    vm_name: str = ""  # Canonical name the VM ID was derived from
    aliases: list[str] = field(default_factory=list)
    binary: str = ""  # Executable filename, defaults to ``name``
    description: str = ""
    repository: str = ""

    installed_at: str = ""  # ISO 8601
    size: int = 0
    linked: bool = False  # True when the binary is a symlink to a dev build

    @property
    def package_key(self) -> str:
        return f"{self.org}/{self.name}"

    @property
    def qualified_id(self) -> str:
        return f"{self.org}/{self.name}@{self.version}"

    @property
    def binary_name(self) -> str:
        return self.binary or self.name

    def missing_fields(self) -> list[str]:
        return [f for f in REQUIRED_FIELDS if not getattr(self, f)]

    def stamp(self, size: int) -> None:
        """Record the installed binary size and the install time."""
        self.size = size
        self.installed_at = datetime.now(timezone.utc).isoformat()


def manifest_to_dict(manifest: Manifest) -> dict:
    data = {
        "name": manifest.name,
        "org": manifest.org,
        "version": manifest.version,
        "vmid": manifest.vmid,
    }
    if manifest.vm_name:
        data["vm_name"] = manifest.vm_name
    if manifest.aliases:
        data["aliases"] = list(manifest.aliases)
    data["binary"] = manifest.binary
    if manifest.description:
        data["description"] = manifest.description
    if manifest.repository:
        data["repository"] = manifest.repository
    data["installed_at"] = manifest.installed_at
    if manifest.size:
        data["size"] = manifest.size
    if manifest.linked:
        data["linked"] = True
    return data


def manifest_from_dict(data: dict) -> Manifest:
    return Manifest(
        org=data["org"],
        name=data["name"],
        version=data["version"],
        vmid=data["vmid"],
        vm_name=data.get("vm_name", ""),
        aliases=list(data.get("aliases") or []),
        binary=data.get("binary", ""),
        description=data.get("description", ""),
        repository=data.get("repository", ""),
        installed_at=data.get("installed_at", ""),
        size=data.get("size", 0),
        linked=data.get("linked", False),
    )
