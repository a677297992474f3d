"""Registry data models — the registry document and package references."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class PackageRef:
    """A reference to one installed package version: ``org/name@version``."""

    org: str
    name: str
    version: str

    @property
    def package_key(self) -> str:
        return f"{self.org}/{self.name}"

    def __str__(self) -> str:
        return format_ref(self.org, self.name, self.version)


@dataclass
class RegistryDocument:
    """In-memory form of ``registry.json``."""

    plugins: dict[str, list[str]] = field(default_factory=dict)
    active: dict[str, str] = field(default_factory=dict)
    updated_at: str = ""  # ISO 8601


def package_key(org: str, name: str) -> str:
    return f"{org}/{name}"


def format_ref(org: str, name: str, version: str) -> str:
    return f"{org}/{name}@{version}"


def parse_ref(ref: str) -> PackageRef:
    """Parse ``org/name@version``. Raises ValueError on malformed input."""
    key, sep, version = ref.rpartition("@")
    if not sep or not version:
        raise ValueError(f"Invalid package reference '{ref}': expected org/name@version")
    org, slash, name = key.partition("/")
    if not slash or not org or not name:
        raise ValueError(f"Invalid package reference '{ref}': expected org/name@version")
    return PackageRef(org=org, name=name, version=version)


def document_to_dict(doc: RegistryDocument) -> dict:
    return {
        "plugins": {key: list(versions) for key, versions in doc.plugins.items()},
        "active": dict(doc.active),
        "updated_at": doc.updated_at,
    }


def document_from_dict(data: dict) -> RegistryDocument:
    """Build a document from parsed JSON. Raises ValueError on a wrong shape."""
    plugins = data.get("plugins", {})
    if plugins is None:
        plugins = {}
    if not isinstance(plugins, dict):
        raise ValueError("'plugins' must be an object of version lists")
    for key, versions in plugins.items():
        if not isinstance(versions, list) or not all(isinstance(v, str) for v in versions):
            raise ValueError(f"'plugins[{key!r}]' must be a list of version strings")

    active = data.get("active", {})
    if active is None:
        active = {}
    if not isinstance(active, dict) or not all(isinstance(r, str) for r in active.values()):
        raise ValueError("'active' must be an object of package references")

    updated_at = data.get("updated_at", "")
    if not isinstance(updated_at, str):
        raise ValueError("'updated_at' must be a timestamp string")

    return RegistryDocument(
        plugins={key: list(versions) for key, versions in plugins.items()},
        active=dict(active),
        updated_at=updated_at,
    )
