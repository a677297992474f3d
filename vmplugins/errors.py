"""Exception hierarchy for plugin package management."""

from __future__ import annotations


class PluginError(Exception):
    """Base class for every error raised by vmplugins."""


class ManifestValidationError(PluginError, ValueError):
    """A manifest is missing one of its required fields."""

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(f"Manifest missing required field(s): {', '.join(missing)}")


class PluginNotFoundError(PluginError, FileNotFoundError):
    """A manifest, binary or active plugin entry does not exist."""


class ManifestParseError(PluginError):
    """A manifest file exists but cannot be parsed."""


class RegistryError(PluginError):
    """The registry file cannot be read or parsed."""


class CopyCancelledError(PluginError):
    """A binary copy was aborted by its cancellation token."""


class PluginVerificationError(PluginError):
    """An installed plugin exists but is not usable by the host."""
