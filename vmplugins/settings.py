"""Plugin manager settings.

Settings are built once at startup and handed to every component that needs
them; nothing reads configuration from module-level state.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

DEFAULT_DATA_DIR = "~/.lux"
PLUGINS_DIR = "plugins"
CURRENT_DIR = "current"

# Checked in order; the first non-empty value wins.
PLUGIN_DIR_ENV_VARS = ("LUX_PLUGIN_DIR", "LUXD_PLUGIN_DIR")
DATA_DIR_ENV_VARS = ("LUX_DATA_DIR", "LUXD_DATA_DIR")


@dataclass
class PluginSettings:
    """Where the package store lives and how the manager reports."""

    base_dir: Path
    legacy_dir: Optional[Path] = None  # Flat VM ID directory to migrate from
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        self.base_dir = expand_path(self.base_dir)
        if self.legacy_dir is not None:
            self.legacy_dir = expand_path(self.legacy_dir)

    @property
    def current_dir(self) -> Path:
        return self.base_dir / CURRENT_DIR

    @classmethod
    def from_env(cls) -> PluginSettings:
        return cls(base_dir=resolve_base_dir())


def expand_path(path: str | Path) -> Path:
    return Path(os.path.expandvars(os.path.expanduser(str(path))))


def resolve_base_dir(environ: Optional[dict[str, str]] = None) -> Path:
    """Resolve the plugin base directory (holding packages/, current/, registry.json).

    Precedence: ``LUX_PLUGIN_DIR``, ``LUXD_PLUGIN_DIR``, then ``plugins/``
    under the data directory (``LUX_DATA_DIR``, ``LUXD_DATA_DIR`` or ``~/.lux``).
    """
    env = os.environ if environ is None else environ
    for var in PLUGIN_DIR_ENV_VARS:
        if env.get(var):
            return expand_path(env[var])
    data_dir = next((env[v] for v in DATA_DIR_ENV_VARS if env.get(v)), DEFAULT_DATA_DIR)
    return expand_path(data_dir) / PLUGINS_DIR


def resolve_plugin_dir(base_dir: str | Path) -> Path:
    """The directory the host should load plugins from.

    ``<base>/current`` when the versioned layout exists, otherwise the base
    directory itself (flat legacy layout).
    """
    base = Path(base_dir)
    current = base / CURRENT_DIR
    if current.is_dir():
        return current
    return base


def load_settings(path: str | Path, environ: Optional[dict[str, str]] = None) -> PluginSettings:
    """Load settings from a YAML file.

    Recognised keys: ``base-dir``, ``legacy-dir`` and ``log-level``. A missing
    ``base-dir`` falls back to :func:`resolve_base_dir`.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Settings file {path} must contain a mapping")

    base_dir = data.get("base-dir") or resolve_base_dir(environ)
    legacy_dir = data.get("legacy-dir")
    return PluginSettings(
        base_dir=Path(base_dir),
        legacy_dir=Path(legacy_dir) if legacy_dir else None,
        log_level=str(data.get("log-level", "INFO")).upper(),
    )
