"""Plugin package managers — install, link, activate and uninstall VM plugins."""

from vmplugins.manager.base import PluginPackageManager
from vmplugins.manager.flat import FlatPluginDirectory
from vmplugins.manager.memory import InMemoryPackageManager
from vmplugins.manager.package_manager import PackageManager

__all__ = ["FlatPluginDirectory", "InMemoryPackageManager", "PackageManager", "PluginPackageManager"]
