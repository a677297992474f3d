"""Package store — versioned on-disk layout for plugin binaries.

Each installed version lives under ``packages/<org>/<name>/<version>/`` next
to a ``manifest.json`` describing it, and ``packages/<org>/<name>/latest``
names the most recently installed version.
"""
