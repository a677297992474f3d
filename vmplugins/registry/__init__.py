"""Registry — the persisted record of installed and active plugin packages.

The registry document tracks:
- Installed versions per ``org/name`` package
- The package version bound to each VM ID (what ``current/`` exposes)
"""
