"""Plugin identifiers — deterministic VM IDs derived from VM names."""

from vmplugins.ids.derive import WELL_KNOWN_VM_NAMES, vmid, well_known_vmids

__all__ = ["WELL_KNOWN_VM_NAMES", "vmid", "well_known_vmids"]
