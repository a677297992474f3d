"""VM ID derivation.

A VM ID is ``base58check(0x00, sha256(pad32(name)))``: the UTF-8 name is
copied into a 32-byte zero-filled buffer (anything past byte 32 is dropped),
hashed, and encoded with a version byte of zero. Host processes compute the
same value independently, so the algorithm must stay bit-exact.
"""

from __future__ import annotations

import hashlib

import base58

ID_LEN = 32
VERSION_BYTE = b"\x00"

VM_NAME_LUX_EVM = "Lux EVM"
VM_NAME_CORE_VM = "Core VM"
VM_NAME_AVM = "AVM"

WELL_KNOWN_VM_NAMES = (VM_NAME_LUX_EVM, VM_NAME_CORE_VM, VM_NAME_AVM)


def pad_name(name: str) -> bytes:
    """Left-align *name* in a 32-byte buffer, truncating the excess."""
    raw = name.encode("utf-8")[:ID_LEN]
    return raw.ljust(ID_LEN, b"\x00")


def vmid(name: str) -> str:
    """Return the VM ID for a human-readable VM name."""
    digest = hashlib.sha256(pad_name(name)).digest()
    return base58.b58encode_check(VERSION_BYTE + digest).decode("ascii")


def well_known_vmids() -> dict[str, str]:
    """Map each well-known VM name to its VM ID."""
    return {name: vmid(name) for name in WELL_KNOWN_VM_NAMES}
