from __future__ import annotations

import hashlib
import re

from move_composer.constants import OBJECT_FROM_SEED_SCHEME

_HEX_RE = re.compile(r"^0x[0-9a-fA-F]{1,64}$")


def normalize_address(addr: str) -> str:
    """
    Canonicalize an address as 32-byte (64 hex) lowercase with 0x prefix.

    Strings that are not 0x-prefixed are returned unchanged.
    """
    s = addr.strip().lower()
    if not s.startswith("0x"):
        return addr
    h = s[2:]
    if not h:
        return "0x" + "0" * 64
    if len(h) > 64:
        return s
    return "0x" + h.rjust(64, "0")


def address_bytes(addr: str) -> bytes:
    s = addr.strip()
    if not _HEX_RE.match(s):
        raise ValueError(f"Invalid account address: {addr!r}")
    return bytes.fromhex(normalize_address(s)[2:])


def addresses_equal(a: str, b: str) -> bool:
    return normalize_address(a) == normalize_address(b)


def object_address_from_seed(source: str, seed: bytes) -> str:
    """Object address derived from a creator and a seed: sha3_256(source || seed || 0xFE)."""
    digest = hashlib.sha3_256(address_bytes(source) + seed + bytes([OBJECT_FROM_SEED_SCHEME])).hexdigest()
    return "0x" + digest


def primary_store_address(owner: str, metadata: str) -> str:
    """
    Address of `owner`'s primary fungible store for the asset at `metadata`.

    A pure function of the two addresses, so store writes in a simulation can be
    attributed to the owner exactly rather than by guessing from metadata.
    """
    return object_address_from_seed(owner, address_bytes(metadata))


def split_type_address(type_str: str) -> tuple[str, str] | None:
    """`0x1::coin::Coin<T>` -> (`0x1`, `coin::Coin<T>`)."""
    head, sep, rest = type_str.strip().partition("::")
    if not sep or not _HEX_RE.match(head):
        return None
    return head, rest
