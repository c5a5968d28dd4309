"""ABI cache and Move type droppability helpers."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from move_composer.compose.types import FunctionId, FunctionSignature
from move_composer.errors import AbiFetchError
from move_composer.interfaces import AbiFetcher

logger = logging.getLogger(__name__)

_PRIMITIVE_TYPES = frozenset({"bool", "u8", "u16", "u32", "u64", "u128", "u256", "address", "signer"})

_MISSING = object()


@dataclass
class AbiCache:
    """
    Memoized signatures and struct abilities.

    Negative results (None) are cached too. Entries are never invalidated;
    concurrent fills of the same key may fetch twice but store the same value.
    """

    functions: dict[str, FunctionSignature | None] = field(default_factory=dict)
    struct_abilities: dict[str, frozenset[str] | None] = field(default_factory=dict)
    fetch_count: int = 0

    async def get_function(self, fetcher: AbiFetcher, function_id: FunctionId) -> FunctionSignature | None:
        key = str(function_id)
        hit = self.functions.get(key, _MISSING)
        if hit is not _MISSING:
            logger.debug(f"ABI cache hit: {key}")
            return hit  # type: ignore[return-value]
        self.fetch_count += 1
        sig = await fetcher.fetch_function(function_id)
        self.functions[key] = sig
        return sig

    async def get_struct_abilities(self, fetcher: AbiFetcher, struct_id: str) -> frozenset[str] | None:
        hit = self.struct_abilities.get(struct_id, _MISSING)
        if hit is not _MISSING:
            return hit  # type: ignore[return-value]
        abilities = await fetcher.fetch_struct_abilities(struct_id)
        self.struct_abilities[struct_id] = abilities
        return abilities


def struct_id_of(type_str: str) -> str | None:
    """`0x1::coin::Coin<0x1::aptos_coin::AptosCoin>` -> `0x1::coin::Coin`."""
    base = type_str.strip().split("<", 1)[0]
    parts = base.split("::")
    if len(parts) != 3 or not all(parts):
        return None
    return base


def vector_element(type_str: str) -> str | None:
    s = type_str.strip()
    if s.startswith("vector<") and s.endswith(">"):
        return s[len("vector<") : -1]
    return None


async def is_droppable(type_str: str, cache: AbiCache, fetcher: AbiFetcher) -> bool | None:
    """
    Whether a return value of this type may be silently discarded.

    Returns None when it cannot be decided (generic parameters, unknown structs).
    Struct type arguments are not inspected; phantom parameters make that unsound.
    """
    s = type_str.strip()
    if s in _PRIMITIVE_TYPES or s.startswith("&"):
        return True
    elem = vector_element(s)
    if elem is not None:
        return await is_droppable(elem, cache, fetcher)
    struct_id = struct_id_of(s)
    if struct_id is None:
        return None
    try:
        abilities = await cache.get_struct_abilities(fetcher, struct_id)
    except AbiFetchError as e:
        # Not cached, so a later validation retries the lookup.
        logger.warning(f"Struct ABI fetch failed for {struct_id}: {e.message}")
        return None
    if abilities is None:
        return None
    return "drop" in abilities
