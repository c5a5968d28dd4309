"""
Centralized constants for move-composer configuration.

This module provides single-source-of-truth defaults for values used across
the composer, the simulation analyzer and the REST client.

Environment variable overrides:
- MOVE_COMPOSER_NODE_URL: Override the default fullnode REST endpoint
- MOVE_COMPOSER_API_KEY: API key sent as a bearer token
- MOVE_COMPOSER_TIMEOUT_SECONDS: HTTP request timeout
"""

from __future__ import annotations

import os

# Default fullnode REST endpoint (Aptos mainnet). For production workloads use a
# dedicated node provider and set MOVE_COMPOSER_NODE_URL.
DEFAULT_NODE_URL = os.environ.get(
    "MOVE_COMPOSER_NODE_URL",
    "https://api.mainnet.aptoslabs.com/v1",
)

DEFAULT_API_KEY = os.environ.get("MOVE_COMPOSER_API_KEY") or None

# Request timeout (seconds). There is no retry layer; this is the only bound.
REQUEST_TIMEOUT_SECONDS = float(os.environ.get("MOVE_COMPOSER_TIMEOUT_SECONDS", "30"))

# =============================================================================
# Gas
# =============================================================================

# Used when a simulate response omits gas_unit_price
DEFAULT_GAS_UNIT_PRICE = 100

# 1 APT = 10^8 octas
OCTAS_PER_APT = 100_000_000

# =============================================================================
# Objects and Fungible Assets
# =============================================================================

# Object address derivation scheme: sha3_256(source || seed || 0xFE)
OBJECT_FROM_SEED_SCHEME = 0xFE

FUNGIBLE_STORE_TYPE = "0x1::fungible_asset::FungibleStore"
FUNGIBLE_METADATA_TYPE = "0x1::fungible_asset::Metadata"
PRIMARY_STORE_BALANCE_FUNCTION = "0x1::primary_fungible_store::balance"

# Default lending position resource, relative to the protocol address
DEFAULT_POSITION_RESOURCE = "lending::Vault"

VM_STATUS_SUCCESS = "Executed successfully"
