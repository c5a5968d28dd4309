"""
Shared fakes and fixtures for move-composer tests.

This module provides:
- In-memory implementations of every collaborator port
- Builders for REST-shaped simulate responses (store writes, vault writes, events)
- A small on-chain "world" with a withdraw/deposit pair of functions
"""

from __future__ import annotations

from typing import Any

import pytest

from move_composer.compose.types import (
    EntryFunctionPayload,
    FunctionId,
    FunctionSignature,
    OutputHandle,
    TokenConfig,
)
from move_composer.interfaces import (
    AbiFetcher,
    BalanceReader,
    ChainSimulator,
    ScriptBuilder,
    TransactionExecutor,
)
from move_composer.simulation.address import primary_store_address

OWNER = "0x" + "a1" * 32
OTHER = "0x" + "b2" * 32
PROTOCOL = "0xc0ffee"
USDC = TokenConfig(symbol="USDC", metadata="0x" + "0" * 62 + "c1", decimals=6)
APT = TokenConfig(symbol="APT", metadata="0xa", decimals=8)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


# ---------------------------------------------------------------------------
# ABI fixtures
# ---------------------------------------------------------------------------


def abi_fn(
    name: str,
    params: list[str],
    returns: list[str] | None = None,
    generics: int = 0,
) -> dict[str, Any]:
    """One `exposed_functions` entry as served by the node."""
    return {
        "name": name,
        "visibility": "public",
        "is_entry": False,
        "is_view": False,
        "generic_type_params": [{"constraints": []} for _ in range(generics)],
        "params": params,
        "return": returns or [],
    }


WORLD_FUNCTIONS: dict[str, dict[str, Any]] = {
    "0x1::vault::withdraw": abi_fn("withdraw", ["&signer", "u64"], ["0x1::fungible_asset::FungibleAsset"]),
    "0x1::vault::deposit": abi_fn("deposit", ["address", "0x1::fungible_asset::FungibleAsset"]),
    "0x1::vault::peek": abi_fn("peek", ["&0x1::fungible_asset::FungibleAsset"], ["u64"]),
    "0x1::vault::split": abi_fn(
        "split",
        ["0x1::fungible_asset::FungibleAsset", "u64"],
        ["0x1::fungible_asset::FungibleAsset", "0x1::fungible_asset::FungibleAsset"],
    ),
    "0x1::vault::amount": abi_fn("amount", ["u64"], ["u64", "bool"]),
    "0x1::vault::transfer": abi_fn("transfer", ["&signer", "address", "u64"]),
    "0x1::vault::swap": abi_fn(
        "swap", ["&signer", "0x1::fungible_asset::FungibleAsset"], ["0x1::fungible_asset::FungibleAsset"], generics=2
    ),
    "0x1::vault::receipt": abi_fn("receipt", [], ["0x1::vault::Receipt", "vector<0x1::vault::Receipt>"]),
}

WORLD_STRUCTS: dict[str, frozenset[str]] = {
    "0x1::fungible_asset::FungibleAsset": frozenset(),
    "0x1::vault::Receipt": frozenset({"copy", "drop", "store"}),
}


class FakeAbiFetcher(AbiFetcher):
    def __init__(
        self,
        functions: dict[str, dict[str, Any]] | None = None,
        structs: dict[str, frozenset[str]] | None = None,
        failing: dict[str, Exception] | None = None,
    ) -> None:
        self.functions = dict(WORLD_FUNCTIONS if functions is None else functions)
        self.structs = dict(WORLD_STRUCTS if structs is None else structs)
        self.failing = failing or {}
        self.function_calls: list[str] = []
        self.struct_calls: list[str] = []

    async def fetch_function(self, function_id: FunctionId) -> FunctionSignature | None:
        key = str(function_id)
        self.function_calls.append(key)
        if key in self.failing:
            raise self.failing[key]
        fn = self.functions.get(key)
        return FunctionSignature.from_abi(fn) if fn is not None else None

    async def fetch_struct_abilities(self, struct_id: str) -> frozenset[str] | None:
        self.struct_calls.append(struct_id)
        if struct_id in self.failing:
            raise self.failing[struct_id]
        return self.structs.get(struct_id)


class FakeScriptBuilder(ScriptBuilder):
    """Records calls and hands out sequential output handles."""

    def __init__(self, functions: dict[str, dict[str, Any]] | None = None) -> None:
        self.functions = WORLD_FUNCTIONS if functions is None else functions
        self.calls: list[tuple[str, list[str], list[Any]]] = []
        self.finalized_with: bool | None = None

    async def add_call(self, function_id: str, type_arguments: list[str], args: list[Any]) -> list[OutputHandle]:
        idx = len(self.calls)
        self.calls.append((function_id, type_arguments, args))
        arity = len(self.functions.get(function_id, {}).get("return", []))
        return [OutputHandle(idx, i) for i in range(arity)]

    async def finalize(self, *, fee_payer: bool = False) -> Any:
        self.finalized_with = fee_payer
        return {"calls": [c[0] for c in self.calls], "fee_payer": fee_payer}


class BuilderFactory:
    """Callable factory that remembers every builder it created."""

    def __init__(self) -> None:
        self.created: list[FakeScriptBuilder] = []

    def __call__(self) -> FakeScriptBuilder:
        b = FakeScriptBuilder()
        self.created.append(b)
        return b


class FakeSimulator(ChainSimulator):
    """Returns queued responses in order; the last one repeats."""

    def __init__(self, responses: list[dict[str, Any]] | None = None) -> None:
        self.responses = list(responses or [simulate_response()])
        self.transactions: list[tuple[Any, bool]] = []
        self.payloads: list[EntryFunctionPayload] = []

    def _next(self) -> dict[str, Any]:
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]

    async def simulate(self, transaction: Any, *, fee_payer: bool = False) -> dict[str, Any]:
        self.transactions.append((transaction, fee_payer))
        return self._next()

    async def simulate_payload(self, payload: EntryFunctionPayload) -> dict[str, Any]:
        self.payloads.append(payload)
        return self._next()


class FakeBalanceReader(BalanceReader):
    def __init__(self, balances: dict[str, int] | None = None) -> None:
        # metadata -> amount, for any owner
        self.balances = balances or {}
        self.calls: list[tuple[str, str]] = []

    async def fetch_balance(self, owner: str, metadata: str) -> int:
        self.calls.append((owner, metadata))
        return self.balances.get(metadata, 0)


class FakeExecutor(TransactionExecutor):
    def __init__(self) -> None:
        self.executed: list[tuple[Any, str]] = []

    async def execute(self, transaction: Any, description: str) -> dict[str, Any]:
        self.executed.append((transaction, description))
        return {"hash": "0xdead", "success": True}


# ---------------------------------------------------------------------------
# Simulate response builders
# ---------------------------------------------------------------------------


def store_write(owner: str, token: TokenConfig, balance: int, *, address: str | None = None) -> dict[str, Any]:
    return {
        "type": "write_resource",
        "address": address or primary_store_address(owner, token.metadata),
        "data": {
            "type": "0x1::fungible_asset::FungibleStore",
            "data": {"balance": str(balance), "frozen": False, "metadata": {"inner": token.metadata}},
        },
    }


def vault_write(
    collaterals: list[int], debts: list[int], *, protocol: str = PROTOCOL, owner: str = OWNER
) -> dict[str, Any]:
    return {
        "type": "write_resource",
        "address": owner,
        "data": {
            "type": f"{protocol}::lending::Vault",
            "data": {
                "collaterals": {"data": [{"key": f"0x{i}", "value": str(v)} for i, v in enumerate(collaterals)]},
                "liabilities": {
                    "data": [{"key": f"0x{i}", "value": {"principal": str(v)}} for i, v in enumerate(debts)]
                },
            },
        },
    }


def vault_delete(*, protocol: str = PROTOCOL, owner: str = OWNER) -> dict[str, Any]:
    return {"type": "delete_resource", "address": owner, "resource": f"{protocol}::lending::Vault"}


def event(type_: str, **data: Any) -> dict[str, Any]:
    return {"type": type_, "data": data, "guid": {"creation_number": "0", "account_address": "0x0"}}


def simulate_response(
    *,
    success: bool = True,
    vm_status: str = "Executed successfully",
    gas_used: int | str = 50,
    gas_unit_price: int | str | None = 100,
    changes: list[dict[str, Any]] | None = None,
    events: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    raw: dict[str, Any] = {
        "success": success,
        "vm_status": vm_status,
        "gas_used": str(gas_used),
        "changes": changes or [],
        "events": events or [],
    }
    if gas_unit_price is not None:
        raw["gas_unit_price"] = str(gas_unit_price)
    return raw


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fetcher() -> FakeAbiFetcher:
    return FakeAbiFetcher()


@pytest.fixture
def builder_factory() -> BuilderFactory:
    return BuilderFactory()
