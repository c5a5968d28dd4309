"""
Ports for the collaborators the composer depends on.

The composer never builds bytecode, signs, or talks to a node itself. These
abstract base classes are the narrow contracts it calls; `move_composer.rest`
implements the read-only ones over the fullnode REST API and tests supply fakes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from move_composer.compose.types import (
        EntryFunctionPayload,
        FunctionId,
        FunctionSignature,
        OutputHandle,
        ResolvedArg,
    )


class AbiFetcher(ABC):
    """Port for on-chain signature and struct-ability lookups."""

    @abstractmethod
    async def fetch_function(self, function_id: FunctionId) -> FunctionSignature | None:
        """
        Fetch the signature of an exposed function.

        Returns None when the module or function does not exist. Other failures
        raise `AbiFetchError`.
        """

    @abstractmethod
    async def fetch_struct_abilities(self, struct_id: str) -> frozenset[str] | None:
        """
        Fetch the declared abilities of `addr::module::Struct`.

        Returns None when the struct cannot be found.
        """


class ScriptBuilder(ABC):
    """
    Port for the script-composition primitive.

    One builder instance produces exactly one transaction: `add_call` once per
    step in declaration order, then `finalize`.
    """

    @abstractmethod
    async def add_call(
        self,
        function_id: str,
        type_arguments: list[str],
        args: list[ResolvedArg],
    ) -> list[OutputHandle]:
        """Append one call and return handles for each of its return values."""

    @abstractmethod
    async def finalize(self, *, fee_payer: bool = False) -> Any:
        """Produce the executable transaction."""


class ChainSimulator(ABC):
    """Port for the simulate endpoint. Responses are REST-shaped dicts."""

    @abstractmethod
    async def simulate(self, transaction: Any, *, fee_payer: bool = False) -> dict[str, Any]:
        """Simulate a built transaction."""

    @abstractmethod
    async def simulate_payload(self, payload: EntryFunctionPayload) -> dict[str, Any]:
        """Simulate a single entry-function payload against current chain state."""


class BalanceReader(ABC):
    """Port for live primary-store balance reads."""

    @abstractmethod
    async def fetch_balance(self, owner: str, metadata: str) -> int:
        """Return the owner's primary-store balance for a fungible asset."""


class TransactionExecutor(ABC):
    """Port for signing and submitting. Never invoked by the core itself."""

    @abstractmethod
    async def execute(self, transaction: Any, description: str) -> dict[str, Any]:
        """Sign, submit and wait for a transaction."""
