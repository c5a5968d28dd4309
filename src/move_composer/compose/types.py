"""
Step graph model for composed Move calls.

A graph is an ordered list of labeled steps. Each step calls one Move function
and receives arguments that are either the transaction signer, a literal, or a
reference to an output of an earlier step. References are directed edges that
may only point backward in declaration order.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, ClassVar, Union

from move_composer.errors import DuplicateStepLabelError, MalformedFunctionIdError

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{1,64}$")
_IDENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_BIGINT_RE = re.compile(r"^\d+n$")

SIGNER_PARAM_TYPES = frozenset({"signer", "&signer"})


@dataclass(frozen=True)
class FunctionId:
    address: str
    module: str
    function: str

    @classmethod
    def parse(cls, function_id: str | FunctionId) -> FunctionId:
        """Parse `0xaddr::module::function`, failing fast on malformed input."""
        if isinstance(function_id, FunctionId):
            return function_id
        if not isinstance(function_id, str):
            raise MalformedFunctionIdError(repr(function_id), "not a string")
        parts = function_id.split("::")
        if len(parts) != 3:
            raise MalformedFunctionIdError(function_id, f"expected 3 '::'-separated parts, got {len(parts)}")
        address, module, function = parts
        if not _ADDRESS_RE.match(address):
            raise MalformedFunctionIdError(function_id, f"address {address!r} is not a 0x-prefixed hex string")
        if not _IDENT_RE.match(module):
            raise MalformedFunctionIdError(function_id, f"module {module!r} is not an identifier")
        if not _IDENT_RE.match(function):
            raise MalformedFunctionIdError(function_id, f"function {function!r} is not an identifier")
        return cls(address=address, module=module, function=function)

    @property
    def module_id(self) -> str:
        return f"{self.address}::{self.module}"

    def __str__(self) -> str:
        return f"{self.address}::{self.module}::{self.function}"


# =============================================================================
# Step arguments
# =============================================================================


class RefMode(str, Enum):
    """How a step uses an earlier step's output."""

    MOVE = "move"
    COPY = "copy"
    BORROW = "borrow"
    BORROW_MUT = "borrow_mut"

    @property
    def consumes(self) -> bool:
        """Only a move takes the value out of the producing step's outputs."""
        return self is RefMode.MOVE


@dataclass(frozen=True)
class SignerArg:
    kind: ClassVar[str] = "signer"


@dataclass(frozen=True)
class LiteralArg:
    value: str | int | bool
    kind: ClassVar[str] = "literal"


@dataclass(frozen=True)
class RefArg:
    step: str
    return_index: int
    mode: RefMode = RefMode.MOVE
    kind: ClassVar[str] = "ref"

    def __post_init__(self) -> None:
        if not isinstance(self.return_index, int) or isinstance(self.return_index, bool) or self.return_index < 0:
            raise ValueError(f"return_index must be a non-negative integer, got {self.return_index!r}")
        if not isinstance(self.mode, RefMode):
            object.__setattr__(self, "mode", RefMode(self.mode))

    @property
    def target(self) -> tuple[str, int]:
        return (self.step, self.return_index)


StepArg = Union[SignerArg, LiteralArg, RefArg]


def signer() -> SignerArg:
    return SignerArg()


def literal(value: str | int | bool) -> LiteralArg:
    return LiteralArg(value)


def ref(step: str, return_index: int, mode: RefMode | str = RefMode.MOVE) -> RefArg:
    return RefArg(step=step, return_index=return_index, mode=RefMode(mode))


def decode_literal(value: Any) -> Any:
    """Decode `"<digits>n"` bigint strings; everything else passes through."""
    if isinstance(value, str) and _BIGINT_RE.match(value):
        return int(value[:-1])
    return value


# =============================================================================
# Steps and graphs
# =============================================================================


@dataclass(frozen=True)
class Step:
    label: str
    function: FunctionId
    type_arguments: tuple[str, ...] = ()
    args: tuple[StepArg, ...] = ()

    @property
    def signer_args(self) -> list[SignerArg]:
        return [a for a in self.args if isinstance(a, SignerArg)]

    @property
    def non_signer_args(self) -> list[StepArg]:
        return [a for a in self.args if not isinstance(a, SignerArg)]

    @property
    def refs(self) -> list[RefArg]:
        return [a for a in self.args if isinstance(a, RefArg)]


class StepGraph:
    """Ordered, labeled steps. Labels are unique; steps are immutable once added."""

    def __init__(self) -> None:
        self._steps: list[Step] = []
        self._index: dict[str, int] = {}

    def add_step(
        self,
        label: str,
        function: str | FunctionId,
        *,
        type_arguments: list[str] | tuple[str, ...] | None = None,
        args: list[StepArg] | tuple[StepArg, ...] = (),
    ) -> StepGraph:
        if not isinstance(label, str) or not label:
            raise ValueError(f"step label must be a non-empty string, got {label!r}")
        if label in self._index:
            raise DuplicateStepLabelError(label)
        step = Step(
            label=label,
            function=FunctionId.parse(function),
            type_arguments=tuple(type_arguments or ()),
            args=tuple(args),
        )
        self._index[label] = len(self._steps)
        self._steps.append(step)
        return self

    @property
    def steps(self) -> tuple[Step, ...]:
        return tuple(self._steps)

    @property
    def labels(self) -> list[str]:
        return [s.label for s in self._steps]

    def __iter__(self) -> Iterator[Step]:
        return iter(self._steps)

    def __len__(self) -> int:
        return len(self._steps)

    def __contains__(self, label: object) -> bool:
        return label in self._index

    def get(self, label: str) -> Step | None:
        i = self._index.get(label)
        return self._steps[i] if i is not None else None

    def index_of(self, label: str) -> int | None:
        return self._index.get(label)

    def function_ids(self) -> list[FunctionId]:
        """Distinct function ids in first-use order."""
        seen: dict[FunctionId, None] = {}
        for s in self._steps:
            seen.setdefault(s.function, None)
        return list(seen)

    def refs_to(self, label: str, return_index: int) -> list[tuple[Step, RefArg]]:
        """Every (consumer step, ref) that targets output `return_index` of `label`."""
        out = []
        for s in self._steps:
            for a in s.refs:
                if a.step == label and a.return_index == return_index:
                    out.append((s, a))
        return out


# =============================================================================
# Function signatures and resolution output
# =============================================================================


def count_signer_params(params: list[str] | tuple[str, ...]) -> int:
    """Count the leading `signer` / `&signer` parameters."""
    count = 0
    for p in params:
        if p in SIGNER_PARAM_TYPES:
            count += 1
        else:
            break
    return count


@dataclass(frozen=True)
class FunctionSignature:
    signer_param_count: int
    non_signer_param_types: tuple[str, ...]
    generic_param_count: int
    return_types: tuple[str, ...]
    # True / False, or None when the return type's abilities could not be resolved
    return_droppable: tuple[bool | None, ...] = ()

    @classmethod
    def from_abi(cls, fn: dict[str, Any]) -> FunctionSignature:
        """Build from one `exposed_functions` entry of a module ABI."""
        params = [p for p in fn.get("params") or [] if isinstance(p, str)]
        signer_count = count_signer_params(params)
        return cls(
            signer_param_count=signer_count,
            non_signer_param_types=tuple(params[signer_count:]),
            generic_param_count=len(fn.get("generic_type_params") or []),
            return_types=tuple(r for r in fn.get("return") or [] if isinstance(r, str)),
        )

    @property
    def return_arity(self) -> int:
        return len(self.return_types)

    def with_droppability(self, flags: list[bool | None]) -> FunctionSignature:
        return replace(self, return_droppable=tuple(flags))

    def non_droppable_returns(self) -> list[int]:
        return [i for i, d in enumerate(self.return_droppable) if d is False]


@dataclass(frozen=True)
class SignerToken:
    """The transaction's single authority; identical for every step of a graph."""

    index: int = 0


@dataclass(frozen=True)
class OutputHandle:
    """Opaque reference to return value `return_index` of the `call_index`-th call."""

    call_index: int
    return_index: int
    mode: RefMode = RefMode.MOVE

    def derive(self, mode: RefMode) -> OutputHandle:
        return replace(self, mode=mode)


ResolvedArg = Union[SignerToken, OutputHandle, str, int, bool]


@dataclass(frozen=True)
class ResolvedCall:
    label: str
    function_id: FunctionId
    type_arguments: tuple[str, ...]
    resolved_args: tuple[ResolvedArg, ...] = field(default_factory=tuple)


# =============================================================================
# Shared value types
# =============================================================================


@dataclass(frozen=True)
class TokenConfig:
    symbol: str
    metadata: str
    decimals: int

    def to_dict(self) -> dict[str, Any]:
        return {"symbol": self.symbol, "metadata": self.metadata, "decimals": self.decimals}


@dataclass(frozen=True)
class EntryFunctionPayload:
    """A single entry-function call submitted as its own transaction."""

    function: str
    type_arguments: tuple[str, ...] = ()
    function_arguments: tuple[Any, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        # u64 and wider travel as decimal strings in REST payloads
        args = [str(a) if isinstance(a, int) and not isinstance(a, bool) else a for a in self.function_arguments]
        return {
            "function": self.function,
            "type_arguments": list(self.type_arguments),
            "arguments": args,
        }
