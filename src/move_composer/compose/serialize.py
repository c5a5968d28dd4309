"""
Declarative plan JSON <-> StepGraph.

Plan shape:

    {
      "tokens": [{"symbol": "USDC", "metadata": "0x...", "decimals": 6}],   # optional
      "steps": [
        {"label": "withdraw", "function": "0x1::mod::fn", "typeArguments": [],
         "args": [{"kind": "signer"},
                  {"kind": "literal", "value": "205000000n"},
                  {"kind": "ref", "step": "prev", "returnIndex": 0, "mode": "move"}]}
      ]
    }

Integers wider than JSON numbers can carry are written as decimal strings with
an `n` suffix.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from move_composer.compose.normalize import normalize_plan_json
from move_composer.compose.types import (
    LiteralArg,
    RefArg,
    RefMode,
    SignerArg,
    StepArg,
    StepGraph,
    TokenConfig,
    decode_literal,
)
from move_composer.errors import PlanDecodeError
from move_composer.utils import safe_read_json

logger = logging.getLogger(__name__)

_MODES = {m.value: m for m in RefMode}


@dataclass
class DecodedPlan:
    graph: StepGraph
    tokens: list[TokenConfig] = field(default_factory=list)
    corrections: list[str] = field(default_factory=list)


def _is_int(v: Any) -> bool:
    return isinstance(v, int) and not isinstance(v, bool)


def _decode_token(obj: Any, path: str) -> TokenConfig:
    if not isinstance(obj, dict):
        raise PlanDecodeError(path, "token must be an object")
    symbol = obj.get("symbol")
    metadata = obj.get("metadata")
    decimals = obj.get("decimals")
    if not isinstance(symbol, str) or not symbol:
        raise PlanDecodeError(f"{path}.symbol", "must be a non-empty string")
    if not isinstance(metadata, str) or not metadata:
        raise PlanDecodeError(f"{path}.metadata", "must be a non-empty string")
    if not _is_int(decimals) or decimals < 0:
        raise PlanDecodeError(f"{path}.decimals", "must be a non-negative integer")
    return TokenConfig(symbol=symbol, metadata=metadata, decimals=decimals)


def _decode_arg(obj: Any, path: str) -> StepArg:
    if not isinstance(obj, dict):
        raise PlanDecodeError(path, "argument must be an object")
    kind = obj.get("kind")
    if kind == "signer":
        return SignerArg()
    if kind == "literal":
        if "value" not in obj:
            raise PlanDecodeError(path, "literal requires 'value'")
        value = obj["value"]
        if isinstance(value, float):
            if not value.is_integer():
                raise PlanDecodeError(f"{path}.value", "non-integer numbers are not supported")
            value = int(value)
        if not isinstance(value, (str, int, bool)):
            raise PlanDecodeError(f"{path}.value", f"unsupported literal type {type(value).__name__}")
        return LiteralArg(decode_literal(value))
    if kind == "ref":
        step = obj.get("step")
        idx = obj.get("returnIndex")
        mode = obj.get("mode", RefMode.MOVE.value)
        if not isinstance(step, str) or not step:
            raise PlanDecodeError(f"{path}.step", "must be a non-empty string")
        if not _is_int(idx) or idx < 0:
            raise PlanDecodeError(f"{path}.returnIndex", "must be a non-negative integer")
        if mode not in _MODES:
            raise PlanDecodeError(f"{path}.mode", f"must be one of {sorted(_MODES)}, got {mode!r}")
        return RefArg(step=step, return_index=idx, mode=_MODES[mode])
    raise PlanDecodeError(f"{path}.kind", f"unknown argument kind {kind!r}")


def decode_plan(obj: Any) -> DecodedPlan:
    """
    Decode a plan object into a graph.

    Raises PlanDecodeError for shape problems, MalformedFunctionIdError and
    DuplicateStepLabelError for graph problems.
    """
    if not isinstance(obj, dict):
        raise PlanDecodeError("$", "plan must be an object")
    steps = obj.get("steps")
    if not isinstance(steps, list):
        raise PlanDecodeError("$.steps", "required list is missing")

    tokens_raw = obj.get("tokens")
    tokens: list[TokenConfig] = []
    if tokens_raw is not None:
        if not isinstance(tokens_raw, list):
            raise PlanDecodeError("$.tokens", "must be a list")
        tokens = [_decode_token(t, f"$.tokens[{i}]") for i, t in enumerate(tokens_raw)]

    graph = StepGraph()
    for i, s in enumerate(steps):
        path = f"$.steps[{i}]"
        if not isinstance(s, dict):
            raise PlanDecodeError(path, "step must be an object")
        label = s.get("label")
        if not isinstance(label, str) or not label:
            raise PlanDecodeError(f"{path}.label", "must be a non-empty string")
        function = s.get("function")
        if not isinstance(function, str):
            raise PlanDecodeError(f"{path}.function", "must be a string")
        type_args = s.get("typeArguments") or []
        if not isinstance(type_args, list) or not all(isinstance(t, str) for t in type_args):
            raise PlanDecodeError(f"{path}.typeArguments", "must be a list of strings")
        args = s.get("args")
        if not isinstance(args, list):
            raise PlanDecodeError(f"{path}.args", "required list is missing")
        graph.add_step(
            label,
            function,
            type_arguments=type_args,
            args=[_decode_arg(a, f"{path}.args[{j}]") for j, a in enumerate(args)],
        )
    return DecodedPlan(graph=graph, tokens=tokens)


def _encode_arg(a: StepArg) -> dict[str, Any]:
    if isinstance(a, SignerArg):
        return {"kind": "signer"}
    if isinstance(a, LiteralArg):
        v = a.value
        return {"kind": "literal", "value": f"{v}n" if _is_int(v) and v >= 0 else v}
    return {"kind": "ref", "step": a.step, "returnIndex": a.return_index, "mode": a.mode.value}


def encode_plan(graph: StepGraph, tokens: list[TokenConfig] | None = None) -> dict[str, Any]:
    out: dict[str, Any] = {}
    if tokens:
        out["tokens"] = [t.to_dict() for t in tokens]
    out["steps"] = [
        {
            "label": s.label,
            "function": str(s.function),
            "typeArguments": list(s.type_arguments),
            "args": [_encode_arg(a) for a in s.args],
        }
        for s in graph
    ]
    return out


def load_plan(path: Path, *, normalize: bool = True) -> DecodedPlan:
    raw = safe_read_json(path, context="plan", raise_on_error=True)
    corrections: list[str] = []
    if normalize:
        result = normalize_plan_json(raw)
        raw = result.plan
        corrections = result.corrections
        if result.had_corrections:
            logger.info(f"Normalized plan {path}: {result.histogram()}")
    decoded = decode_plan(raw)
    decoded.corrections = corrections
    return decoded
