"""
Plan JSON normalization.

Fixes common formatting slips in agent-written plans before they are decoded,
so decoding errors are reserved for plans that are actually wrong.
"""

from __future__ import annotations

import copy
import re
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class CorrectionType(str, Enum):
    """Categories of formatting corrections applied to plan JSON."""

    RETURN_INDEX_STRING_TO_INT = "return_index_string_to_int"
    REF_MODE_SPELLING = "ref_mode_spelling"
    ARG_KIND_CASE = "arg_kind_case"
    FUNCTION_ADDRESS_MISSING_0X_PREFIX = "function_address_missing_0x_prefix"
    TYPE_ARGUMENTS_NULL_TO_EMPTY = "type_arguments_null_to_empty"
    TOKEN_DECIMALS_STRING_TO_INT = "token_decimals_string_to_int"


_HEX_PATTERN = re.compile(r"^[0-9a-fA-F]{1,64}$")

# keyed by the spelling with case and separators removed
_MODE_SPELLINGS = {
    "move": "move",
    "copy": "copy",
    "borrow": "borrow",
    "borrowmut": "borrow_mut",
}

_ARG_KINDS = frozenset({"signer", "literal", "ref"})


@dataclass
class NormalizationResult:
    """Result of plan normalization."""

    plan: dict[str, Any]
    corrections: list[str] = field(default_factory=list)
    correction_counts: Counter = field(default_factory=Counter)

    @property
    def had_corrections(self) -> bool:
        return len(self.corrections) > 0

    def histogram(self) -> dict[str, int]:
        return dict(self.correction_counts)


def _normalize_function(value: Any) -> tuple[Any, bool]:
    """`abc::mod::fn` -> `0xabc::mod::fn`."""
    if not isinstance(value, str):
        return value, False
    s = value.strip()
    head, sep, rest = s.partition("::")
    if sep and not head.lower().startswith("0x") and _HEX_PATTERN.match(head):
        return f"0x{head}::{rest}", True
    return s, False


def _normalize_int(value: Any) -> tuple[Any, bool]:
    if isinstance(value, str):
        try:
            return int(value.strip()), True
        except ValueError:
            return value, False
    return value, False


def _normalize_arg(arg: Any, where: str) -> tuple[Any, list[str]]:
    if not isinstance(arg, dict):
        return arg, []
    corrections: list[str] = []
    normalized = dict(arg)

    kind = normalized.get("kind")
    if isinstance(kind, str) and kind not in _ARG_KINDS and kind.strip().lower() in _ARG_KINDS:
        normalized["kind"] = kind.strip().lower()
        corrections.append(f"{where}: {CorrectionType.ARG_KIND_CASE.value}")

    if normalized.get("kind") != "ref":
        return normalized, corrections

    if "returnIndex" in normalized:
        value, changed = _normalize_int(normalized["returnIndex"])
        if changed:
            normalized["returnIndex"] = value
            corrections.append(f"{where}: {CorrectionType.RETURN_INDEX_STRING_TO_INT.value}")

    mode = normalized.get("mode")
    if isinstance(mode, str) and mode not in _MODE_SPELLINGS.values():
        key = re.sub(r"[^a-z]", "", mode.lower())
        canonical = _MODE_SPELLINGS.get(key)
        if canonical is not None:
            normalized["mode"] = canonical
            corrections.append(f"{where}: {CorrectionType.REF_MODE_SPELLING.value}")

    return normalized, corrections


def _normalize_step(step: Any, idx: int) -> tuple[Any, list[str]]:
    if not isinstance(step, dict):
        return step, []
    corrections: list[str] = []
    normalized = dict(step)

    fn, changed = _normalize_function(normalized.get("function"))
    if changed:
        normalized["function"] = fn
        corrections.append(f"steps[{idx}]: {CorrectionType.FUNCTION_ADDRESS_MISSING_0X_PREFIX.value}")

    if "typeArguments" in normalized and normalized["typeArguments"] is None:
        normalized["typeArguments"] = []
        corrections.append(f"steps[{idx}]: {CorrectionType.TYPE_ARGUMENTS_NULL_TO_EMPTY.value}")

    args = normalized.get("args")
    if isinstance(args, list):
        new_args = []
        for arg_idx, a in enumerate(args):
            norm, arg_corrections = _normalize_arg(a, f"steps[{idx}].args[{arg_idx}]")
            new_args.append(norm)
            corrections.extend(arg_corrections)
        normalized["args"] = new_args

    return normalized, corrections


def normalize_plan_json(raw: dict[str, Any]) -> NormalizationResult:
    """
    Normalize a plan object, fixing common agent formatting mistakes.

    Normalizations applied:
    - String ref indices -> integers (`"returnIndex": "0"` -> `0`)
    - Ref mode spellings -> canonical (`borrowMut`, `BORROW_MUT` -> `borrow_mut`)
    - Arg kind case (`"Signer"` -> `"signer"`)
    - Function addresses without 0x prefix -> add prefix
    - `typeArguments: null` -> `[]`
    - String token decimals -> integers

    The input is not modified.
    """
    if not isinstance(raw, dict):
        return NormalizationResult(plan=raw)

    normalized = copy.deepcopy(raw)
    all_corrections: list[str] = []

    steps = normalized.get("steps")
    if isinstance(steps, list):
        new_steps = []
        for idx, step in enumerate(steps):
            norm, corrections = _normalize_step(step, idx)
            new_steps.append(norm)
            all_corrections.extend(corrections)
        normalized["steps"] = new_steps

    tokens = normalized.get("tokens")
    if isinstance(tokens, list):
        for idx, tok in enumerate(tokens):
            if isinstance(tok, dict) and "decimals" in tok:
                value, changed = _normalize_int(tok["decimals"])
                if changed:
                    tok["decimals"] = value
                    all_corrections.append(f"tokens[{idx}]: {CorrectionType.TOKEN_DECIMALS_STRING_TO_INT.value}")

    correction_counts: Counter = Counter()
    for corr in all_corrections:
        parts = corr.split(": ", 1)
        if len(parts) == 2:
            correction_counts[parts[1]] += 1

    return NormalizationResult(plan=normalized, corrections=all_corrections, correction_counts=correction_counts)
