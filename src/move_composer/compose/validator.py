"""
Static checks of a step graph against on-chain function signatures.

Findings whose code ends in `_ERROR` are hard: callers must not build a
transaction while any exist. Everything else is advisory and is carried into
the composed result.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from move_composer.compose.abi import AbiCache, is_droppable
from move_composer.compose.types import FunctionId, FunctionSignature, RefMode, SignerArg, Step, StepGraph
from move_composer.errors import AbiFetchError
from move_composer.interfaces import AbiFetcher

logger = logging.getLogger(__name__)

FUNCTION_NOT_FOUND_ERROR = "FUNCTION_NOT_FOUND_ERROR"
TYPE_ARG_COUNT_ERROR = "TYPE_ARG_COUNT_ERROR"
SIGNER_COUNT_ERROR = "SIGNER_COUNT_ERROR"
ARG_COUNT_ERROR = "ARG_COUNT_ERROR"
REF_ORDER_ERROR = "REF_ORDER_ERROR"
RETURN_INDEX_ERROR = "RETURN_INDEX_ERROR"
DUPLICATE_MOVE_ERROR = "DUPLICATE_MOVE_ERROR"
SIGNER_MISMATCH = "SIGNER_MISMATCH"
UNCONSUMED_RESOURCE = "UNCONSUMED_RESOURCE"
UNMOVED_RESOURCE = "UNMOVED_RESOURCE"


def is_hard_code(code: str) -> bool:
    return code.endswith("_ERROR")


@dataclass(frozen=True)
class ValidationFinding:
    step_label: str
    code: str
    message: str

    @property
    def is_hard_error(self) -> bool:
        return is_hard_code(self.code)

    def to_dict(self) -> dict[str, Any]:
        return {
            "stepLabel": self.step_label,
            "code": self.code,
            "message": self.message,
            "isHardError": self.is_hard_error,
        }


@dataclass
class ValidationReport:
    findings: list[ValidationFinding] = field(default_factory=list)
    # function id -> signature, only for functions that were found
    signatures: dict[str, FunctionSignature] = field(default_factory=dict)

    @property
    def errors(self) -> list[ValidationFinding]:
        return [f for f in self.findings if f.is_hard_error]

    @property
    def warnings(self) -> list[ValidationFinding]:
        return [f for f in self.findings if not f.is_hard_error]

    @property
    def ok(self) -> bool:
        return not self.errors

    def codes(self) -> list[str]:
        return [f.code for f in self.findings]

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "errors": [f.to_dict() for f in self.errors],
            "warnings": [f.to_dict() for f in self.warnings],
        }


class AbiValidator:
    """
    Validate graphs against fetched ABIs.

    The cache belongs to the validator instance unless one is injected, so
    `validate()` followed by a build on the same instance fetches each function
    once.
    """

    def __init__(self, fetcher: AbiFetcher, cache: AbiCache | None = None) -> None:
        self.fetcher = fetcher
        self.cache = cache if cache is not None else AbiCache()

    async def _fetch(self, function_id: FunctionId) -> tuple[FunctionSignature | None, str | None]:
        try:
            sig = await self.cache.get_function(self.fetcher, function_id)
        except AbiFetchError as e:
            logger.warning(f"ABI fetch failed for {function_id}: {e.message}")
            return None, e.data.get("reason") or e.message
        if sig is None:
            return None, None
        flags = [await is_droppable(t, self.cache, self.fetcher) for t in sig.return_types]
        return sig.with_droppability(flags), None

    async def validate(self, graph: StepGraph) -> ValidationReport:
        function_ids = graph.function_ids()
        fetched = await asyncio.gather(*(self._fetch(fid) for fid in function_ids))
        lookup = dict(zip(function_ids, fetched))

        report = ValidationReport()
        for fid, (sig, _cause) in lookup.items():
            if sig is not None:
                report.signatures[str(fid)] = sig

        checked: list[tuple[Step, FunctionSignature]] = []
        for step in graph:
            sig, cause = lookup[step.function]
            if sig is None:
                msg = f'Function "{step.function}" not found on-chain'
                if cause:
                    msg = f'Function "{step.function}" could not be fetched: {cause}'
                report.findings.append(ValidationFinding(step.label, FUNCTION_NOT_FOUND_ERROR, msg))
                continue
            report.findings.extend(_check_step(step, sig))
            checked.append((step, sig))

        report.findings.extend(_check_refs(graph, report.signatures))
        report.findings.extend(_check_consumption(graph, checked))

        logger.info(
            f"Validated {len(graph)} step(s): {len(report.errors)} error(s), {len(report.warnings)} warning(s)"
        )
        return report


def _check_step(step: Step, sig: FunctionSignature) -> list[ValidationFinding]:
    out: list[ValidationFinding] = []
    label = step.label

    provided_types = len(step.type_arguments)
    if provided_types != sig.generic_param_count:
        out.append(
            ValidationFinding(
                label,
                TYPE_ARG_COUNT_ERROR,
                f'Step "{label}": expected {sig.generic_param_count} type argument(s), got {provided_types}',
            )
        )

    signer_args = len(step.signer_args)
    if signer_args != sig.signer_param_count:
        out.append(
            ValidationFinding(
                label,
                SIGNER_COUNT_ERROR,
                f'Step "{label}": expected {sig.signer_param_count} signer(s), got {signer_args}',
            )
        )

    non_signer_args = len(step.non_signer_args)
    expected_args = len(sig.non_signer_param_types)
    if non_signer_args != expected_args:
        out.append(
            ValidationFinding(
                label,
                ARG_COUNT_ERROR,
                f'Step "{label}": expected {expected_args} non-signer argument(s), got {non_signer_args}',
            )
        )

    for i, a in enumerate(step.args):
        if i < sig.signer_param_count:
            if not isinstance(a, SignerArg):
                out.append(
                    ValidationFinding(
                        label,
                        SIGNER_MISMATCH,
                        f'Step "{label}" arg {i}: expected a signer for the &signer parameter, got {a.kind}',
                    )
                )
        elif isinstance(a, SignerArg):
            j = i - sig.signer_param_count
            param_type = sig.non_signer_param_types[j] if j < expected_args else "unknown"
            out.append(
                ValidationFinding(
                    label,
                    SIGNER_MISMATCH,
                    f'Step "{label}" arg {i}: signer supplied but parameter type is "{param_type}"; '
                    f"pass the address as a literal instead",
                )
            )
    return out


def _check_refs(graph: StepGraph, signatures: dict[str, FunctionSignature]) -> list[ValidationFinding]:
    """Backward-only edges, in-range indices, and at most one move per output."""
    out: list[ValidationFinding] = []
    declared: set[str] = set()
    moved_by: dict[tuple[str, int], str] = {}

    for step in graph:
        for a in step.refs:
            if a.step not in declared:
                where = "itself" if a.step == step.label else f'"{a.step}", which is not declared before it'
                out.append(
                    ValidationFinding(step.label, REF_ORDER_ERROR, f'Step "{step.label}" references {where}')
                )
                continue
            producer = graph.get(a.step)
            sig = signatures.get(str(producer.function)) if producer is not None else None
            if sig is not None and a.return_index >= sig.return_arity:
                out.append(
                    ValidationFinding(
                        step.label,
                        RETURN_INDEX_ERROR,
                        f'Step "{a.step}" has {sig.return_arity} return value(s), but index {a.return_index} '
                        f'was requested by step "{step.label}"',
                    )
                )
                continue
            prior = moved_by.get(a.target)
            if prior is not None:
                out.append(
                    ValidationFinding(
                        step.label,
                        DUPLICATE_MOVE_ERROR,
                        f'Step "{step.label}" uses {a.step}[{a.return_index}] ({a.mode.value}) after step '
                        f'"{prior}" already moved it',
                    )
                )
                continue
            if a.mode is RefMode.MOVE:
                moved_by[a.target] = step.label
        declared.add(step.label)
    return out


def _check_consumption(
    graph: StepGraph, checked: list[tuple[Step, FunctionSignature]]
) -> list[ValidationFinding]:
    out: list[ValidationFinding] = []
    for step, sig in checked:
        for idx in sig.non_droppable_returns():
            refs = graph.refs_to(step.label, idx)
            ret_type = sig.return_types[idx]
            if not refs:
                out.append(
                    ValidationFinding(
                        step.label,
                        UNCONSUMED_RESOURCE,
                        f'Step "{step.label}" return[{idx}] ({ret_type}) is non-droppable but not consumed by '
                        f"any subsequent step; add a deposit or use step",
                    )
                )
            elif not any(r.mode is RefMode.MOVE for _, r in refs):
                users = ", ".join(f'"{s.label}" ({r.mode.value})' for s, r in refs)
                out.append(
                    ValidationFinding(
                        step.label,
                        UNMOVED_RESOURCE,
                        f'Step "{step.label}" return[{idx}] ({ret_type}) is non-droppable and only used by '
                        f"{users}; no step moves it",
                    )
                )
    return out
