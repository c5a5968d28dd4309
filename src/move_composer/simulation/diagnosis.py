"""
Map VM status strings to structured diagnoses.

Rules are tried in order and the first match wins, so protocol-specific
patterns sit above the generic abort rule.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from move_composer.constants import VM_STATUS_SUCCESS
from move_composer.simulation.types import DiagnosedError, ExpectationResult, Severity


@dataclass(frozen=True)
class DiagnosisRule:
    pattern: re.Pattern[str]
    code: str
    title: str
    detail: str
    suggestion: str
    severity: Severity = Severity.ERROR


def _rule(pattern: str, code: str, title: str, detail: str, suggestion: str) -> DiagnosisRule:
    return DiagnosisRule(re.compile(pattern, re.IGNORECASE), code, title, detail, suggestion)


RULES: tuple[DiagnosisRule, ...] = (
    _rule(
        r"65540|INSUFFICIENT_BALANCE",
        "INSUFFICIENT_BALANCE",
        "Insufficient token balance",
        "The account does not hold enough of the requested token for this operation.",
        "Verify the wallet holds enough tokens. Check that prior steps produced sufficient output.",
    ),
    _rule(
        r"ARITHMETIC_ERROR",
        "ARITHMETIC_OVERFLOW",
        "Arithmetic overflow in contract",
        "A math operation overflowed. Common when repay amount exceeds debt or swap amounts exceed pool liquidity.",
        "Check that repay amount <= outstanding debt. Verify swap amounts against pool liquidity.",
    ),
    _rule(
        r"OUT_OF_GAS",
        "OUT_OF_GAS",
        "Transaction ran out of gas",
        "The max gas limit was exceeded. Composed transactions with many steps use more gas.",
        "Increase max_gas_amount or reduce the number of steps.",
    ),
    _rule(
        r"SEQUENCE_NUMBER",
        "SEQUENCE_NUMBER_ERROR",
        "Sequence number mismatch",
        "The transaction sequence number doesn't match the account state. Usually means concurrent transactions.",
        "Wait for any pending transactions to finalize before retrying.",
    ),
    _rule(
        r"repay.*exceed",
        "REPAY_EXCEEDS_DEBT",
        "Repay amount exceeds outstanding debt",
        "Attempting to repay more than the current debt amount. Use repay_all to handle exact amounts.",
        "Use repay_all_fa instead, or reduce the repay amount to match the actual debt.",
    ),
    _rule(
        r"insufficient_shares",
        "INSUFFICIENT_SHARES",
        "Insufficient collateral shares",
        "Attempting to withdraw more collateral than is deposited.",
        "Reduce the withdrawal amount or use withdraw_all to withdraw everything.",
    ),
    _rule(
        r"sqrt_price",
        "PRICE_LIMIT_ERROR",
        "Swap price limit exceeded",
        "The swap would move the price beyond the specified limit.",
        "Increase slippage tolerance or reduce swap amount.",
    ),
    _rule(
        r"lending",
        "LENDING_ERROR",
        "Lending protocol error",
        "The lending protocol rejected the operation.",
        "Check: repay amount <= debt, withdrawal won't breach health factor, position exists.",
    ),
    _rule(
        r"pool_v3|pool_v2",
        "DEX_POOL_ERROR",
        "DEX pool operation failed",
        "The DEX pool rejected the swap operation.",
        "Check slippage tolerance, pool liquidity, and that the pool address is correct.",
    ),
    _rule(
        r"ABORTED",
        "MOVE_ABORT",
        "Move module aborted execution",
        "A Move smart contract called abort(). The abort code indicates the specific failure.",
        "Check the abort code against the protocol's documentation or source code.",
    ),
)

UNKNOWN_ERROR = "UNKNOWN_ERROR"
EXPECTATION_FAILED = "EXPECTATION_FAILED"

# "Move abort in 0x1::coin: EINSUFFICIENT_BALANCE(0x10006): ..."
_ABORT_IN_RE = re.compile(r"abort in (\S+?::\w+):\s*(?:\w+\()?(0x[0-9a-fA-F]+|\d+)", re.IGNORECASE)
# "Move abort: 0x10004 at 0xabc::lending"
_ABORT_AT_RE = re.compile(r"abort\w*:?\s*(?:code\s*)?(0x[0-9a-fA-F]+|\d+)\s+at\s+(\S+?::\w+)", re.IGNORECASE)


def _parse_int(s: str) -> int:
    return int(s, 16) if s.lower().startswith("0x") else int(s)


def parse_abort(vm_status: str) -> tuple[int | None, str | None]:
    """Extract (abort code, module location) from a VM status, if present."""
    m = _ABORT_IN_RE.search(vm_status)
    if m:
        return _parse_int(m.group(2)), m.group(1)
    m = _ABORT_AT_RE.search(vm_status)
    if m:
        return _parse_int(m.group(1)), m.group(2)
    return None, None


def diagnose(vm_status: str | None, step_label: str | None = None) -> list[DiagnosedError]:
    if not vm_status or vm_status == VM_STATUS_SUCCESS:
        return []

    abort_code, abort_location = parse_abort(vm_status)
    for rule in RULES:
        if rule.pattern.search(vm_status):
            return [
                DiagnosedError(
                    severity=rule.severity,
                    code=rule.code,
                    title=rule.title,
                    detail=rule.detail,
                    suggestion=rule.suggestion,
                    step_label=step_label,
                    abort_code=abort_code,
                    abort_location=abort_location,
                )
            ]

    return [
        DiagnosedError(
            severity=Severity.ERROR,
            code=UNKNOWN_ERROR,
            title="Transaction failed",
            detail=f"VM status: {vm_status}",
            suggestion="Inspect the raw vm_status for details.",
            step_label=step_label,
            abort_code=abort_code,
            abort_location=abort_location,
        )
    ]


def expectation_warning(result: ExpectationResult, step_label: str | None = None) -> DiagnosedError:
    return DiagnosedError(
        severity=Severity.WARNING,
        code=EXPECTATION_FAILED,
        title=f"Expectation failed: {result.description}",
        detail=f"Actual: {result.actual}",
        suggestion="Review the step inputs and expected outcomes.",
        step_label=step_label,
    )
