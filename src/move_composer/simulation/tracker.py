from __future__ import annotations

import asyncio
import logging

from move_composer.compose.types import TokenConfig
from move_composer.interfaces import BalanceReader
from move_composer.simulation.address import normalize_address
from move_composer.simulation.types import (
    BalanceDelta,
    BalanceDiff,
    BalanceSnapshot,
    ExpectationResult,
    ExpectationType,
    StepExpectation,
    VaultSnapshot,
    VaultTransition,
)

logger = logging.getLogger(__name__)


def format_amount(raw: int, decimals: int) -> str:
    """
    Render a base-unit amount with exactly `decimals` fractional digits.

    Integer arithmetic only, so u64/u128 amounts never lose precision.
    """
    sign = "-" if raw < 0 else ""
    whole, frac = divmod(abs(raw), 10**decimals)
    if decimals <= 0:
        return f"{sign}{whole}"
    return f"{sign}{whole}.{frac:0{decimals}d}"


async def capture_snapshot(reader: BalanceReader, owner: str, tokens: list[TokenConfig]) -> BalanceSnapshot:
    """Read every tracked token's live balance in parallel."""
    amounts = await asyncio.gather(*(reader.fetch_balance(owner, t.metadata) for t in tokens))
    balances = {t.metadata: int(a) for t, a in zip(tokens, amounts)}
    logger.debug(f"Captured snapshot for {owner}: {len(balances)} token(s)")
    return BalanceSnapshot(owner=owner, balances=balances)


def compute_deltas(before: dict[str, int], after: dict[str, int], tokens: list[TokenConfig]) -> list[BalanceDelta]:
    """A token missing from `after` is unchanged, never zero."""
    deltas: list[BalanceDelta] = []
    for token in tokens:
        b = before.get(token.metadata, 0)
        a = after.get(token.metadata, b)
        delta = a - b
        sign = "+" if delta >= 0 else ""
        deltas.append(
            BalanceDelta(
                token=token,
                before=b,
                after=a,
                delta=delta,
                delta_formatted=f"{sign}{format_amount(delta, token.decimals)}",
            )
        )
    return deltas


def compute_diff(
    before: BalanceSnapshot,
    after_balances: dict[str, int],
    tokens: list[TokenConfig],
    vault: VaultTransition | None = None,
) -> BalanceDiff:
    return BalanceDiff(
        owner=before.owner,
        deltas=compute_deltas(before.balances, after_balances, tokens),
        vault=vault,
    )


def _find_delta(deltas: list[BalanceDelta], token: str | None) -> BalanceDelta | None:
    if not token:
        return None
    want = normalize_address(token)
    for d in deltas:
        if normalize_address(d.token.metadata) == want:
            return d
    return None


def validate_expectations(
    expectations: list[StepExpectation] | tuple[StepExpectation, ...],
    deltas: list[BalanceDelta],
    vault_before: VaultSnapshot | None = None,
    vault_after: VaultSnapshot | None = None,
) -> list[ExpectationResult]:
    """
    Evaluate step expectations. Missing data is reported in `actual` rather
    than skipped.
    """
    results: list[ExpectationResult] = []
    for exp in expectations:
        t = exp.type
        if t in (ExpectationType.BALANCE_INCREASE, ExpectationType.BALANCE_DECREASE):
            d = _find_delta(deltas, exp.token)
            if d is None:
                results.append(ExpectationResult(False, exp.description, "token not tracked"))
                continue
            passed = d.delta > 0 if t is ExpectationType.BALANCE_INCREASE else d.delta < 0
            results.append(ExpectationResult(passed, exp.description, f"{d.delta_formatted} {d.token.symbol}"))
        elif t in (ExpectationType.VAULT_DEBT_DECREASE, ExpectationType.VAULT_COLLATERAL_DECREASE):
            if vault_before is None or vault_after is None:
                results.append(ExpectationResult(False, exp.description, "vault not tracked"))
                continue
            if t is ExpectationType.VAULT_DEBT_DECREASE:
                b, a, what = vault_before.debt_principal, vault_after.debt_principal, "debt"
            else:
                b, a, what = vault_before.collateral, vault_after.collateral, "collateral"
            results.append(ExpectationResult(a < b, exp.description, f"{what} {b} -> {a}"))
        elif t is ExpectationType.SUCCESS:
            results.append(ExpectationResult(True, exp.description, "checked at step level"))
        else:
            results.append(ExpectationResult(False, exp.description, f"unknown type: {t}"))
    return results
