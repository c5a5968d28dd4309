"""
Turn a raw simulated outcome into events, balance and position changes.

Balances are attributed to an owner only through the owner's derived primary
store address for each tracked token. A token with no store write in the
outcome is simply absent from the result; callers carry the prior value
forward.
"""

from __future__ import annotations

import logging
from typing import Any

from move_composer.compose.types import TokenConfig
from move_composer.constants import DEFAULT_POSITION_RESOURCE, FUNGIBLE_STORE_TYPE
from move_composer.simulation.address import normalize_address, primary_store_address, split_type_address
from move_composer.simulation.types import (
    BalanceChange,
    ParsedEvent,
    SimulationAnalysis,
    SimulationOutcome,
    SimulationResult,
    TrackedPosition,
    VaultChange,
    VaultSnapshot,
)
from move_composer.utils import parse_u256

logger = logging.getLogger(__name__)

_STORE_ADDR, _STORE_PATH = split_type_address(FUNGIBLE_STORE_TYPE)  # type: ignore[misc]


def _coerce(outcome: SimulationOutcome | dict[str, Any]) -> SimulationOutcome:
    if isinstance(outcome, SimulationOutcome):
        return outcome
    return SimulationOutcome.from_response(outcome)


def short_type(full_type: str) -> str:
    """Last two `::` segments of a type, ignoring generic arguments."""
    base = full_type.split("<", 1)[0]
    return "::".join(base.split("::")[-2:])


def parse_events(outcome: SimulationOutcome) -> list[ParsedEvent]:
    out: list[ParsedEvent] = []
    for evt in outcome.events:
        full_type = str(evt.get("type") or "")
        data = evt.get("data") if isinstance(evt.get("data"), dict) else {}
        amount: int | None = None
        raw_amount = data.get("amount")
        if raw_amount is not None and str(raw_amount) != "0":
            try:
                amount = parse_u256(raw_amount, name="event amount")
            except ValueError as e:
                logger.warning(f"Ignoring amount on {full_type}: {e}")
        out.append(ParsedEvent(type=full_type, short_type=short_type(full_type), amount=amount, data=data))
    return out


# =============================================================================
# Change classification
# =============================================================================


def _resource_type(change: dict[str, Any]) -> str | None:
    data = change.get("data")
    if not isinstance(data, dict):
        return None
    t = data.get("type")
    return t if isinstance(t, str) else None


def _fungible_store_fields(change: dict[str, Any]) -> tuple[str, int] | None:
    """(metadata, balance) for a fungible-store write, else None."""
    if change.get("type") != "write_resource":
        return None
    t = _resource_type(change)
    parts = split_type_address(t) if t else None
    if parts is None:
        return None
    addr, path = parts
    if normalize_address(addr) != normalize_address(_STORE_ADDR) or path != _STORE_PATH:
        return None
    inner = change["data"].get("data")
    if not isinstance(inner, dict) or inner.get("balance") is None:
        return None
    meta = inner.get("metadata")
    meta_inner = meta.get("inner") if isinstance(meta, dict) else None
    if not isinstance(meta_inner, str):
        return None
    return meta_inner, parse_u256(inner["balance"], name="store balance")


def _is_position_type(type_str: str, position: TrackedPosition | None) -> bool:
    if position is not None:
        return position.matches(type_str)
    parts = split_type_address(type_str)
    return parts is not None and parts[1].split("<", 1)[0] == DEFAULT_POSITION_RESOURCE


def _vault_totals(vault_data: dict[str, Any]) -> tuple[int, int]:
    collateral = 0
    debt = 0
    collaterals = vault_data.get("collaterals")
    if isinstance(collaterals, dict):
        for entry in collaterals.get("data") or []:
            if isinstance(entry, dict):
                collateral += parse_u256(entry.get("value"), name="collateral value")
    liabilities = vault_data.get("liabilities")
    if isinstance(liabilities, dict):
        for entry in liabilities.get("data") or []:
            value = entry.get("value") if isinstance(entry, dict) else None
            principal = value.get("principal") if isinstance(value, dict) else None
            debt += parse_u256(principal, name="liability principal")
    return collateral, debt


def _position_change(change: dict[str, Any], position: TrackedPosition | None) -> VaultChange | None:
    kind = change.get("type")
    address = str(change.get("address") or "")
    if kind == "delete_resource":
        resource = change.get("resource")
        if isinstance(resource, str) and _is_position_type(resource, position):
            return VaultChange(address=address, collateral=0, debt_principal=0, exists=False)
        return None
    if kind != "write_resource":
        return None
    t = _resource_type(change)
    if t is None or not _is_position_type(t, position):
        return None
    vault_data = change["data"].get("data")
    if not isinstance(vault_data, dict):
        return None
    collateral, debt = _vault_totals(vault_data)
    return VaultChange(address=address, collateral=collateral, debt_principal=debt)


# =============================================================================
# Extraction
# =============================================================================


def extract_balances(
    outcome: SimulationOutcome | dict[str, Any], tokens: list[TokenConfig], owner: str
) -> dict[str, int]:
    """Absolute post-simulation balances of `owner`'s primary stores, keyed by token metadata."""
    outcome = _coerce(outcome)
    expected = {normalize_address(primary_store_address(owner, t.metadata)): t.metadata for t in tokens}
    out: dict[str, int] = {}
    for change in outcome.changes:
        fields = _fungible_store_fields(change)
        if fields is None:
            continue
        store = normalize_address(str(change.get("address") or ""))
        metadata = expected.get(store)
        if metadata is None:
            continue
        out[metadata] = fields[1]
    return out


def extract_vault(outcome: SimulationOutcome | dict[str, Any], position: TrackedPosition) -> VaultSnapshot | None:
    outcome = _coerce(outcome)
    for change in outcome.changes:
        vc = _position_change(change, position)
        if vc is not None:
            return VaultSnapshot(
                collateral=vc.collateral,
                debt_principal=vc.debt_principal,
                exists=vc.exists,
                market=position.market,
            )
    return None


def analyze(
    outcome: SimulationOutcome | dict[str, Any],
    tokens: list[TokenConfig],
    owner: str,
    position: TrackedPosition | None = None,
) -> SimulationAnalysis:
    outcome = _coerce(outcome)
    return SimulationAnalysis(
        events=parse_events(outcome),
        balances=extract_balances(outcome, tokens, owner),
        vault=extract_vault(outcome, position) if position is not None else None,
    )


def resolve_token_symbol(metadata: str, registry: dict[str, str] | None) -> str:
    if registry:
        for addr, sym in registry.items():
            if metadata.lower() == addr.lower():
                return sym
    return metadata[:10] + "..."


def parse_simulation_result(
    outcome: SimulationOutcome | dict[str, Any],
    token_registry: dict[str, str] | None = None,
    position: TrackedPosition | None = None,
) -> SimulationResult:
    """
    Parse every store and position write, regardless of owner.

    Unlike `analyze`, this does not attribute balances to anyone; it lists each
    fungible-store write with its symbol from `token_registry` (metadata -> symbol).
    """
    outcome = _coerce(outcome)
    balance_changes: list[BalanceChange] = []
    vault_changes: list[VaultChange] = []
    for change in outcome.changes:
        fields = _fungible_store_fields(change)
        if fields is not None:
            metadata, balance = fields
            balance_changes.append(
                BalanceChange(
                    address=str(change.get("address") or ""),
                    token=resolve_token_symbol(metadata, token_registry),
                    token_metadata=metadata,
                    balance=balance,
                )
            )
            continue
        vc = _position_change(change, position)
        if vc is not None:
            vault_changes.append(vc)

    return SimulationResult(
        success=outcome.success,
        vm_status=outcome.vm_status,
        gas_used=outcome.gas_used,
        gas_unit_price=outcome.gas_unit_price,
        gas_cost_apt=outcome.gas_cost_apt,
        events=parse_events(outcome),
        balance_changes=balance_changes,
        vault_changes=vault_changes,
        raw=outcome.raw,
    )
