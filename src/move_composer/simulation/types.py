"""
Data types for simulation analysis and sequential dry runs.

Amounts are Python ints throughout: on-chain u64/u128 values arrive as decimal
strings and are never routed through floats. Only gas cost in APT is a float.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from move_composer.compose.types import EntryFunctionPayload, TokenConfig
from move_composer.constants import DEFAULT_GAS_UNIT_PRICE, DEFAULT_POSITION_RESOURCE, OCTAS_PER_APT
from move_composer.simulation.address import normalize_address, split_type_address
from move_composer.utils import parse_u256


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class ExpectationType(str, Enum):
    BALANCE_INCREASE = "balance_increase"
    BALANCE_DECREASE = "balance_decrease"
    VAULT_DEBT_DECREASE = "vault_debt_decrease"
    VAULT_COLLATERAL_DECREASE = "vault_collateral_decrease"
    SUCCESS = "success"


# =============================================================================
# Raw simulation input
# =============================================================================


@dataclass(frozen=True)
class SimulationOutcome:
    success: bool
    vm_status: str
    gas_used: int
    gas_unit_price: int
    changes: list[dict[str, Any]] = field(default_factory=list)
    events: list[dict[str, Any]] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_response(cls, raw: dict[str, Any]) -> SimulationOutcome:
        """Build from a REST simulate response (one user transaction)."""
        if isinstance(raw, list):
            if not raw:
                raise ValueError("Empty simulate response")
            raw = raw[0]
        if not isinstance(raw, dict):
            raise ValueError(f"Simulate response must be an object, got {type(raw).__name__}")
        changes = raw.get("changes")
        events = raw.get("events")
        return cls(
            success=bool(raw.get("success", False)),
            vm_status=str(raw.get("vm_status") or ""),
            gas_used=parse_u256(raw.get("gas_used") or 0, name="gas_used"),
            gas_unit_price=parse_u256(raw.get("gas_unit_price") or DEFAULT_GAS_UNIT_PRICE, name="gas_unit_price"),
            changes=[c for c in changes if isinstance(c, dict)] if isinstance(changes, list) else [],
            events=[e for e in events if isinstance(e, dict)] if isinstance(events, list) else [],
            raw=raw,
        )

    @property
    def gas_cost_apt(self) -> float:
        return self.gas_used * self.gas_unit_price / OCTAS_PER_APT


@dataclass(frozen=True)
class TrackedPosition:
    """
    A lending position resource, addressed by protocol and resource path.

    A change matches when its resource type's address equals the protocol
    address (both normalized) and its `module::Struct` path equals `resource`.
    """

    protocol_address: str
    resource: str = DEFAULT_POSITION_RESOURCE
    market: str = ""

    def matches(self, type_str: str) -> bool:
        parts = split_type_address(type_str)
        if parts is None:
            return False
        addr, rest = parts
        return normalize_address(addr) == normalize_address(self.protocol_address) and (
            rest.split("<", 1)[0] == self.resource
        )


# =============================================================================
# Parsed results
# =============================================================================


@dataclass(frozen=True)
class ParsedEvent:
    type: str
    short_type: str
    amount: int | None
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "shortType": self.short_type, "amount": self.amount, "data": self.data}


@dataclass(frozen=True)
class BalanceChange:
    address: str
    token: str
    token_metadata: str
    balance: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "token": self.token,
            "tokenMetadata": self.token_metadata,
            "balance": self.balance,
        }


@dataclass(frozen=True)
class VaultSnapshot:
    collateral: int
    debt_principal: int
    exists: bool = True
    market: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "market": self.market,
            "collateral": self.collateral,
            "debtPrincipal": self.debt_principal,
            "exists": self.exists,
        }


@dataclass(frozen=True)
class VaultChange:
    address: str
    collateral: int
    debt_principal: int
    exists: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "collateral": self.collateral,
            "debtPrincipal": self.debt_principal,
            "exists": self.exists,
        }


@dataclass
class SimulationResult:
    success: bool
    vm_status: str
    gas_used: int
    gas_unit_price: int
    gas_cost_apt: float
    events: list[ParsedEvent] = field(default_factory=list)
    balance_changes: list[BalanceChange] = field(default_factory=list)
    vault_changes: list[VaultChange] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "vmStatus": self.vm_status,
            "gasUsed": self.gas_used,
            "gasUnitPrice": self.gas_unit_price,
            "gasCostApt": self.gas_cost_apt,
            "events": [e.to_dict() for e in self.events],
            "balanceChanges": [c.to_dict() for c in self.balance_changes],
            "vaultChanges": [c.to_dict() for c in self.vault_changes],
        }


@dataclass
class SimulationAnalysis:
    events: list[ParsedEvent] = field(default_factory=list)
    # metadata address -> absolute post-simulation balance, observed tokens only
    balances: dict[str, int] = field(default_factory=dict)
    vault: VaultSnapshot | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "events": [e.to_dict() for e in self.events],
            "balances": dict(self.balances),
            "vault": self.vault.to_dict() if self.vault else None,
        }


# =============================================================================
# Balance tracking
# =============================================================================


@dataclass
class BalanceSnapshot:
    owner: str
    balances: dict[str, int] = field(default_factory=dict)
    vault: VaultSnapshot | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "owner": self.owner,
            "balances": dict(self.balances),
            "vault": self.vault.to_dict() if self.vault else None,
        }


@dataclass(frozen=True)
class BalanceDelta:
    token: TokenConfig
    before: int
    after: int
    delta: int
    delta_formatted: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "token": self.token.to_dict(),
            "before": self.before,
            "after": self.after,
            "delta": self.delta,
            "deltaFormatted": self.delta_formatted,
        }


@dataclass(frozen=True)
class VaultTransition:
    before: VaultSnapshot | None
    after: VaultSnapshot | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "before": self.before.to_dict() if self.before else None,
            "after": self.after.to_dict() if self.after else None,
        }


@dataclass
class BalanceDiff:
    owner: str
    deltas: list[BalanceDelta] = field(default_factory=list)
    vault: VaultTransition | None = None

    def delta_for(self, metadata: str) -> BalanceDelta | None:
        for d in self.deltas:
            if d.token.metadata.lower() == metadata.lower():
                return d
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "owner": self.owner,
            "deltas": [d.to_dict() for d in self.deltas],
            "vault": self.vault.to_dict() if self.vault else None,
        }


# =============================================================================
# Diagnosis
# =============================================================================


@dataclass(frozen=True)
class DiagnosedError:
    severity: Severity
    code: str
    title: str
    detail: str
    suggestion: str
    step_label: str | None = None
    abort_code: int | None = None
    abort_location: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "severity": self.severity.value,
            "code": self.code,
            "title": self.title,
            "detail": self.detail,
            "suggestion": self.suggestion,
            "stepLabel": self.step_label,
        }
        if self.abort_code is not None:
            out["abortCode"] = self.abort_code
        if self.abort_location is not None:
            out["abortLocation"] = self.abort_location
        return out


# =============================================================================
# Sequential plans
# =============================================================================


@dataclass(frozen=True)
class StepExpectation:
    # an ExpectationType, or the raw string when it is not a known type
    type: ExpectationType | str
    description: str
    token: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.type, ExpectationType):
            try:
                object.__setattr__(self, "type", ExpectationType(self.type))
            except ValueError:
                pass

    def to_dict(self) -> dict[str, Any]:
        t = self.type.value if isinstance(self.type, ExpectationType) else self.type
        return {"type": t, "description": self.description, "token": self.token}


@dataclass(frozen=True)
class ExpectationResult:
    passed: bool
    description: str
    actual: str

    def to_dict(self) -> dict[str, Any]:
        return {"passed": self.passed, "description": self.description, "actual": self.actual}


@dataclass(frozen=True)
class PlanStep:
    label: str
    description: str
    payload: EntryFunctionPayload
    expectations: tuple[StepExpectation, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "description": self.description,
            "payload": self.payload.to_dict(),
            "expectations": [e.to_dict() for e in self.expectations],
        }


@dataclass(frozen=True)
class SimulationPlan:
    name: str
    description: str
    owner: str
    tokens: tuple[TokenConfig, ...]
    steps: tuple[PlanStep, ...]
    vault_market: str | None = None
    vault_protocol: str | None = None

    @property
    def position(self) -> TrackedPosition | None:
        if not self.vault_protocol:
            return None
        return TrackedPosition(protocol_address=self.vault_protocol, market=self.vault_market or "")

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "owner": self.owner,
            "tokens": [t.to_dict() for t in self.tokens],
            "steps": [s.to_dict() for s in self.steps],
            "vaultMarket": self.vault_market,
            "vaultProtocol": self.vault_protocol,
        }


@dataclass
class StepResult:
    label: str
    description: str
    success: bool
    vm_status: str
    gas_used: int
    gas_cost_apt: float
    events: list[ParsedEvent] = field(default_factory=list)
    balances_after: dict[str, int] = field(default_factory=dict)
    vault_after: VaultSnapshot | None = None
    deltas: list[BalanceDelta] = field(default_factory=list)
    expectation_results: list[ExpectationResult] = field(default_factory=list)
    duration_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "description": self.description,
            "success": self.success,
            "vmStatus": self.vm_status,
            "gasUsed": self.gas_used,
            "gasCostApt": self.gas_cost_apt,
            "events": [e.to_dict() for e in self.events],
            "balancesAfter": dict(self.balances_after),
            "vaultAfter": self.vault_after.to_dict() if self.vault_after else None,
            "deltas": [d.to_dict() for d in self.deltas],
            "expectationResults": [r.to_dict() for r in self.expectation_results],
            "durationMs": round(self.duration_ms, 3),
        }


@dataclass
class FlowReport:
    plan: SimulationPlan
    success: bool
    total_gas_used: int
    total_gas_cost_apt: float
    initial_snapshot: BalanceSnapshot
    step_results: list[StepResult]
    overall_diff: BalanceDiff
    errors: list[DiagnosedError] = field(default_factory=list)
    warnings: list[DiagnosedError] = field(default_factory=list)

    @property
    def steps(self) -> list[StepResult]:
        return self.step_results

    @property
    def summary(self) -> str:
        status = "OK" if self.success else "FAILED"
        failed = sum(1 for s in self.step_results if not s.success)
        return (
            f"{self.plan.name}: {status} ({len(self.step_results)} step(s), {failed} failed, "
            f"{len(self.warnings)} warning(s), gas {self.total_gas_used})"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "plan": self.plan.to_dict(),
            "success": self.success,
            "totalGasUsed": self.total_gas_used,
            "totalGasCostApt": self.total_gas_cost_apt,
            "initialSnapshot": self.initial_snapshot.to_dict(),
            "stepResults": [s.to_dict() for s in self.step_results],
            "overallDiff": self.overall_diff.to_dict(),
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
            "summary": self.summary,
        }
