"""
DynamicComposer: declare steps, validate, build one transaction, simulate it.

The composer wires the resolver, validator and builder to the injected
collaborators. It never signs or submits; `ComposedResult.execute` hands the
built transaction to an executor only when the caller invokes it.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from move_composer.compose.abi import AbiCache
from move_composer.compose.builder import AtomicBuilder, BuildResult
from move_composer.compose.normalize import normalize_plan_json
from move_composer.compose.serialize import decode_plan
from move_composer.compose.types import FunctionId, SignerToken, StepArg, StepGraph, TokenConfig
from move_composer.compose.validator import AbiValidator, ValidationFinding, ValidationReport
from move_composer.errors import ExecutionUnavailableError
from move_composer.interfaces import AbiFetcher, BalanceReader, ChainSimulator, ScriptBuilder, TransactionExecutor
from move_composer.logging import FlowEventLog
from move_composer.simulation.analyzer import extract_balances, parse_simulation_result
from move_composer.simulation.diagnosis import diagnose
from move_composer.simulation.tracker import capture_snapshot, compute_diff
from move_composer.simulation.types import BalanceDiff, DiagnosedError, SimulationOutcome, SimulationResult

logger = logging.getLogger(__name__)


@dataclass
class ComposedResult:
    success: bool
    simulation: SimulationResult
    transaction: Any
    balance_diff: BalanceDiff | None
    errors: list[DiagnosedError] = field(default_factory=list)
    warnings: list[ValidationFinding] = field(default_factory=list)
    summary: str = ""
    step_labels: list[str] = field(default_factory=list)
    # zero-argument coroutine function; never called by the composer
    execute: Callable[[], Awaitable[dict[str, Any]]] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "simulation": self.simulation.to_dict(),
            "balanceDiff": self.balance_diff.to_dict() if self.balance_diff else None,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
            "summary": self.summary,
            "stepLabels": list(self.step_labels),
        }


def composed_summary(
    step_labels: list[str],
    simulation: SimulationResult,
    errors: list[DiagnosedError],
    warnings: list[ValidationFinding],
) -> str:
    status = "SUCCESS" if simulation.success else "FAILED"
    return (
        f"{' -> '.join(step_labels)}: {status} | gas {simulation.gas_used} "
        f"({simulation.gas_cost_apt:.6f} APT) | {len(errors)} error(s), {len(warnings)} warning(s)"
    )


class DynamicComposer:
    def __init__(
        self,
        abi_fetcher: AbiFetcher,
        builder_factory: Callable[[], ScriptBuilder],
        simulator: ChainSimulator,
        *,
        balances: BalanceReader | None = None,
        signer: SignerToken | None = None,
        owner: str = "",
        executor: TransactionExecutor | None = None,
        cache: AbiCache | None = None,
        event_log: FlowEventLog | None = None,
    ) -> None:
        self.graph = StepGraph()
        self.tokens: list[TokenConfig] = []
        self.validator = AbiValidator(abi_fetcher, cache)
        self.builder = AtomicBuilder(self.validator, builder_factory)
        self.simulator = simulator
        self.balances = balances
        self.signer = signer if signer is not None else SignerToken()
        self.owner = owner
        self.executor = executor
        self.event_log = event_log
        self._last_warnings: list[ValidationFinding] = []

    def add_step(
        self,
        label: str,
        function: str | FunctionId,
        *,
        type_arguments: list[str] | None = None,
        args: list[StepArg] | tuple[StepArg, ...] = (),
    ) -> DynamicComposer:
        self.graph.add_step(label, function, type_arguments=type_arguments, args=args)
        return self

    def track_tokens(self, tokens: list[TokenConfig]) -> DynamicComposer:
        self.tokens = list(tokens)
        return self

    @classmethod
    def from_json(
        cls,
        plan_json: dict[str, Any],
        abi_fetcher: AbiFetcher,
        builder_factory: Callable[[], ScriptBuilder],
        simulator: ChainSimulator,
        **kwargs: Any,
    ) -> DynamicComposer:
        normalized = normalize_plan_json(plan_json)
        if normalized.had_corrections:
            logger.info(f"Plan normalized: {normalized.histogram()}")
        decoded = decode_plan(normalized.plan)
        composer = cls(abi_fetcher, builder_factory, simulator, **kwargs)
        composer.graph = decoded.graph
        composer.tokens = decoded.tokens
        return composer

    async def validate(self) -> ValidationReport:
        return await self.validator.validate(self.graph)

    async def build(self, *, fee_payer: bool = False) -> BuildResult:
        result = await self.builder.build(self.graph, self.signer, fee_payer=fee_payer)
        self._last_warnings = result.report.warnings
        if self.event_log is not None:
            self.event_log.event(
                "composed_built",
                steps=self.graph.labels,
                fee_payer=fee_payer,
                warnings=[w.code for w in self._last_warnings],
            )
        return result

    async def _balance_diff(self, outcome: SimulationOutcome) -> BalanceDiff | None:
        if not self.tokens:
            return None
        if self.balances is None or not self.owner:
            logger.warning("Tracked tokens set but no balance reader/owner configured; skipping balance diff")
            return None
        snapshot = await capture_snapshot(self.balances, self.owner, self.tokens)
        after = extract_balances(outcome, self.tokens, self.owner)
        return compute_diff(snapshot, {**snapshot.balances, **after}, self.tokens)

    async def simulate(self, *, fee_payer: bool = False) -> ComposedResult:
        built = await self.build(fee_payer=fee_payer)
        raw = await self.simulator.simulate(built.transaction, fee_payer=fee_payer)
        outcome = SimulationOutcome.from_response(raw)

        registry = {t.metadata: t.symbol for t in self.tokens}
        simulation = parse_simulation_result(outcome, registry)
        balance_diff = await self._balance_diff(outcome)
        errors = [] if simulation.success else diagnose(simulation.vm_status)
        warnings = list(self._last_warnings)
        labels = self.graph.labels
        summary = composed_summary(labels, simulation, errors, warnings)
        logger.info(summary)
        if self.event_log is not None:
            self.event_log.event(
                "composed_simulated",
                steps=labels,
                success=simulation.success,
                vm_status=simulation.vm_status,
                gas_used=simulation.gas_used,
            )

        executor = self.executor
        transaction = built.transaction

        async def execute() -> dict[str, Any]:
            if executor is None:
                raise ExecutionUnavailableError()
            return await executor.execute(transaction, f"Composed: {' -> '.join(labels)}")

        return ComposedResult(
            success=simulation.success,
            simulation=simulation,
            transaction=transaction,
            balance_diff=balance_diff,
            errors=errors,
            warnings=warnings,
            summary=summary,
            step_labels=labels,
            execute=execute,
        )
