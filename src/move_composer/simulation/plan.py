"""
Sequential dry runs of independent transactions.

Each step is simulated on its own against live chain state; it does not see
earlier steps' effects. Balances are carried forward: a step's simulation only
reveals post-state for the stores it touched, so every other token keeps its
last known value.
"""

from __future__ import annotations

import logging
import time

from move_composer.compose.types import EntryFunctionPayload, TokenConfig
from move_composer.errors import PlanBuildError
from move_composer.interfaces import BalanceReader, ChainSimulator
from move_composer.logging import FlowEventLog
from move_composer.simulation.analyzer import analyze
from move_composer.simulation.diagnosis import diagnose, expectation_warning
from move_composer.simulation.tracker import capture_snapshot, compute_deltas, compute_diff, validate_expectations
from move_composer.simulation.types import (
    DiagnosedError,
    FlowReport,
    PlanStep,
    SimulationOutcome,
    SimulationPlan,
    StepExpectation,
    StepResult,
    VaultSnapshot,
    VaultTransition,
)

logger = logging.getLogger(__name__)


class SimulationPlanBuilder:
    def __init__(self, name: str) -> None:
        self._name = name
        self._description = ""
        self._owner = ""
        self._tokens: list[TokenConfig] = []
        self._steps: list[PlanStep] = []
        self._vault_market: str | None = None
        self._vault_protocol: str | None = None

    def describe(self, description: str) -> SimulationPlanBuilder:
        self._description = description
        return self

    def for_wallet(self, owner: str) -> SimulationPlanBuilder:
        self._owner = owner
        return self

    def track_tokens(self, tokens: list[TokenConfig]) -> SimulationPlanBuilder:
        self._tokens = list(tokens)
        return self

    def track_vault(self, market: str, protocol_address: str) -> SimulationPlanBuilder:
        self._vault_market = market
        self._vault_protocol = protocol_address
        return self

    def add_step(
        self,
        label: str,
        description: str,
        payload: EntryFunctionPayload,
        expectations: list[StepExpectation] | None = None,
    ) -> SimulationPlanBuilder:
        self._steps.append(
            PlanStep(label=label, description=description, payload=payload, expectations=tuple(expectations or ()))
        )
        return self

    def build(self) -> SimulationPlan:
        if not self._owner:
            raise PlanBuildError("SimulationPlan requires a wallet (for_wallet)")
        if not self._tokens:
            raise PlanBuildError("SimulationPlan requires tracked tokens (track_tokens)")
        if not self._steps:
            raise PlanBuildError("SimulationPlan requires at least one step (add_step)")
        return SimulationPlan(
            name=self._name,
            description=self._description,
            owner=self._owner,
            tokens=tuple(self._tokens),
            steps=tuple(self._steps),
            vault_market=self._vault_market,
            vault_protocol=self._vault_protocol,
        )


async def dry_run(
    plan: SimulationPlan,
    simulator: ChainSimulator,
    balances: BalanceReader,
    event_log: FlowEventLog | None = None,
) -> FlowReport:
    tokens = list(plan.tokens)
    position = plan.position

    initial = await capture_snapshot(balances, plan.owner, tokens)
    if event_log is not None:
        event_log.write_run_metadata(plan.to_dict())
        event_log.event("dry_run_started", plan=plan.name, owner=plan.owner, steps=len(plan.steps))

    step_results: list[StepResult] = []
    current_balances = dict(initial.balances)
    current_vault: VaultSnapshot | None = None

    for step in plan.steps:
        start = time.perf_counter()
        raw = await simulator.simulate_payload(step.payload)
        duration_ms = (time.perf_counter() - start) * 1000.0

        outcome = SimulationOutcome.from_response(raw)
        analysis = analyze(outcome, tokens, plan.owner, position)

        merged = {**current_balances, **analysis.balances}
        deltas = compute_deltas(current_balances, merged, tokens)

        # a step that leaves the position untouched keeps the carried vault
        vault_after = analysis.vault
        expectation_results = validate_expectations(
            step.expectations,
            deltas,
            current_vault,
            vault_after if vault_after is not None else current_vault,
        )

        result = StepResult(
            label=step.label,
            description=step.description,
            success=outcome.success,
            vm_status=outcome.vm_status,
            gas_used=outcome.gas_used,
            gas_cost_apt=outcome.gas_cost_apt,
            events=analysis.events,
            balances_after=merged,
            vault_after=vault_after,
            deltas=deltas,
            expectation_results=expectation_results,
            duration_ms=duration_ms,
        )
        step_results.append(result)
        logger.info(f"Step {step.label}: success={result.success} gas={result.gas_used} ({duration_ms:.1f}ms)")
        if event_log is not None:
            event_log.event("step_simulated", label=step.label, success=result.success, vm_status=result.vm_status)
            event_log.step_row(result.to_dict())

        current_balances = merged
        if vault_after is not None:
            current_vault = vault_after

    overall_diff = compute_diff(
        initial,
        current_balances,
        tokens,
        VaultTransition(before=None, after=current_vault) if position is not None else None,
    )

    errors: list[DiagnosedError] = []
    warnings: list[DiagnosedError] = []
    for s in step_results:
        if not s.success:
            errors.extend(diagnose(s.vm_status, s.label))
        warnings.extend(expectation_warning(r, s.label) for r in s.expectation_results if not r.passed)

    report = FlowReport(
        plan=plan,
        success=all(s.success for s in step_results),
        total_gas_used=sum(s.gas_used for s in step_results),
        total_gas_cost_apt=sum(s.gas_cost_apt for s in step_results),
        initial_snapshot=initial,
        step_results=step_results,
        overall_diff=overall_diff,
        errors=errors,
        warnings=warnings,
    )
    logger.info(report.summary)
    if event_log is not None:
        event_log.event(
            "dry_run_finished",
            plan=plan.name,
            success=report.success,
            errors=len(errors),
            warnings=len(warnings),
            total_gas_used=report.total_gas_used,
        )
    return report
