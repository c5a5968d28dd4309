"""
move-composer command line.

Usage:
    move-composer validate plan.json                   # check a plan against on-chain ABIs
    move-composer analyze outcome.json --owner 0x...   # analyze a saved simulate response
    move-composer diagnose "Move abort: 0x10004 at 0xabc::lending"
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from move_composer.compose.serialize import load_plan
from move_composer.compose.types import TokenConfig
from move_composer.compose.validator import AbiValidator, ValidationReport
from move_composer.env import Settings, load_settings
from move_composer.errors import ComposerError
from move_composer.rest import AptosRestClient
from move_composer.simulation.analyzer import analyze, parse_simulation_result
from move_composer.simulation.diagnosis import diagnose
from move_composer.simulation.tracker import format_amount
from move_composer.simulation.types import DiagnosedError, SimulationOutcome, TrackedPosition
from move_composer.utils import atomic_write_json, safe_read_json

logger = logging.getLogger(__name__)

console = Console()


def _make_client(settings: Settings) -> AptosRestClient:
    return AptosRestClient.from_settings(settings)


def _emit_json(obj: Any, out: Path | None) -> None:
    if out is not None:
        atomic_write_json(out, obj)
    sys.stdout.write(json.dumps(obj, indent=2, sort_keys=True, default=str) + "\n")


def _print_findings(report: ValidationReport) -> None:
    if not report.findings:
        console.print("[green]No findings.[/green]")
        return
    table = Table(title="Validation Findings", show_header=True)
    table.add_column("Step", style="cyan")
    table.add_column("Code")
    table.add_column("Message", style="dim")
    for f in report.findings:
        code = f"[red]{f.code}[/red]" if f.is_hard_error else f"[yellow]{f.code}[/yellow]"
        table.add_row(f.step_label, code, f.message)
    console.print(table)


def _print_diagnoses(diagnoses: list[DiagnosedError]) -> None:
    if not diagnoses:
        console.print("[green]No errors diagnosed.[/green]")
        return
    table = Table(title="Diagnosis", show_header=True)
    table.add_column("Code", style="red")
    table.add_column("Title")
    table.add_column("Detail", style="dim")
    table.add_column("Step")
    for d in diagnoses:
        table.add_row(d.code, d.title, d.detail, d.step_label or "")
    console.print(table)
    console.print(
        Panel.fit(
            "\n".join(f"[bold]{d.code}:[/bold] {d.suggestion}" for d in diagnoses),
            title="[yellow]Suggestions[/yellow]",
            border_style="yellow",
        )
    )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def _validate_async(settings: Settings, plan_path: Path) -> tuple[ValidationReport, list[str]]:
    decoded = load_plan(plan_path)
    client = _make_client(settings)
    try:
        report = await AbiValidator(client).validate(decoded.graph)
    finally:
        await client.aclose()
    return report, decoded.corrections


def cmd_validate(args: argparse.Namespace) -> int:
    settings = load_settings(args.env_file)
    if args.node_url:
        settings = replace(settings, node_url=args.node_url.rstrip("/"))

    try:
        report, corrections = asyncio.run(_validate_async(settings, args.plan))
    except (ComposerError, ValueError, FileNotFoundError) as e:
        console.print(f"[red]error:[/red] {e}")
        return 2

    if args.json:
        _emit_json({**report.to_dict(), "corrections": corrections}, args.out)
    else:
        for c in corrections:
            console.print(f"[dim]normalized {c}[/dim]")
        _print_findings(report)
        if args.out is not None:
            atomic_write_json(args.out, {**report.to_dict(), "corrections": corrections})
    return 0 if report.ok else 1


def cmd_analyze(args: argparse.Namespace) -> int:
    try:
        raw = safe_read_json(args.outcome, context="simulate response", raise_on_error=True)
        outcome = SimulationOutcome.from_response(raw)
        tokens: list[TokenConfig] = load_plan(args.plan).tokens if args.plan else []
        position = TrackedPosition(protocol_address=args.vault_protocol) if args.vault_protocol else None
        analysis = analyze(outcome, tokens, args.owner, position)
    except (ComposerError, ValueError, FileNotFoundError) as e:
        console.print(f"[red]error:[/red] {e}")
        return 2

    simulation = parse_simulation_result(outcome, {t.metadata: t.symbol for t in tokens}, position)
    diagnoses = [] if outcome.success else diagnose(outcome.vm_status)

    payload = {
        "success": outcome.success,
        "vmStatus": outcome.vm_status,
        "gasUsed": outcome.gas_used,
        "gasCostApt": outcome.gas_cost_apt,
        "analysis": analysis.to_dict(),
        "balanceChanges": [c.to_dict() for c in simulation.balance_changes],
        "diagnoses": [d.to_dict() for d in diagnoses],
    }
    if args.json:
        _emit_json(payload, args.out)
        return 0 if outcome.success else 1

    status = "[green]success[/green]" if outcome.success else "[red]failed[/red]"
    console.print(f"Simulation {status}: {outcome.vm_status} (gas {outcome.gas_used}, {outcome.gas_cost_apt:.6f} APT)")

    events = Table(title="Events", show_header=True)
    events.add_column("Type", style="cyan")
    events.add_column("Amount", justify="right")
    for e in analysis.events:
        events.add_row(e.short_type, "" if e.amount is None else str(e.amount))
    console.print(events)

    balances = Table(title=f"Balances of {args.owner}", show_header=True)
    balances.add_column("Token", style="cyan")
    balances.add_column("After", justify="right")
    for t in tokens:
        if t.metadata in analysis.balances:
            balances.add_row(t.symbol, format_amount(analysis.balances[t.metadata], t.decimals))
        else:
            balances.add_row(t.symbol, "[dim]unchanged[/dim]")
    console.print(balances)

    if position is not None:
        v = analysis.vault
        if v is None:
            console.print("[dim]Vault: not touched[/dim]")
        elif not v.exists:
            console.print("Vault: [yellow]deleted[/yellow]")
        else:
            console.print(f"Vault: collateral={v.collateral} debt={v.debt_principal}")

    _print_diagnoses(diagnoses)
    if args.out is not None:
        atomic_write_json(args.out, payload)
    return 0 if outcome.success else 1


def cmd_diagnose(args: argparse.Namespace) -> int:
    diagnoses = diagnose(args.status, args.step)
    if args.json:
        _emit_json([d.to_dict() for d in diagnoses], args.out)
    else:
        _print_diagnoses(diagnoses)
        if args.out is not None:
            atomic_write_json(args.out, [d.to_dict() for d in diagnoses])
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Validate, analyze and diagnose composed Move transactions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--json", action="store_true", help="Print JSON instead of tables")
        p.add_argument("--out", type=Path, help="Also write the JSON result to this file")

    p_val = subparsers.add_parser("validate", help="Check a plan JSON against on-chain ABIs")
    p_val.add_argument("plan", type=Path, help="Plan JSON file")
    p_val.add_argument("--node-url", type=str, default=None, help="Fullnode REST URL (overrides env)")
    p_val.add_argument("--env-file", type=Path, default=None, help="Optional .env file")
    common(p_val)

    p_an = subparsers.add_parser("analyze", help="Analyze a saved simulate response")
    p_an.add_argument("outcome", type=Path, help="Simulate response JSON file")
    p_an.add_argument("--owner", type=str, required=True, help="Account whose balances to track")
    p_an.add_argument("--plan", type=Path, default=None, help="Plan JSON whose tokens to track")
    p_an.add_argument("--vault-protocol", type=str, default=None, help="Lending protocol address to track")
    common(p_an)

    p_diag = subparsers.add_parser("diagnose", help="Diagnose a VM status string")
    p_diag.add_argument("status", type=str, help="VM status")
    p_diag.add_argument("--step", type=str, default=None, help="Step label to attach")
    common(p_diag)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    commands = {"validate": cmd_validate, "analyze": cmd_analyze, "diagnose": cmd_diagnose}
    sys.exit(commands[args.command](args))


if __name__ == "__main__":
    main()
