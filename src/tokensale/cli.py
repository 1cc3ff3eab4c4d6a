#!/usr/bin/env python3
"""
Token sale CLI

Offline tools over the sale core:
- Quote a contribution at any raised amount
- Tabulate the bonding curve
- Print a vesting schedule
- Replay a YAML scenario against an in-memory deployment
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import click
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from tokensale.config import DistributionSettings, load_settings
from tokensale.constants import MAX_DISCOUNT_BASE, MIN_DISCOUNT_BASE, ONE
from tokensale.exceptions import TokenSaleError
from tokensale.logging_config import setup_logging
from tokensale.pricing import BondingCurve, tokens_to_display
from tokensale.scenario import load_scenario, run_scenario
from tokensale.vesting import VestingGrant

logger = logging.getLogger(__name__)
console = Console()


def _cli_fail(exc: Exception, exit_code: int = 1) -> None:
    """Centralized CLI error handler for consistent messaging/exit codes."""
    logger.error("CLI error: %s", exc, exc_info=True)
    console.print(f"[bold red]Error:[/] {exc}")
    sys.exit(exit_code)


def _emit_json(payload: Dict[str, Any]) -> None:
    click.echo(json.dumps(payload, indent=2))


def _curve(ctx: click.Context) -> BondingCurve:
    settings: DistributionSettings = ctx.obj["settings"]
    return BondingCurve(settings.curve_parameters())


@click.group()
@click.option("--json-output", is_flag=True, help="Output raw JSON")
@click.option(
    "--environment",
    envvar="TOKENSALE_ENVIRONMENT",
    help="Environment whose <environment>.yaml overrides the defaults.",
)
@click.option(
    "--config-file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Explicit YAML config file (replaces the environment file).",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    help="Override the configured log level.",
)
@click.pass_context
def cli(
    ctx: click.Context,
    json_output: bool,
    environment: Optional[str],
    config_file: Optional[Path],
    log_level: Optional[str],
):
    """
    Token sale tools: quotes, curve tables, vesting schedules and scenario
    replays, computed with the same ledger code a deployment runs.
    """
    ctx.ensure_object(dict)
    try:
        settings = load_settings(environment=environment, config_file=config_file)
    except TokenSaleError as exc:
        raise click.ClickException(str(exc)) from exc

    setup_logging(
        name="tokensale",
        level=log_level or settings.log_level,
        environment=settings.environment,
        log_file=settings.log_file,
    )
    ctx.obj["settings"] = settings
    ctx.obj["json_output"] = json_output


@cli.command("quote")
@click.option("--raised", type=click.IntRange(min=0), default=0, show_default=True, help="Units already raised")
@click.option("--contribution", type=click.IntRange(min=1), required=True, help="Units contributed")
@click.option(
    "--discount-base",
    type=click.IntRange(MIN_DISCOUNT_BASE, MAX_DISCOUNT_BASE),
    default=MAX_DISCOUNT_BASE,
    show_default=True,
    help="Percent of list price paid",
)
@click.pass_context
def quote(ctx: click.Context, raised: int, contribution: int, discount_base: int):
    """Tokens a contribution buys at a given raised amount"""
    try:
        result = _curve(ctx).quote(raised, contribution, discount_base)
    except TokenSaleError as exc:
        _cli_fail(exc)
        return

    if ctx.obj["json_output"]:
        _emit_json(result.to_dict())
        return

    table = Table(show_header=False, box=box.ROUNDED)
    table.add_row("[bold cyan]Raised", f"{raised:,}")
    table.add_row("[bold cyan]Contribution", f"{contribution:,}")
    table.add_row("[bold cyan]Regime", result.regime.value)
    table.add_row("[bold green]Base tokens", tokens_to_display(result.base_tokens))
    table.add_row("[bold green]Tokens", tokens_to_display(result.tokens))
    if discount_base != MAX_DISCOUNT_BASE:
        table.add_row("[bold yellow]Discount base", f"{discount_base}%")
    console.print(Panel(table, title="[bold green]Quote", border_style="green"))


@cli.command("curve")
@click.option("--raised-from", type=click.IntRange(min=0), default=0, show_default=True)
@click.option("--raised-to", type=click.IntRange(min=0), required=True)
@click.option("--step", type=click.IntRange(min=1), required=True, help="Raised increment between rows")
@click.option(
    "--contribution",
    type=click.IntRange(min=1),
    default=1000,
    show_default=True,
    help="Contribution priced at each row",
)
@click.pass_context
def curve(ctx: click.Context, raised_from: int, raised_to: int, step: int, contribution: int):
    """Tabulate the bonding curve over a raised range"""
    if raised_to < raised_from:
        raise click.BadParameter("--raised-to must not be below --raised-from")

    bonding_curve = _curve(ctx)
    rows = []
    try:
        for raised in range(raised_from, raised_to + 1, step):
            tokens = bonding_curve.compute_tokens(raised, contribution)
            rows.append({
                "raised": raised,
                "regime": bonding_curve.regime(raised, contribution).value,
                "tokens": tokens,
                "tokens_per_unit": tokens // contribution,
                "marginal_rate": bonding_curve.marginal_rate(raised),
            })
    except TokenSaleError as exc:
        _cli_fail(exc)
        return

    if ctx.obj["json_output"]:
        _emit_json({"contribution": contribution, "rows": rows})
        return

    table = Table(title=f"Bonding curve ({contribution:,} units per row)", box=box.SIMPLE)
    table.add_column("Raised", justify="right", style="cyan")
    table.add_column("Regime")
    table.add_column("Tokens", justify="right", style="green")
    table.add_column("Tokens / unit", justify="right", style="yellow")
    table.add_column("Marginal rate", justify="right", style="magenta")
    for row in rows:
        table.add_row(
            f"{row['raised']:,}",
            row["regime"],
            tokens_to_display(row["tokens"]),
            tokens_to_display(row["tokens_per_unit"]),
            tokens_to_display(row["marginal_rate"]),
        )
    console.print(table)


@cli.command("vesting-schedule")
@click.option("--amount", type=click.IntRange(min=1), required=True, help="Whole tokens granted")
@click.option("--start", type=click.IntRange(min=0), required=True, help="Schedule start (unix seconds)")
@click.option("--end", type=click.IntRange(min=0), required=True, help="Schedule end (unix seconds)")
@click.option("--points", type=click.IntRange(min=2), default=5, show_default=True)
@click.pass_context
def vesting_schedule(ctx: click.Context, amount: int, start: int, end: int, points: int):
    """Vested amount at evenly spaced points of a grant"""
    if end < start:
        raise click.BadParameter("--end must not be before --start")

    grant = VestingGrant(beneficiary="", total=amount * ONE, start=start, end=end)
    span = end - start
    timestamps = sorted({start + span * i // (points - 1) for i in range(points)})
    rows = [{"timestamp": ts, "vested": grant.vested_at(ts)} for ts in timestamps]

    if ctx.obj["json_output"]:
        _emit_json({"grant": grant.to_dict(), "schedule": rows})
        return

    table = Table(title="Vesting schedule", box=box.SIMPLE)
    table.add_column("Timestamp", justify="right", style="cyan")
    table.add_column("Vested", justify="right", style="green")
    table.add_column("%", justify="right")
    for row in rows:
        table.add_row(
            str(row["timestamp"]),
            tokens_to_display(row["vested"]),
            f"{row['vested'] * 100 / grant.total:.2f}",
        )
    console.print(table)


@cli.command("simulate")
@click.argument("scenario_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--fail-on-error", is_flag=True, help="Exit non-zero if any step was rejected")
@click.pass_context
def simulate(ctx: click.Context, scenario_file: Path, fail_on_error: bool):
    """Replay a YAML scenario against an in-memory deployment"""
    try:
        scenario = load_scenario(scenario_file)
        report = run_scenario(scenario, ctx.obj["settings"])
    except TokenSaleError as exc:
        _cli_fail(exc)
        return

    if ctx.obj["json_output"]:
        _emit_json(report.to_dict())
    else:
        table = Table(title=f"Scenario: {report.name}", box=box.SIMPLE)
        table.add_column("#", justify="right")
        table.add_column("Action", style="cyan")
        table.add_column("Time", justify="right")
        table.add_column("Outcome")
        for step in report.steps:
            outcome = (
                f"[green]ok[/] {step.result if step.result is not None else ''}"
                if step.ok
                else f"[red]{step.error_type}[/] {step.error}"
            )
            table.add_row(str(step.index), step.action, str(step.timestamp), outcome)
        console.print(table)

        summary = Table(show_header=False, box=box.ROUNDED)
        summary.add_row("[bold cyan]Raised", f"{report.sale['raised']:,}")
        summary.add_row("[bold green]Sold", tokens_to_display(report.sale["sold_tokens"]))
        summary.add_row("[bold green]Unsold", tokens_to_display(report.sale["unsold"]))
        summary.add_row("[bold yellow]Circulating", tokens_to_display(report.circulating_supply))
        summary.add_row("[bold]Events", str(len(report.events)))
        console.print(Panel(summary, title="[bold green]Sale", border_style="green"))

    if fail_on_error and report.failures:
        sys.exit(2)


def main():
    """Main CLI entry point"""
    try:
        cli(obj={})
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/]")
        sys.exit(130)


if __name__ == "__main__":
    main()
