"""
CLI interface for Token Meter.

Provides command-line access to usage summaries and rate-limit gauges.
"""

import asyncio
import logging
import sys
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from token_meter.config.loader import AppConfig, load_config
from token_meter.engine import RefreshError, UsageEngine
from token_meter.storage.models import UsageSummary, WindowInfo, WindowUtilization

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load_config_or_exit(path: Optional[str]) -> AppConfig:
    try:
        return load_config(path)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Configuration error:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_FAIL)


def create_engine(config: AppConfig) -> UsageEngine:
    """Build the engine for a CLI invocation."""
    return UsageEngine(config)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config YAML (default: ~/.token-meter/config.yaml)"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug logging"
    ),
):
    """Token Meter CLI."""
    _configure_logging(verbose)
    ctx.obj = {"config_path": config}
    if ctx.invoked_subcommand is None:
        console.print("Token Meter - Use --help to see available commands")


@app.command()
def status(ctx: typer.Context):
    """Show the last cached summary without refreshing."""
    config = _load_config_or_exit(ctx.obj["config_path"])
    engine = create_engine(config)
    summary = engine.load_cached()
    if summary is None:
        console.print("\n[bold yellow]No cached usage summary yet[/]")
        console.print("Run `token-meter refresh` to scan your session logs.\n")
        sys.exit(EXIT_CODE_PASS)
    _display_summary(summary)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def refresh(ctx: typer.Context):
    """Scan session logs, fetch remote utilization and print the summary."""
    config = _load_config_or_exit(ctx.obj["config_path"])
    engine = create_engine(config)
    engine.load_cached()
    try:
        summary = asyncio.run(engine.refresh())
    except RefreshError as e:
        console.print(f"[red]Refresh failed:[/] {escape(str(e))}")
        if engine.summary is not None:
            console.print("[dim]Showing last cached summary.[/]")
            _display_summary(engine.summary)
        sys.exit(EXIT_CODE_FAIL)
    _display_summary(summary)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def daily(ctx: typer.Context):
    """Print per-day token and cost totals."""
    config = _load_config_or_exit(ctx.obj["config_path"])
    engine = create_engine(config)
    try:
        summary = asyncio.run(engine.refresh())
    except RefreshError as e:
        console.print(f"[red]Refresh failed:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_FAIL)

    if not summary.daily:
        console.print("\n[dim]No usage found in the session logs.[/]")
        sys.exit(EXIT_CODE_PASS)

    table = Table(title="Daily usage")
    table.add_column("Date")
    table.add_column("Models")
    table.add_column("Input", justify="right")
    table.add_column("Output", justify="right")
    table.add_column("Cache write", justify="right")
    table.add_column("Cache read", justify="right")
    table.add_column("Cost", justify="right")
    for day in summary.daily:
        table.add_row(
            day.date,
            ", ".join(day.models_used),
            _format_tokens(day.input_tokens),
            _format_tokens(day.output_tokens),
            _format_tokens(day.cache_creation_tokens),
            _format_tokens(day.cache_read_tokens),
            _format_currency(day.total_cost),
        )
    console.print(table)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def watch(
    ctx: typer.Context,
    interval: Optional[float] = typer.Option(
        None,
        "--interval",
        "-i",
        help="Seconds between refreshes (default from config)"
    ),
):
    """Refresh on a timer until interrupted."""
    config = _load_config_or_exit(ctx.obj["config_path"])
    engine = create_engine(config)
    interval = interval or config.refresh_interval_seconds

    try:
        asyncio.run(engine.run_forever(interval, on_update=_display_summary))
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped.[/]")
    sys.exit(EXIT_CODE_PASS)


def _format_currency(amount: float) -> str:
    """Format currency with proper symbols and formatting."""
    return f"${amount:,.2f}"


def _format_tokens(count: int) -> str:
    if count >= 1_000_000:
        return f"{count / 1_000_000:.1f}M"
    if count >= 1_000:
        return f"{count / 1_000:.1f}K"
    return str(count)


def _format_reset(minutes: Optional[int]) -> str:
    if minutes is None:
        return ""
    if minutes < 60:
        return f"{minutes}m"
    hours, mins = divmod(minutes, 60)
    if hours < 24:
        return f"{hours}h {mins}m"
    days, hours = divmod(hours, 24)
    return f"{days}d {hours}h"


def _display_window(title: str, window: WindowInfo, gauge: WindowUtilization) -> None:
    color = "red" if gauge.percentage >= 80 else "yellow" if gauge.percentage >= 50 else "green"
    sessions = f"{window.sessions_active} session{'' if window.sessions_active == 1 else 's'}"
    line = (
        f"[bold]{title}:[/bold] [{color}]{gauge.percentage:.1f}%[/] "
        f"({_format_tokens(window.tokens_used)} tokens, {sessions}, {gauge.source})"
    )
    if gauge.source == "remote":
        if gauge.resets_at is not None:
            line += f" resets at {gauge.resets_at.astimezone():%H:%M}"
    elif window.minutes_until_reset is not None:
        # local reset is an estimate
        line += f" resets in ~{_format_reset(window.minutes_until_reset)}"
    console.print(line)


def _display_summary(summary: UsageSummary) -> None:
    """Display the summary in a compact financial format."""
    console.print("\n[bold]Token Meter[/bold]")
    console.print("-" * 40)

    _display_window("5-hour session", summary.rate_limits.session, summary.utilization.session)
    _display_window("Weekly (7 days)", summary.rate_limits.weekly, summary.utilization.weekly)
    if summary.utilization.weekly_opus is not None:
        console.print(f"[bold]Weekly Opus:[/bold] {summary.utilization.weekly_opus.percentage:.1f}%")

    console.print(f"\nToday: {_format_currency(summary.today_cost)} "
                  f"({_format_tokens(summary.today_tokens)} tokens)")
    console.print(f"This week: {_format_currency(summary.week_cost)}")
    console.print(f"This month: {_format_currency(summary.month_cost)}")

    if summary.today_model_breakdowns:
        table = Table(title="Today by model")
        table.add_column("Model")
        table.add_column("Tokens", justify="right")
        table.add_column("Cost", justify="right")
        for breakdown in summary.today_model_breakdowns:
            cost = _format_currency(breakdown.cost) if breakdown.priced else "unpriced"
            table.add_row(breakdown.model_name, _format_tokens(breakdown.total_tokens), cost)
        console.print(table)

    console.print(f"\n[dim]Last updated {summary.last_updated}[/]")


if __name__ == "__main__":
    app()
