"""
CLI interface for TimeCraft.

Provides command-line access to narrative generation and usage controls.
"""

import asyncio
import logging
import sys
from decimal import Decimal
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from timecraft.config.loader import load_settings
from timecraft.core.lexicon import get_lexicon
from timecraft.core.models import GenerationMethod, InputValidationError, TimeEntryInput
from timecraft.core.orchestrator import build_engine
from timecraft.core.rate_limiter import format_reset_time
from timecraft.core.transformer import (
    convert_to_active_voice,
    detect_block_billing,
    format_output,
    validate_output
)

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True
    )


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show retry and fallback logging")
):
    """TimeCraft billing narrative CLI."""
    _configure_logging(verbose)
    if ctx.invoked_subcommand is None:
        console.print("TimeCraft - Use --help to see available commands")


@app.command()
def generate(
    activity: str = typer.Argument(..., help="Activity id, see `timecraft activities`"),
    subject: str = typer.Option(..., "--subject", "-s", help="Who or what the work concerned"),
    goal: str = typer.Option(..., "--goal", "-g", help="Purpose of the work"),
    time: Optional[float] = typer.Option(None, "--time", "-t", help="Hours spent, in 0.1 increments"),
    client_matter: Optional[str] = typer.Option(None, "--client-matter", "-c", help="Client/matter reference"),
    config: Optional[str] = typer.Option(None, "--config", help="Path to YAML settings"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Deadline in seconds for the model call")
):
    """Generate a compliant billing narrative for one time entry."""
    try:
        entry = TimeEntryInput(
            activity=activity,
            subject=subject,
            goal=goal,
            time=Decimal(str(time)) if time is not None else None,
            client_matter=client_matter
        )
    except InputValidationError as e:
        console.print(f"[red]Invalid entry:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)

    try:
        settings = load_settings(config)
    except Exception as e:
        console.print(f"[red]Error loading config:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    engine = build_engine(settings, timeout=timeout)
    result = asyncio.run(engine.generate_entry(entry))

    console.print(f"\n[bold]Narrative[/bold] ({result.method.value})")
    console.print("-" * 40)
    console.print(format_output(result.output))

    if entry.time is not None or entry.client_matter:
        details = []
        if entry.client_matter:
            details.append(f"Matter: {entry.client_matter}")
        if entry.time is not None:
            details.append(f"Time: {entry.time} h")
        console.print(f"[dim]{' | '.join(details)}[/]")

    if result.method == GenerationMethod.FALLBACK:
        decision = engine.rate_limiter.can_make_request()
        if not decision.allowed:
            console.print(
                f"\n[yellow]{decision.reason}.[/] AI generation resumes in "
                f"{format_reset_time(decision.reset_in)}."
            )

    parts = detect_block_billing(entry.goal)
    if parts:
        console.print("\n[yellow]Possible block billing:[/] consider separate entries for")
        for i, part in enumerate(parts, 1):
            console.print(f"  {i}. {part}")

    validation = validate_output(result.output)
    for issue in validation.issues:
        console.print(f"[dim]Note: {issue}[/]")

    sys.exit(EXIT_CODE_PASS)


@app.command()
def split(goal: str = typer.Argument(..., help="Goal text to check")):
    """Check a goal for block billing and list its separate activities."""
    parts = detect_block_billing(goal)
    if not parts:
        console.print("[green]✓[/] No block billing detected")
        return

    console.print(f"[yellow]Block billing detected:[/] {len(parts)} activities")
    for i, part in enumerate(parts, 1):
        console.print(f"  {i}. {part}")


@app.command("active-voice")
def active_voice(text: str = typer.Argument(..., help="Text to rewrite")):
    """Rewrite gerund/passive phrasing in the past tense."""
    console.print(convert_to_active_voice(text))


@app.command()
def activities():
    """List the supported activity types."""
    lexicon = get_lexicon()
    table = Table(title="Activities")
    table.add_column("Id")
    table.add_column("Label")
    table.add_column("Verb")
    table.add_column("Description")
    for activity in lexicon.activities:
        table.add_row(activity.id, activity.label, lexicon.verb_for(activity.id), activity.description)
    console.print(table)


@app.command()
def stats(config: Optional[str] = typer.Option(None, "--config", help="Path to YAML settings")):
    """Show request counts and estimated spend."""
    settings = load_settings(config)
    engine = build_engine(settings)
    usage = engine.rate_limiter.get_usage_stats()
    limits = settings.rate_limits

    table = Table(title="AI Usage")
    table.add_column("Window")
    table.add_column("Requests", justify="right")
    table.add_column("Limit", justify="right")
    table.add_row("Last minute", str(usage.requests_last_minute), str(limits.max_requests_per_minute))
    table.add_row("Last hour", str(usage.requests_last_hour), str(limits.max_requests_per_hour))
    table.add_row("Last 24 hours", str(usage.requests_last_day), str(limits.max_requests_per_day))
    console.print(table)

    console.print(f"Tokens today: {usage.total_tokens_today:,}")
    console.print(f"Estimated cost today: {_format_currency(usage.estimated_cost_today)}")


@app.command()
def reset(
    config: Optional[str] = typer.Option(None, "--config", help="Path to YAML settings"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation")
):
    """Clear the rate limit ledger."""
    if not yes and not typer.confirm("Clear all recorded AI usage?"):
        console.print("Aborted")
        sys.exit(EXIT_CODE_FAIL)

    settings = load_settings(config)
    build_engine(settings).rate_limiter.reset()
    console.print("[green]✓[/] Usage ledger cleared")


def _format_currency(amount: float) -> str:
    """Format currency with four decimals, since daily spend is small."""
    return f"${amount:,.4f}"


if __name__ == "__main__":
    app()
