"""
CLI interface for Edu Guard.

Provides command-line access to usage limits and grading scores.
"""

import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from edu_guard.config.loader import load_settings, load_tier_config
from edu_guard.core.categories import Category, kinds_for_category, parse_generation_kind
from edu_guard.core.limits import check_limit, limit_exceeded_payload, start_of_month
from edu_guard.core.overrides import calculate_final_score, override_summary
from edu_guard.core.grading import deserialize_grading_result
from edu_guard.core.tiers import Tier
from edu_guard.sdk.meter import UsageMeter
from edu_guard.storage.repository import get_repository

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1


def _meter() -> UsageMeter:
    settings = load_settings()
    return UsageMeter(
        repository=get_repository(settings.db_path),
        tier_table=load_tier_config(settings.tier_config_path),
    )


def _format_limit(limit) -> str:
    return "unlimited" if limit is None else str(limit)


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """Edu Guard CLI."""
    if ctx.invoked_subcommand is None:
        console.print("Edu Guard - Use --help to see available commands")


@app.command()
def status():
    """Show configured database and alerting endpoint."""
    settings = load_settings()
    console.print(f"[green]✓[/] Database: {settings.db_path}")
    if settings.automation_url:
        console.print(f"[green]✓[/] Alerts: {settings.automation_url}")
    else:
        console.print("[yellow]![/] Alerts disabled (SUPABASE_URL not set)")


@app.command()
def init():
    """Initialize the Edu Guard database."""
    try:
        get_repository(load_settings().db_path).initialize_schema()
        console.print("[green]✓[/] Database initialized successfully")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command("set-tier")
def set_tier(
    user_id: str = typer.Argument(..., help="User to update"),
    tier: str = typer.Argument(..., help="free, premium or enterprise"),
):
    """Set a user's subscription tier."""
    try:
        parsed = Tier(tier.lower())
    except ValueError:
        console.print(f"[red]Error:[/] unknown tier '{tier}'")
        sys.exit(EXIT_CODE_FAIL)
    get_repository(load_settings().db_path).set_tier(user_id, parsed)
    console.print(f"[green]✓[/] {user_id} is now on the {parsed.value} tier")


@app.command()
def usage(user_id: str = typer.Argument(..., help="User to report on")):
    """Show this month's usage against the user's limits."""
    try:
        meter = _meter()
        tier = meter.resolve_tier(user_id)
        since = start_of_month()

        table = Table(title=f"Usage for {user_id} ({tier.value})")
        table.add_column("Category")
        table.add_column("Used", justify="right")
        table.add_column("Limit", justify="right")
        table.add_column("Allowed")

        for category in Category:
            used = meter.repository.count_usage(user_id, kinds_for_category(category), since)
            result = check_limit(tier, category, used, meter.tier_table)
            table.add_row(
                category.value,
                str(used),
                _format_limit(result.limit),
                "[green]yes[/]" if result.allowed else "[red]no[/]",
            )
        console.print(table)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def check(
    user_id: str = typer.Argument(..., help="User requesting the generation"),
    kind: str = typer.Argument(..., help="Generation kind, e.g. lesson-plan or quiz"),
    enforced: bool = typer.Option(
        False,
        "--enforced",
        "-e",
        help="Exit with error code if the generation would be denied"
    ),
):
    """Check whether a user may run another generation of a kind."""
    try:
        generation_kind = parse_generation_kind(kind)
    except ValueError as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    outcome = _meter().check_usage(user_id, generation_kind)
    if outcome.failed:
        console.print(f"[yellow]Usage lookup failed, allowing:[/] {outcome.error}")
    result = outcome.resolve()

    if result.allowed:
        console.print(
            f"[green]Allowed[/] {result.category.value}: "
            f"{result.current_usage}/{_format_limit(result.limit)} ({result.tier.value})"
        )
        sys.exit(EXIT_CODE_PASS)

    console.print_json(data=limit_exceeded_payload(result))
    sys.exit(EXIT_CODE_FAIL if enforced else EXIT_CODE_PASS)


@app.command("final-score")
def final_score(path: Path = typer.Argument(..., help="Grading result JSON file")):
    """Compute the final score of a grading result with overrides applied."""
    if not path.exists():
        console.print(f"[red]Error:[/] file not found: {path}")
        sys.exit(EXIT_CODE_FAIL)

    parsed = deserialize_grading_result(path.read_text(encoding="utf-8"))
    if not parsed.success:
        console.print("[red]Invalid grading result:[/]")
        for error in parsed.errors:
            console.print(f"  {error.field or '<root>'}: {error.message}")
        sys.exit(EXIT_CODE_FAIL)

    result = parsed.data
    changes = override_summary(result)
    if changes:
        table = Table(title="Overrides")
        table.add_column("Question")
        table.add_column("AI score", justify="right")
        table.add_column("Override", justify="right")
        table.add_column("Reason")
        for change in changes:
            table.add_row(
                change.question_number,
                f"{change.original_score:g}",
                f"{change.override_score:g}",
                change.reason or "",
            )
        console.print(table)

    console.print(f"AI total: {result.total_score:g}")
    console.print(f"[bold]Final score:[/bold] {calculate_final_score(result):g}")


if __name__ == "__main__":
    app()
