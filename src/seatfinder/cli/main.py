"""
CLI Main - Typer command-line interface.
========================================

Commands:
- serve: Run the HTTP API
- lookup: One-off seat lookup across all campuses
- dates: Show the date variants used for matching
- info: Show configured campuses and limits
"""

import asyncio
import json
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from seatfinder.shared.logging import get_logger

logger = get_logger(__name__)

app = typer.Typer(
    name="seatfinder",
    help="""🎓 SeatFinder - Exam seat lookup across campus seating reports

Queries every configured campus endpoint, extracts seat assignments from the
published reports, and merges them with the student's display name.

━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

COMMANDS OVERVIEW:

  serve    Run the HTTP API (uvicorn)
           --host, --port     Bind address (defaults from config)
           --reload           Auto-reload on code changes

  lookup   Look up one register number
           -d, --date         Exam date (YYYY-MM-DD, DD-MM-YYYY, DD/MM/YYYY)
           --json             Print the raw JSON response

  dates    Show the spellings a date is matched with

  info     Show configured campuses and admission limits

━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

QUICK START:

  seatfinder lookup RA2311000000025 -d 2025-11-17
  seatfinder serve --port 8000

Use 'seatfinder <command> --help' for detailed command options.
""",
    add_completion=False,
    rich_markup_mode="rich",
)

console = Console()


# ─────────────────────────────────────────────────────────────────────────────
# Serve Command
# ─────────────────────────────────────────────────────────────────────────────


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind host (default from config)."),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Bind port (default from config)."),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on code changes."),
):
    """
    🚀 Run the HTTP API.

    Endpoints: /seating, /seating-stream, /cache-status, /health
    """
    import uvicorn

    from seatfinder.shared.config import get_settings
    from seatfinder.shared.logging import setup_logging_from_settings

    settings = get_settings()
    setup_logging_from_settings()

    host = host or settings.api.host
    port = port or settings.api.port
    console.print(f"[bold]🚀 Starting SeatFinder API on http://{host}:{port}[/bold]")

    uvicorn.run(
        "seatfinder.app.api:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_config=None,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Lookup Command
# ─────────────────────────────────────────────────────────────────────────────


@app.command()
def lookup(
    register_number: str = typer.Argument(..., help="Register number, e.g. RA2311000000025."),
    date: Optional[str] = typer.Option(
        None,
        "--date", "-d",
        help="Exam date (YYYY-MM-DD, DD-MM-YYYY or DD/MM/YYYY).",
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the raw JSON response."),
):
    """
    🔎 Look up a register number across all campuses.

    Examples:
        seatfinder lookup RA2311000000025
        seatfinder lookup RA2311000000025 -d 17/11/2025 --json
    """
    from pydantic import ValidationError as PydanticValidationError

    from seatfinder.seating.service import SeatingService
    from seatfinder.shared.schemas import SeatingQuery

    try:
        query = SeatingQuery(identifier=register_number, date=date)
    except PydanticValidationError:
        console.print("[red]RA number is required.[/red]")
        raise typer.Exit(1)

    service = SeatingService.from_settings()
    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True,
        ) as progress:
            progress.add_task(f"Querying {len(service.campuses)} campus(es)...", total=None)
            response = asyncio.run(service.lookup(query))
    finally:
        service.close()

    if as_json:
        console.print_json(json.dumps(response.model_dump(mode="json", by_alias=True)))
        return

    if not response.found:
        console.print(f"[yellow]No seat found for {query.identifier}.[/yellow]")
        if response.status == "partial":
            console.print("[dim]Some campuses could not be reached.[/dim]")
        raise typer.Exit(0)

    name = next(
        (m.name for matches in response.results.values() for m in matches if m.name),
        None,
    )
    console.print(Panel(
        f"[bold]{query.identifier}[/bold]" + (f"\n{name}" if name else ""),
        title="🎓 Student",
    ))

    table = Table(show_header=True)
    table.add_column("Campus", style="cyan")
    table.add_column("Session")
    table.add_column("Hall", style="bold")
    table.add_column("Bench", justify="right")
    table.add_column("Department")
    table.add_column("Subject")
    table.add_column("Date")

    for campus, matches in response.results.items():
        for match in matches:
            table.add_row(
                campus,
                match.session,
                match.hall,
                match.bench,
                match.department,
                match.subject_code or "-",
                "✓" if match.date_confidence == "confirmed" else ("~" if match.date_matched else "✗"),
            )

    console.print(table)
    console.print(
        f"\n[dim]status={response.status} matches={response.total_matches} "
        f"cached={response.cached}[/dim]"
    )


# ─────────────────────────────────────────────────────────────────────────────
# Dates Command
# ─────────────────────────────────────────────────────────────────────────────


@app.command()
def dates(date: str = typer.Argument(..., help="Date in any accepted shape.")):
    """
    📅 Show the date variants used to match a date in reports.
    """
    from seatfinder.ingestion.dates import generate_date_variants, submission_date

    variants = generate_date_variants(date)
    table = Table(show_header=True)
    table.add_column("#", justify="right")
    table.add_column("Variant", style="cyan")
    for i, variant in enumerate(variants, 1):
        table.add_row(str(i), variant)

    console.print(table)
    console.print(f"\n[dim]Form submission value: {submission_date(date)}[/dim]")


# ─────────────────────────────────────────────────────────────────────────────
# Info Command
# ─────────────────────────────────────────────────────────────────────────────


@app.command()
def info():
    """
    ℹ️ Show system information and configuration.

    Displays:
      • Version information
      • Configured campuses and their addresses
      • Fetch, cache and admission limits
    """
    from seatfinder import __version__
    from seatfinder.shared.config import get_settings

    settings = get_settings()

    console.print(Panel(
        f"[bold]SeatFinder[/bold]\n"
        f"Version: {__version__}\n"
        f"Config: config/settings.yaml",
        title="ℹ️ Info",
    ))

    console.print("\n[bold]Configured Campuses:[/bold]")
    table = Table()
    table.add_column("Name")
    table.add_column("Submission address")
    table.add_column("Report address")
    for campus in settings.campuses:
        table.add_row(campus.name, campus.fetch_address, campus.effective_report_address)
    console.print(table)

    fetch = settings.fetch
    admission = settings.admission
    console.print("\n[bold]Limits:[/bold]")
    console.print(f"  fetch timeout: {fetch.timeout}s, retries: {fetch.retries}")
    console.print(f"  result cache TTL: {settings.cache.ttl_seconds}s")
    console.print(
        f"  admission: {admission.max_requests}/{admission.window_seconds:.0f}s, "
        f"block {admission.block_seconds:.0f}s "
        f"({'enabled' if admission.enabled else 'disabled'})"
    )


# ─────────────────────────────────────────────────────────────────────────────
# Entry Point
# ─────────────────────────────────────────────────────────────────────────────


def cli():
    """CLI entry point."""
    app()


if __name__ == "__main__":
    cli()
