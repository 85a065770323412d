"""CLI interface for incident sync."""

import asyncio
import logging
import sys
from datetime import timedelta
from pathlib import Path
from typing import Optional

import click
import httpx
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from . import __version__
from .config import settings
from .detection import OutageDetector, discover_logs, load_logs, summarize_uptime
from .detection.uptime import status_text
from .exceptions import IncidentSyncError
from .ledger import RemoteLedgerSource, load_ledger, load_registry, save_ledger
from .models import IssueState, Ledger
from .sync import Reconciler, SyncReport, pull_ledger
from .tracker import CallPacer, GitHubIssueTracker

console = Console()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, console=console)],
)
logger = logging.getLogger("incident_sync")


def setup_logging(verbose: bool) -> None:
    """Configure logging based on verbosity."""
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.getLogger("incident_sync").setLevel(level)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _fail(message: str) -> None:
    console.print(f"[red]Error: {escape(message)}[/red]")
    sys.exit(1)


def _make_tracker() -> GitHubIssueTracker:
    """Build the GitHub client, failing before any network call if unconfigured."""
    token = settings.get_token()
    owner, repo = settings.get_repository()
    return GitHubIssueTracker(owner, repo, token, api_url=settings.github_api_url)


@click.group()
@click.version_option(version=__version__)
def cli():
    """Derive outage incidents from health-check logs and sync them to GitHub Issues."""
    pass


@cli.command()
@click.option("--logs-dir", "-l", type=click.Path(file_okay=False), default=None,
              help="Directory of <service>_report.log files")
@click.option("--urls-file", "-u", type=click.Path(dir_okay=False), default=None,
              help="Service registry (key=url per line)")
@click.option("--output", "-o", type=click.Path(dir_okay=False), default=None,
              help="Ledger file to write")
@click.option("--min-duration", type=int, default=None,
              help="Minimum consecutive failures that count as an outage")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
def detect(
    logs_dir: Optional[str],
    urls_file: Optional[str],
    output: Optional[str],
    min_duration: Optional[int],
    verbose: bool,
):
    """Detect outages in health-check logs and write the incident ledger."""
    setup_logging(verbose)

    logs_path = Path(logs_dir) if logs_dir else settings.logs_dir
    ledger_path = Path(output) if output else settings.ledger_file

    if not logs_path.is_dir():
        _fail(f"Logs directory not found: {logs_path}")

    service_urls = load_registry(urls_file or settings.urls_file)
    paths = discover_logs(logs_path, settings.excluded_services)
    console.print(f"Analyzing {len(paths)} log files...")

    results = asyncio.run(load_logs(paths))
    detector = OutageDetector(
        min_duration=min_duration or settings.min_outage_duration,
        active_window=timedelta(hours=settings.active_window_hours),
        eta_horizon=timedelta(hours=settings.eta_hours),
        excluded_services=settings.excluded_services,
    )
    ledger = detector.build_ledger(results, service_urls)
    save_ledger(ledger, ledger_path)

    console.print(f"\n[bold green]Generated {ledger_path}[/bold green]")
    console.print(f"  Active incidents: {len(ledger.active)}")
    console.print(f"  Resolved incidents: {len(ledger.resolved)}")


def _print_report(report: SyncReport) -> None:
    table = Table(title="Sync results" + (" (dry run)" if report.dry_run else ""))
    table.add_column("Action")
    table.add_column("Key")
    table.add_column("Issue")
    table.add_column("Result")
    for result in report.results:
        table.add_row(
            result.action.value,
            escape(result.key),
            f"#{result.issue_number}" if result.issue_number else "-",
            "[green]ok[/green]" if result.ok else f"[red]{escape(result.error or '')}[/red]",
        )
    console.print(table)

    counts = ", ".join(f"{k}: {v}" for k, v in sorted(report.counts().items())) or "nothing to do"
    console.print(f"[bold]Summary:[/bold] {counts}")
    if report.failures:
        console.print(f"[yellow]{len(report.failures)} item(s) failed[/yellow]")


async def _run_sync(
    ledger: Ledger, dry_run: bool, continue_on_error: bool
) -> SyncReport:
    tracker = _make_tracker()
    try:
        reconciler = Reconciler(
            tracker,
            pacer=CallPacer(settings.api_delay_seconds),
            continue_on_error=continue_on_error,
            dry_run=dry_run,
        )
        return await reconciler.reconcile(ledger)
    finally:
        await tracker.close()


@cli.command()
@click.option("--ledger", "-f", "ledger_file", type=click.Path(dir_okay=False), default=None,
              help="Ledger file to sync")
@click.option("--dry-run", is_flag=True, help="Report planned changes without touching issues")
@click.option("--write-back/--no-write-back", default=True,
              help="Record issue numbers and URLs in the ledger after syncing")
@click.option("--stop-on-error", is_flag=True, help="Abort the batch on the first failure")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
def sync(
    ledger_file: Optional[str],
    dry_run: bool,
    write_back: bool,
    stop_on_error: bool,
    verbose: bool,
):
    """Sync the incident ledger to GitHub Issues."""
    setup_logging(verbose)
    ledger_path = Path(ledger_file) if ledger_file else settings.ledger_file

    try:
        ledger = load_ledger(ledger_path)
        report = asyncio.run(_run_sync(ledger, dry_run, not stop_on_error))
    except (IncidentSyncError, httpx.HTTPError) as e:
        _fail(str(e))

    _print_report(report)

    if write_back and not dry_run and report.ledger is not None:
        save_ledger(report.ledger, ledger_path)
        console.print(f"Updated issue links in {ledger_path}")

    if report.aborted:
        sys.exit(1)


async def _fetch_all_issues() -> list:
    tracker = _make_tracker()
    try:
        open_issues = await tracker.list_issues(["incident"], IssueState.OPEN)
        closed_issues = await tracker.list_issues(["incident"], IssueState.CLOSED)
        return open_issues + closed_issues
    finally:
        await tracker.close()


@cli.command()
@click.option("--output", "-o", type=click.Path(dir_okay=False), default=None,
              help="Ledger file to write")
@click.option("--urls-file", "-u", type=click.Path(dir_okay=False), default=None,
              help="Service registry (key=url per line)")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
def pull(output: Optional[str], urls_file: Optional[str], verbose: bool):
    """Rebuild the incident ledger from GitHub Issues."""
    setup_logging(verbose)
    ledger_path = Path(output) if output else settings.ledger_file

    try:
        issues = asyncio.run(_fetch_all_issues())
    except (IncidentSyncError, httpx.HTTPError) as e:
        _fail(str(e))

    console.print(f"Found {len(issues)} incident issue(s)")
    ledger = pull_ledger(issues, load_registry(urls_file or settings.urls_file))
    save_ledger(ledger, ledger_path)
    console.print(
        f"[bold green]Synced {len(ledger.active)} active and "
        f"{len(ledger.resolved)} resolved incidents to {ledger_path}[/bold green]"
    )


@cli.command()
@click.option("--logs-dir", "-l", type=click.Path(file_okay=False), default=None,
              help="Directory of <service>_report.log files")
@click.option("--days", "-d", type=int, default=7, help="Number of days to show")
def uptime(logs_dir: Optional[str], days: int):
    """Show per-service uptime from health-check logs."""
    logs_path = Path(logs_dir) if logs_dir else settings.logs_dir
    if not logs_path.is_dir():
        _fail(f"Logs directory not found: {logs_path}")

    results = asyncio.run(load_logs(discover_logs(logs_path)))

    table = Table(title="Service uptime")
    table.add_column("Service")
    table.add_column("Uptime", justify="right")
    table.add_column("Status")
    for ago in range(days - 1, -1, -1):
        table.add_column(f"-{ago}d" if ago else "today", justify="right")

    colors = {"success": "green", "partial": "yellow", "failure": "red", "nodata": "dim"}
    for service in sorted(results):
        summary = summarize_uptime(service, results[service])
        color = summary.current_color
        cells = []
        for ago in range(days - 1, -1, -1):
            value = summary.day(ago)
            cells.append("--" if value is None else f"{value * 100:.0f}%")
        table.add_row(
            service,
            summary.uptime,
            f"[{colors[color]}]{status_text(color)}[/{colors[color]}]",
            *cells,
        )
    console.print(table)


@cli.command()
@click.option("--ledger", "-f", "ledger_file", type=click.Path(dir_okay=False), default=None,
              help="Local ledger file")
@click.option("--url", default=None, help="Published ledger URL (defaults to LEDGER_URL)")
def show(ledger_file: Optional[str], url: Optional[str]):
    """Print active and past incidents from a local or published ledger."""
    remote_url = url or (None if ledger_file else settings.ledger_url)

    async def _fetch() -> Ledger:
        source = RemoteLedgerSource(
            remote_url, ttl=timedelta(seconds=settings.ledger_cache_ttl_seconds)
        )
        try:
            return await source.get()
        finally:
            await source.close()

    try:
        if remote_url:
            ledger = asyncio.run(_fetch())
        else:
            ledger = load_ledger(Path(ledger_file) if ledger_file else settings.ledger_file)
    except (IncidentSyncError, httpx.HTTPError) as e:
        _fail(str(e))

    console.print("[bold]Active incidents[/bold]")
    if not ledger.active:
        console.print("  [green]All systems operational[/green]")
    for incident in ledger.active:
        eta = f" (ETA {incident.eta})" if incident.eta else ""
        console.print(
            f"  [red]{incident.date}[/red] {escape(incident.title)} "
            f"({escape(incident.status or '')}){escape(eta)}"
        )
        console.print(f"    {escape(incident.description)}")

    console.print("\n[bold]Past incidents[/bold]")
    if not ledger.resolved:
        console.print("  No past incidents")
    for incident in ledger.resolved:
        console.print(f"  {incident.date} {escape(incident.title)}")
        console.print(f"    {escape(incident.resolved or '')}")


if __name__ == "__main__":
    cli()
