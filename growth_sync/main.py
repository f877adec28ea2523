"""
LinkedIn Growth Sync CLI

Command-line entry point for the scheduled sync jobs.
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from growth_sync.errors import ConfigurationError
from growth_sync.models.entities import AccountState, RunSummary

# Initialize console for rich output
console = Console()

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Configure logging with rich handler."""
    handlers = [RichHandler(console=console, show_path=False)]

    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(message)s",
        handlers=handlers,
    )


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option(
    "--config", "-c",
    "config_path",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="Path to config file (default: config.yaml at the project root)",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, quiet: bool, config_path: Optional[str]) -> None:
    """LinkedIn Growth Sync - Collect LinkedIn activity into Supabase."""
    from growth_sync.utils.config import load_config

    ctx.ensure_object(dict)
    config = load_config(Path(config_path) if config_path else None)
    ctx.obj["config"] = config

    if verbose:
        ctx.obj["log_level"] = "DEBUG"
    elif quiet:
        ctx.obj["log_level"] = "WARNING"
    else:
        ctx.obj["log_level"] = config.logging.level

    setup_logging(ctx.obj["log_level"], config.logging.file)


async def _seed_dry_run_storage(config, storage) -> None:
    """Copy the team table into the in-memory store so account lookups work."""
    from growth_sync.models.tables import WORKSPACE_TEAM
    from growth_sync.storage import SupabaseStorage

    try:
        remote = SupabaseStorage.from_config(config.supabase)
    except ConfigurationError as e:
        logger.warning(f"Dry run without team accounts: {e}")
        return

    try:
        storage.tables[WORKSPACE_TEAM] = await remote.select(WORKSPACE_TEAM)
        logger.info(f"Dry run: loaded {len(storage.tables[WORKSPACE_TEAM])} team rows")
    finally:
        await remote.aclose()


def _llm_provider(config):
    from growth_sync.llm import get_provider

    llm_config = config.llm
    try:
        return get_provider(
            llm_config.provider,
            model=llm_config.get_model(),
            api_key=llm_config.get_api_key(),
            timeout=llm_config.timeout_seconds,
        )
    except ValueError as e:
        logger.warning(f"LLM provider unavailable: {e}")
        return None


async def build_services(config, job_name: str, dry_run: bool = False):
    """Wire the clients a job needs from configuration and environment."""
    from growth_sync.clients import EnrichFunctionClient, SlackNotifier, UnipileClient
    from growth_sync.jobs import JobServices
    from growth_sync.storage import MemoryStorage, SupabaseStorage

    if dry_run:
        storage = MemoryStorage()
        await _seed_dry_run_storage(config, storage)
        error_notifier = success_notifier = None
    else:
        storage = SupabaseStorage.from_config(config.supabase)
        error_notifier = SlackNotifier(config.slack.get_error_webhook(), timeout=config.slack.timeout_seconds)
        success_notifier = SlackNotifier(config.slack.get_success_webhook(), timeout=config.slack.timeout_seconds)

    unipile = enrich = llm = None
    if job_name in (
        "profile-views", "team-connections", "strategic-connections", "strategic-people", "linkedin-messages",
    ):
        unipile = UnipileClient.from_config(config.unipile)
    if job_name in ("strategic-connections", "strategic-people"):
        enrich = EnrichFunctionClient.from_config(config.enrich)
    if job_name == "data-freshness":
        llm = _llm_provider(config)

    return JobServices(
        config,
        storage,
        unipile=unipile,
        enrich=enrich,
        llm=llm,
        error_notifier=error_notifier,
        success_notifier=success_notifier,
    )


async def _run_job(config, job_name: str, dry_run: bool) -> RunSummary:
    from growth_sync.jobs import JOBS

    services = await build_services(config, job_name, dry_run=dry_run)
    try:
        return await JOBS[job_name](services).run()
    finally:
        await services.aclose()


def print_summary(summary: RunSummary) -> None:
    """Render a run summary as a rich table."""
    console.print(f"\n[bold blue]{summary.job}[/bold blue]")
    console.print("=" * 50)

    table = Table(show_header=True, header_style="bold")
    table.add_column("Account")
    table.add_column("State")
    table.add_column("Fetched", justify="right")
    table.add_column("Inserted", justify="right")
    table.add_column("Duplicates", justify="right")
    table.add_column("Skipped", justify="right")
    table.add_column("Errors", justify="right")

    for account in summary.accounts:
        color = "green" if account.state == AccountState.DONE else "red"
        stats = account.stats
        table.add_row(
            account.label,
            f"[{color}]{account.state.value}[/{color}]",
            str(stats.fetched),
            str(stats.inserted),
            str(stats.duplicates),
            str(stats.skipped),
            str(len(stats.errors)),
        )

    console.print(table)

    totals = summary.totals
    console.print(
        f"\n[bold]Total:[/bold] {totals.inserted} inserted, {totals.enriched} enriched, "
        f"{totals.duplicates + totals.skipped} duplicates/skipped, {len(totals.errors)} errors"
    )
    if summary.has_errors:
        for category, count in sorted(summary.error_counts_by_category().items()):
            console.print(f"  [yellow]![/yellow] {category}: {count}")
    console.print()


def _job_command(job_name: str, help_text: str):
    @click.option("--dry-run", is_flag=True, help="Use in-memory storage and skip Slack notifications")
    @click.pass_context
    def command(ctx: click.Context, dry_run: bool) -> None:
        config = ctx.obj["config"]
        try:
            summary = asyncio.run(_run_job(config, job_name, dry_run))
        except ConfigurationError as e:
            console.print(f"[red]Configuration error: {e}[/red]")
            sys.exit(2)

        print_summary(summary)
        if summary.failed:
            sys.exit(1)

    command.__doc__ = help_text
    return cli.command(job_name)(command)


profile_views = _job_command("profile-views", "Sync who viewed each team member's profile.")
team_connections = _job_command("team-connections", "Sync each team member's new connections.")
strategic_connections = _job_command(
    "strategic-connections", "Sync competitors' new connections from saved searches."
)
strategic_people = _job_command("strategic-people", "Sync people newly matching strategic saved searches.")
data_freshness = _job_command("data-freshness", "Check that monitored tables keep receiving data.")
linkedin_messages = _job_command("linkedin-messages", "Import recent LinkedIn conversations of each team inbox.")


@cli.command()
@click.pass_context
def version(ctx: click.Context) -> None:
    """Show version information."""
    from growth_sync import __version__

    console.print(f"LinkedIn Growth Sync v{__version__}")


def main() -> None:
    """Entry point for the CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
