"""Collect command: pull new DEX records from a feed directory."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from dex_collector.collection.feed import LocalFeed
from dex_collector.collection.processor import DexProcessor
from dex_collector.config.settings import CollectorConfig
from dex_collector.storage.database import Database, resolve_db_path

console = Console()


def collect(
    feed_dir: str = typer.Argument("", help="Feed directory (candidates.json + raw/). Env: DEX_FEED_DIR"),
    company: list[str] = typer.Option([], help="Company ID; repeat for several. Default: all registered"),
    limit: int = typer.Option(0, help="Records per batch. Env: DEX_BATCH_LIMIT"),
    no_delay: bool = typer.Option(False, help="Skip the pauses between batches and companies"),
    db_path: str = typer.Option("", help="Database path. Env: DEX_DB"),
) -> None:
    """Collect, decode and reconcile new DEX records."""
    config = CollectorConfig.from_env()
    config.feed_dir = feed_dir or config.feed_dir
    config.db_path = resolve_db_path(db_path)
    if limit:
        config.batch_limit = limit
    if no_delay:
        config.batch_delay = 0
        config.company_delay = 0

    errors = config.validate()
    if not config.feed_dir:
        errors.append("A feed directory is required (argument or DEX_FEED_DIR)")
    if errors:
        for err in errors:
            console.print(f"[red]Config error: {err}[/red]")
        raise typer.Exit(1)

    companies = list(company) or ([config.company_id] if config.company_id else None)

    with Database(config.db_path) as db:
        processor = DexProcessor(db, LocalFeed(Path(config.feed_dir)), config)
        with console.status("[bold]Collecting DEX records..."):
            results = processor.collect_all(companies)

    table = Table(title="DEX Collection")
    table.add_column("Company", style="cyan")
    table.add_column("New", justify="right")
    table.add_column("Collected", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Machines", justify="right")
    table.add_column("Status")
    for r in results:
        table.add_row(
            r.company_id,
            str(r.total_available),
            str(r.collected),
            str(r.failed),
            str(r.machines_updated),
            "[green]ok[/green]" if r.ok else f"[red]{r.error}[/red]",
        )
    console.print(table)

    for r in results:
        for failure in r.errors:
            console.print(f"[yellow]{r.company_id}: DEX {failure.dex_id} failed: {failure.error}[/yellow]")

    if results and not any(r.ok for r in results):
        raise typer.Exit(1)
