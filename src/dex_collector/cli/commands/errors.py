"""Errors command: list a machine's error ledger."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from dex_collector.config.code_dictionaries import describe_event, describe_ma5_error
from dex_collector.reconciliation.models import EA1
from dex_collector.storage.database import Database, resolve_db_path
from dex_collector.storage.repositories import MachineRepo

console = Console()


def errors(
    machine_id: str = typer.Argument(help="Machine ID"),
    db_path: str = typer.Option("", help="Database path. Env: DEX_DB"),
) -> None:
    """List EA1 and MA5 errors recorded for a machine."""
    with Database(resolve_db_path(db_path)) as db:
        repo = MachineRepo(db)
        if repo.get(machine_id) is None:
            console.print(f"[red]Unknown machine: {machine_id}[/red]")
            raise typer.Exit(1)
        ledger = repo.errors(machine_id)

    if not ledger:
        console.print(f"[green]No errors recorded for {machine_id}[/green]")
        return

    table = Table(title=f"Errors for {machine_id}")
    table.add_column("Type", style="cyan")
    table.add_column("Code")
    table.add_column("Description")
    table.add_column("Timestamp")
    table.add_column("Actioned")
    for e in ledger:
        description = describe_event(e.code) if e.type == EA1 else describe_ma5_error(e.code)
        actioned = f"[green]yes[/green] {e.actioned_at or ''}" if e.actioned else "[red]no[/red]"
        table.add_row(e.type, e.code, description, e.timestamp, actioned)
    console.print(table)
