"""Action command: acknowledge or clear a machine error."""

from __future__ import annotations

import typer
from rich.console import Console

from dex_collector.reconciliation.errors import matches, set_actioned
from dex_collector.storage.database import Database, resolve_db_path
from dex_collector.storage.repositories import MachineRepo

console = Console()


def action(
    machine_id: str = typer.Argument(help="Machine ID"),
    code: str = typer.Argument(help="Error code, e.g. EGS or UA09"),
    timestamp: str = typer.Argument(help="Error timestamp as shown by 'errors'"),
    clear: bool = typer.Option(False, help="Clear the acknowledgment instead of setting it"),
    db_path: str = typer.Option("", help="Database path. Env: DEX_DB"),
) -> None:
    """Mark an error as actioned so re-collection keeps it acknowledged."""
    code = code.upper()
    with Database(resolve_db_path(db_path)) as db:
        repo = MachineRepo(db)
        if repo.get(machine_id) is None:
            console.print(f"[red]Unknown machine: {machine_id}[/red]")
            raise typer.Exit(1)
        ledger = repo.errors(machine_id)
        if not any(matches(e, code, timestamp) for e in ledger):
            console.print(f"[red]No {code} error at {timestamp} for {machine_id}[/red]")
            raise typer.Exit(1)
        repo.update_errors(machine_id, set_actioned(ledger, code, timestamp, actioned=not clear))

    verb = "Cleared" if clear else "Actioned"
    console.print(f"[green]{verb} {code} at {timestamp} on {machine_id}[/green]")
