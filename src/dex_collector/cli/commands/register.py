"""Register command: add or update a tracked machine."""

from __future__ import annotations

import typer
from rich.console import Console

from dex_collector.ingestion.models import MachineRef
from dex_collector.storage.database import Database, resolve_db_path
from dex_collector.storage.repositories import MachineRepo

console = Console()


def register(
    case_serial: str = typer.Argument(help="Telemetry device case serial"),
    company: str = typer.Option(..., help="Company ID that owns the machine"),
    machine_id: str = typer.Option("", help="Machine ID (defaults to the case serial)"),
    model: str = typer.Option("", help="Machine model"),
    inactive: bool = typer.Option(False, help="Register without collecting for it"),
    db_path: str = typer.Option("", help="Database path. Env: DEX_DB"),
) -> None:
    """Track a machine so its DEX records are collected."""
    machine = MachineRef(
        machine_id=machine_id or case_serial,
        case_serial=case_serial,
        company_id=company,
        machine_model=model,
    )
    with Database(resolve_db_path(db_path)) as db:
        MachineRepo(db).upsert(machine, status="inactive" if inactive else "active")
    console.print(
        f"[green]Registered machine {machine.machine_id} "
        f"(serial {case_serial}, company {company})[/green]"
    )
