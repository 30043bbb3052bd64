"""Status command: show tracked machines and their latest DEX state."""

from __future__ import annotations

import json

import typer
from rich.console import Console
from rich.table import Table

from dex_collector.storage.database import Database, resolve_db_path
from dex_collector.storage.repositories import DexCaptureRepo, MachineRepo

console = Console()


def status(
    company: str = typer.Option("", help="Filter by company ID"),
    db_path: str = typer.Option("", help="Database path. Env: DEX_DB"),
) -> None:
    """Show tracked machines and collection statistics."""
    try:
        with Database(resolve_db_path(db_path)) as db:
            _show_status(db, company)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)


def _show_status(db: Database, company: str = "") -> None:
    machines = MachineRepo(db)
    captures = DexCaptureRepo(db)
    rows = machines.by_company(company) if company else machines.all()

    filter_label = f" (company={company})" if company else ""
    table = Table(title=f"DEX Collector Status{filter_label}")
    table.add_column("Machine", style="cyan")
    table.add_column("Company")
    table.add_column("Serial")
    table.add_column("Model")
    table.add_column("Last capture")
    table.add_column("History", justify="right")
    table.add_column("Recent", justify="right")
    table.add_column("Open errors", justify="right")

    for row in rows:
        history = json.loads(row.get("dex_history") or "[]")
        errors = json.loads(row.get("latest_errors") or "[]")
        open_errors = sum(1 for e in errors if not e.get("actioned"))
        last = row.get("dex_last_capture")
        error_cell = f"[red]{open_errors}[/red]" if open_errors else "0"
        table.add_row(
            row["machine_id"],
            row["company_id"],
            row["case_serial"],
            row.get("machine_model") or "",
            last.strftime("%Y-%m-%d %H:%M") if last else "[dim]never[/dim]",
            str(len(history)),
            str(row.get("dex_recent_count") or 0),
            error_cell,
        )

    if not rows:
        console.print("[dim]No machines registered. Use 'register' to add one.[/dim]")
        return
    console.print(table)

    companies = [company] if company else machines.companies()
    for company_id in companies:
        console.print(
            f"Company {company_id}: {captures.count_for_company(company_id)} stored captures"
        )
