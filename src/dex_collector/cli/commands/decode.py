"""Decode command: show one DEX file in any of the decoded views."""

from __future__ import annotations

import json
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from dex_collector.decoding.hybrid import HybridDecoder, top_products

console = Console()

VIEWS = ("summary", "key-value", "structured", "json")


def decode(
    path: str = typer.Argument(help="Path to a raw DEX file"),
    view: str = typer.Option("summary", help="summary, key-value, structured or json"),
) -> None:
    """Decode a DEX file and print the result."""
    if view not in VIEWS:
        console.print(f"[red]Unknown view '{view}'. Choose one of: {', '.join(VIEWS)}[/red]")
        raise typer.Exit(1)
    p = Path(path)
    if not p.is_file():
        console.print(f"[red]File not found: {path}[/red]")
        raise typer.Exit(1)

    with open(p, encoding="utf-8", errors="replace", newline="") as f:
        raw = f.read()
    doc = HybridDecoder().decode(raw)

    if view == "json":
        typer.echo(json.dumps(doc.to_dict(), indent=2))
    elif view == "structured":
        typer.echo(json.dumps(doc.structured, indent=2))
    elif view == "key-value":
        _show_groups(doc.groups)
    else:
        _show_summary(doc)

    for failure in doc.failures:
        console.print(
            f"[yellow]Line {failure.line_number} ({failure.segment_type}) skipped: "
            f"{failure.reason}[/yellow]"
        )


def _show_summary(doc) -> None:
    s = doc.summary
    table = Table(title="DEX Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Machine model", s.machine_model)
    table.add_row("Software version", s.software_version)
    table.add_row("Total sales", f"${s.total_sales}")
    table.add_row("Total vends", s.total_vends)
    table.add_row("Cash in box", f"${s.cash_in_box}")
    if s.temperature is not None:
        table.add_row("Temperature", f"{s.temperature} {s.temperature_unit or ''}".strip())
    table.add_row("Products", str(s.product_count))
    table.add_row("Coin tubes", str(s.coin_tubes))
    if s.has_events:
        table.add_row("Latest event", f"{s.latest_event} ({s.latest_event_code}) {s.latest_event_time}")
    if s.has_ma5_errors:
        table.add_row("Latest MA5 error", f"[red]{s.latest_ma5_error} ({s.latest_ma5_error_code})[/red]")
    console.print(table)

    top = top_products(doc.products)
    if top:
        products = Table(title="Top Products")
        products.add_column("Selection", style="cyan")
        products.add_column("Price", justify="right")
        products.add_column("Sold", justify="right")
        products.add_column("Sales", justify="right", style="green")
        for p in top:
            products.add_row(p["selection"], f"${p['price']}", p["count"], f"${p['sales']}")
        console.print(products)


def _show_groups(groups: dict[str, dict]) -> None:
    for name, values in groups.items():
        if not values:
            continue
        table = Table(title=name.replace("_", " ").title())
        table.add_column("Key", style="cyan")
        table.add_column("Value", style="green")
        for k, v in values.items():
            table.add_row(k, v if isinstance(v, str) else json.dumps(v))
        console.print(table)
