"""Typer CLI application."""

import typer

from dex_collector.cli.commands.decode import decode
from dex_collector.cli.commands.register import register
from dex_collector.cli.commands.collect import collect
from dex_collector.cli.commands.status import status
from dex_collector.cli.commands.errors import errors
from dex_collector.cli.commands.action import action

app = typer.Typer(
    name="dex-collector",
    help="Vending machine DEX collection and error tracking",
    no_args_is_help=True,
)

app.command()(decode)
app.command()(register)
app.command()(collect)
app.command()(status)
app.command()(errors)
app.command()(action)
