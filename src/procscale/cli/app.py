"""Main Typer application, the entry point for the ``procscale`` CLI."""

from __future__ import annotations

import typer

from procscale import __version__
from procscale.cli.init_cmd import init_cmd
from procscale.cli.run import run_cmd

app = typer.Typer(
    name="procscale",
    help="Run elastic worker-process pools that scale with load.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.command("run", help="Run a worker pool for a handler file.")(run_cmd)
app.command("init", help="Scaffold a new handler file.")(init_cmd)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"procscale {__version__}")
        raise typer.Exit


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """procscale: elastic worker-process pools."""
