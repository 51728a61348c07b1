"""Folio CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from folio.cli.ask import ask_cmd
from folio.cli.init import init_cmd
from folio.cli.seed import seed_cmd
from folio.cli.status import status_cmd


def _version() -> str:
    try:
        return importlib.metadata.version("folio")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"folio {_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="folio",
    help=(
        "Folio: ask questions about your investment portfolio.\n\n"
        "  folio seed   Index business rules and the market-data catalog.\n"
        "  folio ask    Answer a question via SQL, stored context, market data or the LLM."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """Folio: ask questions about your investment portfolio."""


app.command("init")(init_cmd)
app.command("seed")(seed_cmd)
app.command("ask")(ask_cmd)
app.command("status")(status_cmd)


if __name__ == "__main__":
    app()
