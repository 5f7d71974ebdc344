"""movehat CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from movehat.cli.config_cmd import config_cmd
from movehat.cli.deployments import deployments_app
from movehat.cli.fork import fork_app
from movehat.cli.logs import configure_logging
from movehat.cli.move import compile_cmd, test_move_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("movehat")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"movehat {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="movehat",
    help=(
        "movehat — Move development toolkit for Movement networks.\n\n"
        "  movehat compile      Build the Move package.\n"
        "  movehat fork create  Snapshot a network into a local fork."
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
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show debug logging."),
    ] = False,
) -> None:
    """movehat — Move development toolkit for Movement networks."""
    configure_logging(verbose)


app.command("compile")(compile_cmd)
app.command("test-move")(test_move_cmd)
app.command("config")(config_cmd)
app.add_typer(fork_app, name="fork")
app.add_typer(deployments_app, name="deployments")


@app.command("version")
def version_cmd() -> None:
    """Show the installed movehat version."""
    typer.echo(f"movehat {_installed_version()}")


if __name__ == "__main__":
    app()
