"""movehat deployments — inspect recorded module deployments."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table

from movehat.cli.errors import err_config, err_unsafe_name
from movehat.config import ConfigError, load_config, select_network
from movehat.core.deployments import get_all_deployments
from movehat.core.names import UnsafeNameError

console = Console()

deployments_app = typer.Typer(
    name="deployments",
    help="Inspect deployment records under deployments/<network>/.",
    add_completion=False,
)


def _format_ts(ms: int) -> str:
    if not ms:
        return "—"
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M UTC")


@deployments_app.command("list")
def deployments_list_cmd(
    network: Annotated[
        Optional[str],
        typer.Option("--network", "-n", help="Network to list (default: the active network)."),
    ] = None,
    config_dir: Annotated[
        Optional[Path],
        typer.Option("--config-dir", hidden=True, help="Project directory (for testing)."),
    ] = None,
) -> None:
    """List modules recorded as deployed on a network."""
    try:
        cfg = load_config(project_dir=config_dir)
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)

    selected = select_network(cfg, network)
    try:
        deployments = get_all_deployments(selected, root=config_dir)
    except UnsafeNameError as exc:
        console.print(err_unsafe_name(str(exc)))
        raise typer.Exit(1)

    if not deployments:
        console.print(f"[yellow]No deployments recorded for {selected}.[/]")
        return

    table = Table(title=f"Deployments — {selected}", show_header=True, header_style="bold")
    table.add_column("Module", style="bold")
    table.add_column("Address")
    table.add_column("Deployer")
    table.add_column("Tx Hash")
    table.add_column("Deployed")
    for module_name, info in deployments.items():
        table.add_row(
            module_name,
            info.address,
            info.deployer,
            info.tx_hash or "—",
            _format_ts(info.timestamp),
        )
    console.print(table)
