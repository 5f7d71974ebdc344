"""movehat config — show the resolved settings for a network.

Private keys are masked; only the first and last four characters are shown.
"""

from __future__ import annotations

import warnings
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console

from movehat.cli.errors import err_config
from movehat.config import ConfigError, load_config, resolve_network_config

console = Console()


def _mask(key: str) -> str:
    if len(key) <= 12:
        return "****"
    return f"{key[:6]}…{key[-4:]}"


def config_cmd(
    network: Annotated[
        Optional[str],
        typer.Option("--network", "-n", help="Network to resolve (default: the active network)."),
    ] = None,
    config_dir: Annotated[
        Optional[Path],
        typer.Option("--config-dir", hidden=True, help="Directory containing movehat.yaml (for testing)."),
    ] = None,
) -> None:
    """Show the merged configuration for a network."""
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        try:
            cfg = load_config(project_dir=config_dir)
            resolved = resolve_network_config(cfg, network)
        except ConfigError as exc:
            console.print(err_config(str(exc)))
            raise typer.Exit(1)

    for w in caught:
        console.print(f"[yellow]Warning:[/] {w.message}")

    console.print(f"\n[bold]Network:[/]  {resolved.network}")
    console.print(f"  RPC:      {resolved.rpc}")
    console.print(f"  Profile:  {resolved.profile}")
    console.print(f"  Move dir: {resolved.move_dir}")
    console.print(f"  Accounts: {len(resolved.all_accounts)}")
    for key in resolved.all_accounts:
        console.print(f"    {_mask(key)}")
    if resolved.named_addresses:
        console.print("  Named addresses:")
        for name, value in sorted(resolved.named_addresses.items()):
            console.print(f"    {name} = {value}")
