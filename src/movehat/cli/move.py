"""movehat compile / test-move — thin wrappers over the Movement CLI."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console

from movehat.cli.errors import err_config, err_move_cli, err_move_dir_not_found
from movehat.config import ConfigError, MovehatConfig, load_config, select_network
from movehat.core.move import (
    MoveCliError,
    build_compile_args,
    build_test_args,
    resolve_compile_addresses,
    run_move,
)

console = Console()


def _load(config_dir: Path | None) -> tuple[MovehatConfig, Path]:
    try:
        cfg = load_config(project_dir=config_dir)
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)

    base = config_dir if config_dir is not None else Path.cwd()
    move_dir = (base / cfg.move_dir).resolve()
    if not move_dir.is_dir():
        console.print(err_move_dir_not_found(str(move_dir)))
        raise typer.Exit(1)
    return cfg, move_dir


def _configured_addresses(cfg: MovehatConfig, network: str | None) -> dict[str, str]:
    net = cfg.networks.get(select_network(cfg, network))
    per_network = net.named_addresses if net is not None else {}
    return {**cfg.named_addresses, **per_network}


def compile_cmd(
    network: Annotated[
        Optional[str],
        typer.Option("--network", "-n", help="Network whose named addresses to use."),
    ] = None,
    config_dir: Annotated[
        Optional[Path],
        typer.Option("--config-dir", hidden=True, help="Directory containing movehat.yaml (for testing)."),
    ] = None,
) -> None:
    """Compile the Move package."""
    cfg, move_dir = _load(config_dir)
    named, auto_assigned = resolve_compile_addresses(move_dir, _configured_addresses(cfg, network))
    if auto_assigned:
        console.print(
            f"[dim]Using dev address for: {', '.join(auto_assigned)}[/]"
        )

    try:
        args = build_compile_args(move_dir, named)
    except ValueError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)

    console.print(f"Compiling Move package in [bold]{move_dir}[/]")
    try:
        run_move(args, cwd=move_dir)
    except MoveCliError as exc:
        console.print(err_move_cli(str(exc)))
        raise typer.Exit(exc.returncode or 1)
    console.print("[green]✓[/] Compilation finished")


def test_move_cmd(
    filter: Annotated[
        Optional[str],
        typer.Option("--filter", help="Only run tests whose name contains this string."),
    ] = None,
    ignore_warnings: Annotated[
        bool,
        typer.Option("--ignore-warnings", help="Ignore compile warnings."),
    ] = False,
    config_dir: Annotated[
        Optional[Path],
        typer.Option("--config-dir", hidden=True, help="Directory containing movehat.yaml (for testing)."),
    ] = None,
) -> None:
    """Run Move unit tests with dev addresses."""
    _, move_dir = _load(config_dir)
    try:
        args = build_test_args(move_dir, filter=filter, ignore_warnings=ignore_warnings)
    except ValueError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)

    console.print(f"Running Move tests in [bold]{move_dir}[/]")
    try:
        run_move(args, cwd=move_dir)
    except MoveCliError as exc:
        console.print(err_move_cli(str(exc)))
        raise typer.Exit(exc.returncode or 1)
    console.print("[green]✓[/] Move tests passed")
