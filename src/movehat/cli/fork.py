"""movehat fork CLI commands.

Commands:
  movehat fork create          — snapshot a network's ledger info into a new local fork
  movehat fork list            — show all forks with their network and ledger version
  movehat fork fund            — set an account's coin balance inside a fork
  movehat fork view-resource   — print a resource (fetched lazily from the network)
  movehat fork serve           — serve a fork over a node-compatible HTTP API
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Annotated, Any, Optional

import typer
from rich.console import Console
from rich.table import Table

from movehat.cli.errors import (
    err_account_not_found,
    err_config,
    err_fork_exists,
    err_fork_not_found,
    err_invalid_address,
    err_invalid_amount,
    err_no_forks,
    err_path_not_fork,
    err_remote,
    err_resource_not_found,
    err_server,
    err_unsafe_name,
)
from movehat.cli.logs import configure_logging
from movehat.config import ConfigError, MovehatConfig, load_config, network_url, select_network
from movehat.core.names import UnsafeNameError
from movehat.fork.errors import (
    AccountNotFoundError,
    ForkError,
    ForkNotFoundError,
    ForkServerError,
    InvalidAddressError,
    RemoteApiError,
    ResourceNotFoundError,
)
from movehat.fork.manager import ForkManager
from movehat.fork.models import DEFAULT_COIN_TYPE
from movehat.fork.server import ForkServer
from movehat.fork.storage import ForkStorage

console = Console()

fork_app = typer.Typer(
    name="fork",
    help="Create, inspect, fund and serve local network forks.",
    add_completion=False,
)

ForkOpt = Annotated[
    Optional[Path],
    typer.Option("--fork", "-f", help="Path to the fork directory (overrides --name)."),
]
NameOpt = Annotated[
    Optional[str],
    typer.Option("--name", help="Fork name under the forks directory (default: <network>-fork)."),
]
NetworkOpt = Annotated[
    Optional[str],
    typer.Option("--network", "-n", help="Network name from movehat.yaml (default: testnet)."),
]
ConfigDirOpt = Annotated[
    Optional[Path],
    typer.Option("--config-dir", hidden=True, help="Directory containing movehat.yaml (for testing)."),
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_cfg(config_dir: Path | None) -> MovehatConfig:
    try:
        return load_config(project_dir=config_dir)
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)


def _forks_dir(cfg: MovehatConfig, config_dir: Path | None) -> Path:
    base = config_dir if config_dir is not None else Path.cwd()
    return base / cfg.fork.dir


def _storage_for(
    cfg: MovehatConfig,
    fork: Path | None,
    name: str | None,
    network: str | None,
    config_dir: Path | None,
) -> ForkStorage:
    """Resolve --fork / --name / --network into the fork's storage."""
    if fork is not None:
        return ForkStorage(fork)
    fork_name = name or f"{select_network(cfg, network)}-fork"
    try:
        return ForkStorage.for_name(_forks_dir(cfg, config_dir), fork_name)
    except UnsafeNameError as exc:
        console.print(err_unsafe_name(str(exc)))
        raise typer.Exit(1)


def _load_manager(storage: ForkStorage) -> ForkManager:
    manager = ForkManager(storage)
    try:
        manager.load()
    except ForkNotFoundError:
        console.print(err_fork_not_found(str(storage.fork_path)))
        raise typer.Exit(1)
    return manager


def _is_empty_dir(path: Path) -> bool:
    return path.is_dir() and not any(path.iterdir())


def _replace_fork_dir(staging: Path, target: Path) -> None:
    """Move the freshly built fork at *staging* to *target*, dropping any previous fork."""
    if not target.exists():
        os.replace(staging, target)
        return
    retired = staging.with_name(staging.name + ".old")
    os.replace(target, retired)
    try:
        os.replace(staging, target)
    except OSError:
        os.replace(retired, target)
        raise
    shutil.rmtree(retired)


def _format_created(created_at: str) -> str:
    try:
        return datetime.fromisoformat(created_at).strftime("%Y-%m-%d %H:%M:%S")
    except ValueError:
        return created_at


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@fork_app.command("create")
def fork_create_cmd(
    network: NetworkOpt = None,
    name: NameOpt = None,
    path: Annotated[
        Optional[Path],
        typer.Option("--path", help="Explicit fork directory (overrides --name)."),
    ] = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Overwrite an existing fork without asking."),
    ] = False,
    config_dir: ConfigDirOpt = None,
) -> None:
    """Create a local fork of a Movement/Aptos network."""
    cfg = _load_cfg(config_dir)
    try:
        network_name, node_url = network_url(cfg, network)
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)

    storage = _storage_for(cfg, path, name or f"{network_name}-fork", network_name, config_dir)

    console.print(f"\nCreating fork of [bold]{network_name}[/]")
    console.print(f"  Network:   {node_url}")
    console.print(f"  Fork path: {storage.fork_path}")

    if storage.exists():
        if not yes:
            console.print(err_fork_exists(str(storage.fork_path)))
            if not typer.confirm("Overwrite?", default=False):
                console.print("[dim]Cancelled.[/]")
                raise typer.Exit(0)
    elif storage.fork_path.exists() and not _is_empty_dir(storage.fork_path):
        console.print(err_path_not_fork(str(storage.fork_path)))
        raise typer.Exit(1)

    # Build beside the target; the old fork is only replaced once the new one is complete.
    storage.fork_path.parent.mkdir(parents=True, exist_ok=True)
    staging = Path(tempfile.mkdtemp(dir=storage.fork_path.parent, prefix=f".{storage.fork_path.name}."))
    manager = ForkManager(ForkStorage(staging))

    async def _create():
        try:
            return await manager.initialize(node_url, network_name)
        finally:
            await manager.close()

    try:
        metadata = asyncio.run(_create())
        _replace_fork_dir(staging, storage.fork_path)
    except RemoteApiError as exc:
        console.print(err_remote(str(exc)))
        raise typer.Exit(1)
    finally:
        if staging.exists():
            shutil.rmtree(staging)

    console.print("\n[green]✓[/] Fork created")
    console.print(f"  Chain ID:       {metadata.chain_id}")
    console.print(f"  Ledger Version: {metadata.ledger_version}")
    console.print(f"  Block Height:   {metadata.block_height}")
    console.print(f"  Epoch:          {metadata.epoch}")
    console.print("\nUsage:")
    console.print(f"  movehat fork view-resource --fork {storage.fork_path} --account <ADDRESS> --resource <TYPE>")
    console.print(f"  movehat fork fund --fork {storage.fork_path} --account <ADDRESS> --amount <AMOUNT>")
    console.print(f"  movehat fork serve --fork {storage.fork_path}")


@fork_app.command("list")
def fork_list_cmd(config_dir: ConfigDirOpt = None) -> None:
    """List all forks in the forks directory."""
    cfg = _load_cfg(config_dir)
    forks_dir = _forks_dir(cfg, config_dir)

    fork_dirs = (
        sorted(p for p in forks_dir.iterdir() if p.is_dir() and not p.name.startswith("."))
        if forks_dir.is_dir()
        else []
    )
    if not fork_dirs:
        console.print(err_no_forks())
        raise typer.Exit(0)

    table = Table(title="Forks", show_header=True, header_style="bold")
    table.add_column("Name", style="bold")
    table.add_column("Network")
    table.add_column("Chain ID")
    table.add_column("Ledger Version")
    table.add_column("Cached Accounts")
    table.add_column("Created")

    for fork_dir in fork_dirs:
        storage = ForkStorage(fork_dir)
        if not storage.exists():
            table.add_row(fork_dir.name, "[yellow]invalid: missing metadata[/]", "", "", "", "")
            continue
        try:
            meta = storage.load_metadata()
            accounts = storage.list_accounts()
        except ForkError:
            table.add_row(fork_dir.name, "[red]error reading metadata[/]", "", "", "", "")
            continue
        table.add_row(
            fork_dir.name,
            meta.network,
            str(meta.chain_id),
            meta.ledger_version,
            str(len(accounts)),
            _format_created(meta.created_at),
        )

    console.print(table)
    console.print(f"\n  {len(fork_dirs)} fork(s) in {forks_dir}")


@fork_app.command("fund")
def fork_fund_cmd(
    account: Annotated[str, typer.Option("--account", "-a", help="Account address to fund.")],
    amount: Annotated[str, typer.Option("--amount", help="New balance, in the coin's base units.")],
    coin_type: Annotated[
        str,
        typer.Option("--coin-type", help="Coin type to fund."),
    ] = DEFAULT_COIN_TYPE,
    fork: ForkOpt = None,
    name: NameOpt = None,
    network: NetworkOpt = None,
    config_dir: ConfigDirOpt = None,
) -> None:
    """Set an account's coin balance inside a fork (no transaction is sent)."""
    try:
        value = int(amount)
    except ValueError:
        value = 0
    if value <= 0:
        console.print(err_invalid_amount(amount))
        raise typer.Exit(1)

    cfg = _load_cfg(config_dir)
    storage = _storage_for(cfg, fork, name, network, config_dir)
    manager = _load_manager(storage)

    console.print("\nFunding account in fork")
    console.print(f"  Fork:      {storage.fork_path}")
    console.print(f"  Account:   {account}")
    console.print(f"  Amount:    {value}")
    console.print(f"  Coin Type: {coin_type}")

    async def _fund() -> Any:
        try:
            return await manager.fund_account(account, value, coin_type)
        finally:
            await manager.close()

    try:
        coin_store = asyncio.run(_fund())
    except InvalidAddressError:
        console.print(err_invalid_address(account))
        raise typer.Exit(1)

    console.print("\n[green]✓[/] Account funded")
    console.print(f"  New balance: {coin_store['coin']['value']}")


@fork_app.command("view-resource")
def fork_view_resource_cmd(
    account: Annotated[str, typer.Option("--account", "-a", help="Account address.")],
    resource: Annotated[
        str,
        typer.Option("--resource", "-r", help="Fully qualified resource type."),
    ],
    fork: ForkOpt = None,
    name: NameOpt = None,
    network: NetworkOpt = None,
    config_dir: ConfigDirOpt = None,
) -> None:
    """Print a resource from the fork, fetching it from the network on first use."""
    cfg = _load_cfg(config_dir)
    storage = _storage_for(cfg, fork, name, network, config_dir)
    manager = _load_manager(storage)

    async def _view() -> Any:
        try:
            return await manager.get_resource(account, resource)
        finally:
            await manager.close()

    try:
        data = asyncio.run(_view())
    except InvalidAddressError:
        console.print(err_invalid_address(account))
        raise typer.Exit(1)
    except ResourceNotFoundError:
        console.print(err_resource_not_found(resource, account))
        raise typer.Exit(1)
    except AccountNotFoundError:
        console.print(err_account_not_found(account))
        raise typer.Exit(1)
    except RemoteApiError as exc:
        console.print(err_remote(str(exc)))
        raise typer.Exit(1)

    console.print(f"\n[bold]{resource}[/] @ {account}")
    console.print_json(data=data)


@fork_app.command("serve")
def fork_serve_cmd(
    fork: ForkOpt = None,
    name: NameOpt = None,
    network: NetworkOpt = None,
    port: Annotated[
        Optional[int],
        typer.Option("--port", "-p", min=1, max=65535, help="Port to listen on (default 8080)."),
    ] = None,
    host: Annotated[
        Optional[str],
        typer.Option("--host", help="Interface to bind (default 127.0.0.1)."),
    ] = None,
    config_dir: ConfigDirOpt = None,
) -> None:
    """Serve a fork over an HTTP API compatible with the node REST API."""
    cfg = _load_cfg(config_dir)
    storage = _storage_for(cfg, fork, name, network, config_dir)
    if not storage.exists():
        console.print(err_fork_not_found(str(storage.fork_path)))
        raise typer.Exit(1)

    if logging.getLogger("movehat").getEffectiveLevel() > logging.INFO:
        configure_logging(level=logging.INFO)

    server = ForkServer(
        ForkManager(storage),
        port=port if port is not None else cfg.fork.port,
        host=host or cfg.fork.host,
    )

    async def _serve() -> None:
        await server.start()
        console.print(f"\n[green]✓[/] Fork server listening on {server.url}")
        console.print(f"  Ledger Info: {server.url}/v1/")
        console.print("\nPress Ctrl+C to stop")
        await server.serve_forever()

    try:
        asyncio.run(_serve())
    except ForkServerError as exc:
        console.print(err_server(str(exc)))
        raise typer.Exit(1)
    except ForkNotFoundError:
        console.print(err_fork_not_found(str(storage.fork_path)))
        raise typer.Exit(1)
    except KeyboardInterrupt:
        pass

    console.print("\nFork server stopped")
