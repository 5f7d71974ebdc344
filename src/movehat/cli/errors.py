"""movehat rich error messages — actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from movehat.cli.errors import err_fork_not_found
    console.print(err_fork_not_found(path))
    raise typer.Exit(1)
"""

from __future__ import annotations

from rich.markup import escape


def err_fork_not_found(fork_path: str) -> str:
    """No fork metadata at *fork_path*."""
    return (
        f"[red]Error:[/] Fork not found at '{escape(fork_path)}'.\n"
        "  Create a fork first with:\n"
        "    movehat fork create --network <network> --name <name>"
    )


def err_fork_exists(fork_path: str) -> str:
    return (
        f"[yellow]Fork already exists:[/] '{escape(fork_path)}'\n"
        "  Re-run with --yes to overwrite it, or choose another --name."
    )


def err_path_not_fork(fork_path: str) -> str:
    """The create target exists but holds something other than a fork."""
    return (
        f"[red]Error:[/] '{escape(fork_path)}' exists and is not a fork.\n"
        "  Choose an empty or new directory with --path, or another --name."
    )


def err_unsafe_name(message: str) -> str:
    """A fork/network/module name failed path-safety validation."""
    return f"[red]Error:[/] {escape(message)}"


def err_invalid_address(address: str) -> str:
    return (
        f"[red]Error:[/] Invalid account address: '{escape(address)}'\n"
        "  Use a hex address such as 0x1 or 0x<64 hex characters>."
    )


def err_invalid_amount(amount: str) -> str:
    return (
        f"[red]Error:[/] --amount must be a positive integer, got '{escape(amount)}'.\n"
        "  Example:  movehat fork fund --account 0x1 --amount 100000000"
    )


def err_remote(message: str) -> str:
    """The original network could not be reached or answered with an error."""
    return (
        f"[red]Error:[/] Request to the network failed.\n"
        f"  {escape(message)}\n"
        "  Check the network URL in movehat.yaml and your connection, then retry."
    )


def err_resource_not_found(resource_type: str, address: str) -> str:
    return (
        f"[yellow]Resource not found:[/] {escape(resource_type)} on {escape(address)}\n"
        "  Check the resource type (e.g. 0x1::coin::CoinStore<0x1::aptos_coin::AptosCoin>)."
    )


def err_account_not_found(address: str) -> str:
    return (
        f"[yellow]Account not found:[/] {escape(address)}\n"
        "  The account does not exist on the forked network.\n"
        f"  Fund it locally:  movehat fork fund --account {escape(address)} --amount <AMOUNT>"
    )


def err_server(message: str) -> str:
    """The fork server failed to bind or start."""
    return f"[red]Error starting fork server:[/] {escape(message)}"


def err_config(message: str) -> str:
    return (
        f"[red]Error:[/] Invalid configuration.\n"
        f"  {escape(message)}"
    )


def err_move_dir_not_found(move_dir: str) -> str:
    return (
        f"[red]Error:[/] Move directory not found: '{escape(move_dir)}'\n"
        "  Update movehat.yaml -> move_dir"
    )


def err_move_cli(message: str) -> str:
    """The Move CLI failed or is not installed."""
    return (
        f"[red]Error:[/] {escape(message)}\n"
        "  Install the Movement CLI and check:  movement --version"
    )


def err_no_forks() -> str:
    return (
        "[yellow]No forks found.[/]\n"
        "  Create a fork with:\n"
        "    movehat fork create --network testnet"
    )
