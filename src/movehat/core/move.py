"""Wrapper around the ``movement`` CLI for building and testing Move packages.

The binary is always invoked with an argument list and shell=False; paths and
named addresses are still validated so that bad config fails early with a
readable message instead of a confusing compiler error.
"""

from __future__ import annotations

import logging
import re
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)

MOVE_BINARY = "movement"
DEV_ADDRESS = "0xcafe"

_STANDARD_ADDRESSES: frozenset[str] = frozenset(["std", "aptos_framework", "aptos_std"])
_MODULE_RE: re.Pattern[str] = re.compile(r"module\s+([a-zA-Z_][a-zA-Z0-9_]*)::")
_BLOCK_COMMENT_RE: re.Pattern[str] = re.compile(r"/\*.*?\*/", re.DOTALL)
_LINE_COMMENT_RE: re.Pattern[str] = re.compile(r"//[^\n]*")
_NAMED_ADDRESS_NAME_RE: re.Pattern[str] = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")
_NAMED_ADDRESS_VALUE_RE: re.Pattern[str] = re.compile(r"^0x[a-fA-F0-9]+$")
_DANGEROUS_PATH_RE: re.Pattern[str] = re.compile(r"[;&|`$(){}\[\]<>]")


class MoveCliError(RuntimeError):
    """The Move CLI is missing, or exited with a non-zero status."""

    def __init__(self, message: str, returncode: int | None = None) -> None:
        super().__init__(message)
        self.returncode = returncode


# ---------------------------------------------------------------------------
# Source scanning
# ---------------------------------------------------------------------------


def find_move_files(directory: Path, max_depth: int = 10) -> list[Path]:
    """Recursively list ``.move`` files, skipping symlinked directories."""

    def _walk(current: Path, depth: int) -> list[Path]:
        if depth > max_depth:
            return []
        found: list[Path] = []
        for entry in sorted(current.iterdir()):
            if entry.is_dir():
                if entry.is_symlink():
                    continue
                found.extend(_walk(entry, depth + 1))
            elif entry.suffix == ".move":
                found.append(entry)
        return found

    return _walk(Path(directory), 0)


def extract_named_addresses(move_dir: Path) -> set[str]:
    """Named addresses declared as ``module <name>::...`` in the package sources."""
    addresses: set[str] = set()
    for path in find_move_files(move_dir):
        content = path.read_text(encoding="utf-8", errors="replace")
        content = _BLOCK_COMMENT_RE.sub(" ", content)
        content = _LINE_COMMENT_RE.sub(" ", content)
        for name in _MODULE_RE.findall(content):
            if name not in _STANDARD_ADDRESSES:
                addresses.add(name)
    return addresses


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_path(path: str | Path, what: str = "path") -> str:
    """Reject paths containing shell metacharacters.

    Raises:
        ValueError: If *path* is empty or contains one of ``;&|`$(){}[]<>``.
    """
    text = str(path)
    if not text:
        raise ValueError(f"Invalid {what}: must be a non-empty string")
    if _DANGEROUS_PATH_RE.search(text):
        raise ValueError(
            f"Invalid {what}: '{text}'\n"
            "  Path contains potentially dangerous characters.\n"
            "  Allowed characters: letters, numbers, ., -, _, /, \\, spaces"
        )
    return text


def validate_named_addresses(named_addresses: dict[str, str]) -> None:
    """Raise ValueError for a malformed named-address name or value."""
    for name, value in named_addresses.items():
        if not _NAMED_ADDRESS_NAME_RE.match(name):
            raise ValueError(
                f"Invalid named address '{name}'. Names must start with a letter or "
                "underscore and contain only alphanumeric characters and underscores."
            )
        if not isinstance(value, str) or not _NAMED_ADDRESS_VALUE_RE.match(value):
            raise ValueError(
                f"Invalid address value for '{name}': '{value}'. "
                "Address values must be hex strings starting with '0x'."
            )


def resolve_compile_addresses(
    move_dir: Path, configured: dict[str, str]
) -> tuple[dict[str, str], list[str]]:
    """Merge configured named addresses with the ones found in the sources.

    Detected addresses without a configured value get DEV_ADDRESS.

    Returns:
        (named_addresses, auto_assigned_names)
    """
    named = dict(configured)
    auto_assigned: list[str] = []
    for name in sorted(extract_named_addresses(move_dir)):
        if name not in named:
            named[name] = DEV_ADDRESS
            auto_assigned.append(name)
    return named, auto_assigned


# ---------------------------------------------------------------------------
# Command lines
# ---------------------------------------------------------------------------


def build_compile_args(move_dir: Path, named_addresses: dict[str, str]) -> list[str]:
    args = [MOVE_BINARY, "move", "build", "--package-dir", validate_path(move_dir, "Move directory")]
    if named_addresses:
        validate_named_addresses(named_addresses)
        pairs = ",".join(f"{k}={v}" for k, v in named_addresses.items())
        args += ["--named-addresses", pairs]
    return args


def build_test_args(
    move_dir: Path,
    *,
    filter: str | None = None,
    ignore_warnings: bool = False,
    dev: bool = True,
) -> list[str]:
    args = [MOVE_BINARY, "move", "test", "--package-dir", validate_path(move_dir, "Move directory")]
    if dev:
        args.append("--dev")
    if filter:
        args += ["--filter", filter]
    if ignore_warnings:
        args.append("--ignore-compile-warnings")
    return args


def run_move(args: list[str], cwd: Path | None = None) -> None:
    """Run the Move CLI with stdout/stderr passed through to the terminal.

    Raises:
        MoveCliError: If the binary is not installed or exits non-zero.
    """
    logger.debug("Running %s", " ".join(args))
    try:
        subprocess.run(args, cwd=cwd, check=True, shell=False)
    except FileNotFoundError as exc:
        raise MoveCliError(
            f"'{args[0]}' not found. Make sure the Movement CLI is installed "
            f"(check with: {args[0]} --version)."
        ) from exc
    except subprocess.CalledProcessError as exc:
        raise MoveCliError(
            f"'{' '.join(args[:3])}' exited with status {exc.returncode}",
            returncode=exc.returncode,
        ) from exc
