"""File-backed persistence for a single fork.

Layout under the fork root::

    metadata.json          ForkMetadata
    accounts.json          address -> AccountState (one JSON object)
    resources/0x<addr>.json  resource type -> resource value, one file per account
    cache/.gitignore
    cache/complete.json    accounts whose full resource list has been fetched

Every write replaces the target file atomically (temp file + os.replace), so a
concurrent reader sees either the old or the new content, never a torn file.
Read-modify-write cycles are *not* serialized here; ForkManager does that.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

from movehat.core.names import validate_safe_name
from movehat.fork.errors import ForkError, ForkNotFoundError
from movehat.fork.models import AccountState, ForkMetadata, address_to_filename

_METADATA = "metadata.json"
_ACCOUNTS = "accounts.json"
_RESOURCES_DIR = "resources"
_CACHE_DIR = "cache"
_COMPLETE = "complete.json"
_CACHE_GITIGNORE = "*\n!.gitignore\n"


def _write_json(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
            f.write("\n")
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def _read_json(path: Path, default: Any) -> Any:
    if not path.exists():
        return default
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ForkError(f"Corrupt fork file '{path}': {exc}") from exc


class ForkStorage:
    """Owns every file under one fork directory.

    Addresses passed in are expected to be normalized already
    (see movehat.fork.models.normalize_address); any address used to build a
    filename is still validated as hex so that untrusted input cannot escape
    the resources directory.
    """

    def __init__(self, fork_path: Path | str) -> None:
        self.fork_path = Path(fork_path)

    @classmethod
    def for_name(cls, forks_dir: Path | str, name: str) -> ForkStorage:
        """Storage for the fork called *name* under *forks_dir*.

        Raises:
            UnsafeNameError: If *name* is not a safe directory name.
        """
        validate_safe_name(name, "fork")
        return cls(Path(forks_dir) / name)

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    @property
    def metadata_path(self) -> Path:
        return self.fork_path / _METADATA

    @property
    def accounts_path(self) -> Path:
        return self.fork_path / _ACCOUNTS

    @property
    def resources_dir(self) -> Path:
        return self.fork_path / _RESOURCES_DIR

    @property
    def cache_dir(self) -> Path:
        return self.fork_path / _CACHE_DIR

    def _resource_path(self, address: str) -> Path:
        return self.resources_dir / f"{address_to_filename(address)}.json"

    # ------------------------------------------------------------------
    # Layout + metadata
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """Create the fork directory layout. Safe to call repeatedly."""
        self.resources_dir.mkdir(parents=True, exist_ok=True)
        self.cache_dir.mkdir(parents=True, exist_ok=True)

        gitignore = self.cache_dir / ".gitignore"
        if not gitignore.exists():
            gitignore.write_text(_CACHE_GITIGNORE, encoding="utf-8")

        if not self.accounts_path.exists():
            _write_json(self.accounts_path, {})

    def exists(self) -> bool:
        """True iff the metadata record is present."""
        return self.metadata_path.is_file()

    def save_metadata(self, metadata: ForkMetadata) -> None:
        _write_json(self.metadata_path, metadata.to_dict())

    def load_metadata(self) -> ForkMetadata:
        """Read the fork metadata record.

        Raises:
            ForkNotFoundError: If the record is missing or unreadable.
        """
        if not self.exists():
            raise ForkNotFoundError(f"Fork metadata not found at {self.metadata_path}")
        try:
            raw = json.loads(self.metadata_path.read_text(encoding="utf-8"))
            return ForkMetadata.from_dict(raw)
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
            raise ForkNotFoundError(
                f"Fork metadata at {self.metadata_path} is corrupt: {exc}"
            ) from exc

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def _load_accounts(self) -> dict[str, Any]:
        return _read_json(self.accounts_path, {})

    def get_account(self, address: str) -> AccountState | None:
        raw = self._load_accounts().get(address)
        return AccountState.from_dict(raw) if raw else None

    def save_account(self, address: str, state: AccountState) -> None:
        """Merge *state* into the account index and rewrite it."""
        accounts = self._load_accounts()
        accounts[address] = state.to_dict()
        _write_json(self.accounts_path, accounts)

    def list_accounts(self) -> list[str]:
        """Cached account addresses, in insertion order."""
        return list(self._load_accounts().keys())

    # ------------------------------------------------------------------
    # Resources
    # ------------------------------------------------------------------

    def get_resource(self, address: str, resource_type: str) -> Any | None:
        return self.get_all_resources(address).get(resource_type)

    def get_all_resources(self, address: str) -> dict[str, Any]:
        return _read_json(self._resource_path(address), {})

    def save_resource(self, address: str, resource_type: str, data: Any) -> None:
        path = self._resource_path(address)
        resources = _read_json(path, {})
        resources[resource_type] = data
        _write_json(path, resources)

    def save_all_resources(self, address: str, resources: dict[str, Any]) -> None:
        _write_json(self._resource_path(address), resources)

    def has_resource(self, address: str, resource_type: str) -> bool:
        return resource_type in self.get_all_resources(address)

    # ------------------------------------------------------------------
    # Bulk-fetch completeness
    # ------------------------------------------------------------------

    def is_fully_fetched(self, address: str) -> bool:
        """True once the account's full resource list was fetched from the remote."""
        return address in _read_json(self.cache_dir / _COMPLETE, [])

    def mark_fully_fetched(self, address: str) -> None:
        path = self.cache_dir / _COMPLETE
        complete = _read_json(path, [])
        if address not in complete:
            complete.append(address)
            _write_json(path, sorted(complete))
