"""Deployment records: one JSON file per module per network.

Layout::

    deployments/<network>/<module>.json

Network and module names become path components, so both are validated with
validate_safe_name() before anything touches the filesystem.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from movehat.core.names import validate_safe_name

logger = logging.getLogger(__name__)

_DEPLOYMENTS_DIR = "deployments"


class ModuleAlreadyDeployedError(Exception):
    """A deployment record exists for the module on this network."""

    def __init__(
        self,
        message: str,
        *,
        module_name: str,
        network: str,
        address: str,
        timestamp: int,
        tx_hash: str | None = None,
    ) -> None:
        super().__init__(message)
        self.module_name = module_name
        self.network = network
        self.address = address
        self.timestamp = timestamp
        self.tx_hash = tx_hash


@dataclass
class DeploymentInfo:
    address: str
    module_name: str
    network: str
    deployer: str
    timestamp: int
    tx_hash: str | None = None
    block_number: str | None = None

    def to_dict(self) -> dict:
        data = {
            "address": self.address,
            "moduleName": self.module_name,
            "network": self.network,
            "deployer": self.deployer,
            "timestamp": self.timestamp,
        }
        if self.tx_hash is not None:
            data["txHash"] = self.tx_hash
        if self.block_number is not None:
            data["blockNumber"] = self.block_number
        return data

    @classmethod
    def from_dict(cls, data: dict) -> DeploymentInfo:
        return cls(
            address=str(data["address"]),
            module_name=str(data["moduleName"]),
            network=str(data["network"]),
            deployer=str(data.get("deployer", "")),
            timestamp=int(data.get("timestamp", 0)),
            tx_hash=data.get("txHash"),
            block_number=data.get("blockNumber"),
        )


def _network_dir(network: str, root: Path | None) -> Path:
    validate_safe_name(network, "network")
    base = root if root is not None else Path.cwd()
    return base / _DEPLOYMENTS_DIR / network


def save_deployment(info: DeploymentInfo, root: Path | None = None) -> Path:
    """Write *info* to ``deployments/<network>/<module>.json`` under *root* (default CWD).

    Returns:
        Path of the written record.

    Raises:
        UnsafeNameError: If the network or module name is unsafe. Nothing is
            created on disk in that case.
    """
    validate_safe_name(info.network, "network")
    validate_safe_name(info.module_name, "module")

    network_dir = _network_dir(info.network, root)
    network_dir.mkdir(parents=True, exist_ok=True)
    path = network_dir / f"{info.module_name}.json"
    path.write_text(json.dumps(info.to_dict(), indent=2) + "\n", encoding="utf-8")
    logger.info("Deployment saved: %s", path)
    return path


def load_deployment(network: str, module_name: str, root: Path | None = None) -> DeploymentInfo | None:
    """Return the deployment record, or None if there is none (or it is unreadable)."""
    validate_safe_name(module_name, "module")
    path = _network_dir(network, root) / f"{module_name}.json"
    if not path.exists():
        return None
    try:
        return DeploymentInfo.from_dict(json.loads(path.read_text(encoding="utf-8")))
    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
        logger.warning("Ignoring unreadable deployment record %s: %s", path, exc)
        return None


def get_all_deployments(network: str, root: Path | None = None) -> dict[str, DeploymentInfo]:
    """All readable deployment records for *network*, keyed by module name."""
    network_dir = _network_dir(network, root)
    if not network_dir.is_dir():
        return {}

    deployments: dict[str, DeploymentInfo] = {}
    for path in sorted(network_dir.glob("*.json")):
        try:
            validate_safe_name(path.stem, "module")
        except ValueError:
            continue
        info = load_deployment(network, path.stem, root)
        if info is not None:
            deployments[path.stem] = info
    return deployments


def get_deployed_address(network: str, module_name: str, root: Path | None = None) -> str | None:
    info = load_deployment(network, module_name, root)
    return info.address if info else None


def ensure_not_deployed(
    network: str,
    module_name: str,
    root: Path | None = None,
    *,
    redeploy: bool = False,
) -> None:
    """Raise ModuleAlreadyDeployedError if *module_name* is recorded on *network*.

    Passing ``redeploy=True`` skips the check.
    """
    if redeploy:
        return
    info = load_deployment(network, module_name, root)
    if info is None:
        return
    raise ModuleAlreadyDeployedError(
        f"Module '{module_name}' is already deployed on {network} at {info.address}",
        module_name=module_name,
        network=network,
        address=info.address,
        timestamp=info.timestamp,
        tx_hash=info.tx_hash,
    )
