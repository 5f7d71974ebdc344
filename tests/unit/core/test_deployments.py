"""Tests for deployment record bookkeeping."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from movehat.core.deployments import (
    DeploymentInfo,
    ModuleAlreadyDeployedError,
    ensure_not_deployed,
    get_all_deployments,
    get_deployed_address,
    load_deployment,
    save_deployment,
)
from movehat.core.names import UnsafeNameError


def _info(module: str = "counter", network: str = "testnet", **kwargs) -> DeploymentInfo:
    return DeploymentInfo(
        address=kwargs.get("address", "0xcafe"),
        module_name=module,
        network=network,
        deployer="0xdeployer",
        timestamp=kwargs.get("timestamp", 1_700_000_000_000),
        tx_hash=kwargs.get("tx_hash"),
    )


# ---------------------------------------------------------------------------
# save / load
# ---------------------------------------------------------------------------


def test_save_writes_network_module_json(tmp_path: Path) -> None:
    path = save_deployment(_info(tx_hash="0xhash"), root=tmp_path)

    assert path == tmp_path / "deployments" / "testnet" / "counter.json"
    raw = json.loads(path.read_text())
    assert raw["moduleName"] == "counter"
    assert raw["txHash"] == "0xhash"
    assert "blockNumber" not in raw


def test_save_then_load(tmp_path: Path) -> None:
    save_deployment(_info(tx_hash="0xhash"), root=tmp_path)
    assert load_deployment("testnet", "counter", root=tmp_path) == _info(tx_hash="0xhash")


def test_load_missing_returns_none(tmp_path: Path) -> None:
    assert load_deployment("testnet", "counter", root=tmp_path) is None


def test_load_corrupt_returns_none(tmp_path: Path) -> None:
    path = save_deployment(_info(), root=tmp_path)
    path.write_text("{broken", encoding="utf-8")
    assert load_deployment("testnet", "counter", root=tmp_path) is None


@pytest.mark.parametrize(
    "module,network",
    [("../evil", "testnet"), ("counter", "../evil"), ("a/b", "testnet"), (".hidden", "testnet"), ("ok", "a\\b")],
)
def test_save_rejects_unsafe_names_without_writing(tmp_path: Path, module: str, network: str) -> None:
    with pytest.raises(UnsafeNameError):
        save_deployment(_info(module=module, network=network), root=tmp_path)
    assert list(tmp_path.iterdir()) == []


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def test_get_all_deployments(tmp_path: Path) -> None:
    save_deployment(_info("counter"), root=tmp_path)
    save_deployment(_info("token", address="0xbeef"), root=tmp_path)
    save_deployment(_info("other", network="mainnet"), root=tmp_path)

    deployments = get_all_deployments("testnet", root=tmp_path)

    assert list(deployments) == ["counter", "token"]
    assert deployments["token"].address == "0xbeef"


def test_get_all_deployments_no_directory(tmp_path: Path) -> None:
    assert get_all_deployments("testnet", root=tmp_path) == {}


def test_get_deployed_address(tmp_path: Path) -> None:
    save_deployment(_info(address="0x42"), root=tmp_path)
    assert get_deployed_address("testnet", "counter", root=tmp_path) == "0x42"
    assert get_deployed_address("testnet", "missing", root=tmp_path) is None


# ---------------------------------------------------------------------------
# ensure_not_deployed
# ---------------------------------------------------------------------------


def test_ensure_not_deployed_passes_when_absent(tmp_path: Path) -> None:
    ensure_not_deployed("testnet", "counter", root=tmp_path)


def test_ensure_not_deployed_raises_with_details(tmp_path: Path) -> None:
    save_deployment(_info(tx_hash="0xhash"), root=tmp_path)

    with pytest.raises(ModuleAlreadyDeployedError) as exc_info:
        ensure_not_deployed("testnet", "counter", root=tmp_path)

    err = exc_info.value
    assert err.module_name == "counter"
    assert err.network == "testnet"
    assert err.address == "0xcafe"
    assert err.timestamp == 1_700_000_000_000
    assert err.tx_hash == "0xhash"


def test_ensure_not_deployed_redeploy_skips(tmp_path: Path) -> None:
    save_deployment(_info(), root=tmp_path)
    ensure_not_deployed("testnet", "counter", root=tmp_path, redeploy=True)
