"""Shared pytest fixtures."""

from __future__ import annotations

import asyncio
import json
from collections import Counter
from pathlib import Path
from typing import Any

import httpx
import pytest

from movehat.fork.manager import ForkManager
from movehat.fork.models import normalize_address
from movehat.fork.remote import MovementApiClient

NODE_URL = "https://node.test/v1"

LEDGER_INFO: dict[str, Any] = {
    "chain_id": 27,
    "epoch": "5",
    "ledger_version": "12345",
    "oldest_ledger_version": "0",
    "ledger_timestamp": "1700000000000000",
    "node_role": "full_node",
    "oldest_block_height": "0",
    "block_height": "999",
    "git_hash": "abc123",
}


class FakeNode:
    """In-memory node REST API served through httpx.MockTransport.

    ``calls`` counts requests per decoded path so tests can assert how often
    the fork went to the network.
    """

    def __init__(self) -> None:
        self.ledger: dict[str, Any] = dict(LEDGER_INFO)
        self.accounts: dict[str, dict[str, str]] = {}
        self.resources: dict[str, dict[str, Any]] = {}
        self.calls: Counter[str] = Counter()
        self.fail_status: int | None = None

    def add_account(self, address: str, sequence_number: str = "7", auth_key: str | None = None) -> str:
        addr = normalize_address(address)
        self.accounts[addr] = {
            "sequence_number": sequence_number,
            "authentication_key": auth_key or addr,
        }
        self.resources.setdefault(addr, {})
        return addr

    def add_resource(self, address: str, resource_type: str, data: Any) -> None:
        addr = normalize_address(address)
        if addr not in self.accounts:
            self.add_account(addr)
        self.resources[addr][resource_type] = data

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls[path] += 1

        if self.fail_status is not None:
            return httpx.Response(self.fail_status, text="node exploded")

        if path in ("/v1", "/v1/"):
            return httpx.Response(200, json=self.ledger)

        parts = path.removeprefix("/v1/").split("/", 3)
        if len(parts) < 2 or parts[0] != "accounts":
            return _not_found("endpoint_not_found", path)

        addr = normalize_address(parts[1])
        if addr not in self.accounts:
            return _not_found("account_not_found", addr)

        if len(parts) == 2:
            return httpx.Response(200, json=self.accounts[addr])
        if len(parts) == 3 and parts[2] == "resources":
            items = [{"type": t, "data": d} for t, d in self.resources[addr].items()]
            return httpx.Response(200, json=items)
        if len(parts) == 4 and parts[2] == "resource":
            resource_type = parts[3]
            if resource_type not in self.resources[addr]:
                return _not_found("resource_not_found", resource_type)
            return httpx.Response(200, json={"type": resource_type, "data": self.resources[addr][resource_type]})
        return _not_found("endpoint_not_found", path)

    def client_factory(self, node_url: str) -> MovementApiClient:
        transport = httpx.MockTransport(self.handler)
        return MovementApiClient(node_url, client=httpx.AsyncClient(transport=transport))


def _not_found(error_code: str, what: str) -> httpx.Response:
    return httpx.Response(
        404,
        content=json.dumps({"message": f"{what} not found", "error_code": error_code}),
        headers={"content-type": "application/json"},
    )


@pytest.fixture(autouse=True)
def _isolate_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's ~/.movehat and shell environment out of every test."""
    monkeypatch.setattr("movehat.config._GLOBAL_CONFIG_PATH", tmp_path / "no-global" / "config.yaml")
    for var in ("MH_CLI_NETWORK", "MH_DEFAULT_NETWORK", "PRIVATE_KEY"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def fake_node() -> FakeNode:
    return FakeNode()


@pytest.fixture
def fork_path(tmp_path: Path) -> Path:
    return tmp_path / "forks" / "testnet-fork"


@pytest.fixture
def initialized_fork(fork_path: Path, fake_node: FakeNode) -> Path:
    """A fork created against fake_node; returns its directory."""
    manager = ForkManager(fork_path, client_factory=fake_node.client_factory)
    asyncio.run(manager.initialize(NODE_URL, "testnet"))
    fake_node.calls.clear()
    return fork_path


@pytest.fixture
def manager(initialized_fork: Path, fake_node: FakeNode) -> ForkManager:
    """A loaded manager for initialized_fork."""
    m = ForkManager(initialized_fork, client_factory=fake_node.client_factory)
    m.load()
    return m
