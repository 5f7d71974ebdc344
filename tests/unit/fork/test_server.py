"""Tests for the fork HTTP server (routes via TestClient, lifecycle via a real socket)."""

from __future__ import annotations

import asyncio
import socket
from pathlib import Path
from urllib.parse import quote

import httpx
import pytest
from fastapi.testclient import TestClient

from movehat.fork.errors import ForkNotFoundError, ForkServerError
from movehat.fork.manager import ForkManager
from movehat.fork.models import normalize_address
from movehat.fork.server import ForkServer, create_app, sanitize_pathname

COIN_STORE = "0x1::coin::CoinStore<0x1::aptos_coin::AptosCoin>"


@pytest.fixture
def client(manager: ForkManager) -> TestClient:
    return TestClient(create_app(manager))


# ---------------------------------------------------------------------------
# Ledger info
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("path", ["/v1", "/v1/"])
def test_ledger_info(client: TestClient, path: str) -> None:
    resp = client.get(path)

    assert resp.status_code == 200
    body = resp.json()
    assert body["chain_id"] == 27
    assert body["ledger_version"] == "12345"
    assert body["oldest_ledger_version"] == "0"
    assert body["node_role"] == "full_node"
    assert body["git_hash"] == "movehat-fork"
    assert resp.headers["x-aptos-chain-id"] == "27"
    assert resp.headers["x-aptos-ledger-version"] == "12345"
    assert resp.headers["x-aptos-block-height"] == "999"


def test_ledger_info_uses_fork_snapshot(fork_path: Path, fake_node) -> None:
    fake_node.ledger.update(
        {"chain_id": 27, "ledger_version": "12345", "epoch": "3", "block_height": "99", "ledger_timestamp": "1000"}
    )
    manager = ForkManager(fork_path, client_factory=fake_node.client_factory)
    asyncio.run(manager.initialize("https://node.test/v1", "testnet"))
    fake_node.ledger["ledger_version"] = "99999"

    body = TestClient(create_app(manager)).get("/v1/").json()

    assert body["ledger_version"] == "12345"
    assert body["epoch"] == "3"
    assert body["block_height"] == "99"
    assert body["ledger_timestamp"] == "1000"


def test_body_is_pretty_printed(client: TestClient) -> None:
    assert "\n  " in client.get("/v1/").text


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


def test_account_served_and_cached(client: TestClient, fake_node) -> None:
    addr = fake_node.add_account("0xabc", sequence_number="4")

    first = client.get("/v1/accounts/0xABC")
    second = client.get(f"/v1/accounts/{addr}")

    assert first.status_code == 200
    assert first.json() == {"sequence_number": "4", "authentication_key": addr}
    assert second.json() == first.json()
    assert sum(fake_node.calls.values()) == 1


def test_account_not_found_shape(client: TestClient) -> None:
    resp = client.get("/v1/accounts/0x" + "dead" * 16)

    assert resp.status_code == 404
    body = resp.json()
    assert body["error_code"] == "account_not_found"
    assert "vm_error_code" in body and body["vm_error_code"] is None
    assert "not found" in body["message"].lower()


@pytest.mark.parametrize("bad", ["xyz", "0x", "0xzz", "0x" + "1" * 65])
def test_invalid_address_is_endpoint_not_found(client: TestClient, bad: str) -> None:
    resp = client.get(f"/v1/accounts/{bad}")
    assert resp.status_code == 404
    assert resp.json()["error_code"] == "endpoint_not_found"


# ---------------------------------------------------------------------------
# Resources
# ---------------------------------------------------------------------------


def test_generic_resource_type_round_trip(client: TestClient, manager: ForkManager, fake_node) -> None:
    fake_node.add_resource("0x1", COIN_STORE, {"coin": {"value": "77"}})

    resp = client.get(f"/v1/accounts/0x1/resource/{quote(COIN_STORE, safe='')}")

    assert resp.status_code == 200
    assert resp.json() == {"type": COIN_STORE, "data": {"coin": {"value": "77"}}}
    assert manager.storage.get_resource(normalize_address("0x1"), COIN_STORE) == {"coin": {"value": "77"}}


def test_resource_not_found(client: TestClient, fake_node) -> None:
    fake_node.add_account("0x1")
    resp = client.get(f"/v1/accounts/0x1/resource/{quote('0x1::m::Missing', safe='')}")

    assert resp.status_code == 404
    assert resp.json()["error_code"] == "resource_not_found"
    assert resp.json()["vm_error_code"] is None


def test_funded_balance_is_served(client: TestClient, manager: ForkManager) -> None:
    asyncio.run(manager.fund_account("0xbeef", 250))
    resp = client.get(f"/v1/accounts/0xbeef/resource/{quote(COIN_STORE, safe='')}")
    assert resp.json()["data"]["coin"]["value"] == "250"


def test_resources_list(client: TestClient, fake_node) -> None:
    fake_node.add_resource("0x1", COIN_STORE, {"coin": {"value": "1"}})
    fake_node.add_resource("0x1", "0x1::account::Account", {"sequence_number": "0"})

    resp = client.get("/v1/accounts/0x1/resources")

    assert resp.status_code == 200
    assert {item["type"] for item in resp.json()} == {COIN_STORE, "0x1::account::Account"}


def test_resources_unknown_account(client: TestClient) -> None:
    resp = client.get("/v1/accounts/0xdead/resources")
    assert resp.status_code == 404
    assert resp.json()["error_code"] == "account_not_found"


# ---------------------------------------------------------------------------
# Errors, CORS, unknown routes
# ---------------------------------------------------------------------------


def test_unknown_route(client: TestClient) -> None:
    resp = client.get("/v1/transactions")
    assert resp.status_code == 404
    body = resp.json()
    assert body["error_code"] == "endpoint_not_found"
    assert "/v1/transactions" in body["message"]


def test_method_not_allowed(client: TestClient) -> None:
    resp = client.post("/v1/")
    assert resp.status_code == 405
    assert resp.json()["error_code"] == "method_not_allowed"


def test_cors_headers_on_every_response(client: TestClient) -> None:
    for resp in (client.get("/v1/"), client.get("/nope")):
        assert resp.headers["access-control-allow-origin"] == "*"
        assert "GET" in resp.headers["access-control-allow-methods"]


def test_options_preflight(client: TestClient) -> None:
    resp = client.options("/v1/accounts/0x1")
    assert resp.status_code == 200
    assert resp.content == b""
    assert resp.headers["access-control-allow-headers"] == "Content-Type"


def test_unexpected_error_is_generic_500(client: TestClient, manager: ForkManager, monkeypatch) -> None:
    async def _boom(address):
        raise RuntimeError("secret internals")

    monkeypatch.setattr(manager, "get_account", _boom)
    resp = client.get("/v1/accounts/0x1")

    assert resp.status_code == 500
    assert resp.json() == {
        "message": "Internal server error",
        "error_code": "internal_error",
        "vm_error_code": None,
    }
    assert "secret" not in resp.text


def test_remote_failure_is_500(client: TestClient, fake_node) -> None:
    fake_node.fail_status = 502
    resp = client.get("/v1/accounts/0x1")
    assert resp.status_code == 500
    assert resp.json()["error_code"] == "internal_error"


def test_sanitize_pathname() -> None:
    assert sanitize_pathname("/v1/\x00acc\x1bounts") == "/v1/accounts"
    long = "/" + "a" * 200
    assert sanitize_pathname(long) == long[:100] + "..."


# ---------------------------------------------------------------------------
# ForkServer lifecycle
# ---------------------------------------------------------------------------


def test_server_start_serve_stop(manager: ForkManager) -> None:
    server = ForkServer(manager, port=0)

    async def _run():
        await server.start()
        try:
            async with httpx.AsyncClient(trust_env=False) as http:
                return await http.get(f"{server.url}/v1/")
        finally:
            await server.stop()

    resp = asyncio.run(_run())

    assert server.port != 0
    assert resp.status_code == 200
    assert resp.json()["chain_id"] == 27


def test_server_port_in_use(manager: ForkManager) -> None:
    blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    blocker.bind(("127.0.0.1", 0))
    blocker.listen(1)
    try:
        server = ForkServer(manager, port=blocker.getsockname()[1])
        with pytest.raises(ForkServerError, match="already in use"):
            asyncio.run(server.start())
    finally:
        blocker.close()


def test_server_missing_fork(tmp_path: Path) -> None:
    server = ForkServer(ForkManager(tmp_path / "missing"), port=0)
    with pytest.raises(ForkNotFoundError):
        asyncio.run(server.start())


def test_stop_without_start_is_noop(manager: ForkManager) -> None:
    asyncio.run(ForkServer(manager).stop())
