"""Tests for MovementApiClient against httpx.MockTransport."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from movehat.fork.errors import RemoteApiError
from movehat.fork.remote import LedgerInfo, MovementApiClient

NODE_URL = "https://node.test/v1"
COIN_STORE = "0x1::coin::CoinStore<0x1::aptos_coin::AptosCoin>"
LEDGER = {
    "epoch": "3",
    "ledger_version": "12345",
    "ledger_timestamp": "1000",
    "block_height": "99",
}


def _client_with(handler, node_url: str = NODE_URL) -> MovementApiClient:
    return MovementApiClient(node_url, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


# ---------------------------------------------------------------------------
# URL handling
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "node_url",
    ["https://node.test/v1", "https://node.test/v1/", "https://node.test", "https://node.test/"],
)
def test_ledger_info_url_with_or_without_v1(node_url: str) -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, json={**LEDGER, "chain_id": 27})

    asyncio.run(_client_with(handler, node_url).get_ledger_info())
    assert seen == ["https://node.test/v1/"]


def test_resource_type_is_percent_encoded() -> None:
    raw_paths: list[bytes] = []

    def handler(request: httpx.Request) -> httpx.Response:
        raw_paths.append(request.url.raw_path)
        return httpx.Response(200, json={"type": COIN_STORE, "data": {"coin": {"value": "1"}}})

    resource = asyncio.run(_client_with(handler).get_account_resource("0x1", COIN_STORE))

    assert resource.type == COIN_STORE
    assert b"<" not in raw_paths[0]
    assert b"0x1%3A%3Acoin%3A%3ACoinStore%3C" in raw_paths[0]


def test_address_is_lowercased_with_prefix() -> None:
    paths: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        return httpx.Response(200, json={"sequence_number": "0", "authentication_key": "0x1"})

    asyncio.run(_client_with(handler).get_account("ABCD"))
    assert paths == ["/v1/accounts/0xabcd"]


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def test_get_ledger_info_parses_fields(fake_node) -> None:
    info = asyncio.run(fake_node.client_factory(NODE_URL).get_ledger_info())
    assert isinstance(info, LedgerInfo)
    assert info.chain_id == 27
    assert info.ledger_version == "12345"
    assert info.block_height == "999"


def test_get_account_resources_returns_list(fake_node) -> None:
    fake_node.add_resource("0x1", COIN_STORE, {"coin": {"value": "5"}})
    fake_node.add_resource("0x1", "0x1::account::Account", {"sequence_number": "7"})

    resources = asyncio.run(fake_node.client_factory(NODE_URL).get_account_resources("0x1"))
    assert {r.type for r in resources} == {COIN_STORE, "0x1::account::Account"}


def test_get_account_resources_rejects_non_list() -> None:
    client = _client_with(lambda request: httpx.Response(200, json={"not": "a list"}))
    with pytest.raises(RemoteApiError, match="Expected a list"):
        asyncio.run(client.get_account_resources("0x1"))


def test_malformed_ledger_info_raises() -> None:
    client = _client_with(lambda request: httpx.Response(200, json={"chain_id": "x"}))
    with pytest.raises(RemoteApiError, match="Malformed ledger info"):
        asyncio.run(client.get_ledger_info())


def test_invalid_json_raises() -> None:
    client = _client_with(lambda request: httpx.Response(200, text="<html>"))
    with pytest.raises(RemoteApiError, match="parse JSON"):
        asyncio.run(client.get_ledger_info())


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


def test_404_carries_status_code(fake_node) -> None:
    with pytest.raises(RemoteApiError) as exc_info:
        asyncio.run(fake_node.client_factory(NODE_URL).get_account("0xdead"))
    assert exc_info.value.status_code == 404
    assert exc_info.value.is_not_found


def test_server_error_message_includes_status_and_body() -> None:
    client = _client_with(lambda request: httpx.Response(500, text="boom"))
    with pytest.raises(RemoteApiError) as exc_info:
        asyncio.run(client.get_ledger_info())
    assert "status 500" in str(exc_info.value)
    assert "boom" in str(exc_info.value)
    assert exc_info.value.is_not_found is False


def test_transport_error_wrapped() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(RemoteApiError) as exc_info:
        asyncio.run(_client_with(handler).get_ledger_info())
    assert exc_info.value.status_code is None


def test_no_retry_on_failure() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(503, text="unavailable")

    with pytest.raises(RemoteApiError):
        asyncio.run(_client_with(handler).get_ledger_info())
    assert len(calls) == 1


def test_empty_node_url_rejected() -> None:
    with pytest.raises(ValueError):
        MovementApiClient("")
