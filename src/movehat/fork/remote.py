"""Async client for the node REST API of a Movement/Aptos-compatible network.

Plain JSON GETs, no auth, one attempt per call: a transport failure, a non-2xx
status or an unparsable body is raised straight to the caller as
RemoteApiError. There is deliberately no retry here.
"""

from __future__ import annotations

import logging
from typing import Any, Optional
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ValidationError

from movehat.fork.errors import RemoteApiError

logger = logging.getLogger(__name__)

_API_PREFIX = "/v1"
_DEFAULT_TIMEOUT = 30.0
_MAX_ERROR_BODY = 500


class LedgerInfo(BaseModel):
    chain_id: int
    epoch: str
    ledger_version: str
    oldest_ledger_version: str = "0"
    ledger_timestamp: str
    node_role: str = "full_node"
    oldest_block_height: str = "0"
    block_height: str
    git_hash: Optional[str] = None


class AccountData(BaseModel):
    sequence_number: str
    authentication_key: str


class AccountResource(BaseModel):
    type: str
    data: Any = None


class MovementApiClient:
    """Stateless GET client against ``{node_url}/v1/...``.

    *node_url* may or may not already end in ``/v1``; a trailing slash is
    dropped and the ``/v1`` prefix is only added when missing.

    An ``httpx.AsyncClient`` can be injected (tests use one backed by
    ``httpx.MockTransport``); otherwise the client owns one and closes it in
    aclose().
    """

    def __init__(
        self,
        node_url: str,
        *,
        timeout: float = _DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not node_url:
            raise ValueError("node_url is required")
        self.node_url = node_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> MovementApiClient:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # --------------- Public API ---------------

    async def get_ledger_info(self) -> LedgerInfo:
        payload = await self._get(self._api_path("/"))
        return self._parse(LedgerInfo, payload, "ledger info")

    async def get_account(self, address: str) -> AccountData:
        payload = await self._get(self._api_path(f"/accounts/{_lower_hex(address)}"))
        return self._parse(AccountData, payload, f"account {address}")

    async def get_account_resource(self, address: str, resource_type: str) -> AccountResource:
        encoded = quote(resource_type, safe="")
        payload = await self._get(
            self._api_path(f"/accounts/{_lower_hex(address)}/resource/{encoded}")
        )
        return self._parse(AccountResource, payload, f"resource {resource_type}")

    async def get_account_resources(self, address: str) -> list[AccountResource]:
        payload = await self._get(self._api_path(f"/accounts/{_lower_hex(address)}/resources"))
        if not isinstance(payload, list):
            raise RemoteApiError(
                f"Expected a list of resources for account {address}, got {type(payload).__name__}"
            )
        return [self._parse(AccountResource, item, f"resources of {address}") for item in payload]

    # --------------- Internal ---------------

    def _api_path(self, suffix: str) -> str:
        return suffix if self.node_url.endswith(_API_PREFIX) else f"{_API_PREFIX}{suffix}"

    async def _get(self, path: str) -> Any:
        url = f"{self.node_url}{path}"
        logger.debug("GET %s", url)
        try:
            resp = await self._client.get(url)
        except httpx.HTTPError as exc:
            raise RemoteApiError(f"API request to {url} failed: {exc}") from exc

        if not resp.is_success:
            body = resp.text
            raise RemoteApiError(
                f"API request failed with status {resp.status_code}: {body[:_MAX_ERROR_BODY]}",
                status_code=resp.status_code,
                body=body,
            )

        try:
            return resp.json()
        except ValueError as exc:
            raise RemoteApiError(
                f"Failed to parse JSON response from {url}: {exc}",
                status_code=resp.status_code,
                body=resp.text,
            ) from exc

    @staticmethod
    def _parse(model: type[BaseModel], payload: Any, what: str) -> Any:
        try:
            return model.model_validate(payload)
        except ValidationError as exc:
            raise RemoteApiError(f"Malformed {what} from node: {exc}") from exc


def _lower_hex(address: str) -> str:
    lowered = address.lower()
    return lowered if lowered.startswith("0x") else f"0x{lowered}"
