"""Cache-or-fetch orchestration over ForkStorage and the remote node.

Reads are read-through and write-once: a hit is always served from storage, a
miss triggers exactly one remote fetch followed by a cache write, and nothing
ever expires. Negative results are not cached, so a resource that is missing
remotely is asked for again on the next call.

Writes to storage are serialized per manager with one asyncio.Lock, which
makes the manager the single writer for its fork inside this process. Two
concurrent misses on the same key can still both fetch; the last write wins.
Storage calls run in a worker thread so disk I/O never blocks the event loop.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from movehat.fork.errors import (
    AccountNotFoundError,
    ForkNotFoundError,
    ForkNotInitializedError,
    RemoteApiError,
    ResourceNotFoundError,
)
from movehat.fork.models import (
    DEFAULT_COIN_TYPE,
    AccountState,
    ForkMetadata,
    coin_store_type,
    normalize_address,
)
from movehat.fork.remote import MovementApiClient
from movehat.fork.storage import ForkStorage

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], MovementApiClient]


class ForkManager:
    """Owns the remote client and cached metadata for one fork.

    Construct one per fork and pass it to whatever needs it (CLI command,
    ForkServer). *client_factory* builds the remote client from a node URL;
    tests inject one backed by a mock transport.
    """

    def __init__(
        self,
        fork: ForkStorage | Path | str,
        *,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self.storage = fork if isinstance(fork, ForkStorage) else ForkStorage(fork)
        self._client_factory: ClientFactory = client_factory or MovementApiClient
        self._api_client: MovementApiClient | None = None
        self._metadata: ForkMetadata | None = None
        self._write_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self, node_url: str, network_name: str = "custom") -> ForkMetadata:
        """Create (or re-create) the fork from the node's current ledger info.

        Raises:
            RemoteApiError: If the node is unreachable or the ledger info is malformed.
        """
        await self._replace_client(self._client_factory(node_url))
        ledger = await self._client().get_ledger_info()

        metadata = ForkMetadata(
            network=network_name,
            node_url=node_url,
            chain_id=ledger.chain_id,
            ledger_version=ledger.ledger_version,
            timestamp=ledger.ledger_timestamp,
            epoch=ledger.epoch,
            block_height=ledger.block_height,
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        async with self._write_lock:
            await asyncio.to_thread(self.storage.initialize)
            await asyncio.to_thread(self.storage.save_metadata, metadata)
        self._metadata = metadata

        logger.info("Fork initialized at ledger version %s", metadata.ledger_version)
        return metadata

    def load(self) -> ForkMetadata:
        """Load an existing fork and point a remote client at its node.

        Raises:
            ForkNotFoundError: If the fork does not exist or its metadata is corrupt.
        """
        if not self.storage.exists():
            raise ForkNotFoundError(
                f"Fork does not exist at {self.storage.fork_path}. Create it first."
            )
        self._metadata = self.storage.load_metadata()
        self._api_client = self._client_factory(self._metadata.node_url)
        return self._metadata

    async def close(self) -> None:
        await self._replace_client(None)

    def get_metadata(self) -> ForkMetadata:
        if self._metadata is None:
            self._metadata = self.storage.load_metadata()
        return self._metadata

    @staticmethod
    def normalize_address(address: str) -> str:
        return normalize_address(address)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_account(self, address: str) -> AccountState:
        """Account state, fetched from the node on first access.

        Raises:
            AccountNotFoundError: If the node has no such account.
            RemoteApiError: On any other remote failure.
        """
        client = self._client()
        addr = normalize_address(address)
        cached = await asyncio.to_thread(self.storage.get_account, addr)
        if cached is not None:
            return cached

        logger.info("Fetching account %s from network", addr)
        try:
            data = await client.get_account(addr)
        except RemoteApiError as exc:
            if exc.is_not_found:
                raise AccountNotFoundError(addr) from exc
            raise

        state = AccountState(
            sequence_number=data.sequence_number,
            authentication_key=data.authentication_key,
        )
        async with self._write_lock:
            await asyncio.to_thread(self.storage.save_account, addr, state)
        logger.debug("Cached account %s", addr)
        return state

    async def get_resource(self, address: str, resource_type: str) -> Any:
        """Resource data for (address, type), fetched from the node on first access.

        Raises:
            ResourceNotFoundError: If the node reports the resource as missing.
            RemoteApiError: On any other remote failure.
        """
        client = self._client()
        addr = normalize_address(address)
        bag = await asyncio.to_thread(self.storage.get_all_resources, addr)
        if resource_type in bag:
            return bag[resource_type]

        logger.info("Fetching resource %s for %s", resource_type, addr)
        try:
            resource = await client.get_account_resource(addr, resource_type)
        except RemoteApiError as exc:
            if exc.is_not_found:
                raise ResourceNotFoundError(addr, resource_type) from exc
            raise

        async with self._write_lock:
            await asyncio.to_thread(self.storage.save_resource, addr, resource_type, resource.data)
        logger.debug("Cached resource %s", resource_type)
        return resource.data

    async def get_all_resources(self, address: str) -> dict[str, Any]:
        """Every resource of the account, keyed by type.

        The full list is fetched from the node once per account. Values already
        in the local bag (single fetches, set_resource, funding) take precedence
        over the fetched ones. If the node does not know the account but a local
        bag exists, the local bag is returned.

        Raises:
            AccountNotFoundError: If neither the node nor the fork know the account.
        """
        client = self._client()
        addr = normalize_address(address)
        local = await asyncio.to_thread(self.storage.get_all_resources, addr)
        if await asyncio.to_thread(self.storage.is_fully_fetched, addr):
            return local

        logger.info("Fetching all resources for %s", addr)
        try:
            fetched = await client.get_account_resources(addr)
        except RemoteApiError as exc:
            if not exc.is_not_found:
                raise
            if local:
                return local
            raise AccountNotFoundError(addr) from exc

        async with self._write_lock:
            # Re-read under the lock so writes made while fetching are kept.
            current = await asyncio.to_thread(self.storage.get_all_resources, addr)
            merged = {item.type: item.data for item in fetched}
            merged.update(current)
            await asyncio.to_thread(self.storage.save_all_resources, addr, merged)
            await asyncio.to_thread(self.storage.mark_fully_fetched, addr)

        logger.debug("Cached %d resources for %s", len(merged), addr)
        return merged

    def list_accounts(self) -> list[str]:
        return self.storage.list_accounts()

    # ------------------------------------------------------------------
    # Local mutations
    # ------------------------------------------------------------------

    async def set_resource(self, address: str, resource_type: str, data: Any) -> None:
        """Overwrite a resource locally. Never touches the node."""
        self._client()
        addr = normalize_address(address)
        async with self._write_lock:
            await asyncio.to_thread(self.storage.save_resource, addr, resource_type, data)
        logger.info("Updated resource %s for %s", resource_type, addr)

    async def fund_account(
        self,
        address: str,
        amount: int,
        coin_type: str = DEFAULT_COIN_TYPE,
    ) -> dict[str, Any]:
        """Set the account's coin balance to *amount* in the fork.

        No transaction is produced: the CoinStore resource is read (or created
        with zeroed event handles), its balance overwritten, and the account
        record created with sequence number 0 if it does not exist yet.

        Returns:
            The stored CoinStore data.
        """
        self._client()
        addr = normalize_address(address)
        resource_type = coin_store_type(coin_type)

        try:
            existing = await self.get_resource(addr, resource_type)
        except (ForkNotFoundError, RemoteApiError) as exc:
            logger.debug("No existing %s for %s (%s), creating one", resource_type, addr, exc)
            existing = None

        coin_store = copy.deepcopy(existing) if isinstance(existing, dict) else _empty_coin_store(addr)
        coin = coin_store.get("coin")
        if not isinstance(coin, dict):
            coin = coin_store["coin"] = {}
        coin["value"] = str(amount)

        async with self._write_lock:
            await asyncio.to_thread(self.storage.save_resource, addr, resource_type, coin_store)
            account = await asyncio.to_thread(self.storage.get_account, addr)
            if account is None:
                account = AccountState(
                    sequence_number="0",
                    authentication_key=addr,
                )
                await asyncio.to_thread(self.storage.save_account, addr, account)

        logger.info("Funded %s with %s of %s", addr, amount, coin_type)
        return coin_store

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _client(self) -> MovementApiClient:
        if self._api_client is None:
            raise ForkNotInitializedError(
                "Fork not initialized. Call initialize() or load() first."
            )
        return self._api_client

    async def _replace_client(self, client: MovementApiClient | None) -> None:
        old, self._api_client = self._api_client, client
        if old is not None and old is not client:
            await old.aclose()


def _empty_coin_store(address: str) -> dict[str, Any]:
    def _events(creation_num: str) -> dict[str, Any]:
        return {
            "counter": "0",
            "guid": {"id": {"addr": address, "creation_num": creation_num}},
        }

    return {
        "coin": {"value": "0"},
        "deposit_events": _events("0"),
        "withdraw_events": _events("1"),
        "frozen": False,
    }
