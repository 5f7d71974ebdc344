"""Domain models for fork state.

On-disk JSON uses camelCase keys so that forks written by earlier movehat
releases load unchanged; the Python side is snake_case.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from movehat.fork.errors import InvalidAddressError

ADDRESS_HEX_LENGTH = 64
DEFAULT_COIN_TYPE = "0x1::aptos_coin::AptosCoin"

_HEX_RE: re.Pattern[str] = re.compile(r"^[0-9a-f]+$")


@dataclass
class ForkMetadata:
    """Where and when a fork was taken. Written once, at fork creation."""

    network: str
    node_url: str
    chain_id: int
    ledger_version: str
    timestamp: str
    epoch: str
    block_height: str
    created_at: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "network": self.network,
            "nodeUrl": self.node_url,
            "chainId": self.chain_id,
            "ledgerVersion": self.ledger_version,
            "timestamp": self.timestamp,
            "epoch": self.epoch,
            "blockHeight": self.block_height,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ForkMetadata:
        """Build from the metadata.json record.

        Raises:
            KeyError: If a required field is missing.
        """
        return cls(
            network=str(data["network"]),
            node_url=str(data["nodeUrl"]),
            chain_id=int(data["chainId"]),
            ledger_version=str(data["ledgerVersion"]),
            timestamp=str(data["timestamp"]),
            epoch=str(data["epoch"]),
            block_height=str(data["blockHeight"]),
            created_at=str(data["createdAt"]),
        )


@dataclass
class AccountState:
    sequence_number: str
    authentication_key: str

    def to_dict(self) -> dict[str, str]:
        return {
            "sequenceNumber": self.sequence_number,
            "authenticationKey": self.authentication_key,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AccountState:
        return cls(
            sequence_number=str(data["sequenceNumber"]),
            authentication_key=str(data["authenticationKey"]),
        )


def _hex_body(address: str) -> str:
    """Return the lowercase hex digits of *address* without the 0x prefix.

    Raises:
        InvalidAddressError: If what remains is empty or not hexadecimal.
    """
    if not isinstance(address, str):
        raise InvalidAddressError(f"Invalid address format: {address!r}. Expected hexadecimal string.")
    body = address.strip().lower()
    if body.startswith("0x"):
        body = body[2:]
    if not body or not _HEX_RE.match(body):
        raise InvalidAddressError(
            f"Invalid address format: {address!r}. Expected hexadecimal string."
        )
    return body


def normalize_address(address: str) -> str:
    """Canonical form of an account address: ``0x`` + 64 lowercase hex digits.

    ``0x1``, ``1`` and ``0X0000...01`` all normalize to the same key.

    Raises:
        InvalidAddressError: If *address* is not hex or is longer than 32 bytes.
    """
    body = _hex_body(address)
    if len(body) > ADDRESS_HEX_LENGTH:
        raise InvalidAddressError(
            f"Invalid address format: {address!r}. "
            f"Addresses are at most {ADDRESS_HEX_LENGTH} hex characters."
        )
    return "0x" + body.rjust(ADDRESS_HEX_LENGTH, "0")


def address_to_filename(address: str) -> str:
    """Return a filename stem for *address* that is safe to join onto a directory.

    The address is not padded here; callers pass normalized addresses.

    Raises:
        InvalidAddressError: If *address* contains path separators, ``..`` or
            non-hex characters.
    """
    if "/" in address or "\\" in address or ".." in address:
        raise InvalidAddressError(f"Address contains invalid characters: {address!r}")
    return "0x" + _hex_body(address)


def coin_store_type(coin_type: str = DEFAULT_COIN_TYPE) -> str:
    return f"0x1::coin::CoinStore<{coin_type}>"
