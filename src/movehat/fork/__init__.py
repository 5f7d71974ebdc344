"""Local network forks: storage, lazy remote fetching, and a node-API server."""

from movehat.fork.errors import (
    AccountNotFoundError,
    ForkError,
    ForkNotFoundError,
    ForkNotInitializedError,
    ForkServerError,
    InvalidAddressError,
    RemoteApiError,
    ResourceNotFoundError,
)
from movehat.fork.manager import ForkManager
from movehat.fork.models import AccountState, ForkMetadata, normalize_address
from movehat.fork.remote import MovementApiClient
from movehat.fork.server import ForkServer, create_app
from movehat.fork.storage import ForkStorage

__all__ = [
    "AccountNotFoundError",
    "AccountState",
    "ForkError",
    "ForkManager",
    "ForkMetadata",
    "ForkNotFoundError",
    "ForkNotInitializedError",
    "ForkServer",
    "ForkServerError",
    "ForkStorage",
    "InvalidAddressError",
    "MovementApiClient",
    "RemoteApiError",
    "ResourceNotFoundError",
    "create_app",
    "normalize_address",
]
