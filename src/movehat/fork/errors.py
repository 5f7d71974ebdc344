"""Error types for the local fork subsystem.

Lower layers (storage, remote client) raise these with enough context for the
CLI or the HTTP server to build a user-facing message. The "not found" family
is distinguishable by type; messages also contain the words "not found".
"""

from __future__ import annotations


class ForkError(Exception):
    """Base class for all fork errors."""


class ForkNotFoundError(ForkError):
    """No fork metadata at the expected location (missing or corrupt fork)."""


class ForkNotInitializedError(ForkError):
    """A manager operation was called before initialize() or load()."""


class AccountNotFoundError(ForkNotFoundError):
    """The account is neither cached locally nor known to the remote node."""

    def __init__(self, address: str) -> None:
        super().__init__(f"Account {address} not found")
        self.address = address


class ResourceNotFoundError(ForkNotFoundError):
    """The resource type does not exist for the account, locally or remotely."""

    def __init__(self, address: str, resource_type: str) -> None:
        super().__init__(f"Resource {resource_type} not found for account {address}")
        self.address = address
        self.resource_type = resource_type


class InvalidAddressError(ForkError, ValueError):
    """An address is not a hex string and cannot be used as a storage key."""


class RemoteApiError(ForkError):
    """The remote node returned a non-2xx status, invalid JSON, or was unreachable.

    Attributes:
        status_code: HTTP status of the response, or None for transport and
            parse failures.
        body: Raw response body (may be empty).
    """

    def __init__(self, message: str, *, status_code: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


class ForkServerError(ForkError):
    """The fork server could not be started (port in use, permission denied...)."""
