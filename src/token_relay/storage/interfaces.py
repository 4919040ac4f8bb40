"""Storage interfaces for the token registry.

This module defines the protocols every durable backend must implement.
Using protocols lets the decryptor run against a remote blob store or the
local fallback file without any change to callers, and lets tests swap in
fakes.

Design principles:
- DurableStore is the only interface the registry and evictor see
- BlobStore is the narrow key/value contract a remote provider must meet
- Both backends are last-writer-wins per opaque_id (no compare-and-swap)
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Callable, Iterator, Optional, Protocol, runtime_checkable

if TYPE_CHECKING:
    from datetime import datetime

    from token_relay.schemas.token_record import TokenRecord


class StorageBackendType(str, Enum):
    """Durable backend variants, selected once at startup."""

    REMOTE = "remote"
    LOCAL = "local"


class StorageError(Exception):
    """Base exception for storage errors."""

    pass


class StorageUnavailableError(StorageError):
    """Backend I/O failed or timed out; safe for the client to retry."""

    pass


class NotFoundError(Exception):
    """Identifier unknown or already evicted. Expected, not exceptional."""

    pass


@runtime_checkable
class DurableStore(Protocol):
    """Protocol for persisting TokenRecords.

    Implementations must:
    - Make put() durable before returning
    - Stream list_all() lazily rather than buffering every record
    - Raise StorageUnavailableError for backend I/O failures
    """

    backend: StorageBackendType

    def put(self, record: "TokenRecord") -> None:
        """Persist a record, replacing any record with the same opaque_id."""
        ...

    def get(self, opaque_id: str) -> Optional["TokenRecord"]:
        """Retrieve a record by identifier.

        Returns:
            The TokenRecord if found, None otherwise.
        """
        ...

    def delete(self, opaque_id: str) -> bool:
        """Delete a record.

        Returns:
            True if a record was removed, False if none existed.
        """
        ...

    def list_all(
        self, on_error: Optional[Callable[[str, "StorageError"], None]] = None
    ) -> Iterator["TokenRecord"]:
        """Iterate over every record in this store's namespace.

        A record that cannot be fetched is skipped and reported to
        ``on_error`` with its identifier. A failure to enumerate the
        namespace itself still raises StorageUnavailableError.
        """
        ...

    def touch_last_used(self, opaque_id: str, timestamp: "datetime") -> bool:
        """Set last_used_at on a record.

        Returns:
            True if the record existed and was updated.
        """
        ...

    def count(self) -> int:
        """Return the number of stored records."""
        ...

    def describe(self) -> str:
        """Human-readable description of the backend, for status output."""
        ...


@runtime_checkable
class BlobStore(Protocol):
    """Protocol for an opaque remote key/value blob store."""

    def put_object(self, key: str, data: bytes) -> None:
        ...

    def get_object(self, key: str) -> Optional[bytes]:
        """Return the object body, or None if the key does not exist."""
        ...

    def list_keys(self, prefix: str) -> Iterator[str]:
        """Iterate over keys starting with prefix."""
        ...

    def delete_object(self, key: str) -> bool:
        ...

    def describe(self) -> str:
        ...
