"""Durable storage for token records.

Storage backends:
- Remote (any BlobStore, S3-compatible via the optional ``s3`` extra)
- Local fallback (single JSON file, atomic rewrites)

Usage:
    from token_relay.storage import DurableStore, StorageFactory

    store = StorageFactory.create(config, key_identity)
    store.put(record)
"""

from token_relay.storage.factory import StorageFactory
from token_relay.storage.interfaces import (
    BlobStore,
    DurableStore,
    NotFoundError,
    StorageBackendType,
    StorageError,
    StorageUnavailableError,
)
from token_relay.storage.local import LocalFallbackStore
from token_relay.storage.remote import RemoteStore

__all__ = [
    "BlobStore",
    "DurableStore",
    "LocalFallbackStore",
    "NotFoundError",
    "RemoteStore",
    "StorageBackendType",
    "StorageError",
    "StorageFactory",
    "StorageUnavailableError",
]
